from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from codepack.config import (
    DEFAULT_MAX_FILE_SIZE,
    DEFAULT_MAX_WORKERS,
    DEFAULT_READ_MAX_FILE_SIZE,
    OutputFormat,
    ScanRequest,
)
from codepack.emitters import OutputTarget
from codepack.exceptions import InvalidRequestError
from codepack.packer import build_request, describe_validation_error

if TYPE_CHECKING:
    from collections.abc import Mapping

ENV_FILE = find_dotenv(usecwd=True)
ENV_PREFIX = "CODEPACK_"

_ENV_FIELDS: dict[str, str] = {
    "MAX_FILE_SIZE": "max_file_size",
    "READ_MAX_FILE_SIZE": "read_max_file_size",
    "MAX_WORKERS": "max_workers",
    "FORMAT": "format",
    "LOG_LEVEL": "log_level",
}


class Settings(BaseModel):
    """Configuration settings for the codepack command line."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    directory: Path = Field(default=Path(), description="Directory to package.")
    remote: str | None = Field(default=None, description="GitHub repository URL to clone and package.")
    include: str | None = Field(default=None, description="Comma-separated include globs.")
    ignore: str | None = Field(default=None, description="Comma-separated ignore globs.")
    format: OutputFormat = Field(default=OutputFormat.XML, description="Output format.")
    target: OutputTarget = Field(default=OutputTarget.STDOUT, description="Output destination.")
    output_dir: Path = Field(default=Path(), description="Directory for the file target.")

    remove_comments: bool = Field(default=False, description="Strip comments.")
    remove_empty_lines: bool = Field(default=False, description="Strip blank lines.")
    file_summary: bool = Field(default=True, description="Emit the summary section.")
    directory_structure: bool = Field(default=True, description="Emit the directory tree.")
    use_gitignore: bool = Field(default=True, description="Honour .gitignore files.")
    use_default_patterns: bool = Field(default=True, description="Apply the default ignore patterns.")

    max_file_size: int = Field(default=DEFAULT_MAX_FILE_SIZE, gt=0, description="Scan-time size cap in bytes.")
    read_max_file_size: int = Field(
        default=DEFAULT_READ_MAX_FILE_SIZE,
        gt=0,
        description="Read-time size cap in bytes.",
    )
    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1, description="Concurrent file reads.")

    config: Path | None = Field(default=None, description="YAML configuration file.")
    log_file: str = Field(default="", description="Log file path.")
    log_level: str = Field(default="INFO", description="Minimum log level.")

    @field_validator("format", "target", mode="before")
    @classmethod
    def _lower(cls, value: Any) -> Any:  # noqa: ANN401
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("include", "ignore", mode="before")
    @classmethod
    def _join_lists(cls, value: Any) -> Any:  # noqa: ANN401
        if isinstance(value, list | tuple):
            return ",".join(str(v) for v in value)
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:  # noqa: ANN401
        return value.strip().upper() if isinstance(value, str) else value

    def to_request(
        self,
        source_dir: Path | None = None,
        *,
        source_identifier: str | None = None,
        remote_url: str | None = None,
    ) -> ScanRequest:
        """Build the engine request for these settings.

        Args:
            source_dir (Path | None): directory to scan; defaults to ``directory``
            source_identifier (str | None): display label, e.g. the remote URL
            remote_url (str | None): set when the source was cloned

        Raises:
            InvalidRequestError: if the combination of options is invalid.

        Returns:
            ScanRequest: the immutable request
        """
        options: dict[str, Any] = {
            "source_dir": source_dir or self.directory,
            "include_patterns": self.include,
            "ignore_patterns": self.ignore,
            "use_default_patterns": self.use_default_patterns,
            "use_rule_files": self.use_gitignore,
            "output_format": self.format,
            "max_file_size": self.max_file_size,
            "read_max_file_size": self.read_max_file_size,
            "remove_comments": self.remove_comments,
            "remove_empty_lines": self.remove_empty_lines,
            "file_summary": self.file_summary,
            "directory_structure": self.directory_structure,
            "remote_url": remote_url,
            "max_workers": self.max_workers,
        }
        if source_identifier:
            options["source_identifier"] = source_identifier
        return build_request(**options)


def env_overrides(env_file: str | None = ENV_FILE, environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Collect ``CODEPACK_*`` settings from a ``.env`` file and the environment.

    Process environment variables win over the ``.env`` file.

    Args:
        env_file (str | None): path of the ``.env`` file; falsy to skip it
        environ (Mapping[str, str] | None): environment to read; defaults to ``os.environ``

    Returns:
        dict[str, str]: raw values keyed by Settings field name
    """
    merged: dict[str, str] = {}
    if env_file:
        merged.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
    merged.update(os.environ if environ is None else environ)
    return {name: merged[ENV_PREFIX + key] for key, name in _ENV_FIELDS.items() if ENV_PREFIX + key in merged}


def load_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML mapping of settings; keys may use dashes or underscores.

    Args:
        path (Path): the YAML file

    Raises:
        InvalidRequestError: if the file cannot be read, parsed, or is not a mapping.

    Returns:
        dict[str, Any]: values keyed by Settings field name
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except OSError as e:
        raise InvalidRequestError(message=f"Could not read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise InvalidRequestError(message=f"Invalid YAML in config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise InvalidRequestError(message=f"Config file {path} must contain a mapping.")
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def resolve_settings(
    cli_values: Mapping[str, Any],
    *,
    env_file: str | None = ENV_FILE,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Merge defaults, environment, config file and explicit CLI values, in that order.

    Args:
        cli_values (Mapping[str, Any]): only the options given on the command line
        env_file (str | None): ``.env`` file to read
        environ (Mapping[str, str] | None): environment to read

    Raises:
        InvalidRequestError: if any layer holds an invalid value.

    Returns:
        Settings: the merged settings
    """
    values: dict[str, Any] = dict(env_overrides(env_file, environ))
    config = cli_values.get("config")
    if config:
        values.update(load_config_file(Path(config)))
    values.update(cli_values)
    try:
        return Settings(**values)
    except ValidationError as e:
        raise InvalidRequestError(message=f"Invalid settings: {describe_validation_error(e)}") from e
