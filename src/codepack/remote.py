from __future__ import annotations

import re
import shutil
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from codepack.exceptions import InvalidRequestError, RemoteCloneError
from codepack.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterator

_TREE_URL = re.compile(r"^(https?://github\.com/([^/]+)/([^/]+))(?:/tree/[^/]+/(.*))?$")
_ROOT_URL = re.compile(r"^(https?://github\.com/([^/]+)/([^/]+?))/?$")


class RemoteSource(BaseModel):
    """A GitHub repository location, optionally narrowed to a sub-directory."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="URL as given by the caller")
    clone_url: str = Field(..., description="Base repository URL ending in .git")
    owner: str = Field(..., description="Repository owner")
    name: str = Field(..., description="Repository name")
    subdirectory: str = Field(default="", description="Path inside the repository to package")


def parse_github_url(url: str) -> RemoteSource:
    """Parse ``https://github.com/<owner>/<repo>[/tree/<branch>/<path>]``.

    Args:
        url (str): the repository URL

    Raises:
        InvalidRequestError: if the URL is not a GitHub repository URL.

    Returns:
        RemoteSource: the clone URL, owner, name and sub-directory
    """
    value = url.strip()
    match = _TREE_URL.match(value) or _ROOT_URL.match(value)
    if match is None:
        msg = (
            "Invalid GitHub URL format. Expected https://github.com/owner/repo "
            f"or https://github.com/owner/repo/tree/branch/path. Got: {url}"
        )
        raise InvalidRequestError(message=msg)

    base, owner, name = match.group(1), match.group(2), match.group(3)
    name = name.removesuffix(".git")
    base = base.removesuffix(".git")
    subdirectory = ""
    if match.re is _TREE_URL and match.group(4):
        subdirectory = match.group(4).strip("/")
    return RemoteSource(url=value, clone_url=f"{base}.git", owner=owner, name=name, subdirectory=subdirectory)


def clone_repository(source: RemoteSource, destination: Path) -> None:
    """Shallow-clone ``source`` into the empty directory ``destination``.

    Raises:
        RemoteCloneError: if git is missing or the clone fails.
    """
    logger.info("Cloning repository", url=source.clone_url, destination=str(destination))
    try:
        subprocess.run(
            ["git", "clone", "--depth", "1", source.clone_url, "."],  # noqa: S607
            cwd=str(destination),
            text=True,
            capture_output=True,
            check=True,
        )
    except subprocess.CalledProcessError as e:
        raise RemoteCloneError(url=source.clone_url, returncode=e.returncode, stderr=e.stderr or "") from e
    except OSError as e:
        raise RemoteCloneError(url=source.clone_url, returncode=-1, stderr=str(e)) from e


def resolve_subdirectory(checkout: Path, source: RemoteSource) -> Path:
    """Return the directory to package inside a fresh checkout.

    Raises:
        InvalidRequestError: if the sub-directory is missing, not a directory
            or outside the checkout.
    """
    root = checkout.resolve()
    target = root.joinpath(*source.subdirectory.split("/")).resolve() if source.subdirectory else root
    if not target.is_relative_to(root):
        raise InvalidRequestError(message=f"Sub-directory escapes the repository: '{source.subdirectory}'")
    if not target.exists():
        msg = (
            f"Subdirectory not found in repository: '{source.subdirectory}'. "
            f"Please check the path and branch name in the URL: {source.url}"
        )
        raise InvalidRequestError(message=msg)
    if not target.is_dir():
        msg = f"Specified path '{source.subdirectory}' within the repository is not a directory."
        raise InvalidRequestError(message=msg)
    return target


@contextmanager
def cloned_repository(url: str) -> Iterator[tuple[RemoteSource, Path]]:
    """Clone a GitHub repository into a temporary directory for the duration of the block.

    The temporary directory is removed on exit, whether the block succeeded or not.

    Args:
        url (str): the repository URL, see :func:`parse_github_url`

    Raises:
        InvalidRequestError: if the URL or the sub-directory is invalid.
        RemoteCloneError: if the clone fails.

    Yields:
        tuple[RemoteSource, Path]: the parsed source and the directory to package
    """
    source = parse_github_url(url)
    checkout = Path(tempfile.mkdtemp(prefix="codepack-clone-"))
    try:
        clone_repository(source, checkout)
        yield source, resolve_subdirectory(checkout, source)
    finally:
        shutil.rmtree(checkout, ignore_errors=True)
        logger.debug("Removed temporary checkout", path=str(checkout))
