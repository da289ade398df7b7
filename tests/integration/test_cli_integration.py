from pathlib import Path
from xml.etree import ElementTree

import pytest
from pytest_mock import MockerFixture

from codepack import cli, emitters

PROJECT = {
    ".gitignore": "# local files\nsecrets.txt\ntmp/\n",
    "README.md": "# Project\n",
    "secrets.txt": "token\n",
    "tmp/cache.txt": "cached\n",
    "node_modules/lib/index.js": "module.exports = 1;\n",
    "src/main.py": "import os  # stdlib\n\n\nprint(os.getcwd())\n",
    "src/.gitignore": "generated_*.py\n",
    "src/generated_api.py": "x = 1\n",
    "docs/guide.md": "guide\n",
    "docs/generated_api.py": "y = 2\n",
}


def build_project(root: Path) -> Path:
    for rel, content in PROJECT.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.mark.integration
def test_xml_file_target_applies_nested_gitignore_rules(tmp_path: Path) -> None:
    project = build_project(tmp_path / "project")
    out_dir = tmp_path / "out"

    exit_code = cli.main([str(project), "--target", "file", "--output-dir", str(out_dir)])

    assert exit_code == cli.EXIT_OK
    root = ElementTree.fromstring((out_dir / "codepack.xml").read_text(encoding="utf-8"))
    paths = [f.get("path") for f in root.iter("file")]
    assert paths == [
        ".gitignore",
        "README.md",
        "docs/generated_api.py",
        "docs/guide.md",
        "src/.gitignore",
        "src/main.py",
    ]
    gitignore = [p.text for p in root.iterfind("ignore_patterns/gitignore_patterns/patterns/pattern")]
    assert gitignore == ["secrets.txt", "tmp/", "src/generated_*.py"]
    tree = root.findtext("directory_structure")
    assert "node_modules" not in tree
    assert "main.py" in tree


@pytest.mark.integration
def test_markdown_with_transforms_and_include_filter(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    project = build_project(tmp_path / "project")

    exit_code = cli.main(
        [
            str(project),
            "--format",
            "md",
            "--include",
            "**/*.py",
            "--remove-comments",
            "--remove-empty-lines",
        ],
    )

    assert exit_code == cli.EXIT_OK
    md = capsys.readouterr().out
    assert "### `src/main.py`\n\n```python\nimport os\nprint(os.getcwd())\n\n```" in md
    assert "### `docs/generated_api.py`" in md
    assert "README.md" not in md.split("## File Contents")[1]
    assert "- Included files matching: **/*.py" in md


@pytest.mark.integration
def test_rule_files_and_defaults_disabled(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    project = build_project(tmp_path / "project")

    exit_code = cli.main([str(project), "--format", "txt", "--no-gitignore", "--no-default-patterns"])

    assert exit_code == cli.EXIT_OK
    text = capsys.readouterr().out
    for rel in PROJECT:
        assert f"<<< FILE: {rel} >>>" in text
    assert "(No ignore patterns were applied)." in text


@pytest.mark.integration
def test_config_file_supplies_defaults(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    project = build_project(tmp_path / "project")
    config = tmp_path / "codepack.yaml"
    config.write_text("format: txt\nignore:\n  - docs/**\n", encoding="utf-8")

    exit_code = cli.main([str(project), "--config", str(config), "--no-file-summary"])

    assert exit_code == cli.EXIT_OK
    text = capsys.readouterr().out
    assert text.startswith("CODEBASE PACKAGE\n\n--- Directory Structure ---\n")
    assert "<<< FILE: docs/guide.md >>>" not in text
    assert "--- Input Ignore Patterns ---\nPatterns from the ignore patterns option:\ndocs/**\n" in text


@pytest.mark.integration
def test_clipboard_target(tmp_path: Path, mocker: MockerFixture, capsys: pytest.CaptureFixture[str]) -> None:
    project = build_project(tmp_path / "project")
    copy = mocker.patch.object(emitters.pyperclip, "copy")

    exit_code = cli.main([str(project), "--target", "clipboard", "--format", "md"])

    assert exit_code == cli.EXIT_OK
    [document] = copy.call_args.args
    assert document.startswith("# Codebase Package\n")
    assert "Wrote clipboard format=md files=6" in capsys.readouterr().err
