from pathlib import Path
from xml.etree import ElementTree

import pytest
from pytest_mock import MockerFixture

from codepack import cli, output_construction


def write_repo(root: Path) -> None:
    files = {
        ".gitignore": "dist/\n*.tmp\n",
        "package.json": '{"name": "demo"}\n',
        "src/index.ts": "// entry point\nexport const answer = 42;\n",
        "src/util/strings.ts": "/* helpers */\nexport const shout = (s: string) => s.toUpperCase();\n",
        "src/scratch.tmp": "scratch\n",
        "dist/index.js": "compiled\n",
        "docs/notes.md": "Use ```code``` fences carefully.\n",
    }
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


@pytest.mark.end2end
@pytest.mark.parametrize("fmt", ["xml", "md", "txt"])
def test_end_to_end_every_format(tmp_path: Path, mocker: MockerFixture, fmt: str) -> None:
    repo = tmp_path / "repo"
    write_repo(repo)
    out_dir = tmp_path / "out"
    mocker.patch.object(output_construction, "now_iso", return_value="2024-05-06T07:08:09+00:00")

    exit_code = cli.main(
        [str(repo), "--format", fmt, "--target", "file", "--output-dir", str(out_dir), "--remove-comments"],
    )

    assert exit_code == 0
    content = (out_dir / f"codepack.{fmt}").read_text(encoding="utf-8")
    assert "export const answer = 42;" in content
    assert "entry point" not in content
    assert "helpers" not in content
    assert "scratch" not in content
    assert "compiled" not in content
    assert "Generated on: 2024-05-06T07:08:09+00:00" in content
    if fmt == "xml":
        root = ElementTree.fromstring(content)
        assert [f.get("path") for f in root.iter("file")] == [
            ".gitignore",
            "docs/notes.md",
            "package.json",
            "src/index.ts",
            "src/util/strings.ts",
        ]
    if fmt == "md":
        assert "````markdown\nUse ```code``` fences carefully.\n\n````" in content


@pytest.mark.end2end
def test_end_to_end_output_is_reproducible(tmp_path: Path, mocker: MockerFixture) -> None:
    repo = tmp_path / "repo"
    write_repo(repo)
    mocker.patch.object(output_construction, "now_iso", return_value="2024-05-06T07:08:09+00:00")

    outputs = []
    for run in ("first", "second"):
        out_dir = tmp_path / run
        assert cli.main([str(repo), "--target", "file", "--output-dir", str(out_dir)]) == 0
        outputs.append((out_dir / "codepack.xml").read_bytes())

    assert outputs[0] == outputs[1]


@pytest.mark.end2end
def test_end_to_end_missing_directory(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main([str(tmp_path / "missing")])

    assert exit_code == 2
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "does not exist" in captured.err
