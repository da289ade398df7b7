from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from codepack.exceptions import TreeConflictError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


class TreeNode(BaseModel):
    """A directory or file in the reconstructed tree.

    Children are kept sorted: directories first, then files, each group by
    name in codepoint order.
    """

    name: str = Field(..., description="Entry name (a single path segment)")
    is_directory: bool = Field(default=False, description="Whether the node holds children")
    children: list[TreeNode] = Field(default_factory=list, description="Sorted child nodes")

    def child(self, name: str) -> TreeNode | None:
        """Return the direct child called ``name``, if any."""
        return next((c for c in self.children if c.name == name), None)


def _sort_key(node: TreeNode) -> tuple[bool, str]:
    return (not node.is_directory, node.name)


def add_path(root: TreeNode, path: str) -> None:
    """Insert one forward-slash relative file path under ``root``.

    Args:
        root (TreeNode): the tree root, modified in place
        path (str): e.g. ``"src/app/main.py"``

    Raises:
        TreeConflictError: if a segment is needed both as a file and as a directory.
    """
    parts = [p for p in path.split("/") if p]
    node = root
    for i, part in enumerate(parts):
        is_last = i == len(parts) - 1
        child = node.child(part)
        if child is None:
            child = TreeNode(name=part, is_directory=not is_last)
            node.children.append(child)
            node.children.sort(key=_sort_key)
        elif child.is_directory == is_last:
            raise TreeConflictError(path=path)
        node = child


def build_tree(paths: Iterable[str]) -> TreeNode:
    """Build the directory tree for a set of relative file paths.

    Args:
        paths (Iterable[str]): unique forward-slash file paths

    Returns:
        TreeNode: the root node (named ``.``), standing for the source directory
    """
    root = TreeNode(name=".", is_directory=True)
    for path in paths:
        add_path(root, path)
    return root


def render_tree(root: TreeNode) -> str:
    """Render a tree as text, one line per node below the root.

    Args:
        root (TreeNode): the tree root, which is not rendered itself

    Returns:
        str: lines such as ``├── src/`` joined by newlines; empty for an empty tree
    """
    lines: list[str] = []

    def walk(node: TreeNode, prefix: str) -> None:
        for idx, child in enumerate(node.children):
            last = idx == len(node.children) - 1
            branch = "└── " if last else "├── "
            lines.append(prefix + branch + child.name + ("/" if child.is_directory else ""))
            if child.is_directory:
                ext = "    " if last else "│   "
                walk(child, prefix + ext)

    walk(root, "")
    return "\n".join(lines)


def iter_file_paths(node: TreeNode, prefix: str = "") -> Iterator[str]:
    """Yield the full relative path of every file below ``node``."""
    for child in node.children:
        path = f"{prefix}{child.name}"
        if child.is_directory:
            yield from iter_file_paths(child, path + "/")
        else:
            yield path


def generate_directory_structure(paths: Iterable[str]) -> str:
    """Build and render the tree for ``paths`` in one step."""
    return render_tree(build_tree(paths))
