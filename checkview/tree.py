"""Display tree used to render a checkpoint.

A DisplayTree is a labeled node with ordered children. Children are only
ever appended; add_branch() and add_meta_branch() return the new child so
callers can keep descending. serialize() draws the tree with box-drawing
connectors:

    Container
    ├── Image: alpine
    └── Process tree
        └── [1]  init
            └── [5]  sh
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

BRANCH = "├── "
LAST_BRANCH = "└── "
INDENT = "│   "
LAST_INDENT = "    "


@dataclass
class DisplayTree:
    """A node in the rendered tree."""

    label: str
    meta: Any = None
    children: list[DisplayTree] = field(default_factory=list)

    @property
    def is_meta(self) -> bool:
        """Whether the node carries an auxiliary identifier."""
        return self.meta is not None

    def add_branch(self, label: str) -> DisplayTree:
        """Append a child node and return it."""
        child = DisplayTree(label=label)
        self.children.append(child)
        return child

    def add_meta_branch(self, meta: Any, label: str) -> DisplayTree:
        """Append a child carrying ``meta`` alongside its label and return it."""
        child = DisplayTree(label=label, meta=meta)
        self.children.append(child)
        return child

    def text(self) -> str:
        """The node's own line, without connectors."""
        if self.is_meta:
            return f"[{self.meta}]  {self.label}"
        return self.label

    def serialize(self) -> str:
        """Render the tree as text, one node per line."""
        lines = self.text().split("\n")
        for i, child in enumerate(self.children):
            _render_subtree(child, "", i == len(self.children) - 1, lines)
        return "\n".join(lines) + "\n"

    def __str__(self) -> str:
        return self.serialize()


def new_tree(label: str) -> DisplayTree:
    """Create a root node."""
    return DisplayTree(label=label)


def _render_subtree(node: DisplayTree, prefix: str, is_last: bool, lines: list[str]) -> None:
    """Recursively append a subtree's lines."""
    connector = LAST_BRANCH if is_last else BRANCH
    child_prefix = prefix + (LAST_INDENT if is_last else INDENT)
    first, *rest = node.text().split("\n")
    lines.append(prefix + connector + first)
    # Continuation lines of a multi-line label line up under its children
    lines.extend(child_prefix + line for line in rest)
    for i, child in enumerate(node.children):
        _render_subtree(child, child_prefix, i == len(node.children) - 1, lines)
