"""Build a deduplicated driver tree from a hierarchy sheet.

Two sheet layouts are understood:

* **Level columns** -- the header row has ``Level 0``, ``Level 1``, ...
  columns; each data row spells out one path from the root.
* **Single column** -- no header mentions ``level``; the first column
  holds names whose leading spaces, ``-`` or ``•`` characters encode depth.
"""
import re
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..config.models import DriverTree, DriverTreeNode

logger = logging.getLogger(__name__)

_LEVEL_HEADER = re.compile(r"level\s*(\d+)")
_DEPTH_PREFIX = re.compile(r"^([\s\-•]*)")

NodeKey = Tuple[str, int, Optional[str]]


def _is_blank(value: Any) -> bool:
    return value is None or not str(value).strip()


def find_level_columns(header: Sequence[Any]) -> List[Tuple[int, int]]:
    """Return ``(column_index, level)`` pairs sorted by level.

    A header mentioning ``level`` without a number is assigned the next
    level in column order.
    """
    columns: List[Tuple[int, int]] = []
    for index, cell in enumerate(header):
        if not isinstance(cell, str):
            continue
        text = cell.lower()
        match = _LEVEL_HEADER.search(text)
        if match:
            columns.append((index, int(match.group(1))))
        elif "level" in text:
            columns.append((index, len(columns) + 1))
    columns.sort(key=lambda c: c[1])
    return columns


class DriverTreeBuilder:
    """Incrementally builds a tree with an identity map on (name, level, parent)."""

    def __init__(self):
        self.roots: List[DriverTreeNode] = []
        self._nodes: Dict[NodeKey, DriverTreeNode] = {}
        self._counter = 0

    def _next_id(self) -> str:
        node_id = f"node-{self._counter}"
        self._counter += 1
        return node_id

    def _attach(self, node: DriverTreeNode, parent: Optional[DriverTreeNode]) -> None:
        if parent is None:
            self.roots.append(node)
        else:
            parent.children.append(node)

    def append(
        self, name: str, level: int, parent: Optional[DriverTreeNode]
    ) -> DriverTreeNode:
        """Create and attach a node without consulting the identity map."""
        node = DriverTreeNode(
            id=self._next_id(),
            name=name,
            level=level,
            parent_id=parent.id if parent else None,
        )
        self._attach(node, parent)
        return node

    def get_or_create(
        self, name: str, level: int, parent: Optional[DriverTreeNode]
    ) -> DriverTreeNode:
        """Reuse the node for ``(name, level, parent)`` or create and attach one."""
        key = (name, level, parent.id if parent else None)
        node = self._nodes.get(key)
        if node is None:
            node = self.append(name, level, parent)
            self._nodes[key] = node
        return node

    def add_path(self, cells: Sequence[Tuple[int, Any]]) -> None:
        """Add one row given as ``(level, cell)`` pairs in ascending level order.

        Processing stops at the first blank cell.
        """
        parent: Optional[DriverTreeNode] = None
        for level, cell in cells:
            if _is_blank(cell):
                break
            parent = self.get_or_create(str(cell).strip(), level, parent)

    def build(self) -> DriverTree:
        return DriverTree(roots=self.roots)


def build_from_level_columns(rows: Sequence[Sequence[Any]]) -> DriverTree:
    """Build from a sheet whose header row holds ``Level N`` columns."""
    if not rows:
        return DriverTree()
    columns = find_level_columns(rows[0])
    if not columns:
        return build_from_indented_column(rows)

    builder = DriverTreeBuilder()
    for row in rows[1:]:
        if not row or all(_is_blank(c) for c in row):
            continue
        builder.add_path(
            [(level, row[index] if index < len(row) else None) for index, level in columns]
        )
    tree = builder.build()
    logger.info(
        "Built driver tree from %d level columns: %d roots, %d nodes",
        len(columns), len(tree.roots), len(tree),
    )
    return tree


def build_from_indented_column(rows: Sequence[Sequence[Any]]) -> DriverTree:
    """Build from a single column where a leading prefix encodes depth.

    Every two prefix characters add one level.  A node's parent is the
    nearest preceding node with a lower level.  No deduplication applies.
    """
    builder = DriverTreeBuilder()
    stack: List[DriverTreeNode] = []

    for row in rows:
        if not row or _is_blank(row[0]):
            continue
        text = str(row[0]).rstrip()
        prefix = _DEPTH_PREFIX.match(text).group(1)
        name = text[len(prefix):].strip()
        if not name:
            continue
        level = len(prefix) // 2 + 1

        while stack and stack[-1].level >= level:
            stack.pop()
        parent = stack[-1] if stack else None
        stack.append(builder.append(name, level, parent))

    tree = builder.build()
    logger.info("Built driver tree from indented column: %d nodes", len(tree))
    return tree


def build_driver_tree(rows: Sequence[Sequence[Any]]) -> DriverTree:
    """Build a driver tree from raw sheet rows (header first).

    Uses level columns when any header cell mentions ``level``, otherwise
    the indented single-column layout.
    """
    if not rows:
        return DriverTree()
    header = rows[0] or []
    if any(isinstance(c, str) and "level" in c.lower() for c in header):
        return build_from_level_columns(rows)
    logger.warning("No level columns in driver tree header; using indented layout")
    return build_from_indented_column(rows)
