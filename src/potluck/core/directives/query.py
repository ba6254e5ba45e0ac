from __future__ import annotations

"""
Directive Tree Path Query.

Read-only traversal of a DirectiveTree by an ordered path of directive names,
block/value indexes and raw slot keys. Traversal never creates structure.
"""

import re
from typing import Any, List, Optional, Union

from potluck.domain.directive_models import (
    BlockEntry,
    DirectiveTree,
    Flag,
    LeafEntry,
    LeafValue,
    Scalar,
)

RAW_KEY_REGEX = re.compile(r"^raw\[(?P<index>\d+)\]$")

PathKey = Union[str, int]

# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def dig_directive_tree(tree: DirectiveTree, *path: PathKey) -> Any:
    """
    Resolve ``path`` against ``tree``.

    Segments are addressed the same way the builder addresses them:

    - a directive name or block context label selects an entry of a level;
    - an integer selects a block instance or a single leaf value;
    - ``"raw[N]"`` selects the Nth raw text blob of a level.

    Returns:
        The terminal value, or None when any segment is missing. A leaf name
        resolves to its only value when it holds exactly one, otherwise to
        the ordered list of its values. Flag values resolve to True.
    """
    current: Any = tree

    for key in path:
        current = _step(current, key)
        if current is None:
            return None

    return _present(current)

# -----------------------------------------------------------------------------
# PRIVATE HELPERS
# -----------------------------------------------------------------------------

def _step(node: Any, key: PathKey) -> Any:
    """Advance one segment, returning None when it cannot be resolved."""
    if isinstance(node, DirectiveTree):
        if not isinstance(key, str):
            return None
        raw_match = RAW_KEY_REGEX.match(key)
        if raw_match:
            raws = node.raw_entries()
            index = int(raw_match.group("index"))
            return raws[index].text if index < len(raws) else None
        return node.get(key)

    if isinstance(node, BlockEntry):
        return _index(node.instances, key)

    if isinstance(node, LeafEntry):
        return _index(node.values, key)

    return None


def _index(items: List[Any], key: PathKey) -> Any:
    if isinstance(key, bool) or not isinstance(key, int):
        return None
    try:
        return items[key]
    except IndexError:
        return None


def _present(node: Any) -> Any:
    """Convert an internal node into the value handed back to callers."""
    if isinstance(node, BlockEntry):
        return list(node.instances)
    if isinstance(node, LeafEntry):
        values = [_leaf_value(v) for v in node.values]
        return values[0] if len(values) == 1 else values
    if isinstance(node, (Scalar, Flag)):
        return _leaf_value(node)
    return node


def _leaf_value(value: LeafValue) -> Optional[Union[str, bool]]:
    if isinstance(value, Flag):
        return True
    return value.text
