from __future__ import annotations

"""
Directive Tree Renderer.

Converts a DirectiveTree into nginx configuration text. Rendering is a pure
read over the tree: the same tree always produces byte-identical output.
"""

import re
from typing import List

from potluck.domain.directive_models import BlockEntry, DirectiveTree, Flag, LeafEntry, RawEntry

INDENT_WIDTH = 2

_LINE_START = re.compile(r"^(?=.)", re.MULTILINE)

# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def render_directive_tree(tree: DirectiveTree) -> str:
    """
    Render a tree into the text of an nginx configuration file.

    Args:
        tree: Root level to render.

    Returns:
        str: Configuration content ('' for an empty tree).
    """
    lines: List[str] = []
    render_tree_structure(tree, lines)
    return "".join(lines)


def render_tree_structure(tree: DirectiveTree, lines: List[str], indent: int = 0) -> None:
    """
    Recursively append the rendered chunks of a tree level to ``lines``.

    Each chunk ends with a newline. Nested blocks are rendered at
    ``indent + INDENT_WIDTH``.

    Args:
        tree: Current level to process.
        lines: Accumulator for output chunks.
        indent: Number of spaces prefixed to every line of this level.
    """
    pad = " " * indent

    for entry in tree:
        # Scenario A: Verbatim text
        if isinstance(entry, RawEntry):
            lines.append(reindent_raw(entry.text, indent))
            continue

        # Scenario B: Block directive, one braced section per instance
        if isinstance(entry, BlockEntry):
            for instance in entry.instances:
                lines.append(f"{pad}{entry.label} {{\n")
                render_tree_structure(instance, lines, indent + INDENT_WIDTH)
                lines.append(f"{pad}}}\n")
            continue

        # Scenario C: Leaf directive, one line per value
        if isinstance(entry, LeafEntry):
            for value in entry.values:
                if isinstance(value, Flag):
                    lines.append(f"{pad}{entry.name};\n")
                else:
                    lines.append(f"{pad}{entry.name} {value.text};\n")


def reindent_raw(text: str, indent: int) -> str:
    """
    Prefix every non-empty line of ``text`` with ``indent`` spaces.

    The result always ends with exactly one newline.
    """
    body = _LINE_START.sub(" " * indent, text).rstrip("\n")
    return f"{body}\n"
