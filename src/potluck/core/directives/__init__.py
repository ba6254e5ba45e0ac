from __future__ import annotations

from .builder import NginxConfig
from .query import dig_directive_tree
from .render import render_directive_tree

__all__ = [
    "NginxConfig",
    "dig_directive_tree",
    "render_directive_tree",
]
