from __future__ import annotations

"""
Nginx Config Builder.

Builder interface for assembling an nginx configuration as a DirectiveTree.
Leaf directives accumulate, overwrite by sub-key, or act as soft defaults;
block directives nest, with any number of same-named instances addressed by
index.

Examples:

    config = NginxConfig()

    with config.block("server"):
        config.add_leaf("listen", "80")
        config.add_leaf("add_header", "X-Frame-Options", "'DENY' always")

        with config.block("location", "/"):
            config.add_leaf("root", "/var/www")

    config.render()
"""

import re
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from potluck.core.directives.query import RAW_KEY_REGEX, dig_directive_tree
from potluck.core.directives.render import render_directive_tree
from potluck.domain.directive_models import (
    BlockEntry,
    DirectiveTree,
    Flag,
    LeafEntry,
    LeafValue,
    RawEntry,
    Scalar,
)
from potluck.domain.exceptions import InvalidDirectiveError

ConfigBody = Callable[["NginxConfig"], Any]

_LEAF_NAME_FORBIDDEN = re.compile(r"[\s;]")
_BLOCK_NAME_FORBIDDEN = re.compile(r"[\n\r;]")


class NginxConfig:
    """
    Builder and container for nginx configuration content.

    Not thread-safe: one builder per configuration being assembled.
    """

    def __init__(self, body: Optional[ConfigBody] = None) -> None:
        self._root = DirectiveTree()
        self._context: List[DirectiveTree] = []

        if body is not None:
            self.modify(body)

    def __str__(self) -> str:
        return self.render()

    def __repr__(self) -> str:
        return f"NginxConfig({self._root!r})"

    @property
    def tree(self) -> DirectiveTree:
        """Root level of the directive tree."""
        return self._root

    # -------------------------------------------------------------------------
    # MODIFICATION
    # -------------------------------------------------------------------------

    def modify(self, body: Optional[ConfigBody] = None) -> NginxConfig:
        """
        Run ``body`` with this builder as its only argument.

        Returns:
            NginxConfig: self, for chaining.
        """
        if body is not None:
            body(self)
        return self

    def append(self, content: Any) -> NginxConfig:
        """
        Append a mapping (see ``merge``) or raw text (see ``append_raw``).

        Any other type is ignored.
        """
        if isinstance(content, Mapping):
            self.merge(content)
        elif isinstance(content, str):
            self.append_raw(content)
        return self

    def add_leaf(self, name: str, *args: Any, soft: bool = False) -> None:
        """
        Add a value for a non-block directive at the current level.

        With two or more args the first one is a sub-key: a later call with the
        same name and sub-key replaces the earlier value instead of adding a
        second line. An empty value (no args besides the sub-key, or only None
        and empty strings) removes the keyed value, or every value of the
        directive when there is no sub-key.

        Soft values are defaults; all of them are dropped as soon as a hard
        value is added under the same name.

        Args:
            name: Directive name.
            args: Values; each is converted with str() and joined with spaces.
                A single True argument declares a value-less flag directive.
            soft: Store the value as a replaceable default.

        Raises:
            InvalidDirectiveError: If the name is invalid, reserved, or already
                used by a block at this level.
        """
        _check_name(name, _LEAF_NAME_FORBIDDEN)
        for arg in args:
            if isinstance(arg, (Mapping, list, tuple, set)):
                raise InvalidDirectiveError(
                    f"Invalid value for directive '{name}': {type(arg).__name__} is not a scalar",
                    context={"name": name},
                )

        level = self._level()
        entry = level.get(name)
        if isinstance(entry, BlockEntry):
            raise InvalidDirectiveError(
                f"Directive '{name}' is already a block at this level",
                context={"name": name},
            )

        if not args:
            return

        key, value = _leaf_value(args, soft)

        values: List[LeafValue] = list(entry.values) if entry is not None else []
        if not soft:
            values = [v for v in values if not v.soft]

        index = _find_keyed(values, key) if key is not None else None

        if index is not None:
            if value is None:
                del values[index]
            else:
                values[index] = value
        elif value is None:
            if key is None:
                values.clear()
        else:
            values.append(value)

        if entry is None:
            if values:
                level.add(LeafEntry(name, values))
        elif values:
            entry.values = values
        else:
            level.remove(name)

    def add_block(self, name: str, *args: Any, body: Optional[ConfigBody] = None) -> None:
        """
        Open a block directive and run ``body`` inside it.

        Args:
            name: Block directive name.
            args: Qualifiers joined to the name with spaces (e.g. a location
                path); an optional trailing int selects which same-named
                instance to modify (negative values count from the end).
                Without it the most recently created instance is used, and
                one is created if none exists yet or the index is out of
                range.
            body: Called with this builder while it points into the block.

        Examples:

            config.add_block("server", body=lambda c: c.add_leaf("listen", "8080"))
            config.add_block("server", 1, body=lambda c: c.add_leaf("listen", "4433"))
            config.add_block("server", 0, body=lambda c: c.add_leaf("server_name", "hello.world"))

            # server {
            #   listen 8080;
            #   server_name hello.world;
            # }
            # server {
            #   listen 4433;
            # }
        """
        with self.block(name, *args):
            if body is not None:
                body(self)

    @contextmanager
    def block(self, name: str, *args: Any) -> Iterator[NginxConfig]:
        """Context-manager form of ``add_block``."""
        instance = self._open_block(name, args)
        self._context.append(instance)
        try:
            yield self
        finally:
            self._context.pop()

    def append_raw(self, content: str) -> None:
        """Insert verbatim text at the current level, after everything added so far."""
        self._level().add(RawEntry(str(content)))

    def merge(self, content: Mapping[Any, Any]) -> None:
        """
        Add content described by a plain nested mapping.

        Keys are directive names, or ``"raw"`` / ``"raw[<i>]"`` for raw text.
        A mapping value becomes a block, a list or tuple becomes repeated leaf
        values, and anything else a single leaf value. The whole mapping is
        checked before anything is added.

        Examples:

            config.merge({
                "server": {
                    "access_log": "/path/to/access.log",
                    "add_header": [
                        "Referrer-Policy 'same-origin' always",
                        "X-Frame-Options 'DENY' always",
                    ],
                    "raw[0]": "return 404;",
                },
            })
        """
        _check_mapping(content, _LevelCheck(self._level()))
        self._merge(content)

    # -------------------------------------------------------------------------
    # OUTPUT
    # -------------------------------------------------------------------------

    def render(self) -> str:
        """Generate the nginx config file content."""
        return render_directive_tree(self._root)

    def dig(self, *path: Any) -> Any:
        """
        Get the value at ``path`` (see ``dig_directive_tree``).

        Examples:

            config.dig("server", 0, "location /", 0, "root")
        """
        return dig_directive_tree(self._root, *path)

    # -------------------------------------------------------------------------
    # PRIVATE HELPERS
    # -------------------------------------------------------------------------

    def _level(self) -> DirectiveTree:
        return self._context[-1] if self._context else self._root

    def _open_block(self, name: str, args: Tuple[Any, ...]) -> DirectiveTree:
        _check_name(name, _BLOCK_NAME_FORBIDDEN)

        qualifiers = list(args)
        index: Optional[int] = None
        if qualifiers and isinstance(qualifiers[-1], int) and not isinstance(qualifiers[-1], bool):
            index = qualifiers.pop()

        label = f"{name} {' '.join(str(q) for q in qualifiers)}".strip()
        level = self._level()
        entry = level.get(label)

        if isinstance(entry, LeafEntry):
            raise InvalidDirectiveError(
                f"Directive '{label}' is already a non-block directive at this level",
                context={"name": label},
            )
        if entry is None:
            entry = BlockEntry(label)
            level.add(entry)

        if index is None:
            index = len(entry.instances) - 1
        elif index < 0:
            index += len(entry.instances)

        if 0 <= index < len(entry.instances):
            return entry.instances[index]

        instance = DirectiveTree()
        entry.instances.append(instance)
        return instance

    def _merge(self, content: Mapping[Any, Any]) -> None:
        for key, value in content.items():
            if _is_raw_key(key):
                self.append_raw(value)
            elif isinstance(value, Mapping):
                with self.block(key):
                    self._merge(value)
            elif isinstance(value, (list, tuple)):
                for item in value:
                    self.add_leaf(key, item)
            else:
                self.add_leaf(key, value)

# -----------------------------------------------------------------------------
# MODULE HELPERS
# -----------------------------------------------------------------------------

def _check_name(name: Any, forbidden: re.Pattern[str]) -> None:
    """Reject names that cannot be emitted or that address internal operations."""
    if not isinstance(name, str) or not name.strip():
        raise InvalidDirectiveError(f"Invalid directive name: {name!r}", context={"name": name})
    if name.startswith("_"):
        raise InvalidDirectiveError(
            f"'{name}' is reserved for internal use by {NginxConfig.__name__}",
            context={"name": name},
        )
    if forbidden.search(name):
        raise InvalidDirectiveError(f"Invalid directive name: {name!r}", context={"name": name})


class _LevelCheck:
    """
    Entry kinds of one level as they will stand while a mapping is merged.

    Starts from the live level (None for a block instance the merge would
    create) and records the leaves and blocks the mapping adds or clears.
    """

    def __init__(self, level: Optional[DirectiveTree]) -> None:
        self._level = level
        self._kinds: Dict[str, Optional[type]] = {}
        self._children: Dict[str, _LevelCheck] = {}

    def kind(self, name: str) -> Optional[type]:
        if name in self._kinds:
            return self._kinds[name]
        entry = self._level.get(name) if self._level is not None else None
        return type(entry) if entry is not None else None

    def set_leaf(self, name: str, present: bool) -> None:
        self._kinds[name] = LeafEntry if present else None

    def child(self, label: str) -> _LevelCheck:
        """Mark ``label`` as a block and return the check for the instance merged into."""
        if label not in self._children:
            entry = self._level.get(label) if self._level is not None else None
            instance = None
            if isinstance(entry, BlockEntry) and entry.instances:
                instance = entry.instances[-1]
            self._children[label] = _LevelCheck(instance)
        self._kinds[label] = BlockEntry
        return self._children[label]


def _check_mapping(content: Mapping[Any, Any], check: _LevelCheck) -> None:
    """Raise for any key of ``content`` that merging into ``check``'s level would reject."""
    for key, value in content.items():
        if _is_raw_key(key):
            continue
        if isinstance(value, Mapping):
            _check_name(key, _BLOCK_NAME_FORBIDDEN)
            label = key.strip()
            if check.kind(label) is LeafEntry:
                raise InvalidDirectiveError(
                    f"Directive '{label}' is already a non-block directive at this level",
                    context={"name": label},
                )
            _check_mapping(value, check.child(label))
        else:
            _check_name(key, _LEAF_NAME_FORBIDDEN)
            items = value if isinstance(value, (list, tuple)) else [value]
            for item in items:
                if isinstance(item, (Mapping, list, tuple, set)):
                    raise InvalidDirectiveError(
                        f"Invalid value for directive '{key}': {type(item).__name__} is not a scalar",
                        context={"name": key},
                    )
            if items and check.kind(key) is BlockEntry:
                raise InvalidDirectiveError(
                    f"Directive '{key}' is already a block at this level",
                    context={"name": key},
                )
            for item in items:
                # Single-value calls are unkeyed: an empty value clears the directive.
                check.set_leaf(key, _leaf_value((item,), False)[1] is not None)


def _is_raw_key(key: Any) -> bool:
    return isinstance(key, str) and (key == "raw" or RAW_KEY_REGEX.match(key) is not None)


def _stringify(arg: Any) -> str:
    if arg is None:
        return ""
    if isinstance(arg, bool):
        return "true" if arg else "false"
    return str(arg)


def _leaf_value(args: Tuple[Any, ...], soft: bool) -> Tuple[Optional[str], Optional[LeafValue]]:
    """Compute the (sub-key, value) pair of a leaf call; value is None when empty."""
    if len(args) == 1 and args[0] is True:
        return None, Flag(soft=soft)

    key = _stringify(args[0]) if len(args) >= 2 else None
    text = " ".join(_stringify(a) for a in args).strip()

    if not text or (key is not None and text == key.strip()):
        return key, None
    return key, Scalar(text, soft=soft)


def _find_keyed(values: List[LeafValue], key: str) -> Optional[int]:
    prefix = f"{key} "
    for i, value in enumerate(values):
        if isinstance(value, Scalar) and value.text.startswith(prefix):
            return i
    return None
