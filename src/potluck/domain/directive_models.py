from __future__ import annotations

"""
Directive Tree Data Models.

Provides the tagged value and entry types that make up an nginx-style
configuration tree. A DirectiveTree keeps an explicit ordered list of entries
per nesting level, so emission order is the order in which directives (and
raw text blobs) were first introduced.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple, Union

# -----------------------------------------------------------------------------
# LEAF VALUES
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Scalar:
    """
    A fully formatted directive value.

    Attributes:
        text: Value text as it appears after the directive name.
        soft: Whether the value is a replaceable default.
    """
    text: str
    soft: bool = False


@dataclass(frozen=True)
class Flag:
    """A value-less directive (rendered as ``name;``)."""
    soft: bool = False


LeafValue = Union[Scalar, Flag]

# -----------------------------------------------------------------------------
# ENTRIES
# -----------------------------------------------------------------------------

@dataclass
class LeafEntry:
    """
    All values stored under one directive name, in append order.

    Attributes:
        name: Directive name.
        values: Ordered leaf values; one output line each.
    """
    name: str
    values: List[LeafValue] = field(default_factory=list)


@dataclass
class BlockEntry:
    """
    All instances of a block directive sharing one context label.

    Attributes:
        label: Directive name joined with its qualifiers (e.g. ``location /api``).
        instances: Independent nested trees, addressed by index.
    """
    label: str
    instances: List["DirectiveTree"] = field(default_factory=list)


@dataclass
class RawEntry:
    """Verbatim text emitted at its position in the parent level."""
    text: str


NamedEntry = Union[LeafEntry, BlockEntry]
Entry = Union[LeafEntry, BlockEntry, RawEntry]

# -----------------------------------------------------------------------------
# TREE
# -----------------------------------------------------------------------------

class DirectiveTree:
    """
    One nesting level of directives.

    Named entries are unique per level; repetition lives inside an entry.
    Raw entries are anonymous and keep their position in the entry list.
    """

    def __init__(self) -> None:
        self._entries: List[Entry] = []
        self._named: Dict[str, NamedEntry] = {}

    def __repr__(self) -> str:
        return f"DirectiveTree({self._entries!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DirectiveTree):
            return NotImplemented
        return self._entries == other._entries

    def __iter__(self) -> Iterator[Entry]:
        return iter(self._entries)

    @property
    def entries(self) -> Tuple[Entry, ...]:
        """Snapshot of the entries at this level in emission order."""
        return tuple(self._entries)

    def is_empty(self) -> bool:
        return not self._entries

    def get(self, name: str) -> Optional[NamedEntry]:
        """Return the named entry, or None when the name is absent."""
        return self._named.get(name)

    def names(self) -> List[str]:
        return [e.name if isinstance(e, LeafEntry) else e.label
                for e in self._entries if not isinstance(e, RawEntry)]

    def raw_entries(self) -> List[RawEntry]:
        return [e for e in self._entries if isinstance(e, RawEntry)]

    def add(self, entry: Entry) -> None:
        """Append an entry at the end of this level."""
        if isinstance(entry, LeafEntry):
            self._named[entry.name] = entry
        elif isinstance(entry, BlockEntry):
            self._named[entry.label] = entry
        self._entries.append(entry)

    def remove(self, name: str) -> None:
        """Drop a named entry; a later re-add goes to the end of the level."""
        entry = self._named.pop(name, None)
        if entry is not None:
            self._entries = [e for e in self._entries if e is not entry]
