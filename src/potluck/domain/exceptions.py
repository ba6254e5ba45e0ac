from __future__ import annotations

"""
Error Taxonomy.

Every error raised by potluck derives from PotluckError so callers can catch
the whole family at once, while the secondary bases (ValueError, RuntimeError)
keep the errors compatible with generic handlers.
"""

from typing import Any, Dict, Mapping, Optional


class PotluckError(Exception):
    """Base exception for potluck."""

    context: Dict[str, Any]

    def __init__(self, message: str = "", *, context: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message)
        self.context = dict(context) if context is not None else {}


class InvalidDirectiveError(PotluckError, ValueError):
    """Raised when a directive builder call is malformed. The tree is left untouched."""


class ConfigurationError(PotluckError, ValueError):
    """Raised when settings are inconsistent or invalid."""


class ServiceError(PotluckError, RuntimeError):
    """Raised when a managed service command or state transition fails."""
