from __future__ import annotations

"""
FileSystem Infrastructure Layer.

Provides path resolution for the potluck data directory and the small set of
file operations used to publish generated configuration: atomic writes and
rename-based activation, so the external process never reads a half-written
file.
"""

import os
import tempfile
from typing import Optional, Tuple

# -----------------------------------------------------------------------------
# GLOBAL CONSTANTS
# -----------------------------------------------------------------------------

DATA_DIR_NAME = ".potluck"

# -----------------------------------------------------------------------------
# PATH RESOLUTION API
# -----------------------------------------------------------------------------

def get_default_data_dir() -> str:
    """
    Resolve the default directory for generated files (``~/.potluck``).

    Returns:
        str: Absolute path; the directory is not created.
    """
    return os.path.abspath(os.path.join(os.path.expanduser("~"), DATA_DIR_NAME))


def normalize_path(path: Optional[str], fallback: str) -> str:
    """
    Normalize a directory path string into an absolute filesystem path.

    Expands environment variables and ``~``. Reverts to ``fallback`` when the
    input is empty.

    Args:
        path: Raw input path string.
        fallback: Default path to use when ``path`` is blank.

    Returns:
        str: Normalized absolute path.
    """
    p = (path or "").strip() or fallback
    return os.path.abspath(os.path.expandvars(os.path.expanduser(p)))

# -----------------------------------------------------------------------------
# FILE OPERATIONS API
# -----------------------------------------------------------------------------

def safe_mkdir(path: str) -> Tuple[bool, Optional[str]]:
    """
    Attempt to recursively create a directory structure.

    Args:
        path: Target directory path.

    Returns:
        Tuple[bool, Optional[str]]: (Success flag, Error message if applicable).
    """
    try:
        os.makedirs(path, exist_ok=True)
        return True, None
    except OSError as e:
        return False, str(e)


def write_text_atomic(path: str, content: str, encoding: str = "utf-8") -> None:
    """
    Write ``content`` to ``path`` through a temporary file and a rename.

    The temporary file lives in the target directory so the final rename
    never crosses filesystems. It is removed if anything fails.

    Raises:
        OSError: If the directory is not writable.
    """
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".conf")
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def move_file(source: str, destination: str, missing_ok: bool = False) -> bool:
    """
    Rename ``source`` to ``destination``, replacing any existing file.

    Args:
        source: Existing file path.
        destination: New file path.
        missing_ok: Return False instead of raising when ``source`` is absent.

    Returns:
        bool: True if the file was moved.
    """
    if missing_ok and not os.path.exists(source):
        return False
    os.replace(source, destination)
    return True


def read_text(path: str, encoding: str = "utf-8") -> str:
    with open(path, "r", encoding=encoding) as f:
        return f.read()


def write_text(path: str, content: str, encoding: str = "utf-8") -> None:
    """Overwrite ``path`` in place, keeping its inode and permissions."""
    with open(path, "w", encoding=encoding) as f:
        f.write(content)
