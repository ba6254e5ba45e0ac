from __future__ import annotations

"""
Global Pytest Configuration and Fixtures.

This module sets up the testing environment, including:
1. Path manipulation to ensure the 'src' directory is importable.
2. Isolation of the global potluck settings between tests.
3. Shared fixtures for settings pointing at temporary directories.
"""

import os
import sys
from typing import Iterator

import pytest

# -----------------------------------------------------------------------------
# Path Configuration
# -----------------------------------------------------------------------------
_SRC_PATH = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if _SRC_PATH not in sys.path:
    sys.path.insert(0, _SRC_PATH)

from potluck.domain.config import NginxSettings, PotluckConfig, reset_config  # noqa: E402


# -----------------------------------------------------------------------------
# Shared Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def clean_global_config() -> Iterator[None]:
    """Restore the global PotluckConfig and NginxSettings around every test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def potluck_config(tmp_path) -> PotluckConfig:
    """
    Return settings whose data directory lives under the pytest tmp dir.

    Prevents tests from creating anything in the real ~/.potluck.
    """
    return PotluckConfig(dir=str(tmp_path / "potluck"))


@pytest.fixture
def nginx_settings() -> NginxSettings:
    return NginxSettings(http_port=8080, https_port=4433)
