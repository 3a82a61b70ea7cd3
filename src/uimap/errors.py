"""Exceptions raised by uimap.

Only input and configuration problems are fatal. Per-file indexing problems
are recorded as warnings on the index, and matching never raises.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional


class UimapError(Exception):
    """Base class for fatal uimap errors."""


class InputError(UimapError):
    """Raised when a required input (source root, snapshot, hierarchy) is unusable."""

    def __init__(self, message: str, path: Optional[Path] = None) -> None:
        self.path = path
        if path is not None:
            message = f"{message}: {path}"
        super().__init__(message)


class ConfigError(UimapError):
    """Raised when a configuration file is malformed or has invalid keys."""

    def __init__(self, message: str, path: Optional[Path] = None, key: Optional[str] = None) -> None:
        self.path = path
        self.key = key
        parts = [message]
        if key:
            parts.append(f"(key '{key}')")
        if path is not None:
            parts.append(f"in {path}")
        super().__init__(" ".join(parts))
