"""Registry of vulnerability metadata sources."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any, Callable

from .vulnsrc import Severity

AppendFunc = Callable[[str, Any, Severity], None]
"""Callback receiving a metadata key, the metadata and a severity."""


class Appender(ABC):
    """Anything that can fetch vulnerability metadata and attach it to vulnerabilities."""

    @abstractmethod
    def build_cache(self, store: Any) -> None:
        """Load metadata into memory for quick access by ``append``."""

    @abstractmethod
    def append(self, vuln_name: str, callback: AppendFunc) -> None:
        """Invoke ``callback`` with any metadata known for ``vuln_name``."""

    @abstractmethod
    def purge_cache(self) -> None:
        """Release cached metadata once all appends are done."""

    @abstractmethod
    def clean(self) -> None:
        """Delete any allocated resources."""


_appenders: dict[str, Appender] = {}
_appenders_lock = threading.RLock()


def register_appender(name: str, appender: Appender) -> None:
    """Make ``appender`` available under ``name``.

    Raises ValueError for an empty or already registered name and TypeError
    when ``appender`` is None.
    """
    if not name:
        raise ValueError("vulnmdsrc: could not register an Appender with an empty name")
    if appender is None:
        raise TypeError("vulnmdsrc: could not register a nil Appender")
    with _appenders_lock:
        if name in _appenders:
            raise ValueError(f"vulnmdsrc: RegisterAppender called twice for {name}")
        _appenders[name] = appender


def appenders() -> dict[str, Appender]:
    """Return a copy of the registered appenders keyed by name."""
    with _appenders_lock:
        return dict(_appenders)