"""Vulnerability data model and the registry of vulnerability updaters."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Severity(str, Enum):
    """How serious a vulnerability is, from least to most severe."""

    UNKNOWN = "Unknown"
    NEGLIGIBLE = "Negligible"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"
    DEFCON1 = "Defcon1"

    def compare(self, other: Severity) -> int:
        """Return -1, 0 or 1 as this severity is lower, equal or higher than ``other``."""
        order = list(type(self))
        mine = order.index(self)
        theirs = order.index(Severity(other))
        return (mine > theirs) - (mine < theirs)


@dataclass(frozen=True)
class Namespace:
    """A distribution release and the version format its packages use."""

    name: str = ""
    version_format: str = ""


@dataclass(frozen=True)
class AffectedFeature:
    """A package affected by a vulnerability within a namespace."""

    namespace: Namespace = field(default_factory=Namespace)
    feature_name: str = ""
    affected_version: str = ""
    fixed_in_version: str = ""


@dataclass
class Vulnerability:
    """A vulnerability together with the packages it affects."""

    name: str = ""
    namespace: Namespace | None = None
    description: str = ""
    link: str = ""
    severity: Severity = Severity.UNKNOWN
    metadata: dict[str, Any] = field(default_factory=dict)
    affected: list[AffectedFeature] = field(default_factory=list)


@dataclass
class UpdateResponse:
    """The sum of results of an update."""

    flag_name: str = ""
    flag_value: str = ""
    notes: list[str] = field(default_factory=list)
    vulnerabilities: list[Vulnerability] = field(default_factory=list)


class UpdaterError(Exception):
    """Base class for errors raised while fetching vulnerabilities."""


class FilesystemError(UpdaterError):
    """Raised when an updater fails to interact with the local filesystem."""

    def __init__(
        self, message: str = "vulnsrc: something went wrong when interacting with the fs"
    ) -> None:
        super().__init__(message)


class GitFailureError(UpdaterError):
    """Raised when an updater fails to interact with git."""

    def __init__(
        self, message: str = "vulnsrc: something went wrong when interacting with git"
    ) -> None:
        super().__init__(message)


class CouldNotDownloadError(UpdaterError):
    """Raised when a remote resource cannot be downloaded."""

    def __init__(self, message: str = "could not download requested resource") -> None:
        super().__init__(message)


class CouldNotParseError(UpdaterError):
    """Raised when a fetched resource cannot be parsed."""

    def __init__(self, message: str = "the resource cannot be parsed") -> None:
        super().__init__(message)


class Updater(ABC):
    """Anything that can fetch vulnerabilities."""

    @abstractmethod
    def update(self, store: Any) -> UpdateResponse:
        """Fetch vulnerability updates.

        ``store`` provides ``find_key_value(key)``, returning the stored string
        or None.
        """

    @abstractmethod
    def clean(self) -> None:
        """Delete any allocated resources."""


_updaters: dict[str, Updater] = {}
_updaters_lock = threading.RLock()


def register_updater(name: str, updater: Updater) -> None:
    """Make ``updater`` available under ``name``.

    Raises ValueError for an empty or already registered name and TypeError
    when ``updater`` is None.
    """
    if not name:
        raise ValueError("vulnsrc: could not register an Updater with an empty name")
    if updater is None:
        raise TypeError("vulnsrc: could not register a nil Updater")
    with _updaters_lock:
        if name in _updaters:
            raise ValueError(f"vulnsrc: RegisterUpdater called twice for {name}")
        _updaters[name] = updater


def updaters() -> dict[str, Updater]:
    """Return a copy of the registered updaters keyed by name."""
    with _updaters_lock:
        return dict(_updaters)


def list_updaters() -> list[str]:
    """Return the names of the registered updaters."""
    with _updaters_lock:
        return list(_updaters)