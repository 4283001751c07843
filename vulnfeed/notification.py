"""Notifier configuration and the registry of notification senders."""

from __future__ import annotations

import datetime
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Config:
    """Configuration of the notifier service and its registered senders."""

    attempts: int = 0
    renotify_interval: datetime.timedelta = field(default_factory=datetime.timedelta)
    params: dict[str, Any] = field(default_factory=dict)


class Sender(ABC):
    """Anything that can transmit notifications."""

    @abstractmethod
    def configure(self, config: Config | None) -> bool:
        """Set the sender up from ``config`` and return whether it is enabled.

        Raises when the configuration is present but invalid.
        """

    @abstractmethod
    def send(self, notification_name: str) -> None:
        """Announce the existence of the named notification, raising on failure."""


_senders: dict[str, Sender] = {}
_senders_lock = threading.RLock()


def register_sender(name: str, sender: Sender) -> None:
    """Make ``sender`` available under ``name``.

    Raises ValueError for an empty or already registered name and TypeError
    when ``sender`` is None.
    """
    if not name:
        raise ValueError("notification: could not register a Sender with an empty name")
    if sender is None:
        raise TypeError("notification: could not register a nil Sender")
    with _senders_lock:
        if name in _senders:
            raise ValueError(f"notification: RegisterSender called twice for {name}")
        _senders[name] = sender


def senders() -> dict[str, Sender]:
    """Return a copy of the registered senders keyed by name."""
    with _senders_lock:
        return dict(_senders)


def unregister_sender(name: str) -> None:
    """Remove the sender registered under ``name``, if any."""
    with _senders_lock:
        _senders.pop(name, None)