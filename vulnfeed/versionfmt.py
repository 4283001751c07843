"""Registry of version formats and helpers that dispatch to them."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

MIN_VERSION = "#MINV#"
"""A special package version which always sorts first."""

MAX_VERSION = "#MAXV#"
"""A special package version which always sorts last."""


class UnknownVersionFormatError(ValueError):
    """Raised when no parser is registered for the requested format."""

    def __init__(self, message: str = "unknown version format") -> None:
        super().__init__(message)


class InvalidVersionError(ValueError):
    """Raised when a version string is not valid for its format."""

    def __init__(self, message: str = "invalid version") -> None:
        super().__init__(message)


class Parser(ABC):
    """A version format that can validate and compare version strings."""

    @abstractmethod
    def valid(self, text: str) -> bool:
        """Return whether ``text`` parses as a version of this format."""

    @abstractmethod
    def compare(self, a: str, b: str) -> int:
        """Return -1, 0 or 1 as ``a`` is lower than, equal to or greater than ``b``."""

    @abstractmethod
    def in_range(self, version: str, version_range: str) -> bool:
        """Return whether ``version`` falls within ``version_range``."""

    @abstractmethod
    def get_fixed_in(self, version_range: str) -> str:
        """Return the version that fixes the given affected range."""


_parsers: dict[str, Parser] = {}
_parsers_lock = threading.Lock()


def register_parser(name: str, parser: Parser) -> None:
    """Make ``parser`` available under ``name``.

    Raises ValueError for an empty or already registered name and TypeError
    when ``parser`` is None.
    """
    if not name:
        raise ValueError("versionfmt: could not register a Parser with an empty name")
    if parser is None:
        raise TypeError("versionfmt: could not register a nil Parser")
    with _parsers_lock:
        if name in _parsers:
            raise ValueError(f"versionfmt: RegisterParser called twice for {name}")
        _parsers[name] = parser


def get_parser(name: str) -> Parser | None:
    """Return the parser registered under ``name``, or None."""
    with _parsers_lock:
        return _parsers.get(name)


def _require_parser(fmt: str) -> Parser:
    parser = get_parser(fmt)
    if parser is None:
        raise UnknownVersionFormatError()
    return parser


def valid(fmt: str, version: str) -> None:
    """Raise if ``version`` is not valid in format ``fmt``."""
    if not _require_parser(fmt).valid(version):
        raise InvalidVersionError()


def compare(fmt: str, version_a: str, version_b: str) -> int:
    """Compare two versions using the parser registered for ``fmt``."""
    return _require_parser(fmt).compare(version_a, version_b)


def in_range(fmt: str, version: str, version_range: str) -> bool:
    """Return whether ``version`` is within ``version_range`` in format ``fmt``."""
    parser = _require_parser(fmt)
    try:
        return parser.in_range(version, version_range)
    except Exception as err:
        logger.error(
            "%s (Format=%s Version=%s Range=%s)", err, fmt, version, version_range
        )
        raise


def get_fixed_in(fmt: str, version_range: str) -> str:
    """Return the fixed-in version for an affected range in format ``fmt``."""
    return _require_parser(fmt).get_fixed_in(version_range)