"""Version parsing and comparison for dpkg based packages."""

from __future__ import annotations

import re
from dataclasses import dataclass

from .versionfmt import (
    MAX_VERSION,
    MIN_VERSION,
    InvalidVersionError,
    Parser,
    register_parser,
)

PARSER_NAME = "dpkg"

_VERSION_SYMBOLS = frozenset(".-+~:_")
_REVISION_SYMBOLS = frozenset(".+~_")
_EPOCH_PATTERN = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class DpkgVersion:
    """A parsed dpkg version: epoch, upstream version and revision."""

    epoch: int = 0
    version: str = ""
    revision: str = ""

    def __str__(self) -> str:
        text = f"{self.epoch}:" if self.epoch != 0 else ""
        text += self.version
        if self.revision:
            text += "-" + self.revision
        return text


MIN = DpkgVersion(version=MIN_VERSION)
MAX = DpkgVersion(version=MAX_VERSION)


def _byte_chars(text: str) -> str:
    """Return ``text`` with each UTF-8 byte as one character."""
    return text.encode("utf-8").decode("latin-1")


def _is_digit(char: str) -> bool:
    return "0" <= char <= "9"


def _all_allowed(text: str, symbols: frozenset[str]) -> bool:
    return all(
        _is_digit(c) or c.isalpha() or c in symbols for c in _byte_chars(text)
    )


def parse_version(text: str) -> DpkgVersion:
    """Parse a dpkg version string, raising InvalidVersionError if malformed."""
    text = text.strip()
    if not text:
        raise InvalidVersionError("Version string is empty")

    if text == str(MAX):
        return MAX
    if text == str(MIN):
        return MIN

    epoch = 0
    sep_epoch = text.find(":")
    if sep_epoch > -1:
        epoch_text = text[:sep_epoch]
        if not _EPOCH_PATTERN.fullmatch(epoch_text):
            raise InvalidVersionError("epoch in version is not a number")
        epoch = int(epoch_text)
        if epoch < 0:
            raise InvalidVersionError("epoch in version is negative")

    rest_start = sep_epoch + 1
    sep_revision = text.rfind("-")
    if sep_revision > -1:
        version = text[rest_start:sep_revision]
        revision = text[sep_revision + 1:]
    else:
        version = text[rest_start:]
        revision = ""

    if not version:
        raise InvalidVersionError("No version")
    if not _all_allowed(version, _VERSION_SYMBOLS):
        raise InvalidVersionError("invalid character in version")
    if not _all_allowed(revision, _REVISION_SYMBOLS):
        raise InvalidVersionError("invalid character in revision")

    return DpkgVersion(epoch=epoch, version=version, revision=revision)


def _order(char: str) -> int:
    """Weight of a character: tilde first, then letters, then other symbols."""
    if _is_digit(char):
        return 0
    if char.isalpha():
        return ord(char)
    if char == "~":
        return -1
    return ord(char) + 256


def verrevcmp(a: str, b: str) -> int:
    """Compare two upstream versions or revisions with the dpkg algorithm.

    The result is negative, zero or positive; only its sign is meaningful.
    """
    a = _byte_chars(a)
    b = _byte_chars(b)
    i = j = 0

    def digit_at(text: str, pos: int) -> bool:
        return pos < len(text) and _is_digit(text[pos])

    while i < len(a) or j < len(b):
        first_diff = 0

        while (i < len(a) and not _is_digit(a[i])) or (
            j < len(b) and not _is_digit(b[j])
        ):
            ac = _order(a[i]) if i < len(a) else 0
            bc = _order(b[j]) if j < len(b) else 0
            if ac != bc:
                return ac - bc
            i += 1
            j += 1

        while i < len(a) and a[i] == "0":
            i += 1
        while j < len(b) and b[j] == "0":
            j += 1

        while digit_at(a, i) and digit_at(b, j):
            if not first_diff:
                first_diff = ord(a[i]) - ord(b[j])
            i += 1
            j += 1

        if digit_at(a, i):
            return 1
        if digit_at(b, j):
            return -1
        if first_diff:
            return first_diff

    return 0


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


class DpkgParser(Parser):
    """Parser for Debian package versions."""

    def valid(self, text: str) -> bool:
        try:
            parse_version(text)
        except InvalidVersionError:
            return False
        return True

    def compare(self, a: str, b: str) -> int:
        v1 = parse_version(a)
        v2 = parse_version(b)

        if v1 == v2:
            return 0
        if v1 == MIN or v2 == MAX:
            return -1
        if v2 == MIN or v1 == MAX:
            return 1

        if v1.epoch != v2.epoch:
            return 1 if v1.epoch > v2.epoch else -1

        rc = verrevcmp(v1.version, v2.version)
        if rc:
            return _sign(rc)
        return _sign(verrevcmp(v1.revision, v2.revision))

    def in_range(self, version: str, version_range: str) -> bool:
        return self.compare(version, version_range) < 0

    def get_fixed_in(self, version_range: str) -> str:
        """In this legacy format the range is the fixed-in version itself."""
        return str(version_range)


register_parser(PARSER_NAME, DpkgParser())