"""Version parsing and comparison for rpm based packages."""

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

PARSER_NAME = "rpm"

_SEGMENT_PATTERN = re.compile(r"([a-zA-Z]+)|([0-9]+)|(~)")
_ALLOWED_SYMBOLS = frozenset(".-+~:_")
_EPOCH_PATTERN = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class RpmVersion:
    """A parsed rpm version: epoch, version and release."""

    epoch: int = 0
    version: str = ""
    release: str = ""

    def __str__(self) -> str:
        text = f"{self.epoch}:" if self.epoch != 0 else ""
        text += self.version
        if self.release:
            text += "-" + self.release
        return text


MIN = RpmVersion(version=MIN_VERSION)
MAX = RpmVersion(version=MAX_VERSION)


def _all_allowed(text: str) -> bool:
    chars = text.encode("utf-8").decode("latin-1")
    return all(
        "0" <= c <= "9" or c.isalpha() or c in _ALLOWED_SYMBOLS for c in chars
    )


def parse_version(text: str) -> RpmVersion:
    """Parse an rpm version string, raising InvalidVersionError if malformed."""
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
    sep_release = text.find("-")
    if sep_release > -1:
        version = text[rest_start:sep_release]
        release = text[sep_release + 1:]
    else:
        version = text[rest_start:]
        release = ""

    if not version:
        raise InvalidVersionError("No version")
    if not _all_allowed(version):
        raise InvalidVersionError("invalid character in version")
    if not _all_allowed(release):
        raise InvalidVersionError("invalid character in revision")

    return RpmVersion(epoch=epoch, version=version, release=release)


def rpmvercmp(a: str, b: str) -> int:
    """Compare two rpm version or release strings, returning -1, 0 or 1."""
    if a == b:
        return 0

    segs_a = [m.group(0) for m in _SEGMENT_PATTERN.finditer(a)]
    segs_b = [m.group(0) for m in _SEGMENT_PATTERN.finditer(b)]

    for seg_a, seg_b in zip(segs_a, segs_b):
        tilde_a = seg_a.startswith("~")
        tilde_b = seg_b.startswith("~")
        if tilde_a and tilde_b:
            continue
        if tilde_a:
            return -1
        if tilde_b:
            return 1

        if seg_a[0].isdigit():
            if not seg_b[0].isdigit():
                return 1
            seg_a = seg_a.lstrip("0")
            seg_b = seg_b.lstrip("0")
            if len(seg_a) != len(seg_b):
                return 1 if len(seg_a) > len(seg_b) else -1
        elif seg_b[0].isdigit():
            return -1

        if seg_a < seg_b:
            return -1
        if seg_a > seg_b:
            return 1

    if len(segs_a) == len(segs_b):
        return 0

    common = min(len(segs_a), len(segs_b))
    if len(segs_a) > common and segs_a[common].startswith("~"):
        return -1
    if len(segs_b) > common and segs_b[common].startswith("~"):
        return 1

    return 1 if len(segs_a) > len(segs_b) else -1


class RpmParser(Parser):
    """Parser for RPM package versions."""

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

        rc = rpmvercmp(v1.version, v2.version)
        if rc:
            return rc
        return rpmvercmp(v1.release, v2.release)

    def in_range(self, version: str, version_range: str) -> bool:
        return self.compare(version, version_range) < 0

    def get_fixed_in(self, version_range: str) -> str:
        """In this legacy format the range is the fixed-in version itself."""
        return str(version_range)


register_parser(PARSER_NAME, RpmParser())