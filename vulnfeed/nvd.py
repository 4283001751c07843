"""Vulnerability metadata appender backed by the NIST NVD XML data feeds."""

from __future__ import annotations

import contextlib
import datetime
import gzip
import io
import logging
import math
import os
import shutil
import tempfile
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import IO, Any

import requests

from .vulnmdsrc import Appender, AppendFunc, register_appender
from .vulnsrc import (
    CouldNotDownloadError,
    CouldNotParseError,
    FilesystemError,
    Severity,
)

logger = logging.getLogger(__name__)

DATA_FEED_URL = "http://static.nvd.nist.gov/feeds/xml/cve/nvdcve-2.0-{}.xml.gz"
DATA_FEED_META_URL = "http://static.nvd.nist.gov/feeds/xml/cve/nvdcve-2.0-{}.meta"
APPENDER_NAME = "NVD"
FIRST_FEED_YEAR = 2002

_VULN_NS = "http://scap.nist.gov/schema/vulnerability/0.4"
_CVSS_NS = "http://scap.nist.gov/schema/cvss-v2/0.2"

_VECTOR_LETTERS = {
    "NETWORK": "N",
    "ADJACENT_NETWORK": "A",
    "LOCAL": "L",
    "HIGH": "H",
    "MEDIUM": "M",
    "LOW": "L",
    "NONE": "N",
    "SINGLE_INSTANCE": "S",
    "MULTIPLE_INSTANCES": "M",
    "PARTIAL": "P",
    "COMPLETE": "C",
}

# Vector abbreviation and the base-metrics element it is read from. The
# availability element is looked up under "avaibility-impact", so the
# feed's "availability-impact" never contributes to the vector string.
_VECTOR_FIELDS = (
    ("AV", "access-vector"),
    ("AC", "access-complexity"),
    ("Au", "authentication"),
    ("C", "confidentiality-impact"),
    ("I", "integrity-impact"),
    ("A", "avaibility-impact"),
)


@dataclass(frozen=True)
class CVSSv2:
    """CVSS version 2 vector string and base score."""

    vectors: str
    score: float


@dataclass(frozen=True)
class NVDMetadata:
    """Metadata the NVD provides for one vulnerability."""

    cvss_v2: CVSSv2


def cvss_vectors(metrics: Mapping[str, str]) -> str:
    """Build a CVSSv2 vector string such as ``AV:N/AC:L`` from base-metric values.

    ``metrics`` maps base-metrics element names to their values; unknown
    values are skipped with a warning.
    """
    parts = []
    for vector, element in _VECTOR_FIELDS:
        value = metrics.get(element, "")
        if not value:
            continue
        letter = _VECTOR_LETTERS.get(value)
        if letter is None:
            logger.warning("unknown value for CVSSv2 vector (value=%s vector=%s)", value, vector)
            continue
        parts.append(f"{vector}:{letter}")
    return "/".join(parts)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _entry_metadata(entry: ET.Element) -> tuple[str, NVDMetadata | None]:
    name = entry.findtext(f"{{{_VULN_NS}}}cve-id", default="")
    metrics: dict[str, str] = {}
    cvss = entry.find(f"{{{_VULN_NS}}}cvss")
    if cvss is not None:
        base = cvss.find(f"{{{_CVSS_NS}}}base_metrics")
        if base is not None:
            metrics = {_local_name(child.tag): child.text or "" for child in base}

    score_text = metrics.get("score", "").strip()
    try:
        score = float(score_text) if score_text else 0.0
    except ValueError as err:
        raise CouldNotParseError(f"invalid CVSS score {score_text!r}") from err

    vectors = cvss_vectors(metrics)
    if not vectors:
        return name, None
    return name, NVDMetadata(CVSSv2(vectors=vectors, score=score))


def parse_feed(source: str | os.PathLike[str] | IO[bytes]) -> dict[str, NVDMetadata]:
    """Parse an NVD XML feed into metadata keyed by CVE identifier.

    Entries without any usable CVSSv2 vector are left out. Raises
    CouldNotParseError when the document is malformed.
    """
    result: dict[str, NVDMetadata] = {}
    depth = 0
    try:
        for event, elem in ET.iterparse(source, events=("start", "end")):
            if event == "start":
                depth += 1
                continue
            depth -= 1
            if depth == 1 and _local_name(elem.tag) == "entry":
                name, metadata = _entry_metadata(elem)
                if metadata is not None:
                    result[name] = metadata
                elem.clear()
    except ET.ParseError as err:
        raise CouldNotParseError(f"could not decode NVD data feed: {err}") from err
    return result


def parse_meta_hash(lines: Iterable[str]) -> str:
    """Return the SHA-256 value from the lines of a feed's ``.meta`` file."""
    for line in lines:
        line = line.rstrip("\r\n")
        if line.startswith("sha256:"):
            return line[len("sha256:"):]
    raise ValueError("invalid .meta file format")


def severity_from_cvss(score: float) -> Severity:
    """Map a CVSS score (0.0 - 10.0) onto the CVSS v3.0 qualitative scale.

    Scores in [0, 1) are rated Negligible rather than None.
    """
    if math.isnan(score):
        return Severity.UNKNOWN
    if score < 1.0:
        return Severity.NEGLIGIBLE
    if score < 3.9:
        return Severity.LOW
    if score < 6.9:
        return Severity.MEDIUM
    if score < 8.9:
        return Severity.HIGH
    if score <= 10:
        return Severity.CRITICAL
    return Severity.UNKNOWN


def _fetch_hash(feed_name: str) -> str:
    response = requests.get(DATA_FEED_META_URL.format(feed_name))
    return parse_meta_hash(response.text.splitlines())


class NVDAppender(Appender):
    """Appends CVSSv2 metadata from the NVD data feeds to vulnerabilities."""

    def __init__(self, local_path: str | None = None) -> None:
        self.local_path = local_path
        self.data_feed_hashes: dict[str, str] = {}
        self.metadata: dict[str, NVDMetadata] = {}

    def build_cache(self, store: Any) -> None:
        self.metadata = {}

        if not self.local_path:
            try:
                self.local_path = tempfile.mkdtemp(prefix="nvd-data")
            except OSError as err:
                raise FilesystemError() from err
            self.data_feed_hashes = {}

        with contextlib.ExitStack() as stack:
            for name, stream in self._open_feeds(stack).items():
                try:
                    self.metadata.update(parse_feed(stream))
                except CouldNotParseError:
                    logger.error("could not decode NVD data feed (data feed name=%s)", name)
                    raise

    def _open_feeds(self, stack: contextlib.ExitStack) -> dict[str, IO[bytes]]:
        """Open a readable stream for every feed with a known hash."""
        assert self.local_path
        names = [
            str(year)
            for year in range(FIRST_FEED_YEAR, datetime.date.today().year + 1)
        ]

        for name in names:
            try:
                self.data_feed_hashes[name] = _fetch_hash(name)
            except (requests.RequestException, ValueError) as err:
                logger.warning(
                    "could not get NVD data feed hash (data feed name=%s): %s", name, err
                )

        feeds: dict[str, IO[bytes]] = {}
        for name in names:
            if name not in self.data_feed_hashes:
                continue
            path = os.path.join(self.local_path, name + ".xml")
            try:
                feeds[name] = stack.enter_context(open(path, "rb"))
                continue
            except OSError:
                pass
            feeds[name] = self._download_feed(name, path, stack)
        return feeds

    def _download_feed(
        self, name: str, path: str, stack: contextlib.ExitStack
    ) -> IO[bytes]:
        try:
            response = requests.get(DATA_FEED_URL.format(name))
        except requests.RequestException as err:
            logger.error("could not download NVD data feed (data feed name=%s): %s", name, err)
            raise CouldNotDownloadError() from err

        unzipped = stack.enter_context(gzip.GzipFile(fileobj=io.BytesIO(response.content)))

        try:
            out = open(path, "wb")
        except OSError as err:
            logger.warning("could not store NVD data feed to filesystem: %s", err)
            return unzipped

        with out:
            try:
                shutil.copyfileobj(unzipped, out)
            except (OSError, EOFError) as err:
                out.close()
                with contextlib.suppress(OSError):
                    os.remove(path)
                logger.error("could not read NVD data feed (data feed name=%s): %s", name, err)
                raise CouldNotDownloadError() from err
        return stack.enter_context(open(path, "rb"))

    def append(self, vuln_name: str, callback: AppendFunc) -> None:
        metadata = self.metadata.get(vuln_name)
        if metadata is not None:
            callback(APPENDER_NAME, metadata, severity_from_cvss(metadata.cvss_v2.score))

    def purge_cache(self) -> None:
        self.metadata = {}

    def clean(self) -> None:
        if self.local_path:
            shutil.rmtree(self.local_path, ignore_errors=True)


register_appender(APPENDER_NAME, NVDAppender())