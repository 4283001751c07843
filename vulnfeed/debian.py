"""Vulnerability updater backed by the Debian Security Tracker."""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping
from typing import IO, Any

import requests

from . import dpkg
from .versionfmt import MAX_VERSION, InvalidVersionError, UnknownVersionFormatError, valid
from .vulnsrc import (
    AffectedFeature,
    CouldNotDownloadError,
    CouldNotParseError,
    Namespace,
    Severity,
    UpdateResponse,
    Updater,
    Vulnerability,
    register_updater,
)

logger = logging.getLogger(__name__)

URL = "https://security-tracker.debian.org/tracker/data/json"
CVE_URL_PREFIX = "https://security-tracker.debian.org/tracker"
UPDATER_FLAG = "debianUpdater"

DEFAULT_RELEASES: dict[str, str] = {
    "squeeze": "6",
    "wheezy": "7",
    "jessie": "8",
    "stretch": "9",
    "buster": "10",
    "sid": "unstable",
}
"""Debian release code names and the version each namespace is named after."""

_URGENCY_SEVERITIES = {
    "not yet assigned": Severity.UNKNOWN,
    "end-of-life": Severity.NEGLIGIBLE,
    "unimportant": Severity.NEGLIGIBLE,
    "low": Severity.LOW,
    "low*": Severity.LOW,
    "low**": Severity.LOW,
    "medium": Severity.MEDIUM,
    "medium*": Severity.MEDIUM,
    "medium**": Severity.MEDIUM,
    "high": Severity.HIGH,
    "high*": Severity.HIGH,
    "high**": Severity.HIGH,
}


def severity_from_urgency(urgency: str) -> Severity:
    """Convert a Debian Security Tracker urgency into a Severity."""
    severity = _URGENCY_SEVERITIES.get(urgency)
    if severity is None:
        logger.warning(
            "could not determine vulnerability severity from urgency (urgency=%s)", urgency
        )
        return Severity.UNKNOWN
    return severity


def _affected_version(release: Mapping[str, Any]) -> str | None:
    """Return the affected version of one release entry, or None to skip it."""
    status = release.get("status") or ""
    if status == "open":
        return MAX_VERSION
    if status == "resolved":
        fixed = release.get("fixed_version") or ""
        try:
            valid(dpkg.PARSER_NAME, fixed)
        except (InvalidVersionError, UnknownVersionFormatError) as err:
            logger.warning(
                "could not parse package version. skipping (version=%s): %s", fixed, err
            )
            return None
        if fixed != "0":
            return fixed
    return None


def parse_debian_json(
    data: Mapping[str, Mapping[str, Any]], releases: Mapping[str, str]
) -> tuple[list[Vulnerability], set[str]]:
    """Extract vulnerabilities from the tracker's JSON document.

    Returns the vulnerabilities and the release names missing from ``releases``.
    """
    found: dict[str, Vulnerability] = {}
    unknown_releases: set[str] = set()

    for pkg_name, pkg_node in data.items():
        for vuln_name, vuln_node in pkg_node.items():
            for release_name, release_node in (vuln_node.get("releases") or {}).items():
                if release_name not in releases:
                    unknown_releases.add(release_name)
                    continue

                if (
                    not vuln_name.startswith("CVE-")
                    or release_node.get("status") == "undetermined"
                ):
                    continue

                vulnerability = found.get(vuln_name)
                if vulnerability is None:
                    vulnerability = Vulnerability(
                        name=vuln_name,
                        link=f"{CVE_URL_PREFIX}/{vuln_name}",
                        severity=Severity.UNKNOWN,
                        description=vuln_node.get("description") or "",
                    )

                # A vulnerability carries one urgency per package; keep the highest.
                severity = severity_from_urgency(release_node.get("urgency") or "")
                if severity.compare(vulnerability.severity) > 0:
                    vulnerability.severity = severity

                version = _affected_version(release_node)
                if not version:
                    continue

                vulnerability.affected.append(
                    AffectedFeature(
                        namespace=Namespace(
                            name="debian:" + releases[release_name],
                            version_format=dpkg.PARSER_NAME,
                        ),
                        feature_name=pkg_name,
                        affected_version=version,
                        fixed_in_version="" if version == MAX_VERSION else version,
                    )
                )
                found[vuln_name] = vulnerability

    return list(found.values()), unknown_releases


def _valid_shape(data: Any) -> bool:
    return isinstance(data, dict) and all(
        isinstance(pkg, dict) and all(isinstance(v, dict) for v in pkg.values())
        for pkg in data.values()
    )


def build_response(
    stream: IO[bytes] | IO[str],
    latest_known_hash: str,
    releases: Mapping[str, str],
) -> UpdateResponse:
    """Build an update response from the tracker's JSON document.

    The flag value is the SHA-1 of the document; when it equals
    ``latest_known_hash`` no vulnerabilities are returned. Raises
    CouldNotParseError when the document cannot be decoded.
    """
    raw = stream.read()
    if isinstance(raw, str):
        raw = raw.encode("utf-8")

    try:
        data = json.loads(raw)
    except ValueError as err:
        logger.error("could not unmarshal Debian's JSON: %s", err)
        raise CouldNotParseError() from err
    if not _valid_shape(data):
        logger.error("could not unmarshal Debian's JSON: unexpected structure")
        raise CouldNotParseError()

    digest = hashlib.sha1(raw).hexdigest()
    response = UpdateResponse(flag_name=UPDATER_FLAG, flag_value=digest)
    if digest == latest_known_hash:
        logger.debug("no update (package=Debian)")
        return response

    response.vulnerabilities, unknown_releases = parse_debian_json(data, releases)
    for release in unknown_releases:
        note = (
            f"Debian {release} is not mapped to any version number "
            "(eg. Jessie->8). Please update me."
        )
        response.notes.append(note)
        logger.warning(note)
    return response


class DebianUpdater(Updater):
    """Fetches vulnerabilities from the Debian Security Tracker."""

    def __init__(self, releases: Mapping[str, str] | None = None) -> None:
        self.releases = dict(DEFAULT_RELEASES if releases is None else releases)

    def update(self, store: Any) -> UpdateResponse:
        logger.info("Start fetching vulnerabilities (package=Debian)")
        latest_hash = store.find_key_value(UPDATER_FLAG) or ""

        try:
            response = requests.get(URL, stream=True)
        except requests.RequestException as err:
            logger.error("could not download Debian's update: %s", err)
            raise CouldNotDownloadError() from err

        with response:
            response.raw.decode_content = True
            return build_response(response.raw, latest_hash, self.releases)

    def clean(self) -> None:
        """Nothing to release."""


register_updater("debian", DebianUpdater())