"""Vulnerability updater backed by the Ubuntu CVE Tracker."""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
import tempfile
from collections.abc import Mapping
from typing import IO, Any

from . import dpkg
from .versionfmt import MAX_VERSION, InvalidVersionError, UnknownVersionFormatError, valid
from .vulnsrc import (
    AffectedFeature,
    CouldNotDownloadError,
    FilesystemError,
    Namespace,
    Severity,
    UpdateResponse,
    Updater,
    Vulnerability,
    register_updater,
)

logger = logging.getLogger(__name__)

TRACKER_URI = "https://launchpad.net/ubuntu-cve-tracker"
TRACKER_REPOSITORY = "https://launchpad.net/ubuntu-cve-tracker"
UPDATER_FLAG = "ubuntuUpdater"
CVE_URL = "http://people.ubuntu.com/~ubuntu-security/cve/{}"

DEFAULT_RELEASES: dict[str, str] = {
    "precise": "12.04",
    "quantal": "12.10",
    "raring": "13.04",
    "trusty": "14.04",
    "utopic": "14.10",
    "vivid": "15.04",
    "wily": "15.10",
    "xenial": "16.04",
    "yakkety": "16.10",
    "zesty": "17.04",
    "artful": "17.10",
    "bionic": "18.04",
}
"""Ubuntu release code names and the version each namespace is named after."""

IGNORED_RELEASES = frozenset(
    {
        "upstream",
        "devel",
        "dapper",
        "edgy",
        "feisty",
        "gutsy",
        "hardy",
        "intrepid",
        "jaunty",
        "karmic",
        "lucid",
        "maverick",
        "natty",
        "oneiric",
        "saucy",
        "vivid/ubuntu-core",
        "vivid/stable-phone-overlay",
        # Syntax error in the tracker.
        "Patches",
        # Product.
        "product",
    }
)

_AFFECTS_PATTERN = re.compile(
    r"(?P<release>.*)_(?P<package>.*): (?P<status>[^\s]*)( \(+(?P<note>[^()]*)\)+)?"
)
_INT_PATTERN = re.compile(r"[+-]?[0-9]+")

_CONSIDERED_STATUSES = frozenset({"needed", "active", "deferred", "released", "not-affected"})
_DESCRIPTION_TERMINATORS = (
    "Ubuntu-Description:",
    "Notes:",
    "Bugs:",
    "Priority:",
    "Discovered-by:",
    "Assigned-to:",
)

_PRIORITY_SEVERITIES = {
    "untriaged": Severity.UNKNOWN,
    "negligible": Severity.NEGLIGIBLE,
    "low": Severity.LOW,
    "medium": Severity.MEDIUM,
    "high": Severity.HIGH,
    "critical": Severity.CRITICAL,
}


def _atoi(text: str) -> int:
    """Parse a decimal integer, giving 0 when ``text`` is not one."""
    return int(text) if _INT_PATTERN.fullmatch(text) else 0


def severity_from_priority(priority: str) -> Severity:
    """Convert an Ubuntu CVE Tracker priority into a Severity."""
    severity = _PRIORITY_SEVERITIES.get(priority)
    if severity is None:
        logger.warning("could not determine a vulnerability severity from: %s", priority)
        return Severity.UNKNOWN
    return severity


def parse_ubuntu_cve(
    stream: IO[str] | IO[bytes] | str | bytes, releases: Mapping[str, str]
) -> tuple[Vulnerability, set[str]]:
    """Parse one tracker CVE file.

    Returns the vulnerability and the release names that are missing from
    ``releases``. Only one affected package per major release is kept.
    """
    content = stream.read() if hasattr(stream, "read") else stream
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")

    name = link = description = ""
    severity: Severity | None = None
    affected: list[AffectedFeature] = []
    unknown_releases: set[str] = set()
    unique_releases: set[str] = set()
    reading_description = False

    for raw_line in content.split("\n"):
        line = raw_line.strip()

        if line.startswith("#"):
            continue

        if line.startswith("Candidate:"):
            name = line[len("Candidate:"):].strip()
            link = CVE_URL.format(name)
            continue

        if line.startswith("Priority:"):
            priority = line[len("Priority:"):].strip()
            # Handles entries such as "Priority: medium (heap-protector)".
            if " " in priority:
                priority = priority[: priority.index(" ")]
            severity = severity_from_priority(priority)
            continue

        if line.startswith("Description:"):
            reading_description = True
            # The description may start on the same line by mistake.
            description = line[len("Description:"):].strip()
            continue
        if reading_description:
            if line.startswith(_DESCRIPTION_TERMINATORS):
                reading_description = False
            else:
                description = f"{description} {line}"
                continue

        match = _AFFECTS_PATTERN.search(line)
        if match is None:
            continue
        md = {key: (value or "").strip() for key, value in match.groupdict().items()}

        # Linux kernels are ignored.
        if md["package"].startswith("linux"):
            continue
        if md["status"] not in _CONSIDERED_STATUSES:
            continue

        release = md["release"].split("/")[0]
        if release in IGNORED_RELEASES:
            continue
        if release not in releases:
            unknown_releases.add(release)
            continue

        if md["status"] == "released":
            version = md["note"]
            if version:
                try:
                    valid(dpkg.PARSER_NAME, version)
                except (InvalidVersionError, UnknownVersionFormatError) as err:
                    logger.warning(
                        "could not parse package version. skipping (version=%s): %s",
                        version,
                        err,
                    )
        else:
            version = MAX_VERSION
        if not version:
            continue

        release_name = "ubuntu:" + releases[release]
        key = f"{release_name}_:_{md['package']}"
        if key in unique_releases:
            continue
        unique_releases.add(key)

        affected.append(
            AffectedFeature(
                namespace=Namespace(name=release_name, version_format=dpkg.PARSER_NAME),
                feature_name=md["package"],
                affected_version=version,
                fixed_in_version="" if version == MAX_VERSION else version,
            )
        )

    vulnerability = Vulnerability(
        name=name,
        link=link or TRACKER_URI,
        severity=severity if severity is not None else Severity.UNKNOWN,
        description=description.strip(),
        affected=affected,
    )
    return vulnerability, unknown_releases


def _bzr(*args: str, cwd: str) -> subprocess.CompletedProcess[str] | None:
    """Run a bzr command, returning None when bzr cannot be started."""
    try:
        return subprocess.run(
            ["bzr", *args],
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except OSError as err:
        logger.error("could not run bzr: %s", err)
        return None


def _output(result: subprocess.CompletedProcess[str] | None) -> str:
    return result.stdout if result is not None and result.stdout else ""


def get_revision_number(repository_path: str | os.PathLike[str]) -> int:
    """Return the revision number of the local tracker branch."""
    result = _bzr("revno", cwd=os.fspath(repository_path))
    if result is None or result.returncode != 0:
        logger.error(
            "could not get Ubuntu repository's revision number (output=%s)", _output(result)
        )
        raise CouldNotDownloadError()

    text = result.stdout.strip()
    if not _INT_PATTERN.fullmatch(text):
        logger.error(
            "could not parse Ubuntu repository's revision number (output=%s)", result.stdout
        )
        raise CouldNotDownloadError()
    return int(text)


def collect_modified_vulnerabilities(
    revision: int, db_revision: str, repository_path: str | os.PathLike[str]
) -> set[str]:
    """Return the repository-relative paths of CVE files changed since ``db_revision``.

    An empty ``db_revision`` means every CVE file in ``active`` and
    ``retired`` is returned.
    """
    path = os.fspath(repository_path)
    modified: set[str] = set()

    if db_revision == "":
        for folder in ("active", "retired"):
            try:
                names = os.listdir(os.path.join(path, folder))
            except OSError as err:
                logger.error(
                    "could not read Ubuntu vulnerabilities repository's folder: %s", err
                )
                raise FilesystemError() from err
            modified.update(f"{folder}/{name}" for name in names if name.startswith("CVE-"))
        return modified

    db_revision_number = _atoi(db_revision)
    if revision == db_revision_number:
        logger.debug("no update (package=Ubuntu)")
        return modified

    result = _bzr("log", "--verbose", f"-r{db_revision_number + 1}..", "-n0", cwd=path)
    if result is None or result.returncode != 0:
        logger.error(
            "could not get Ubuntu vulnerabilities repository logs (output=%s)",
            _output(result),
        )
        raise CouldNotDownloadError()

    for raw_line in result.stdout.splitlines():
        text = raw_line.strip()
        if "CVE-" in text and text.startswith(("active/", "retired/")):
            if " => " in text:
                text = text[text.index(" => ") + 4:]
            modified.add(text)
    return modified


class UbuntuUpdater(Updater):
    """Fetches vulnerabilities from a local branch of the Ubuntu CVE Tracker."""

    def __init__(
        self,
        releases: Mapping[str, str] | None = None,
        repository_local_path: str = "",
    ) -> None:
        self.releases = dict(DEFAULT_RELEASES if releases is None else releases)
        self.repository_local_path = repository_local_path

    def update(self, store: Any) -> UpdateResponse:
        logger.info("Start fetching vulnerabilities (package=Ubuntu)")

        self._pull_repository()
        revision = get_revision_number(self.repository_local_path)
        db_revision = store.find_key_value(UPDATER_FLAG) or ""

        modified = collect_modified_vulnerabilities(
            revision, db_revision, self.repository_local_path
        )

        response = UpdateResponse()
        notes: dict[str, None] = {}
        for cve_path in sorted(modified):
            try:
                with open(os.path.join(self.repository_local_path, cve_path), "rb") as file:
                    vulnerability, unknown_releases = parse_ubuntu_cve(file, self.releases)
            except OSError:
                # A file may have been modified and then moved by a later commit.
                continue

            response.vulnerabilities.append(vulnerability)
            for release in sorted(unknown_releases):
                note = (
                    f"Ubuntu {release} is not mapped to any version number "
                    "(eg. trusty->14.04). Please update me."
                )
                notes[note] = None
                # Unknown releases keep this revision from counting as processed.
                revision = _atoi(db_revision)

        response.flag_name = UPDATER_FLAG
        response.flag_value = str(revision)
        response.notes.extend(notes)
        return response

    def clean(self) -> None:
        if self.repository_local_path:
            shutil.rmtree(self.repository_local_path, ignore_errors=True)

    def _pull_repository(self) -> None:
        """Branch the tracker into a fresh directory, or pull an existing branch."""
        path = self.repository_local_path
        if not path or not os.path.exists(path):
            try:
                self.repository_local_path = tempfile.mkdtemp(prefix="ubuntu-cve-tracker")
            except OSError as err:
                raise FilesystemError() from err

            result = _bzr(
                "branch",
                "--use-existing-dir",
                TRACKER_REPOSITORY,
                ".",
                cwd=self.repository_local_path,
            )
            if result is None or result.returncode != 0:
                logger.error(
                    "could not branch Ubuntu repository (output=%s)", _output(result)
                )
                raise CouldNotDownloadError()
            return

        result = _bzr("pull", "--overwrite", cwd=path)
        if result is None or result.returncode != 0:
            shutil.rmtree(path, ignore_errors=True)
            logger.error("could not pull Ubuntu repository (output=%s)", _output(result))
            raise CouldNotDownloadError()


register_updater("ubuntu", UbuntuUpdater())