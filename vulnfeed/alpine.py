"""Vulnerability updater backed by the alpine-secdb git repository."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
from typing import IO, Any

import yaml

from . import dpkg
from .versionfmt import MAX_VERSION, InvalidVersionError, UnknownVersionFormatError, valid
from .vulnsrc import (
    AffectedFeature,
    CouldNotDownloadError,
    CouldNotParseError,
    FilesystemError,
    GitFailureError,
    Namespace,
    Severity,
    UpdateResponse,
    Updater,
    Vulnerability,
    register_updater,
)

logger = logging.getLogger(__name__)

SECDB_GIT_URL = "https://git.alpinelinux.org/cgit/alpine-secdb"
UPDATER_FLAG = "alpine-secdbUpdater"
NVD_URL_PREFIX = "https://cve.mitre.org/cgi-bin/cvename.cgi?name="


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def parse_yaml(stream: IO[str] | IO[bytes] | str | bytes) -> list[Vulnerability]:
    """Parse one secdb YAML document into vulnerabilities.

    Fix versions that are not valid dpkg versions are skipped with a warning.
    Raises CouldNotParseError when the document is not valid YAML.
    """
    try:
        # BaseLoader keeps every scalar a string, so "1.10" is not read as 1.1.
        document = yaml.load(stream, Loader=yaml.BaseLoader)
    except yaml.YAMLError as err:
        raise CouldNotParseError(f"could not parse secdb file: {err}") from err

    document = _as_dict(document)
    distro = document.get("distroversion") or ""
    namespace = Namespace(name="alpine:" + distro, version_format=dpkg.PARSER_NAME)

    vulns: list[Vulnerability] = []
    for pack in _as_list(document.get("packages")):
        pkg = _as_dict(_as_dict(pack).get("pkg"))
        pkg_name = pkg.get("name") or ""
        for version, vuln_names in _as_dict(pkg.get("secfixes")).items():
            try:
                valid(dpkg.PARSER_NAME, version)
            except (InvalidVersionError, UnknownVersionFormatError) as err:
                logger.warning(
                    "could not parse package version. skipping (version=%s): %s",
                    version,
                    err,
                )
                continue

            fixed_in = "" if version == MAX_VERSION else version
            for vuln_name in _as_list(vuln_names):
                vulns.append(
                    Vulnerability(
                        name=vuln_name,
                        link=NVD_URL_PREFIX + vuln_name,
                        severity=Severity.UNKNOWN,
                        affected=[
                            AffectedFeature(
                                namespace=namespace,
                                feature_name=pkg_name,
                                affected_version=version,
                                fixed_in_version=fixed_in,
                            )
                        ],
                    )
                )
    return vulns


def list_entries(path: str | os.PathLike[str], directories: bool) -> list[str]:
    """List the non-hidden directories (or files) directly inside ``path``, sorted."""
    with os.scandir(path) as entries:
        return sorted(
            entry.name
            for entry in entries
            if entry.is_dir() == directories and not entry.name.startswith(".")
        )


def parse_namespace(
    repository_path: str | os.PathLike[str], namespace: str
) -> list[Vulnerability]:
    """Parse every secdb file of one namespace directory."""
    ns_dir = os.path.join(repository_path, namespace)
    vulns: list[Vulnerability] = []
    for filename in list_entries(ns_dir, directories=False):
        with open(os.path.join(ns_dir, filename), "rb") as file:
            vulns.extend(parse_yaml(file))
    return vulns


def _git(*args: str, cwd: str) -> subprocess.CompletedProcess[str] | None:
    """Run a git command, returning None when git cannot be started."""
    try:
        return subprocess.run(
            ["git", *args],
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except OSError as err:
        logger.error("could not run git: %s", err)
        return None


class AlpineUpdater(Updater):
    """Fetches vulnerabilities from a local clone of alpine-secdb."""

    def __init__(self, repository_local_path: str = "") -> None:
        self.repository_local_path = repository_local_path

    def update(self, store: Any) -> UpdateResponse:
        logger.info("Start fetching vulnerabilities (package=Alpine)")

        commit = self._pull_repository()
        db_commit = store.find_key_value(UPDATER_FLAG) or ""

        response = UpdateResponse(flag_name=UPDATER_FLAG, flag_value=commit)
        if commit == db_commit:
            logger.debug("no update (package=alpine)")
            return response

        for namespace in list_entries(self.repository_local_path, directories=True):
            response.vulnerabilities.extend(
                parse_namespace(self.repository_local_path, namespace)
            )
        return response

    def clean(self) -> None:
        if self.repository_local_path:
            shutil.rmtree(self.repository_local_path, ignore_errors=True)

    def _pull_repository(self) -> str:
        """Clone or pull the repository and return the commit at HEAD."""
        path = self.repository_local_path
        if not path or not os.path.exists(path):
            try:
                self.repository_local_path = tempfile.mkdtemp(prefix="alpine-secdb")
            except OSError as err:
                raise FilesystemError() from err

            result = _git("clone", SECDB_GIT_URL, ".", cwd=self.repository_local_path)
            if result is None or result.returncode != 0:
                self.clean()
                logger.error(
                    "could not pull alpine-secdb repository (output=%s)",
                    result.stdout if result is not None else "",
                )
                raise CouldNotDownloadError()
        else:
            result = _git("pull", cwd=path)
            if result is None or result.returncode != 0:
                raise GitFailureError()

        result = _git("rev-parse", "HEAD", cwd=self.repository_local_path)
        if result is None or result.returncode != 0:
            raise GitFailureError()
        return result.stdout.strip()


register_updater("alpine", AlpineUpdater())