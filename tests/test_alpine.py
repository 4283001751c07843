import os
import subprocess
from unittest import mock

import pytest

from vulnfeed.alpine import (
    UPDATER_FLAG,
    AlpineUpdater,
    list_entries,
    parse_namespace,
    parse_yaml,
)
from vulnfeed.versionfmt import MAX_VERSION
from vulnfeed.vulnsrc import (
    CouldNotDownloadError,
    CouldNotParseError,
    GitFailureError,
    Severity,
    list_updaters,
)

SECDB = """\
distroversion: v3.4
reponame: main
packages:
  - pkg:
      name: apache2
      secfixes:
        2.4.23-r1:
          - CVE-2016-5387
  - pkg:
      name: busybox
      secfixes:
        1.10:
          - CVE-2016-2147
          - CVE-2016-2148
        "not valid!":
          - CVE-2016-0001
  - pkg:
      name: musl
      secfixes:
        "#MAXV#":
          - CVE-2016-1111
  - pkg:
      name: zlib
"""


class _Store:
    def __init__(self, values=None):
        self.values = values or {}

    def find_key_value(self, key):
        return self.values.get(key)


def test_yaml_parsing():
    vulns = parse_yaml(SECDB)
    assert len(vulns) == 4
    assert vulns[0].name == "CVE-2016-5387"
    assert vulns[0].affected[0].namespace.name == "alpine:v3.4"
    assert vulns[0].affected[0].feature_name == "apache2"
    assert vulns[0].link == "https://cve.mitre.org/cgi-bin/cvename.cgi?name=CVE-2016-5387"
    assert vulns[0].severity == Severity.UNKNOWN


def test_yaml_versions_stay_strings():
    vulns = parse_yaml(SECDB)
    busybox = [v for v in vulns if v.affected[0].feature_name == "busybox"]
    assert [v.name for v in busybox] == ["CVE-2016-2147", "CVE-2016-2148"]
    assert busybox[0].affected[0].affected_version == "1.10"
    assert busybox[0].affected[0].fixed_in_version == "1.10"
    assert busybox[0].affected[0].namespace.version_format == "dpkg"


def test_yaml_max_version_has_no_fix():
    musl = [v for v in parse_yaml(SECDB) if v.name == "CVE-2016-1111"]
    assert len(musl) == 1
    assert musl[0].affected[0].affected_version == MAX_VERSION
    assert musl[0].affected[0].fixed_in_version == ""


def test_yaml_invalid_version_skipped():
    names = [v.name for v in parse_yaml(SECDB)]
    assert "CVE-2016-0001" not in names


def test_yaml_malformed_raises():
    with pytest.raises(CouldNotParseError):
        parse_yaml("packages: [unclosed")


def _make_repo(root):
    ns = root / "v3.4"
    ns.mkdir()
    (ns / "main.yaml").write_text(SECDB)
    (ns / ".hidden.yaml").write_text("not: [valid")
    (root / ".git").mkdir()
    (root / "README").write_text("readme")


def test_list_entries(tmp_path):
    _make_repo(tmp_path)
    assert list_entries(tmp_path, directories=True) == ["v3.4"]
    assert list_entries(tmp_path, directories=False) == ["README"]


def test_parse_namespace(tmp_path):
    _make_repo(tmp_path)
    vulns = parse_namespace(tmp_path, "v3.4")
    assert len(vulns) == 4


def _fake_git(returncodes, calls):
    def run(args, **kwargs):
        calls.append((args, kwargs.get("cwd")))
        code = returncodes.get(args[1], 0)
        return subprocess.CompletedProcess(args, code, stdout="deadbeef\n")

    return run


def test_update_collects_vulnerabilities(tmp_path):
    _make_repo(tmp_path)
    calls = []
    updater = AlpineUpdater(str(tmp_path))
    with mock.patch("vulnfeed.alpine.subprocess.run", side_effect=_fake_git({}, calls)):
        response = updater.update(_Store())
    assert response.flag_name == UPDATER_FLAG
    assert response.flag_value == "deadbeef"
    assert len(response.vulnerabilities) == 4
    assert [c[0] for c in calls] == [["git", "pull"], ["git", "rev-parse", "HEAD"]]


def test_update_without_changes(tmp_path):
    _make_repo(tmp_path)
    updater = AlpineUpdater(str(tmp_path))
    with mock.patch("vulnfeed.alpine.subprocess.run", side_effect=_fake_git({}, [])):
        response = updater.update(_Store({UPDATER_FLAG: "deadbeef"}))
    assert response.flag_value == "deadbeef"
    assert response.vulnerabilities == []


def test_update_pull_failure(tmp_path):
    _make_repo(tmp_path)
    updater = AlpineUpdater(str(tmp_path))
    with mock.patch(
        "vulnfeed.alpine.subprocess.run", side_effect=_fake_git({"pull": 1}, [])
    ):
        with pytest.raises(GitFailureError):
            updater.update(_Store())


def test_update_clone_failure_cleans_up():
    calls = []
    updater = AlpineUpdater()
    with mock.patch(
        "vulnfeed.alpine.subprocess.run", side_effect=_fake_git({"clone": 128}, calls)
    ):
        with pytest.raises(CouldNotDownloadError):
            updater.update(_Store())
    assert calls[0][0][:2] == ["git", "clone"]
    assert not os.path.exists(calls[0][1])


def test_clean_removes_repository(tmp_path):
    repo = tmp_path / "repo"
    repo.mkdir()
    updater = AlpineUpdater(str(repo))
    updater.clean()
    assert not repo.exists()


def test_registered():
    assert "alpine" in list_updaters()