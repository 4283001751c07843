import pytest

from vulnfeed.vulnsrc import (
    AffectedFeature,
    FilesystemError,
    GitFailureError,
    Namespace,
    Severity,
    UpdateResponse,
    Updater,
    UpdaterError,
    Vulnerability,
    list_updaters,
    register_updater,
    updaters,
)


class _StaticUpdater(Updater):
    def __init__(self, response):
        self.response = response
        self.cleaned = False

    def update(self, store):
        return self.response

    def clean(self):
        self.cleaned = True


@pytest.mark.parametrize(
    ("lower", "higher"),
    [
        (Severity.UNKNOWN, Severity.NEGLIGIBLE),
        (Severity.NEGLIGIBLE, Severity.LOW),
        (Severity.LOW, Severity.MEDIUM),
        (Severity.MEDIUM, Severity.HIGH),
        (Severity.HIGH, Severity.CRITICAL),
    ],
)
def test_severity_order_is_ascending(lower, higher):
    assert lower.compare(higher) == -1
    assert higher.compare(lower) == 1


@pytest.mark.parametrize(
    "severity",
    [
        Severity.UNKNOWN,
        Severity.NEGLIGIBLE,
        Severity.LOW,
        Severity.MEDIUM,
        Severity.HIGH,
        Severity.CRITICAL,
    ],
)
def test_severity_compare_equal(severity):
    assert severity.compare(severity) == 0


def test_severity_extremes():
    assert Severity.UNKNOWN.compare(Severity.CRITICAL) == -1
    assert Severity.HIGH.compare(Severity.LOW) == 1


def test_affected_feature_value_equality():
    first = AffectedFeature(Namespace("debian:8", "dpkg"), "openssl", "1.0", "1.0")
    second = AffectedFeature(Namespace("debian:8", "dpkg"), "openssl", "1.0", "1.0")
    assert first == second
    assert second in [first]
    assert len({first, second}) == 1


def test_vulnerability_defaults():
    vuln = Vulnerability(name="CVE-2015-1323")
    assert vuln.severity is Severity.UNKNOWN
    assert vuln.affected == []
    assert vuln.metadata == {}
    assert vuln.namespace is None


def test_update_response_lists_are_independent():
    a = UpdateResponse()
    b = UpdateResponse()
    a.notes.append("note")
    assert b.notes == []
    assert a.flag_name == ""


def test_filesystem_error_message():
    assert str(FilesystemError()) == "vulnsrc: something went wrong when interacting with the fs"
    assert str(GitFailureError()) == "vulnsrc: something went wrong when interacting with git"
    with pytest.raises(UpdaterError, match="interacting with the fs"):
        raise FilesystemError()


def test_register_and_list():
    updater = _StaticUpdater(UpdateResponse(flag_name="flag"))
    register_updater("test-vulnsrc-register", updater)
    assert updaters()["test-vulnsrc-register"] is updater
    assert "test-vulnsrc-register" in list_updaters()
    assert updaters()["test-vulnsrc-register"].update(None).flag_name == "flag"


def test_updaters_returns_copy():
    register_updater("test-vulnsrc-copy", _StaticUpdater(UpdateResponse()))
    snapshot = updaters()
    snapshot.pop("test-vulnsrc-copy")
    assert "test-vulnsrc-copy" in updaters()


def test_register_empty_name():
    with pytest.raises(ValueError):
        register_updater("", _StaticUpdater(UpdateResponse()))


def test_register_none():
    with pytest.raises(TypeError):
        register_updater("test-vulnsrc-none", None)


def test_register_twice():
    register_updater("test-vulnsrc-dup", _StaticUpdater(UpdateResponse()))
    with pytest.raises(ValueError, match="called twice"):
        register_updater("test-vulnsrc-dup", _StaticUpdater(UpdateResponse()))


def test_updater_is_abstract():
    with pytest.raises(TypeError):
        Updater()