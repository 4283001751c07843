# vulnfeed

`vulnfeed` gathers vulnerability data from distribution security trackers,
compares package versions in the formats those trackers use, attaches NVD
CVSSv2 metadata to vulnerabilities, and announces new notifications to a
webhook.

## Installation

```
pip install vulnfeed
```

The `test` extra (`pip install "vulnfeed[test]"`) adds pytest and responses
for running the test suite.

## Version formats

Two formats are built in: `vulnfeed.dpkg` for Debian-style versions and
`vulnfeed.rpm` for RPM-style versions. Importing either module registers it
by name (`"dpkg"`, `"rpm"`) in `vulnfeed.versionfmt`:

```python
from vulnfeed import versionfmt, dpkg, rpm

versionfmt.compare("dpkg", "1.0~rc1-1", "1.0-1")                      # -1
versionfmt.compare("rpm", "2.9.1-6.0.1.el7_2.3", "2.9.1-6.el7_2.3")   # 1
versionfmt.in_range("dpkg", "1.2.3", "1.2.4")                         # True
versionfmt.valid("dpkg", "0:0 0-1")     # raises InvalidVersionError
```

Comparisons return -1, 0 or 1. A format with no registered parser raises
`UnknownVersionFormatError`; a malformed version raises
`InvalidVersionError`. The special strings `versionfmt.MIN_VERSION` and
`versionfmt.MAX_VERSION` always sort first and last.

Each format can also be used directly: `dpkg.parse_version` returns a
`DpkgVersion` (epoch, version, revision), `rpm.parse_version` an
`RpmVersion` (epoch, version, release), and `dpkg.verrevcmp` and
`rpm.rpmvercmp` compare version or revision strings. New formats subclass
`versionfmt.Parser` and are added with `versionfmt.register_parser`.

## Vulnerability sources

`vulnfeed.vulnsrc` holds the data model (`Severity`, `Namespace`,
`AffectedFeature`, `Vulnerability`, `UpdateResponse`), the errors updaters
raise (`FilesystemError`, `GitFailureError`, `CouldNotDownloadError`,
`CouldNotParseError`, all subclasses of `UpdaterError`) and the registry of
updaters: `register_updater`, `updaters()` and `list_updaters()`.

| Module            | Updater          | Source                              |
|-------------------|------------------|-------------------------------------|
| `vulnfeed.alpine` | `AlpineUpdater`  | alpine-secdb git repository         |
| `vulnfeed.debian` | `DebianUpdater`  | Debian Security Tracker JSON        |
| `vulnfeed.ubuntu` | `UbuntuUpdater`  | Ubuntu CVE Tracker bzr branch       |

Importing a module registers its updater under `"alpine"`, `"debian"` or
`"ubuntu"`. `update(store)` returns an `UpdateResponse` with the
vulnerabilities found, a flag name and value recording how far the update
got, and any notes. `store` is any object with a `find_key_value(key)`
method returning the last stored flag value or None. The Alpine and Ubuntu
updaters run the `git` and `bzr` programs, which must be installed; call
`clean()` to remove their working copies.

The parsers behind the updaters work without network access:

```python
from vulnfeed import alpine, debian, ubuntu

with open("v34_main.yaml", "rb") as stream:
    vulns = alpine.parse_yaml(stream)

with open("tracker.json", "rb") as stream:
    response = debian.build_response(stream, "", debian.DEFAULT_RELEASES)

with open("CVE-2015-4471", "rb") as stream:
    vuln, unknown = ubuntu.parse_ubuntu_cve(stream, ubuntu.DEFAULT_RELEASES)
```

`vulnfeed.oval` parses OVAL definition documents (`parse_definitions`) and
expands their criteria trees into the criterion sets that satisfy them
(`get_possibilities`, `get_criterions`), with helpers `clean_description`
and `title_name`.

## Metadata

`vulnfeed.vulnmdsrc` is the registry of metadata appenders
(`register_appender`, `appenders()`). `vulnfeed.nvd.NVDAppender`,
registered as `"NVD"`, downloads the yearly NVD XML feeds in
`build_cache`, then `append(name, callback)` calls back with an
`NVDMetadata` holding the CVSSv2 vector string and score. `nvd.parse_feed`
parses a feed on its own and `nvd.severity_from_cvss` maps a score to a
`Severity`.

## Notifications

`vulnfeed.notification` holds `Config` (attempts, renotify interval and
free-form params) and the sender registry: `register_sender`, `senders()`,
`unregister_sender`. `vulnfeed.webhook.WebhookSender`, registered as
`"webhook"`, is configured from `params["http"]` with the keys `endpoint`,
`servername`, `certfile`, `keyfile`, `cafile` and `proxy`, and POSTs

```json
{"Notification": {"Name": "..."}}
```

to the endpoint, raising unless the reply status is 200 or 201.

## What this package does not do

It has no command, no server and no storage of its own. It does not run a
service that polls for notifications, locks them and retries senders; it
does not save fetched vulnerabilities anywhere; and it has no updaters for
Oracle Linux or Red Hat advisories, only the generic OVAL parsing in
`vulnfeed.oval`.