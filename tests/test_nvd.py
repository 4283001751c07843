import gzip
import io
import re

import pytest
import responses

from vulnfeed.nvd import (
    APPENDER_NAME,
    CVSSv2,
    NVDAppender,
    NVDMetadata,
    cvss_vectors,
    parse_feed,
    parse_meta_hash,
    severity_from_cvss,
)
from vulnfeed.vulnmdsrc import appenders
from vulnfeed.vulnsrc import CouldNotDownloadError, CouldNotParseError, Severity

EXPECTED_VECTORS = "AV:N/AC:L/Au:N/C:P/I:P"

FEED = b"""<?xml version="1.0"?>
<nvd xmlns="http://scap.nist.gov/schema/feed/vulnerability/2.0"
     xmlns:vuln="http://scap.nist.gov/schema/vulnerability/0.4"
     xmlns:cvss="http://scap.nist.gov/schema/cvss-v2/0.2">
  <entry id="CVE-2015-0001">
    <vuln:cve-id>CVE-2015-0001</vuln:cve-id>
    <vuln:cvss>
      <cvss:base_metrics>
        <cvss:score>7.5</cvss:score>
        <cvss:access-vector>NETWORK</cvss:access-vector>
        <cvss:access-complexity>LOW</cvss:access-complexity>
        <cvss:authentication>NONE</cvss:authentication>
        <cvss:confidentiality-impact>PARTIAL</cvss:confidentiality-impact>
        <cvss:integrity-impact>PARTIAL</cvss:integrity-impact>
        <cvss:availability-impact>PARTIAL</cvss:availability-impact>
      </cvss:base_metrics>
    </vuln:cvss>
  </entry>
  <entry id="CVE-2015-0002">
    <vuln:cve-id>CVE-2015-0002</vuln:cve-id>
  </entry>
</nvd>
"""

EXPECTED_METADATA = NVDMetadata(CVSSv2(vectors=EXPECTED_VECTORS, score=7.5))


def _mock(rsps, gz_body):
    rsps.add(responses.GET, re.compile(r".*\.meta$"), body="sha256:ABCDEF\n")
    rsps.add(responses.GET, re.compile(r".*\.xml\.gz$"), body=gz_body)


def _gz_calls(rsps):
    return sum(1 for call in rsps.calls if call.request.url.endswith(".xml.gz"))


def test_cvss_vectors_full():
    metrics = {
        "access-vector": "NETWORK",
        "access-complexity": "LOW",
        "authentication": "NONE",
        "confidentiality-impact": "PARTIAL",
        "integrity-impact": "PARTIAL",
    }
    assert cvss_vectors(metrics) == EXPECTED_VECTORS


def test_cvss_vectors_unknown_values_skipped():
    assert cvss_vectors({"access-vector": "BOGUS"}) == ""
    assert cvss_vectors({}) == ""


def test_cvss_vectors_ignores_availability_impact():
    assert cvss_vectors({"availability-impact": "PARTIAL"}) == ""


def test_parse_feed():
    result = parse_feed(io.BytesIO(FEED))
    assert result == {"CVE-2015-0001": EXPECTED_METADATA}


def test_parse_feed_malformed():
    with pytest.raises(CouldNotParseError):
        parse_feed(io.BytesIO(b"<nvd><entry>"))


def test_parse_feed_bad_score():
    bad = FEED.replace(b"<cvss:score>7.5</cvss:score>", b"<cvss:score>abc</cvss:score>")
    with pytest.raises(CouldNotParseError):
        parse_feed(io.BytesIO(bad))


def test_parse_meta_hash():
    lines = ["lastModifiedDate:2017-01-01", "size:1", "sha256:ABCDEF\r"]
    assert parse_meta_hash(lines) == "ABCDEF"


def test_parse_meta_hash_missing():
    with pytest.raises(ValueError, match="invalid .meta file format"):
        parse_meta_hash(["size:1"])


@pytest.mark.parametrize(
    "score, expected",
    [
        (0.0, Severity.NEGLIGIBLE),
        (0.99, Severity.NEGLIGIBLE),
        (1.0, Severity.LOW),
        (3.8, Severity.LOW),
        (3.9, Severity.MEDIUM),
        (6.9, Severity.HIGH),
        (8.9, Severity.CRITICAL),
        (10.0, Severity.CRITICAL),
        (10.1, Severity.UNKNOWN),
        (float("nan"), Severity.UNKNOWN),
    ],
)
def test_severity_from_cvss(score, expected):
    assert severity_from_cvss(score) is expected


def test_appender_registered():
    assert APPENDER_NAME == "NVD"
    assert "NVD" in appenders()


def test_append_and_purge():
    appender = NVDAppender()
    appender.metadata = {"CVE-2015-0001": EXPECTED_METADATA}
    seen = []
    appender.append("CVE-2015-0001", lambda *args: seen.append(args))
    appender.append("CVE-0000-0000", lambda *args: seen.append(args))
    assert seen == [(APPENDER_NAME, EXPECTED_METADATA, Severity.HIGH)]
    appender.purge_cache()
    appender.append("CVE-2015-0001", lambda *args: seen.append(args))
    assert len(seen) == 1


def test_build_cache_downloads_and_caches(tmp_path):
    appender = NVDAppender(local_path=str(tmp_path))
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        _mock(rsps, gzip.compress(FEED))
        appender.build_cache(None)
        first_downloads = _gz_calls(rsps)
        assert first_downloads >= 1
        assert (tmp_path / "2002.xml").read_bytes() == FEED
        assert appender.data_feed_hashes["2002"] == "ABCDEF"

        seen = []
        appender.append("CVE-2015-0001", lambda *args: seen.append(args))
        assert seen == [(APPENDER_NAME, EXPECTED_METADATA, Severity.HIGH)]

        appender.build_cache(None)
        assert _gz_calls(rsps) == first_downloads
        assert appender.metadata == {"CVE-2015-0001": EXPECTED_METADATA}


def test_build_cache_without_hashes_loads_nothing(tmp_path):
    appender = NVDAppender(local_path=str(tmp_path))
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        rsps.add(responses.GET, re.compile(r".*\.meta$"), body="size:1\n")
        rsps.add(responses.GET, re.compile(r".*\.xml\.gz$"), body=gzip.compress(FEED))
        appender.build_cache(None)
        assert _gz_calls(rsps) == 0
    assert appender.metadata == {}


def test_build_cache_bad_gzip(tmp_path):
    appender = NVDAppender(local_path=str(tmp_path))
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        _mock(rsps, b"not gzip data")
        with pytest.raises(CouldNotDownloadError):
            appender.build_cache(None)
    assert not (tmp_path / "2002.xml").exists()


def test_build_cache_bad_xml(tmp_path):
    appender = NVDAppender(local_path=str(tmp_path))
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        _mock(rsps, gzip.compress(b"<nvd><entry>"))
        with pytest.raises(CouldNotParseError):
            appender.build_cache(None)


def test_clean_removes_directory(tmp_path):
    target = tmp_path / "cache"
    target.mkdir()
    (target / "2002.xml").write_bytes(FEED)
    appender = NVDAppender(local_path=str(target))
    appender.clean()
    assert not target.exists()