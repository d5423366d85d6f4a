# tests/test_threat_feeds.py

"""
Test cases for the NVD / CISA KEV feed clients (no network access)
Run: pytest tests/test_threat_feeds.py -v
"""

import pytest
import requests

from ml import threat_feeds
from ml.data_processing import NormalizedVulnerability, fetch_and_normalize_vulnerabilities
from ml.errors import FeedError


class FakeResponse:

    def __init__(self, payload, status=200):
        self.payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


def _vuln(cve_id, exploited=False, score=7.5):
    return NormalizedVulnerability(
        cve_id=cve_id, published_date=None, cvss_score=score, exploited_in_wild=exploited,
        attack_vector="NETWORK", attack_complexity="LOW", privileges_required="NONE",
        user_interaction="NONE", impact_score=3.6, base_score=score,
        vendor_name="acme", product_name="widget", affected_systems_count=1,
        affected_systems=["cpe:2.3:a:acme:widget:1.0"],
    )


class TestFeedClients:

    def test_nvd_request(self, monkeypatch):
        """Test: page size, start index, API key header and timeout are sent"""
        seen = {}

        def fake_get(url, params=None, headers=None, timeout=None):
            seen.update(url=url, params=params, headers=headers, timeout=timeout)
            return FakeResponse({"vulnerabilities": [], "totalResults": 0})

        monkeypatch.setattr(threat_feeds.requests, "get", fake_get)
        threat_feeds.fetch_nvd_vulnerabilities(results_per_page=5000, start_index=10, api_key="k")

        assert seen["url"] == threat_feeds.NVD_URL
        assert seen["params"] == {"resultsPerPage": 2000, "startIndex": 10}
        assert seen["headers"] == {"apiKey": "k"}
        assert seen["timeout"] == threat_feeds.REQUEST_TIMEOUT

    def test_http_error(self, monkeypatch):
        monkeypatch.setattr(threat_feeds.requests, "get",
                            lambda *a, **kw: FakeResponse({}, status=503))
        with pytest.raises(FeedError):
            threat_feeds.fetch_cisa_kev_catalog()

    def test_connection_error(self, monkeypatch):
        def fail(*a, **kw):
            raise requests.ConnectionError("unreachable")

        monkeypatch.setattr(threat_feeds.requests, "get", fail)
        with pytest.raises(FeedError):
            threat_feeds.fetch_nvd_vulnerabilities()

    def test_invalid_json(self, monkeypatch):
        monkeypatch.setattr(threat_feeds.requests, "get",
                            lambda *a, **kw: FakeResponse(ValueError("bad json")))
        with pytest.raises(FeedError):
            threat_feeds.fetch_cisa_kev_catalog()

    def test_kev_without_vulnerabilities(self, monkeypatch):
        monkeypatch.setattr(threat_feeds.requests, "get",
                            lambda *a, **kw: FakeResponse({"title": "x"}))
        with pytest.raises(FeedError):
            threat_feeds.fetch_cisa_kev_catalog()

    def test_fetch_and_normalize(self, monkeypatch):
        def fake_get(url, params=None, headers=None, timeout=None):
            if url == threat_feeds.NVD_URL:
                return FakeResponse({"vulnerabilities": [
                    {"cve": {"id": "CVE-2024-0001", "metrics": {}}},
                ]})
            return FakeResponse({"vulnerabilities": [{"cveID": "CVE-2024-0001"}]})

        monkeypatch.setattr(threat_feeds.requests, "get", fake_get)
        result = fetch_and_normalize_vulnerabilities(limit=10, api_key=None)
        assert [v.cve_id for v in result] == ["CVE-2024-0001"]
        assert result[0].exploited_in_wild is True


class TestUpsert:

    def test_insert_then_refresh(self, store):
        """Test: re-fetch only refreshes last_modified and exploited_in_wild"""
        assert threat_feeds.upsert_vulnerabilities(store, [_vuln("CVE-1"), _vuln("CVE-2")]) == (2, 0)

        first = store.get_vulnerability("CVE-1")
        assert first.severity == 7.5
        assert first.exploited_in_wild is False

        changed = _vuln("CVE-1", exploited=True, score=1.0)
        assert threat_feeds.upsert_vulnerabilities(store, [changed]) == (0, 1)

        refreshed = store.get_vulnerability("CVE-1")
        assert refreshed.exploited_in_wild is True
        assert refreshed.severity == 7.5
        assert refreshed.last_modified >= first.last_modified
