# backend/ml/threat_feeds.py

"""
Threat feed clients: NVD CVE API 2.0 and the CISA KEV catalog.

Official sources:
    https://nvd.nist.gov/developers/vulnerabilities
    https://www.cisa.gov/known-exploited-vulnerabilities-catalog

Single-attempt requests with a fixed timeout; failures raise FeedError and
the caller decides whether to try again later.
"""

import json
import logging
from datetime import UTC, datetime

import requests

from ml.database import Vulnerability
from ml.errors import FeedError

logger = logging.getLogger(__name__)

NVD_URL     = "https://services.nvd.nist.gov/rest/json/cves/2.0"
CISA_KEV_URL = (
    "https://www.cisa.gov/sites/default/files/feeds/known_exploited_vulnerabilities.json"
)
REQUEST_TIMEOUT = 30
NVD_MAX_PAGE    = 2000


def _get_json(url: str, params: dict | None = None, headers: dict | None = None) -> dict:
    try:
        response = requests.get(url, params=params, headers=headers, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        return response.json()
    except requests.RequestException as e:
        logger.error("[Feeds] Request to %s failed: %s", url, e)
        raise FeedError(f"Request to {url} failed: {e}") from e
    except ValueError as e:
        logger.error("[Feeds] Invalid JSON from %s: %s", url, e)
        raise FeedError(f"Invalid JSON from {url}: {e}") from e


def fetch_nvd_vulnerabilities(
    results_per_page: int = 100,
    start_index: int = 0,
    api_key: str | None = None,
) -> dict:
    """One page of the NVD CVE API (raw JSON)."""
    params = {
        "resultsPerPage": min(results_per_page, NVD_MAX_PAGE),
        "startIndex":     start_index,
    }
    headers = {"apiKey": api_key} if api_key else {}
    data = _get_json(NVD_URL, params=params, headers=headers)
    logger.info(
        "[Feeds] NVD page start=%d → %d CVEs (total %s)",
        start_index, len(data.get("vulnerabilities", [])), data.get("totalResults", "?"),
    )
    return data


def fetch_cisa_kev_catalog() -> dict:
    """The complete CISA Known Exploited Vulnerabilities catalog (raw JSON)."""
    data = _get_json(CISA_KEV_URL)
    if "vulnerabilities" not in data:
        raise FeedError("CISA KEV catalog has no 'vulnerabilities' field")
    return data


def upsert_vulnerabilities(store, normalized: list) -> tuple[int, int]:
    """
    Write NormalizedVulnerability records to the store.

    New CVEs are inserted in full; existing ones only get last_modified and
    exploited_in_wild refreshed. Returns (inserted, updated).
    """
    inserted = updated = 0
    now = datetime.now(UTC)
    seen: set[str] = set()
    with store.session() as s:
        for vuln in normalized:
            if vuln.cve_id in seen:
                continue
            seen.add(vuln.cve_id)
            row = s.get(Vulnerability, vuln.cve_id)
            if row is not None:
                row.last_modified     = now
                row.exploited_in_wild = bool(vuln.exploited_in_wild)
                updated += 1
                continue
            s.add(Vulnerability(
                id                = vuln.cve_id,
                title             = vuln.cve_id,
                description       = vuln.description,
                severity          = vuln.cvss_score,
                exploited_in_wild = bool(vuln.exploited_in_wild),
                published_date    = vuln.published_date or now,
                last_modified     = now,
                affected_systems  = json.dumps(vuln.affected_systems),
                attack_vector     = vuln.attack_vector,
                source_data       = json.dumps(vuln.to_dict(), default=str),
            ))
            inserted += 1
    logger.info("[Feeds] Upserted vulnerabilities: %d new, %d refreshed", inserted, updated)
    return inserted, updated
