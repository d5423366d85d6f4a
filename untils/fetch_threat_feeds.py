# untils/fetch_threat_feeds.py

"""
Pull CVEs from the NVD API v2, cross-reference the CISA KEV catalog and
upsert the result into the data store.

Existing CVEs only get last_modified / exploited_in_wild refreshed.

Usage
-----
    python untils/fetch_threat_feeds.py                  # 1,000 CVEs
    python untils/fetch_threat_feeds.py --limit 2000
    NVD_API_KEY=your_key python untils/fetch_threat_feeds.py
"""

import argparse
import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT / "backend"))

from ml.config          import DATABASE_URL
from ml.data_processing import fetch_and_normalize_vulnerabilities
from ml.database        import ThreatDataStore
from ml.errors          import FeedError
from ml.threat_feeds    import upsert_vulnerabilities


def main():
    parser = argparse.ArgumentParser(description="Refresh vulnerabilities from NVD + CISA KEV")
    parser.add_argument("--database-url", default=DATABASE_URL)
    parser.add_argument("--limit", type=int, default=1000, help="CVEs per NVD page (max 2000)")
    parser.add_argument(
        "--api-key",
        default=os.getenv("NVD_API_KEY", ""),
        help="NVD API key. Without key: 5 req/30s.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    print("=" * 60)
    print("FETCH THREAT FEEDS (NVD + CISA KEV)")
    print("=" * 60)

    if not args.api_key:
        print("\n[WARN] No NVD API key found. Requests will be rate-limited (slow).")

    try:
        normalized = fetch_and_normalize_vulnerabilities(limit=args.limit, api_key=args.api_key or None)
    except FeedError as e:
        print(f"\n[ERROR] {e}")
        sys.exit(1)

    exploited = sum(1 for v in normalized if v.exploited_in_wild)
    print(f"\n[+] Normalised {len(normalized):,} CVEs ({exploited:,} known exploited)")

    store = ThreatDataStore(args.database_url)
    inserted, updated = upsert_vulnerabilities(store, normalized)
    print(f"[+] Inserted {inserted:,}, refreshed {updated:,}")


if __name__ == "__main__":
    main()
