# untils/seed_sample_data.py

"""
Seed the data store with a synthetic demo dataset.

Creates a handful of threat actors and CVEs plus N historical attacks with
sector-dependent attack-type preferences, so a freshly trained model has a
signal to pick up (e.g. healthcare → ransomware, financial → phishing).

Usage
-----
    python untils/seed_sample_data.py                 # 400 attacks
    python untils/seed_sample_data.py --attacks 2000 --seed 1
    python untils/seed_sample_data.py --reset         # wipe attacks first
"""

import argparse
import json
import logging
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import numpy as np

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT / "backend"))

from ml.config   import DATABASE_URL
from ml.database import CyberAttack, ThreatActor, ThreatDataStore, Vulnerability, new_id

SECTORS = ["Financial", "Healthcare", "Government", "Education",
           "Technology", "Manufacturing", "Energy", "Retail"]
REGIONS = ["North America", "Europe", "Asia", "Middle East", "Oceania", "South America"]

ATTACK_TYPES = ["ransomware", "data breach", "ddos", "zero-day",
                "phishing", "supply chain", "insider"]

# Per-sector weighting over ATTACK_TYPES
SECTOR_BIAS = {
    "Financial":     [1, 2, 2, 1, 4, 1, 1],
    "Healthcare":    [5, 2, 1, 1, 2, 1, 1],
    "Government":    [1, 2, 2, 3, 2, 2, 1],
    "Education":     [2, 2, 3, 1, 3, 1, 1],
    "Technology":    [1, 2, 1, 3, 1, 4, 1],
    "Manufacturing": [4, 1, 1, 1, 1, 3, 1],
    "Energy":        [3, 1, 2, 3, 1, 2, 1],
    "Retail":        [1, 4, 2, 1, 2, 1, 2],
}

ACTORS = [
    ("APT-North",   "Russia",      "advanced"),
    ("Ocean Lotus", "Vietnam",     "high"),
    ("FIN-Crew",    None,          "medium"),
    ("ScriptKids",  None,          "low"),
    ("Lazarus",     "North Korea", "advanced"),
]


def build_dataset(n_attacks: int, seed: int):
    rng = np.random.default_rng(seed)
    now = datetime.now(UTC)

    actors = [
        ThreatActor(
            id                   = new_id(),
            name                 = name,
            nation_state         = nation,
            sophistication_level = level,
            targeted_sectors     = json.dumps(SECTORS[:3]),
            targeted_regions     = json.dumps(REGIONS[:2]),
        )
        for name, nation, level in ACTORS
    ]

    vulns = []
    for i in range(40):
        vulns.append(Vulnerability(
            id                = f"CVE-2024-{10000 + i}",
            title             = f"Sample vulnerability {i}",
            description       = "Synthetic CVE for the demo dataset",
            severity          = round(float(rng.uniform(3.0, 10.0)), 1),
            exploited_in_wild = bool(rng.random() < 0.3),
            published_date    = now - timedelta(days=int(rng.integers(30, 700))),
            attack_vector     = str(rng.choice(["NETWORK", "LOCAL", "ADJACENT_NETWORK"])),
        ))

    attacks = []
    for _ in range(n_attacks):
        sector  = str(rng.choice(SECTORS))
        weights = np.array(SECTOR_BIAS[sector], dtype=float)
        attack_type = str(rng.choice(ATTACK_TYPES, p=weights / weights.sum()))
        picks = rng.choice(len(vulns), size=int(rng.integers(0, 4)), replace=False)
        exploited = [vulns[int(i)].id for i in picks]
        actor = actors[int(rng.integers(len(actors)))] if rng.random() < 0.7 else None
        attacks.append(CyberAttack(
            id                        = new_id(),
            title                     = f"{attack_type.title()} against {sector} target",
            attack_date               = now - timedelta(days=int(rng.integers(1, 720))),
            attack_type               = attack_type,
            threat_actor_id           = actor.id if actor else None,
            vulnerabilities_exploited = json.dumps(exploited),
            targeted_sector           = sector,
            targeted_region           = str(rng.choice(REGIONS)),
            impact_level              = round(float(rng.uniform(1.0, 10.0)), 1),
            source                    = "sample",
        ))
    return actors, vulns, attacks


def main():
    parser = argparse.ArgumentParser(description="Seed CyberPulse with a demo dataset")
    parser.add_argument("--database-url", default=DATABASE_URL)
    parser.add_argument("--attacks", type=int, default=400)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--reset", action="store_true", help="Delete existing sample attacks first")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    print("=" * 60)
    print("SEED SAMPLE THREAT DATA")
    print("=" * 60)

    store = ThreatDataStore(args.database_url)
    if args.reset:
        with store.session() as s:
            deleted = s.query(CyberAttack).filter(CyberAttack.source == "sample").delete()
        print(f"\n[i] Removed {deleted} existing sample attacks")

    actors, vulns, attacks = build_dataset(args.attacks, args.seed)
    existing = {v.id for v in store.list_vulnerabilities()}
    vulns = [v for v in vulns if v.id not in existing]

    store.add_all(actors + vulns + attacks)
    print(f"\n[+] {len(actors)} threat actors")
    print(f"[+] {len(vulns)} vulnerabilities")
    print(f"[+] {len(attacks)} attacks")
    print("\nNext: python untils/train_attack_model.py")


if __name__ == "__main__":
    main()
