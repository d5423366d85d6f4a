# tests/conftest.py

"""
Shared fixtures: temporary SQLite data store, temporary model storage and a
small deterministic attack history.
"""

import json
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'backend'))

from ml.database import CyberAttack, ThreatActor, ThreatDataStore, Vulnerability
from ml.model_storage import ModelStorage

BASE_DATE = datetime(2024, 1, 1, tzinfo=UTC)

SAMPLE_PATTERN = [
    ("Healthcare", "North America", "ransomware"),
    ("Financial",  "Europe",        "phishing"),
    ("Government", "Asia",          "zero-day exploit"),
    ("Retail",     "North America", "data breach"),
    ("Energy",     "Middle East",   "ddos"),
    ("Technology", "Europe",        "supply chain"),
]


def make_attack(attack_id, days_offset, sector="Healthcare", region="Europe",
                attack_type="ransomware", actor_id=None, exploited=None, impact=5.0):
    return CyberAttack(
        id                        = attack_id,
        title                     = f"Attack {attack_id}",
        attack_date               = BASE_DATE + timedelta(days=days_offset),
        attack_type               = attack_type,
        threat_actor_id           = actor_id,
        vulnerabilities_exploited = exploited if exploited is None or isinstance(exploited, str)
                                    else json.dumps(exploited),
        targeted_sector           = sector,
        targeted_region           = region,
        impact_level              = impact,
    )


@pytest.fixture
def store(tmp_path):
    """Empty SQLite-backed data store"""
    return ThreatDataStore(f"sqlite:///{tmp_path / 'cyberpulse-test.db'}")


@pytest.fixture
def storage(tmp_path):
    """Model storage rooted in a temporary directory"""
    return ModelStorage(tmp_path / 'models')


@pytest.fixture
def seeded_store(store):
    """Store with 2 actors, 3 CVEs and 36 attacks cycling over SAMPLE_PATTERN"""
    store.add_all([
        ThreatActor(id="actor-1", name="APT-North", nation_state="Russia",
                    sophistication_level="advanced"),
        ThreatActor(id="actor-2", name="FIN-Crew", sophistication_level="medium"),
        Vulnerability(id="CVE-2024-0001", title="a", severity=9.0),
        Vulnerability(id="CVE-2024-0002", title="b", severity=7.0),
        Vulnerability(id="CVE-2024-0003", title="c", severity=4.0),
    ])
    attacks = []
    for i in range(36):
        sector, region, attack_type = SAMPLE_PATTERN[i % len(SAMPLE_PATTERN)]
        attacks.append(make_attack(
            attack_id   = f"atk-{i:03d}",
            days_offset = i * 3,
            sector      = sector,
            region      = region,
            attack_type = attack_type,
            actor_id    = "actor-1" if i % 2 == 0 else "actor-2",
            exploited   = ["CVE-2024-0001", "CVE-2024-0002"] if i % 3 == 0 else ["CVE-2024-0003"],
            impact      = float(i % 10),
        ))
    store.add_all(attacks)
    return store
