# backend/ml/config.py

"""
CyberPulse configuration.

Paths and runtime knobs live here as module-level constants; every one of
them can be overridden from the environment:

    CYBERPULSE_DATABASE_URL      SQLAlchemy URL of the threat data store
    CYBERPULSE_MODEL_DIR         root directory of the model blob store
    CYBERPULSE_MODEL_CACHE_SIZE  max models kept in memory by the loader
    CYBERPULSE_SWEEP_WORKERS     thread-pool size for the sector sweep
    NVD_API_KEY                  optional NVD API key (faster rate limit)

The categorical tables below are ordered (category, match_patterns) pairs.
Their order defines the one-hot column order, so appending is safe but
re-ordering invalidates every trained model.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

ROOT     = Path(__file__).resolve().parent.parent.parent
DATA_DIR = ROOT / "data"

MODEL_DIR    = Path(os.getenv("CYBERPULSE_MODEL_DIR", str(ROOT / "models")))
DATABASE_URL = os.getenv(
    "CYBERPULSE_DATABASE_URL",
    f"sqlite:///{DATA_DIR / 'cyberpulse.db'}",
)
MODEL_CACHE_SIZE = int(os.getenv("CYBERPULSE_MODEL_CACHE_SIZE", "8"))
SWEEP_WORKERS    = int(os.getenv("CYBERPULSE_SWEEP_WORKERS", "4"))
NVD_API_KEY      = os.getenv("NVD_API_KEY")

# ── Model identity ─────────────────────────────────────────────────────────────
MODEL_TYPE      = "attack_probability"
MODEL_ALGORITHM = "neural_network"
MODEL_VERSION   = "1.0"

# ── Categorical tables ─────────────────────────────────────────────────────────
SECTOR_CATEGORIES = [
    ("financial",          ["financial", "finance", "fintech", "bank"]),
    ("healthcare",         ["healthcare"]),
    ("government",         ["government"]),
    ("education",          ["education"]),
    ("technology",         ["technology"]),
    ("manufacturing",      ["manufacturing"]),
    ("energy",             ["energy"]),
    ("retail",             ["retail"]),
    ("transportation",     ["transportation"]),
    ("telecommunications", ["telecommunications"]),
    ("media",              ["media"]),
    ("other",              ["other"]),
]

REGION_CATEGORIES = [
    ("north_america", ["north america", "usa", "canada", "mexico", "united states"]),
    ("south_america", ["south america", "latin america", "brazil", "argentina"]),
    ("europe",        ["europe", "eu", "european union", "uk", "britain", "germany", "france"]),
    ("asia",          ["asia", "china", "japan", "india", "korea", "southeast asia"]),
    ("africa",        ["africa", "north africa", "south africa", "central africa"]),
    ("oceania",       ["oceania", "australia", "new zealand", "pacific"]),
    ("middle_east",   ["middle east", "saudi arabia", "uae", "israel", "iran"]),
]

# Prediction labels
ATTACK_TYPE_CATEGORIES = [
    ("ransomware",     ["ransomware", "ransom", "encryption"]),
    ("data_breach",    ["data breach", "breach", "leak", "exfiltration"]),
    ("ddos",           ["ddos", "denial of service", "dos"]),
    ("zero_day",       ["zero day", "0day", "zero-day", "unknown vulnerability"]),
    ("phishing",       ["phishing", "spear phishing", "whaling"]),
    ("supply_chain",   ["supply chain", "third party", "vendor"]),
    ("insider_threat", ["insider", "employee", "internal"]),
]

SOPHISTICATION_LEVELS = [
    ("low",      0.25),
    ("medium",   0.5),
    ("high",     0.75),
    ("advanced", 1.0),
]
DEFAULT_SOPHISTICATION = 0.5

# ── Scoring ────────────────────────────────────────────────────────────────────
HIGH_IMPACT_TYPES = {"ransomware", "zero_day", "supply_chain"}
LOW_IMPACT_TYPES  = {"phishing", "ddos"}
HIGH_IMPACT_MULTIPLIER = 1.3
LOW_IMPACT_MULTIPLIER  = 0.9
DEFAULT_MODEL_PRECISION = 0.5

COMMON_SECTORS = [
    "Financial",
    "Healthcare",
    "Government",
    "Education",
    "Technology",
    "Manufacturing",
    "Energy",
    "Retail",
]

PREDICTED_TIMEFRAME = "next_30_days"


@dataclass
class TrainingConfig:
    """Hyper-parameters for the attack prediction network."""
    hidden_units:     tuple = (64, 32)
    dropout:          tuple = (0.3, 0.2)
    learning_rate:    float = 0.001
    epochs:           int   = 50
    batch_size:       int   = 32
    validation_split: float = 0.2
    shuffle_seed:     Optional[int] = None   # None → split by array order
    seed:             int   = 42
    log_every:        int   = 10
