# backend/ml/feature_extraction.py

"""
Feature Extraction
==================

Turns raw attack / vulnerability / target records into fixed-length numeric
vectors for the attack prediction network.

Feature layout (FEATURE_NAMES, fixed order):

    scalars   avgVulnSeverity, exploitedVulnCount, impactLevel,
              daysSinceFirstAttack, daysSinceLastAttack,
              historicalAttackFrequency, sophisticationLevel, isNationState
    sectors   sector_<category>   one column per SECTOR_CATEGORIES entry
    regions   region_<category>   one column per REGION_CATEGORIES entry

The same list is returned by the training-side and the inference-side
extractors. It is persisted with every trained model, and inference maps
values into the model's own list by name, so the two must never diverge.

Categorical columns use case-insensitive substring matching against each
category's pattern list. A string may fire more than one column
("FinTech Healthcare Corp" → financial + healthcare); that is intended.

Public API
----------
extract_features(records)            -> (np.ndarray[n, f], feature_names)
extract_target_features(target)      -> (np.ndarray[f], feature_names)
encode_attack_type(attack_type)      -> list[int]   (label row)
extract_vulnerability_features(vulns) -> (np.ndarray[n, 5], feature_names)
normalize_features(matrix)           -> np.ndarray   (min-max)
label_encode_features(values, categories) -> list[int]
"""

import json
from typing import Any, Mapping

import numpy as np

from ml.config import (
    ATTACK_TYPE_CATEGORIES,
    DEFAULT_SOPHISTICATION,
    REGION_CATEGORIES,
    SECTOR_CATEGORIES,
    SOPHISTICATION_LEVELS,
)

SCALAR_FEATURES = [
    "avgVulnSeverity",
    "exploitedVulnCount",
    "impactLevel",
    "daysSinceFirstAttack",
    "daysSinceLastAttack",
    "historicalAttackFrequency",
    "sophisticationLevel",
    "isNationState",
]

SECTOR_FEATURES = [f"sector_{name}" for name, _ in SECTOR_CATEGORIES]
REGION_FEATURES = [f"region_{name}" for name, _ in REGION_CATEGORIES]

FEATURE_NAMES = SCALAR_FEATURES + SECTOR_FEATURES + REGION_FEATURES

ATTACK_TYPES = [name for name, _ in ATTACK_TYPE_CATEGORIES]

# Target descriptor field → training feature it stands in for
TARGET_FEATURE_SOURCES = {
    "avgVulnSeverity":           "avg_vuln_severity",
    "exploitedVulnCount":        "recent_vulnerabilities",
    "historicalAttackFrequency": "historical_attack_frequency",
    "daysSinceLastAttack":       "days_since_last_attack",
}

VULNERABILITY_FEATURES = [
    "cvss_score",
    "exploited_in_wild",
    "published_date",
    "attack_vector",
    "affected_systems_count",
]


# ── Encoders ───────────────────────────────────────────────────────────────────

def one_hot_encode(value: str | None, categories: list) -> list[int]:
    """
    Substring one-hot encoding against ordered (category, patterns) pairs.
    Several columns may be 1 for one value.
    """
    lowered = (value or "").lower()
    return [
        1 if any(p.lower() in lowered for p in patterns) else 0
        for _, patterns in categories
    ]


def encode_sector(sector: str | None) -> list[int]:
    return one_hot_encode(sector, SECTOR_CATEGORIES)


def encode_region(region: str | None) -> list[int]:
    return one_hot_encode(region, REGION_CATEGORIES)


def encode_attack_type(attack_type: str | None) -> list[int]:
    """Label row for an attack type, one column per ATTACK_TYPES entry."""
    return one_hot_encode(attack_type, ATTACK_TYPE_CATEGORIES)


def sophistication_to_numeric(sophistication: str | None) -> float:
    if not sophistication or sophistication == "unknown":
        return DEFAULT_SOPHISTICATION
    lowered = sophistication.lower()
    for level, value in SOPHISTICATION_LEVELS:
        if level in lowered:
            return value
    return DEFAULT_SOPHISTICATION


def encode_attack_vector(vector: str | None) -> float:
    """CVSS attack vector → accessibility score (higher = easier to reach)."""
    lowered = (vector or "").lower()
    if "network" in lowered:
        return 1.0
    if "adjacent" in lowered:
        return 0.75
    if "local" in lowered:
        return 0.5
    if "physical" in lowered:
        return 0.25
    return 0.5


def _number(value: Any) -> float:
    """Missing / None / non-numeric → 0.0."""
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _get(record: Any, key: str, default: Any = None) -> Any:
    if isinstance(record, Mapping):
        return record.get(key, default)
    return getattr(record, key, default)


# ── Attack / training-side extraction ─────────────────────────────────────────

def record_features(record: Any) -> list[float]:
    """Feature row (FEATURE_NAMES order) for one TrainingExample or dict."""
    row = [
        _number(_get(record, "avg_vuln_severity")),
        _number(_get(record, "exploited_vuln_count")),
        _number(_get(record, "impact_level")),
        _number(_get(record, "days_since_first_attack")),
        _number(_get(record, "days_since_last_attack")),
        _number(_get(record, "historical_attack_frequency")),
        sophistication_to_numeric(_get(record, "threat_actor_sophistication")),
        1.0 if _get(record, "nation_state") else 0.0,
    ]
    row.extend(encode_sector(_get(record, "targeted_sector")))
    row.extend(encode_region(_get(record, "targeted_region")))
    return [float(v) for v in row]


def extract_features(records: list) -> tuple[np.ndarray, list[str]]:
    """
    Build the (n, len(FEATURE_NAMES)) float32 matrix for training records.
    An empty input yields a (0, f) matrix.
    """
    rows = [record_features(r) for r in records]
    matrix = np.array(rows, dtype=np.float32).reshape(len(rows), len(FEATURE_NAMES))
    return matrix, list(FEATURE_NAMES)


def extract_labels(records: list) -> tuple[np.ndarray, list[str]]:
    """Label matrix (n, len(ATTACK_TYPES)); rows may be all-zero or multi-hot."""
    rows = [encode_attack_type(_get(r, "attack_type")) for r in records]
    matrix = np.array(rows, dtype=np.float32).reshape(len(rows), len(ATTACK_TYPES))
    return matrix, list(ATTACK_TYPES)


# ── Inference-side extraction ──────────────────────────────────────────────────

def target_feature_map(target: Any) -> dict[str, float]:
    """
    Name → value for a prediction target (dataclass or dict, snake_case keys).
    Features the target cannot supply are 0.
    """
    values = {name: 0.0 for name in FEATURE_NAMES}
    for feature, source in TARGET_FEATURE_SOURCES.items():
        values[feature] = _number(_get(target, source))

    target_type  = (_get(target, "target_type") or "").lower()
    target_value = _get(target, "target_value") or ""

    sector = _get(target, "sector") or (target_value if target_type == "sector" else "")
    region = _get(target, "region") or (target_value if target_type == "region" else "")

    for name, bit in zip(SECTOR_FEATURES, encode_sector(sector)):
        values[name] = float(bit)
    for name, bit in zip(REGION_FEATURES, encode_region(region)):
        values[name] = float(bit)
    return values


def extract_target_features(target: Any) -> tuple[np.ndarray, list[str]]:
    """Feature vector for a prediction target, in FEATURE_NAMES order."""
    values = target_feature_map(target)
    vector = np.array([values[name] for name in FEATURE_NAMES], dtype=np.float32)
    return vector, list(FEATURE_NAMES)


# ── Vulnerability features ─────────────────────────────────────────────────────

def _affected_systems_count(affected: Any) -> int:
    if affected is None:
        return 0
    if isinstance(affected, str):
        try:
            affected = json.loads(affected)
        except (json.JSONDecodeError, ValueError):
            return 0
    try:
        return len(affected)
    except TypeError:
        return 0


def _timestamp(value: Any) -> float:
    if value is None:
        return 0.0
    if hasattr(value, "timestamp"):
        return float(value.timestamp())
    return _number(value)


def extract_vulnerability_features(vulnerabilities: list) -> tuple[np.ndarray, list[str]]:
    """
    One row per vulnerability: cvss score, exploited flag, published time
    (epoch seconds), encoded attack vector, affected systems count.
    Accepts NormalizedVulnerability objects, ORM rows or dicts.
    """
    rows = []
    for vuln in vulnerabilities:
        score = _get(vuln, "cvss_score")
        if score is None:
            score = _get(vuln, "severity")
        published = _get(vuln, "published_date")
        affected = _get(vuln, "affected_systems")
        if affected is None:
            affected_count = _number(_get(vuln, "affected_systems_count"))
        else:
            affected_count = _affected_systems_count(affected)
        rows.append([
            _number(score),
            1.0 if _get(vuln, "exploited_in_wild") else 0.0,
            _timestamp(published),
            encode_attack_vector(_get(vuln, "attack_vector")),
            float(affected_count),
        ])
    matrix = np.array(rows, dtype=np.float64).reshape(len(rows), len(VULNERABILITY_FEATURES))
    return matrix, list(VULNERABILITY_FEATURES)


# ── Generic helpers ────────────────────────────────────────────────────────────

def normalize_features(matrix: np.ndarray, epsilon: float = 1e-7) -> np.ndarray:
    """Column-wise min-max scaling; constant columns become 0."""
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.size == 0:
        return matrix
    col_min = matrix.min(axis=0, keepdims=True)
    col_max = matrix.max(axis=0, keepdims=True)
    return (matrix - col_min) / (col_max - col_min + epsilon)


def label_encode_features(values: list[str], categories: Mapping[int, list[str]]) -> list[int]:
    """
    Map each value to the first category index whose patterns it contains;
    -1 for unknown values.
    """
    encoded = []
    for value in values:
        code = -1
        for index, patterns in categories.items():
            if any(p in value for p in patterns):
                code = int(index)
                break
        encoded.append(code)
    return encoded
