# backend/ml/prediction.py

"""
Attack Predictor
================

Runs a trained attack prediction model against a target (sector, region or
organisation) and turns the raw class probabilities into a ranked threat
assessment.

Per attack type:
    severity   = clamp(p × 10 × type_multiplier, 0, 10)
    confidence = clamp(p × model_precision, 0, 1)

Overall threat level (0–100):
    contribution c = p × severity, ranked descending
    weight_k      = 1 − (k / total) × 0.5
    level         = clamp(round(10 × Σ c_k × weight_k), 0, 100)

Ranking the position weights by contribution keeps the level monotone in
every probability, also when type multipliers differ.

Every call appends one row to the predictions table.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Mapping, Optional

import numpy as np
import torch

from ml.config import (
    COMMON_SECTORS,
    DEFAULT_MODEL_PRECISION,
    HIGH_IMPACT_MULTIPLIER,
    HIGH_IMPACT_TYPES,
    LOW_IMPACT_MULTIPLIER,
    LOW_IMPACT_TYPES,
    MODEL_TYPE,
    PREDICTED_TIMEFRAME,
    SWEEP_WORKERS,
)
from ml.database import Prediction
from ml.errors import FeatureSchemaError
from ml.feature_extraction import extract_target_features

logger = logging.getLogger(__name__)

TARGET_TYPES = ("sector", "region", "organization")


# ── Target descriptor ──────────────────────────────────────────────────────────

@dataclass
class TargetDescriptor:
    target_type:                 str
    target_value:                str
    region:                      Optional[str]   = None
    sector:                      Optional[str]   = None
    recent_vulnerabilities:      Optional[float] = None
    avg_vuln_severity:           Optional[float] = None
    historical_attack_frequency: Optional[float] = None
    days_since_last_attack:      Optional[float] = None

    def __post_init__(self):
        if self.target_type not in TARGET_TYPES:
            raise ValueError(
                f"targetType must be one of {', '.join(TARGET_TYPES)}, got {self.target_type!r}"
            )
        if not isinstance(self.target_value, str) or not self.target_value.strip():
            raise ValueError("targetValue is required and must be a string")
        for name in ("sector", "region"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"{name} must be a string, got {type(value).__name__}")

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TargetDescriptor":
        """Build from a request body; camelCase and snake_case keys both work."""
        if not isinstance(payload, Mapping):
            raise ValueError(f"Target must be a JSON object, got {type(payload).__name__}")

        def pick(snake: str, camel: str):
            if snake in payload:
                return payload[snake]
            return payload.get(camel)

        return cls(
            target_type                 = pick("target_type", "targetType"),
            target_value                = pick("target_value", "targetValue"),
            region                      = pick("region", "region"),
            sector                      = pick("sector", "sector"),
            recent_vulnerabilities      = pick("recent_vulnerabilities", "recentVulnerabilities"),
            avg_vuln_severity           = pick("avg_vuln_severity", "avgVulnSeverity"),
            historical_attack_frequency = pick("historical_attack_frequency", "historicalAttackFrequency"),
            days_since_last_attack      = pick("days_since_last_attack", "daysSinceLastAttack"),
        )

    def describe(self) -> str:
        if self.target_type == "organization":
            return f"the organization {self.target_value}"
        return f"the {self.target_value} {self.target_type}"


# ── Scoring ────────────────────────────────────────────────────────────────────

def _normalize_type(attack_type: str) -> str:
    return attack_type.lower().replace("-", "_").replace(" ", "_")


def type_multiplier(attack_type: str) -> float:
    name = _normalize_type(attack_type)
    if name in HIGH_IMPACT_TYPES:
        return HIGH_IMPACT_MULTIPLIER
    if name in LOW_IMPACT_TYPES:
        return LOW_IMPACT_MULTIPLIER
    return 1.0


def severity_for(attack_type: str, probability: float) -> float:
    return min(max(probability * 10 * type_multiplier(attack_type), 0.0), 10.0)


def confidence_for(probability: float, model_precision: float | None) -> float:
    if model_precision is None:
        model_precision = DEFAULT_MODEL_PRECISION
    return min(max(probability * model_precision, 0.0), 1.0)


def overall_threat_level(predictions: list[dict]) -> int:
    """0–100 threat level from [{probability, severity}, ...]."""
    total = len(predictions)
    if total == 0:
        return 0
    contributions = sorted(
        (p["probability"] * p["severity"] for p in predictions), reverse=True
    )
    score = sum(c * (1 - (k / total) * 0.5) for k, c in enumerate(contributions))
    return int(min(max(round(10 * score), 0), 100))


def threat_level_label(level: int) -> str:
    """Dashboard threat-meter band for a 0–100 level."""
    if level >= 80:
        return "critical"
    if level >= 60:
        return "high"
    if level >= 40:
        return "elevated"
    if level >= 20:
        return "guarded"
    return "low"


def probability_bucket(probability: float) -> str:
    if probability >= 0.7:
        return "high"
    if probability >= 0.4:
        return "moderate"
    return "low"


def build_explanation(target: TargetDescriptor, top: dict | None) -> str:
    if top is None:
        return f"No attack types could be scored for {target.describe()}."
    attack = top["attack_type"].replace("_", " ")
    return (
        f"There is a {probability_bucket(top['probability'])} likelihood "
        f"({top['probability'] * 100:.1f}%) of a {attack} attack against "
        f"{target.describe()} in the next 30 days. "
        f"Model confidence for this prediction is {top['confidence'] * 100:.1f}%."
    )


def run_inference(network, vector: np.ndarray) -> np.ndarray:
    """Single-row forward pass → 1-D probability array."""
    with torch.no_grad():
        x = torch.as_tensor(vector, dtype=torch.float32).reshape(1, -1)
        out = network(x)
    return np.asarray(out, dtype=np.float64).reshape(-1)


def _prediction_to_dict(record: Prediction) -> dict:
    return {
        "id":                  record.id,
        "model_id":            record.model_id,
        "generated_date":      record.generated_date.isoformat() if record.generated_date else None,
        "predicted_timeframe": record.predicted_timeframe,
        "target_type":         record.target_type,
        "target_value":        record.target_value,
        "attack_type":         record.attack_type,
        "probability":         record.probability,
        "severity":            record.severity,
        "confidence":          record.confidence,
        "explanation":         record.explanation,
        "verified":            bool(record.verified),
    }


# ── Predictor ──────────────────────────────────────────────────────────────────

class AttackPredictor:
    """Scores targets with the latest (or a given) attack prediction model."""

    def __init__(self, store, loader):
        self.store  = store
        self.loader = loader

    def _resolve_model(self, model_id: str | None):
        if model_id:
            return self.loader.load_model_by_id(model_id)
        return self.loader.load_latest_model_by_type(MODEL_TYPE)

    @staticmethod
    def _input_vector(target: TargetDescriptor, feature_names: list) -> tuple[np.ndarray, dict]:
        values, names = extract_target_features(target)
        index  = {name: i for i, name in enumerate(feature_names)}
        vector = np.zeros(len(feature_names), dtype=np.float32)
        for name, value in zip(names, values):
            if name in index:
                vector[index[name]] = value
        return vector, {name: float(v) for name, v in zip(feature_names, vector)}

    def predict_attacks(self, target: TargetDescriptor | Mapping, model_id: str | None = None) -> dict:
        if not isinstance(target, TargetDescriptor):
            target = TargetDescriptor.from_payload(target)

        model = self._resolve_model(model_id)
        feature_names = model.feature_names
        attack_types  = model.attack_types
        if not feature_names:
            raise FeatureSchemaError(f"Model {model.model_id} has no persisted feature names")
        if not attack_types:
            raise FeatureSchemaError(f"Model {model.model_id} has no persisted attack types")

        vector, input_features = self._input_vector(target, feature_names)
        probabilities = run_inference(model.network, vector)
        if len(probabilities) != len(attack_types):
            raise FeatureSchemaError(
                f"Model {model.model_id} produced {len(probabilities)} outputs "
                f"for {len(attack_types)} attack types"
            )

        predictions = []
        for attack_type, p in zip(attack_types, probabilities):
            p = float(p)
            predictions.append({
                "attack_type": attack_type,
                "probability": p,
                "severity":    severity_for(attack_type, p),
                "confidence":  confidence_for(p, model.precision),
            })
        predictions.sort(key=lambda item: item["probability"], reverse=True)

        level = overall_threat_level(predictions)
        top   = predictions[0] if predictions else None
        explanation = build_explanation(target, top)

        record = Prediction(
            model_id            = model.model_id,
            predicted_timeframe = PREDICTED_TIMEFRAME,
            target_type         = target.target_type,
            target_value        = target.target_value,
            attack_type         = top["attack_type"] if top else None,
            probability         = top["probability"] if top else 0.0,
            severity            = top["severity"] if top else None,
            confidence          = top["confidence"] if top else 0.0,
            explanation         = explanation,
            input_features      = json.dumps(input_features),
            verified            = False,
        )
        self.store.insert_prediction(record)
        logger.info(
            "[Predictor] %s=%s → %s (%.3f), threat level %d",
            target.target_type, target.target_value,
            record.attack_type, record.probability, level,
        )

        return {
            "predictions":          predictions,
            "overall_threat_level": level,
            "threat_level_label":   threat_level_label(level),
            "target_info":          asdict(target),
            "model_id":             model.model_id,
            "prediction_id":        record.id,
            "explanation":          explanation,
        }

    # ── Sector sweep ─────────────────────────────────────────────────────────

    def _sector_summary(self, sector: str) -> dict:
        result = self.predict_attacks(TargetDescriptor(target_type="sector", target_value=sector))
        top = result["predictions"][0] if result["predictions"] else None
        return {
            "sector":          sector,
            "threat_level":    result["overall_threat_level"],
            "top_attack_type": top["attack_type"] if top else None,
            "probability":     top["probability"] if top else 0.0,
        }

    def get_predictions_for_common_sectors(
        self,
        sectors: list[str] | None = None,
        max_workers: int = SWEEP_WORKERS,
    ) -> list[dict]:
        """
        Predict every common sector concurrently. A sector that fails is
        logged and left out; the rest are sorted by threat level descending.
        """
        sectors = list(sectors if sectors is not None else COMMON_SECTORS)
        results = []
        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
            futures = {sector: pool.submit(self._sector_summary, sector) for sector in sectors}
            for sector, future in futures.items():
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.warning("[Predictor] Sector %s failed: %s", sector, e)
        results.sort(key=lambda r: r["threat_level"], reverse=True)
        return results

    # ── History ──────────────────────────────────────────────────────────────

    def get_recent_predictions(
        self,
        days: int = 30,
        limit: int = 10,
        min_probability: float = 0.0,
    ) -> list[dict]:
        since = datetime.now(UTC) - timedelta(days=days)
        records = self.store.recent_predictions(since, limit=limit, min_probability=min_probability)
        return [_prediction_to_dict(r) for r in records]
