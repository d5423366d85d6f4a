# backend/ml/data_processing.py

"""
Data processing for the attack prediction model.

Training Data Assembler
    prepare_training_data(store) joins historical attacks with the severity
    of the vulnerabilities they exploited and their threat actor's metadata,
    producing one TrainingExample per attack (newest first, store order).

    Known property: daysSinceFirstAttack is measured from the oldest attack
    in the current dataset, so an attack's value shifts whenever older
    history is loaded. Models trained on different snapshots are therefore
    not directly comparable on that feature.

Vulnerability normalisation
    normalize_vulnerabilities(nvd_items, kev_catalog) flattens NVD 2.0 CVE
    items, cross-referenced with the CISA KEV catalog, into
    NormalizedVulnerability records.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional

import pandas as pd

from ml.config import NVD_API_KEY

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 60 * 60 * 24


@dataclass
class TrainingExample:
    """Flat, ephemeral training row derived from one attack."""
    id:                          str
    attack_date:                 datetime
    attack_type:                 str
    targeted_sector:             str
    targeted_region:             str
    impact_level:                float
    nation_state:                Optional[str]
    threat_actor_sophistication: str
    exploited_vuln_count:        int
    avg_vuln_severity:           float
    days_since_first_attack:     float
    days_since_last_attack:      float = 0.0
    historical_attack_frequency: int   = 0


@dataclass
class NormalizedVulnerability:
    cve_id:                 str
    published_date:         Optional[datetime]
    cvss_score:             float
    exploited_in_wild:      bool
    attack_vector:          str
    attack_complexity:      str
    privileges_required:    str
    user_interaction:       str
    impact_score:           float
    base_score:             float
    vendor_name:            str
    product_name:           str
    affected_systems_count: int
    description:            str = ""
    days_to_remediate:      Optional[float] = None
    affected_systems:       list = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


# ── Helpers ────────────────────────────────────────────────────────────────────

def parse_json_list(raw, context: str = "") -> list:
    """
    Parse a JSON-serialised list. Malformed or non-list values are logged
    and treated as an empty list.
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, list):
        return raw
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        logger.warning("[DataProcessing] Malformed JSON list %s: %s", context, e)
        return []
    if not isinstance(value, list):
        logger.warning("[DataProcessing] Expected JSON list %s, got %s", context, type(value).__name__)
        return []
    return value


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.replace(tzinfo=None) - value.utcoffset()
    return value


def _days_between(later: datetime, earlier: datetime) -> float:
    return (_naive_utc(later) - _naive_utc(earlier)).total_seconds() / _SECONDS_PER_DAY


# ── Training Data Assembler ───────────────────────────────────────────────────

def prepare_training_data(store) -> list[TrainingExample]:
    """
    Build training examples from the data store.

    Returns examples in the store's attack order (attack date descending);
    the train/validation split relies on that order being stable.
    """
    attacks = store.list_attacks()
    vulns   = store.list_vulnerabilities()
    actors  = store.list_threat_actors()

    vuln_map  = {v.id: v for v in vulns}
    actor_map = {a.id: a for a in actors}

    if not attacks:
        logger.info("[DataProcessing] No historical attacks in the data store")
        return []

    oldest = min(_naive_utc(a.attack_date) for a in attacks)

    # Per-sector history, walked oldest → newest
    last_seen:  dict[str, datetime] = {}
    seen_count: dict[str, int]      = {}
    history: dict[str, tuple[float, int]] = {}
    for attack in sorted(attacks, key=lambda a: (_naive_utc(a.attack_date), a.id)):
        key  = (attack.targeted_sector or "").strip().lower()
        when = _naive_utc(attack.attack_date)
        prev = last_seen.get(key)
        history[attack.id] = (
            _days_between(when, prev) if prev is not None else 0.0,
            seen_count.get(key, 0),
        )
        last_seen[key]  = when
        seen_count[key] = seen_count.get(key, 0) + 1

    examples: list[TrainingExample] = []
    for attack in attacks:
        actor = actor_map.get(attack.threat_actor_id) if attack.threat_actor_id else None

        exploited = parse_json_list(
            attack.vulnerabilities_exploited, context=f"for attack {attack.id}"
        )
        resolved = [vuln_map[c] for c in exploited if isinstance(c, str) and c in vuln_map]
        avg_severity = (
            sum(v.severity for v in resolved) / len(resolved) if resolved else 0.0
        )
        days_since_last, frequency = history[attack.id]

        examples.append(TrainingExample(
            id                          = attack.id,
            attack_date                 = attack.attack_date,
            attack_type                 = attack.attack_type,
            targeted_sector             = attack.targeted_sector,
            targeted_region             = attack.targeted_region,
            impact_level                = attack.impact_level or 0.0,
            nation_state                = actor.nation_state if actor else None,
            threat_actor_sophistication = (actor.sophistication_level if actor else None) or "unknown",
            exploited_vuln_count        = len(exploited),
            avg_vuln_severity           = avg_severity,
            days_since_first_attack     = _days_between(attack.attack_date, oldest),
            days_since_last_attack      = days_since_last,
            historical_attack_frequency = frequency,
        ))

    logger.info(
        "[DataProcessing] Prepared %d training examples (%d vulns, %d actors)",
        len(examples), len(vulns), len(actors),
    )
    return examples


def summarize_training_data(examples: list[TrainingExample]) -> pd.DataFrame:
    """Attack-type distribution of a training set (count + percentage)."""
    df = pd.DataFrame({"attack_type": [e.attack_type for e in examples]})
    counts = df["attack_type"].value_counts()
    summary = pd.DataFrame({"count": counts})
    summary["pct"] = (summary["count"] / max(len(df), 1) * 100).round(1)
    return summary


# ── Vulnerability normalisation ───────────────────────────────────────────────

def _parse_date(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("[DataProcessing] Unparseable date: %r", value)
        return None


def _english_description(cve: dict) -> str:
    for desc in cve.get("descriptions", []) or []:
        if desc.get("lang") == "en":
            return desc.get("value", "")
    return ""


def normalize_vulnerabilities(nvd_items: list, kev_catalog: dict) -> list[NormalizedVulnerability]:
    """
    Normalise NVD 2.0 'vulnerabilities' items, flagging those present in the
    CISA KEV catalog as exploited in the wild.

    CVSS v3.1 metrics are preferred over v2. Vendor/product come from the
    first CPE match, falling back to the KEV entry.
    """
    kev_map = {
        v.get("cveID"): v
        for v in (kev_catalog or {}).get("vulnerabilities", [])
        if v.get("cveID")
    }

    normalized: list[NormalizedVulnerability] = []
    for item in nvd_items:
        cve    = item.get("cve", {})
        cve_id = cve.get("id")
        if not cve_id:
            continue

        metrics = cve.get("metrics", {}) or {}
        v31 = (metrics.get("cvssMetricV31") or [{}])[0]
        v2  = (metrics.get("cvssMetricV2")  or [{}])[0]
        cvss_v3 = v31.get("cvssData", {}) or {}
        cvss_v2 = v2.get("cvssData", {}) or {}

        kev = kev_map.get(cve_id)

        vendor, product = "unknown", "unknown"
        affected: list[str] = []
        for config in cve.get("configurations", []) or []:
            for node in config.get("nodes", []) or []:
                for match in node.get("cpeMatch", []) or []:
                    criteria = match.get("criteria", "")
                    affected.append(criteria)
                    parts = criteria.split(":")
                    if vendor == "unknown" and len(parts) > 4:
                        vendor, product = parts[3], parts[4]
        if vendor == "unknown" and kev:
            vendor  = kev.get("vendorProject", "unknown")
            product = kev.get("product", "unknown")

        days_to_remediate = None
        if kev:
            added, due = _parse_date(kev.get("dateAdded")), _parse_date(kev.get("dueDate"))
            if added and due:
                days_to_remediate = _days_between(due, added)

        base_score = cvss_v3.get("baseScore") or cvss_v2.get("baseScore") or 0.0
        if cvss_v3.get("userInteraction"):
            user_interaction = cvss_v3["userInteraction"]
        else:
            user_interaction = "REQUIRED" if v2.get("userInteractionRequired") else "NONE"

        normalized.append(NormalizedVulnerability(
            cve_id                 = cve_id,
            published_date         = _parse_date(cve.get("published")),
            cvss_score             = float(base_score),
            exploited_in_wild      = kev is not None,
            attack_vector          = cvss_v3.get("attackVector") or cvss_v2.get("accessVector") or "unknown",
            attack_complexity      = cvss_v3.get("attackComplexity") or cvss_v2.get("accessComplexity") or "unknown",
            privileges_required    = cvss_v3.get("privilegesRequired") or "unknown",
            user_interaction       = user_interaction,
            impact_score           = float(v31.get("impactScore") or v2.get("impactScore") or 0.0),
            base_score             = float(base_score),
            vendor_name            = vendor,
            product_name           = product,
            affected_systems_count = len(affected),
            description            = _english_description(cve),
            days_to_remediate      = days_to_remediate,
            affected_systems       = affected,
        ))

    return normalized


def fetch_and_normalize_vulnerabilities(limit: int = 1000, api_key: str | None = NVD_API_KEY):
    """Fetch NVD + CISA KEV and return normalised vulnerabilities."""
    from ml.threat_feeds import fetch_cisa_kev_catalog, fetch_nvd_vulnerabilities

    nvd = fetch_nvd_vulnerabilities(results_per_page=limit, api_key=api_key)
    kev = fetch_cisa_kev_catalog()
    items = nvd.get("vulnerabilities", [])
    logger.info(
        "[DataProcessing] NVD returned %d CVEs; KEV catalog has %d entries",
        len(items), len(kev.get("vulnerabilities", [])),
    )
    return normalize_vulnerabilities(items, kev)
