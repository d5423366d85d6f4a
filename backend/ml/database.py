# backend/ml/database.py

"""
Threat data store (SQLAlchemy).

Tables
------
vulnerabilities     CVE records ingested from NVD / CISA KEV
threat_actors       known APT groups and threat actors
cyber_attacks       historical attack records (immutable facts)
prediction_models   trained model metadata + storage path
predictions         append-only log of generated predictions

JSON-valued columns (exploited CVE lists, affected systems, model
parameters, input features) are stored as TEXT, exactly as the feeds and
the trainer serialise them; readers must tolerate malformed values.

Public API
----------
ThreatDataStore(database_url)   thin CRUD wrapper, one session per call
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    String,
    Text,
    create_engine,
    func,
    select,
    update,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from ml.config import DATABASE_URL

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utc_now() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return uuid.uuid4().hex


class Vulnerability(Base):
    """A CVE, keyed by its identifier (e.g. CVE-2023-12345)."""

    __tablename__ = "vulnerabilities"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    severity = Column(Float, nullable=False, default=0.0)  # CVSS base score
    exploited_in_wild = Column(Boolean, nullable=False, default=False)
    published_date = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    last_modified = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    cisa_kev_date = Column(DateTime(timezone=True), nullable=True)
    remediation_date = Column(DateTime(timezone=True), nullable=True)
    affected_systems = Column(Text, nullable=False, default="[]")
    attack_vector = Column(String, nullable=True)
    references = Column(Text, nullable=False, default="[]")
    source_data = Column(Text, nullable=False, default="{}")


class ThreatActor(Base):
    """A named threat actor / APT group."""

    __tablename__ = "threat_actors"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    aliases = Column(Text, nullable=True)
    nation_state = Column(String, nullable=True)
    sophistication_level = Column(String, nullable=True)
    targeted_sectors = Column(Text, nullable=True)
    targeted_regions = Column(Text, nullable=True)


class CyberAttack(Base):
    """A recorded attack. threat_actor_id is a weak reference (may dangle)."""

    __tablename__ = "cyber_attacks"

    id = Column(String, primary_key=True, default=new_id)
    title = Column(String, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    attack_date = Column(DateTime(timezone=True), nullable=False)
    discovered_date = Column(DateTime(timezone=True), nullable=True)
    attack_type = Column(String, nullable=False)
    threat_actor_id = Column(String, nullable=True)
    vulnerabilities_exploited = Column(Text, nullable=True)  # JSON list of CVE ids
    targeted_sector = Column(String, nullable=False, default="")
    targeted_region = Column(String, nullable=False, default="")
    impact_level = Column(Float, nullable=False, default=0.0)
    source = Column(String, nullable=False, default="manual")


class PredictionModel(Base):
    """Metadata of a trained model; the weights live in model storage."""

    __tablename__ = "prediction_models"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    type = Column(String, nullable=False)
    algorithm = Column(String, nullable=False)
    version = Column(String, nullable=False)
    parameters = Column(Text, nullable=False, default="{}")
    accuracy = Column(Float, nullable=True)
    precision = Column(Float, nullable=True)
    recall = Column(Float, nullable=True)
    f1_score = Column(Float, nullable=True)
    training_date = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    last_used = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    file_path = Column(String, nullable=True)


class Prediction(Base):
    """One Predictor invocation. Never updated by this subsystem."""

    __tablename__ = "predictions"

    id = Column(String, primary_key=True, default=new_id)
    model_id = Column(String, ForeignKey("prediction_models.id"), nullable=False)
    generated_date = Column(DateTime(timezone=True), nullable=False, default=_utc_now)
    predicted_timeframe = Column(String, nullable=False)
    target_type = Column(String, nullable=False)
    target_value = Column(String, nullable=False)
    attack_type = Column(String, nullable=True)
    probability = Column(Float, nullable=False)
    severity = Column(Float, nullable=True)
    confidence = Column(Float, nullable=False)
    potential_vulnerabilities = Column(Text, nullable=True)
    explanation = Column(Text, nullable=True)
    input_features = Column(Text, nullable=False)
    verified = Column(Boolean, default=False)
    verified_date = Column(DateTime(timezone=True), nullable=True)


def _get_engine(database_url: str):
    """Build a SQLAlchemy engine; SQLite files get their directory created."""
    if database_url.startswith("sqlite:///"):
        db_file = database_url[len("sqlite:///"):]
        if db_file and db_file != ":memory:":
            Path(db_file).parent.mkdir(parents=True, exist_ok=True)
        # The sector sweep reads from worker threads.
        return create_engine(
            database_url, echo=False, connect_args={"check_same_thread": False}
        )
    return create_engine(database_url, echo=False)


class ThreatDataStore:
    """CRUD access to attacks, vulnerabilities, actors, models and predictions."""

    def __init__(self, database_url: str = DATABASE_URL):
        self.database_url = database_url
        self.engine = _get_engine(database_url)
        Base.metadata.create_all(self.engine)
        self._Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    @contextmanager
    def session(self):
        """Yield a session that commits on success and rolls back on error."""
        session = self._Session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ── Bulk helpers ─────────────────────────────────────────────────────────

    def add_all(self, rows: list) -> None:
        with self.session() as s:
            s.add_all(rows)

    # ── Historical data ──────────────────────────────────────────────────────

    def list_attacks(self) -> list:
        """All attacks, newest first (ties broken by id for a stable order)."""
        with self.session() as s:
            stmt = select(CyberAttack).order_by(
                CyberAttack.attack_date.desc(), CyberAttack.id
            )
            return list(s.scalars(stmt))

    def list_vulnerabilities(self) -> list:
        with self.session() as s:
            return list(s.scalars(select(Vulnerability).order_by(Vulnerability.id)))

    def list_threat_actors(self) -> list:
        with self.session() as s:
            return list(s.scalars(select(ThreatActor).order_by(ThreatActor.id)))

    def get_vulnerability(self, cve_id: str):
        with self.session() as s:
            return s.get(Vulnerability, cve_id)

    # ── Models ───────────────────────────────────────────────────────────────

    def get_model(self, model_id: str):
        with self.session() as s:
            return s.get(PredictionModel, model_id)

    def get_latest_model(self, model_type: str):
        with self.session() as s:
            stmt = (
                select(PredictionModel)
                .where(PredictionModel.type == model_type)
                .order_by(PredictionModel.training_date.desc())
                .limit(1)
            )
            return s.scalars(stmt).first()

    def list_models(self) -> list:
        with self.session() as s:
            stmt = select(PredictionModel).order_by(PredictionModel.training_date.desc())
            return list(s.scalars(stmt))

    def list_model_types(self) -> list[str]:
        with self.session() as s:
            stmt = select(PredictionModel.type).group_by(PredictionModel.type)
            return [row for row in s.scalars(stmt)]

    def insert_model(self, record: PredictionModel) -> PredictionModel:
        with self.session() as s:
            s.add(record)
        logger.info("[DataStore] Stored model %s (%s)", record.id, record.type)
        return record

    def touch_model(self, model_id: str, when: datetime | None = None) -> None:
        with self.session() as s:
            s.execute(
                update(PredictionModel)
                .where(PredictionModel.id == model_id)
                .values(last_used=when or _utc_now())
            )

    # ── Predictions ──────────────────────────────────────────────────────────

    def insert_prediction(self, record: Prediction) -> Prediction:
        with self.session() as s:
            s.add(record)
        return record

    def recent_predictions(
        self,
        since: datetime,
        limit: int = 10,
        min_probability: float = 0.0,
    ) -> list:
        with self.session() as s:
            stmt = (
                select(Prediction)
                .where(Prediction.generated_date >= since)
                .where(Prediction.probability >= min_probability)
                .order_by(Prediction.probability.desc())
                .limit(limit)
            )
            return list(s.scalars(stmt))

    def count_predictions(self) -> int:
        with self.session() as s:
            return s.scalar(select(func.count()).select_from(Prediction)) or 0
