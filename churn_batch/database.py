"""SQLAlchemy-backed persistence gateway."""

import threading
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON, Column, DateTime, Float, ForeignKey, Integer, String, create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .aggregator import Aggregates
from .errors import PredictionPersistenceError, SummaryPersistenceError
from .models import AnalysisSummary, Plan, Prediction
from .persistence import PersistenceGateway

Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc)


class AnalysisRecord(Base):
    __tablename__ = "churn_analysis_results"
    id = Column(String, primary_key=True)
    owner_id = Column(String, index=True, nullable=False)
    total_customers = Column(Integer, default=0)
    churn_rate = Column(Float, default=0.0)
    high_risk_customers = Column(Integer, default=0)
    medium_risk_customers = Column(Integer, default=0)
    low_risk_customers = Column(Integer, default=0)
    avg_cltv = Column(Float, default=0.0)
    created_at = Column(DateTime, default=_utcnow)


class PredictionRecord(Base):
    __tablename__ = "churn_predictions"
    id = Column(String, primary_key=True)
    analysis_id = Column(String, ForeignKey("churn_analysis_results.id"), index=True, nullable=False)
    owner_id = Column(String, index=True, nullable=False)
    customer_id = Column(String, nullable=False)
    churn_probability = Column(Float, nullable=False)
    risk_level = Column(String, nullable=False)
    contributing_factors = Column(JSON, default=list)
    recommended_actions = Column(JSON, default=list)
    monthly_revenue = Column(Float, default=0.0)
    plan = Column(String, default=Plan.FREE.value)
    days_since_signup = Column(Integer)
    days_since_last_active = Column(Integer)
    source = Column(String)
    created_at = Column(DateTime, default=_utcnow)


class RetentionRecord(Base):
    __tablename__ = "retention_analytics"
    id = Column(String, primary_key=True)
    analysis_id = Column(String, ForeignKey("churn_analysis_results.id"), index=True, nullable=False)
    kind = Column(String, nullable=False)  # "feature" or "churn_reason"
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=_utcnow)


def make_engine(database_url: str) -> Engine:
    """Engine for a database URL; in-memory SQLite shares one connection."""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url)


def create_tables(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


class SQLGateway(PersistenceGateway):
    """
    Relational store for analyses and predictions.

    Usage:
        gateway = SQLGateway.from_url("sqlite:///./churn.db")
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        # SQLite connections are shared across worker threads
        self._write_lock = threading.Lock()
        create_tables(engine)

    @classmethod
    def from_url(cls, database_url: str) -> "SQLGateway":
        return cls(make_engine(database_url))

    def create_analysis(self, owner_id: str, total_customers: int) -> str:
        analysis_id = str(uuid.uuid4())
        try:
            with self._write_lock, self.SessionLocal() as db:
                db.add(AnalysisRecord(id=analysis_id, owner_id=owner_id,
                                      total_customers=total_customers))
                db.commit()
        except SQLAlchemyError as e:
            raise SummaryPersistenceError(f"Failed to create analysis record: {e}") from e
        return analysis_id

    def insert_prediction(self, analysis_id: str, owner_id: str,
                          prediction: Prediction) -> None:
        try:
            with self._write_lock, self.SessionLocal() as db:
                db.add(PredictionRecord(
                    id=str(uuid.uuid4()),
                    analysis_id=analysis_id,
                    owner_id=owner_id,
                    customer_id=prediction.customer_id,
                    churn_probability=prediction.probability,
                    risk_level=prediction.risk_level,
                    contributing_factors=list(prediction.contributing_factors),
                    recommended_actions=list(prediction.recommended_actions),
                    monthly_revenue=prediction.monthly_revenue,
                    plan=prediction.plan.value,
                    days_since_signup=prediction.days_since_signup,
                    days_since_last_active=prediction.days_since_last_active,
                    source=prediction.source,
                ))
                db.commit()
        except SQLAlchemyError as e:
            raise PredictionPersistenceError(f"Database error: {e}") from e

    def update_analysis_aggregates(self, analysis_id: str, aggregates: Aggregates) -> None:
        with self._write_lock, self.SessionLocal() as db:
            record = db.get(AnalysisRecord, analysis_id)
            if record is None:
                raise SummaryPersistenceError(f"Unknown analysis: {analysis_id}")
            record.total_customers = aggregates.total_customers
            record.churn_rate = aggregates.churn_rate
            record.high_risk_customers = aggregates.high_risk_count
            record.medium_risk_customers = aggregates.medium_risk_count
            record.low_risk_customers = aggregates.low_risk_count
            record.avg_cltv = aggregates.avg_cltv
            db.commit()

    def save_retention_analytics(self, analysis_id: str, analytics: dict) -> None:
        with self._write_lock, self.SessionLocal() as db:
            for kind, key in (("feature", "feature_retention"),
                              ("churn_reason", "churn_reason_clusters")):
                for entry in analytics.get(key, []):
                    db.add(RetentionRecord(id=str(uuid.uuid4()), analysis_id=analysis_id,
                                           kind=kind, payload=entry))
            db.commit()

    def get_analysis(self, analysis_id: str) -> Optional[AnalysisSummary]:
        with self.SessionLocal() as db:
            record = db.get(AnalysisRecord, analysis_id)
            if record is None:
                return None
            return AnalysisSummary(
                id=record.id,
                owner_id=record.owner_id,
                total_customers=record.total_customers,
                churn_rate=record.churn_rate,
                high_risk_count=record.high_risk_customers,
                medium_risk_count=record.medium_risk_customers,
                low_risk_count=record.low_risk_customers,
                avg_cltv=record.avg_cltv,
                created_at=record.created_at,
            )

    def list_predictions(self, analysis_id: str) -> List[Prediction]:
        with self.SessionLocal() as db:
            records = (
                db.query(PredictionRecord)
                .filter(PredictionRecord.analysis_id == analysis_id)
                .all()
            )
            return [
                Prediction(
                    customer_id=r.customer_id,
                    probability=r.churn_probability,
                    contributing_factors=list(r.contributing_factors or []),
                    recommended_actions=list(r.recommended_actions or []),
                    monthly_revenue=r.monthly_revenue,
                    plan=Plan(r.plan),
                    days_since_last_active=r.days_since_last_active,
                    days_since_signup=r.days_since_signup,
                    source=r.source,
                )
                for r in records
            ]

    def list_retention(self, analysis_id: str) -> List[dict]:
        with self.SessionLocal() as db:
            records = (
                db.query(RetentionRecord)
                .filter(RetentionRecord.analysis_id == analysis_id)
                .all()
            )
            return [{"kind": r.kind, **r.payload} for r in records]
