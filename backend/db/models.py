"""
AMU Sentinel Database Models

Tables:
  1. farms              - Farm profile (species, herd size, location)
  2. usage_events       - Antimicrobial treatments and medicated-feed administrations
  3. high_amu_alerts    - Detector output, one open (New) alert per farm + alert type
  4. disease_alerts     - Weather-driven disease risk, one open alert per farm + disease

farms and usage_events are owned by the surrounding platform; the
detection engine only reads them.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    text,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from alerts.schemas import AlertStatus, AlertType, DiseaseAlertStatus, RiskLevel, Severity
from db.session import Base


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


def _in_clause(column: str, values) -> str:
    quoted = ", ".join(f"'{v.value}'" for v in values)
    return f"{column} IN ({quoted})"


# Partial index predicate shared by both alert tables
_OPEN_ALERT = text("status = 'New'")


# ─── 1. Farms ──────────────────────────────────────────────────────────────


class Farm(Base):
    __tablename__ = "farms"

    farm_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    species = Column(String(50))
    herd_size = Column(Integer)
    latitude = Column(Float)
    longitude = Column(Float)
    status = Column(String(20), nullable=False, default="Active")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("status IN ('Active', 'Suspended')", name="ck_farm_status"),
        Index("ix_farms_location", "latitude", "longitude"),
    )

    usage_events = relationship("UsageEvent", back_populates="farm", cascade="all, delete-orphan")


# ─── 2. Usage Events ──────────────────────────────────────────────────────


class UsageEvent(Base):
    __tablename__ = "usage_events"

    event_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    farm_id = Column(GUID(), ForeignKey("farms.farm_id"), nullable=False)
    drug_name = Column(String(255), nullable=False)
    drug_class = Column(String(20))  # explicit AWaRe class; falls back to drug-name lookup
    event_type = Column(String(20), nullable=False, default="treatment")
    status = Column(String(20), nullable=False, default="Pending")
    start_date = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_usage_events_farm_created", "farm_id", "created_at"),
        Index("ix_usage_events_status", "status"),
        CheckConstraint("event_type IN ('treatment', 'feed')", name="ck_usage_event_type"),
        CheckConstraint("status IN ('Pending', 'Approved', 'Rejected')", name="ck_usage_event_status"),
        CheckConstraint(
            "drug_class IS NULL OR drug_class IN ('Access', 'Watch', 'Reserve', 'Unclassified')",
            name="ck_usage_event_drug_class",
        ),
    )

    farm = relationship("Farm", back_populates="usage_events")


# ─── 3. High AMU Alerts ───────────────────────────────────────────────────


class HighAmuAlert(Base):
    __tablename__ = "high_amu_alerts"

    alert_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    farm_id = Column(GUID(), ForeignKey("farms.farm_id"), nullable=False)
    alert_type = Column(String(50), nullable=False)
    severity = Column(String(20), nullable=False)
    message = Column(Text, nullable=False)
    details = Column(JSON, default=dict)
    status = Column(String(20), nullable=False, default=AlertStatus.NEW.value)
    notes = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    acknowledged_at = Column(DateTime)
    resolved_at = Column(DateTime)

    __table_args__ = (
        Index("ix_high_amu_alerts_farm_status", "farm_id", "status"),
        Index(
            "uq_high_amu_alerts_open",
            "farm_id",
            "alert_type",
            unique=True,
            postgresql_where=_OPEN_ALERT,
            sqlite_where=_OPEN_ALERT,
        ),
        CheckConstraint(_in_clause("alert_type", AlertType), name="ck_high_amu_alert_type"),
        CheckConstraint(_in_clause("severity", Severity), name="ck_high_amu_alert_severity"),
        CheckConstraint(_in_clause("status", AlertStatus), name="ck_high_amu_alert_status"),
    )

    farm = relationship("Farm")


# ─── 4. Disease Alerts ────────────────────────────────────────────────────


class DiseaseAlert(Base):
    __tablename__ = "disease_alerts"

    alert_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    farm_id = Column(GUID(), ForeignKey("farms.farm_id"), nullable=False)
    disease_name = Column(String(255), nullable=False)
    risk_level = Column(String(20), nullable=False)
    message = Column(Text, nullable=False)
    preventive_measures = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default=DiseaseAlertStatus.NEW.value)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    acknowledged_at = Column(DateTime)

    __table_args__ = (
        Index("ix_disease_alerts_farm_status", "farm_id", "status"),
        Index(
            "uq_disease_alerts_open",
            "farm_id",
            "disease_name",
            unique=True,
            postgresql_where=_OPEN_ALERT,
            sqlite_where=_OPEN_ALERT,
        ),
        CheckConstraint(_in_clause("risk_level", RiskLevel), name="ck_disease_alert_risk_level"),
        CheckConstraint(_in_clause("status", DiseaseAlertStatus), name="ck_disease_alert_status"),
    )

    farm = relationship("Farm")
