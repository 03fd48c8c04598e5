"""
Alert Engine — severity scoring, deduplicated persistence, alert lifecycle.

Alert Types:
  - HISTORICAL_SPIKE: weekly AMU far above the farm's own 6-month average
  - PEER_COMPARISON_SPIKE: monthly AMU far above similar farms
  - ABSOLUTE_THRESHOLD: treatments per animal above policy limit
  - TREND_INCREASE: AMU rising for three consecutive months
  - CRITICAL_DRUG_USAGE: Watch/Reserve drugs dominate usage
  - SUSTAINED_HIGH_USAGE: weeks in a row well above the farm's baseline
  - Disease alerts: weather-driven livestock disease risk

Only one New alert may exist per (farm, alert type) and per (farm, disease).
The store checks before inserting and the partial unique index on the
alert tables rejects anything that races past the check.
"""

import uuid
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.schemas import (
    ALERT_TRANSITIONS,
    DISEASE_ALERT_TRANSITIONS,
    AlertCandidate,
    AlertStatus,
    AlertType,
    DiseaseAlertStatus,
    DiseaseRisk,
    Severity,
    parse_alert_status,
    parse_alert_type,
    parse_disease_alert_status,
)
from core.errors import AlertNotFoundError, InvalidStatusTransition
from db.models import DiseaseAlert, HighAmuAlert

logger = structlog.get_logger()

# ──────────────────────────────────────────────────────────────────────────
# Severity Rules
# ──────────────────────────────────────────────────────────────────────────

SEVERITY_THRESHOLDS = {
    # Observed ratio divided by the trigger multiplier
    "deviation": {
        "critical": 3.0,
        "high": 2.0,
        "medium": 1.5,
    },
    # Observed intensity divided by the absolute policy threshold
    "exceedance": {
        "critical": 1.30,
        "high": 1.15,
        "medium": 1.05,
    },
}


def classify_deviation_severity(deviation: float) -> Severity:
    """Classify relative-spike severity (historical / peer) by how far past the trigger it is."""
    thresholds = SEVERITY_THRESHOLDS["deviation"]
    if deviation >= thresholds["critical"]:
        return Severity.CRITICAL
    elif deviation >= thresholds["high"]:
        return Severity.HIGH
    elif deviation >= thresholds["medium"]:
        return Severity.MEDIUM
    return Severity.LOW


def classify_exceedance_severity(exceedance: float) -> Severity:
    """Classify absolute-threshold severity; a breach of 130% or more is Critical."""
    thresholds = SEVERITY_THRESHOLDS["exceedance"]
    if exceedance >= thresholds["critical"]:
        return Severity.CRITICAL
    elif exceedance >= thresholds["high"]:
        return Severity.HIGH
    elif exceedance >= thresholds["medium"]:
        return Severity.MEDIUM
    return Severity.LOW


def classify_trend_severity(increase: float, floor: float) -> Severity:
    return Severity.MEDIUM if increase >= floor * 2 else Severity.LOW


def classify_critical_drug_severity(ratio: float, threshold: float) -> Severity:
    return Severity.HIGH if ratio >= threshold * 1.5 else Severity.MEDIUM


# ──────────────────────────────────────────────────────────────────────────
# Alert Store
# ──────────────────────────────────────────────────────────────────────────


class AlertStore:
    """
    Persistence for HighAmuAlert and DiseaseAlert rows.

    Each create commits on its own so a batch run can stop between farms
    without leaving partial state behind.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ── High AMU alerts ───────────────────────────────────────────────

    async def find_open_alert(self, farm_id: uuid.UUID, alert_type: "AlertType | str") -> HighAmuAlert | None:
        alert_type = parse_alert_type(alert_type)
        result = await self.db.execute(
            select(HighAmuAlert).where(
                HighAmuAlert.farm_id == farm_id,
                HighAmuAlert.alert_type == alert_type.value,
                HighAmuAlert.status == AlertStatus.NEW.value,
            )
        )
        return result.scalars().first()

    async def create_alert(self, candidate: AlertCandidate) -> HighAmuAlert | None:
        """Insert a New alert; returns None if an open one already holds the slot."""
        now = datetime.utcnow()
        alert = HighAmuAlert(
            alert_id=uuid.uuid4(),
            farm_id=candidate.farm_id,
            alert_type=candidate.alert_type.value,
            severity=candidate.severity.value,
            message=candidate.message,
            details=dict(candidate.details),
            status=AlertStatus.NEW.value,
            created_at=now,
            updated_at=now,
        )
        return await self._insert(alert, farm_id=candidate.farm_id, alert_type=candidate.alert_type.value)

    async def record_candidate(self, candidate: AlertCandidate) -> HighAmuAlert | None:
        """Deduplicate against open alerts, then persist. None means skipped."""
        existing = await self.find_open_alert(candidate.farm_id, candidate.alert_type)
        if existing is not None:
            logger.debug(
                "alerts.duplicate_skipped",
                farm_id=str(candidate.farm_id),
                alert_type=candidate.alert_type.value,
                existing_alert_id=str(existing.alert_id),
            )
            return None
        return await self.create_alert(candidate)

    async def transition_alert_status(
        self,
        alert_id: uuid.UUID,
        new_status: "AlertStatus | str",
        notes: str | None = None,
    ) -> HighAmuAlert:
        """Apply an operator lifecycle change (New → Acknowledged → Resolved)."""
        target = parse_alert_status(new_status)
        alert = await self.db.get(HighAmuAlert, alert_id)
        if alert is None:
            raise AlertNotFoundError(f"HighAmuAlert {alert_id} not found")

        current = AlertStatus(alert.status)
        if target not in ALERT_TRANSITIONS[current]:
            raise InvalidStatusTransition(current.value, target.value)

        now = datetime.utcnow()
        alert.status = target.value
        alert.updated_at = now
        if notes:
            alert.notes = notes
        if target is AlertStatus.ACKNOWLEDGED:
            alert.acknowledged_at = now
        elif target is AlertStatus.RESOLVED:
            alert.resolved_at = now
        await self.db.commit()

        logger.info("alerts.status_changed", alert_id=str(alert_id), from_status=current.value, to_status=target.value)
        return alert

    # ── Disease alerts ────────────────────────────────────────────────

    async def find_open_disease_alert(self, farm_id: uuid.UUID, disease_name: str) -> DiseaseAlert | None:
        result = await self.db.execute(
            select(DiseaseAlert).where(
                DiseaseAlert.farm_id == farm_id,
                DiseaseAlert.disease_name == disease_name,
                DiseaseAlert.status == DiseaseAlertStatus.NEW.value,
            )
        )
        return result.scalars().first()

    async def create_disease_alert(self, farm_id: uuid.UUID, risk: DiseaseRisk) -> DiseaseAlert | None:
        now = datetime.utcnow()
        alert = DiseaseAlert(
            alert_id=uuid.uuid4(),
            farm_id=farm_id,
            status=DiseaseAlertStatus.NEW.value,
            created_at=now,
            updated_at=now,
            **risk.as_alert_fields(),
        )
        return await self._insert(alert, farm_id=farm_id, disease_name=risk.disease_name)

    async def record_disease_risk(self, farm_id: uuid.UUID, risk: DiseaseRisk) -> DiseaseAlert | None:
        existing = await self.find_open_disease_alert(farm_id, risk.disease_name)
        if existing is not None:
            logger.debug("alerts.disease_duplicate_skipped", farm_id=str(farm_id), disease_name=risk.disease_name)
            return None
        return await self.create_disease_alert(farm_id, risk)

    async def transition_disease_alert_status(
        self,
        alert_id: uuid.UUID,
        new_status: "DiseaseAlertStatus | str",
    ) -> DiseaseAlert:
        target = parse_disease_alert_status(new_status)
        alert = await self.db.get(DiseaseAlert, alert_id)
        if alert is None:
            raise AlertNotFoundError(f"DiseaseAlert {alert_id} not found")

        current = DiseaseAlertStatus(alert.status)
        if target not in DISEASE_ALERT_TRANSITIONS[current]:
            raise InvalidStatusTransition(current.value, target.value)

        now = datetime.utcnow()
        alert.status = target.value
        alert.updated_at = now
        alert.acknowledged_at = now
        await self.db.commit()
        return alert

    # ── Internals ─────────────────────────────────────────────────────

    async def discard_pending(self) -> None:
        """Roll back a failed unit of work so the session is usable for the next farm."""
        await self.db.rollback()

    async def _insert(self, alert, **context):
        self.db.add(alert)
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            if "unique" not in str(exc.orig).lower():
                raise
            # Another run opened the same alert between our check and insert.
            logger.info("alerts.concurrent_duplicate", **{k: str(v) for k, v in context.items()})
            return None

        logger.info("alerts.created", table=alert.__tablename__, **{k: str(v) for k, v in context.items()})
        return alert
