"""
Alert vocabulary and in-flight alert payloads.

Detectors and the weather job never build ORM rows directly; they emit
``AlertCandidate`` / ``DiseaseRisk`` values that the alert store validates,
deduplicates and persists.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from core.errors import AlertContractError


class AlertType(str, Enum):
    """High-AMU alert categories, one per detector strategy."""

    HISTORICAL_SPIKE = "HISTORICAL_SPIKE"
    PEER_COMPARISON_SPIKE = "PEER_COMPARISON_SPIKE"
    ABSOLUTE_THRESHOLD = "ABSOLUTE_THRESHOLD"
    TREND_INCREASE = "TREND_INCREASE"
    CRITICAL_DRUG_USAGE = "CRITICAL_DRUG_USAGE"
    SUSTAINED_HIGH_USAGE = "SUSTAINED_HIGH_USAGE"


class Severity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class AlertStatus(str, Enum):
    NEW = "New"
    ACKNOWLEDGED = "Acknowledged"
    RESOLVED = "Resolved"


class RiskLevel(str, Enum):
    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"


class DiseaseAlertStatus(str, Enum):
    NEW = "New"
    ACKNOWLEDGED = "Acknowledged"


# Operator-driven lifecycle. Detectors only ever create New alerts.
ALERT_TRANSITIONS: dict[AlertStatus, frozenset[AlertStatus]] = {
    AlertStatus.NEW: frozenset({AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED}),
    AlertStatus.ACKNOWLEDGED: frozenset({AlertStatus.RESOLVED}),
    AlertStatus.RESOLVED: frozenset(),
}

DISEASE_ALERT_TRANSITIONS: dict[DiseaseAlertStatus, frozenset[DiseaseAlertStatus]] = {
    DiseaseAlertStatus.NEW: frozenset({DiseaseAlertStatus.ACKNOWLEDGED}),
    DiseaseAlertStatus.ACKNOWLEDGED: frozenset(),
}


def _coerce(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise AlertContractError(f"Invalid {label} '{value}' (expected one of: {allowed})") from None


def parse_alert_type(value: "str | AlertType") -> AlertType:
    return _coerce(AlertType, value, "alert type")


def parse_severity(value: "str | Severity") -> Severity:
    return _coerce(Severity, value, "severity")


def parse_alert_status(value: "str | AlertStatus") -> AlertStatus:
    return _coerce(AlertStatus, value, "alert status")


def parse_disease_alert_status(value: "str | DiseaseAlertStatus") -> DiseaseAlertStatus:
    return _coerce(DiseaseAlertStatus, value, "disease alert status")


@dataclass(frozen=True)
class AlertCandidate:
    """A detector's proposal for a new HighAmuAlert."""

    farm_id: uuid.UUID
    alert_type: AlertType
    severity: Severity
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "alert_type", parse_alert_type(self.alert_type))
        object.__setattr__(self, "severity", parse_severity(self.severity))
        if not self.message:
            raise AlertContractError("Alert message must not be empty")


@dataclass
class RunSummary:
    """Standardized return from every detection / prediction run."""

    job: str
    status: str = "success"
    farms_evaluated: int = 0
    alerts_created: int = 0
    duplicates_skipped: int = 0
    farms_skipped: int = 0
    farms_failed: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None

    def complete(self) -> "RunSummary":
        self.completed_at = datetime.utcnow()
        if self.farms_failed and self.status == "success":
            self.status = "partial"
        return self

    def as_dict(self) -> dict[str, Any]:
        return {
            "job": self.job,
            "status": self.status,
            "farms_evaluated": self.farms_evaluated,
            "alerts_created": self.alerts_created,
            "duplicates_skipped": self.duplicates_skipped,
            "farms_skipped": self.farms_skipped,
            "farms_failed": self.farms_failed,
            "metadata": dict(self.metadata),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass(frozen=True)
class DiseaseRisk:
    """Result of the weather rule engine for one location."""

    disease_name: str
    risk_level: RiskLevel
    message: str
    preventive_measures: tuple[str, ...] = ()

    def as_alert_fields(self) -> dict[str, Any]:
        return {
            "disease_name": self.disease_name,
            "risk_level": self.risk_level.value,
            "message": self.message,
            "preventive_measures": list(self.preventive_measures),
        }
