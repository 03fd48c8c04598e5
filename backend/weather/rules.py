"""
Disease Risk Rules — weather forecast → livestock disease risk.

Rules are evaluated strictly in list order and the first rule whose
qualifying-period count exceeds its threshold wins; later rules are never
consulted. Several rules overlap (e.g. humid rainy weather satisfies both
HS and Black Quarter), so the order below is the precedence contract.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from alerts.schemas import DiseaseRisk, RiskLevel
from weather.client import ForecastPeriod

logger = structlog.get_logger()


@dataclass(frozen=True)
class DiseaseRule:
    predicate: Callable[[ForecastPeriod], bool]
    min_periods_exclusive: int  # rule fires when qualifying periods > this
    risk: DiseaseRisk
    horizon: timedelta | None = None  # only periods before now + horizon qualify

    def qualifying_periods(self, periods: Sequence[ForecastPeriod], now: datetime) -> int:
        cutoff = now + self.horizon if self.horizon is not None else None
        return sum(
            1
            for period in periods
            if (cutoff is None or period.timestamp < cutoff) and self.predicate(period)
        )

    def matches(self, periods: Sequence[ForecastPeriod], now: datetime) -> bool:
        return self.qualifying_periods(periods, now) > self.min_periods_exclusive


DISEASE_RULES: list[DiseaseRule] = [
    DiseaseRule(
        predicate=lambda p: p.humidity_percent > 80,
        min_periods_exclusive=4,
        horizon=timedelta(days=3),
        risk=DiseaseRisk(
            disease_name="Haemorrhagic Septicaemia (HS)",
            risk_level=RiskLevel.HIGH,
            message="High humidity forecasted for your area, increasing the risk of Haemorrhagic Septicaemia (HS).",
            preventive_measures=(
                "Ensure animals are vaccinated against HS.",
                "Avoid wallowing in stagnant water.",
                "Keep feed and water sources clean.",
            ),
        ),
    ),
    DiseaseRule(
        predicate=lambda p: p.humidity_percent > 70 and p.temperature_c > 28,
        min_periods_exclusive=4,
        risk=DiseaseRisk(
            disease_name="Foot and Mouth Disease (FMD)",
            risk_level=RiskLevel.MODERATE,
            message="High temperature and humidity forecasted, increasing the risk of FMD.",
            preventive_measures=(
                "Ensure strict biosecurity measures.",
                "Disinfect farm equipment regularly.",
                "Monitor animals for signs of lameness or blisters.",
            ),
        ),
    ),
    DiseaseRule(
        predicate=lambda p: p.is_rain,
        min_periods_exclusive=3,
        risk=DiseaseRisk(
            disease_name="Black Quarter (BQ)",
            risk_level=RiskLevel.HIGH,
            message="Rainy and humid conditions detected, increasing BQ risk in grazing animals.",
            preventive_measures=(
                "Vaccinate animals in endemic areas.",
                "Avoid grazing in muddy or waterlogged fields.",
                "Dispose of carcasses properly to prevent soil contamination.",
            ),
        ),
    ),
    DiseaseRule(
        predicate=lambda p: p.temperature_c > 35 and p.humidity_percent > 60,
        min_periods_exclusive=3,
        risk=DiseaseRisk(
            disease_name="Heat Stress Disorders",
            risk_level=RiskLevel.MODERATE,
            message="High temperature and humidity may cause heat stress in livestock.",
            preventive_measures=(
                "Provide shade and cooling (fans/sprinklers).",
                "Ensure constant supply of clean water.",
                "Avoid overstocking in sheds.",
            ),
        ),
    ),
    DiseaseRule(
        predicate=lambda p: p.humidity_percent > 75 and p.temperature_c > 20,
        min_periods_exclusive=3,
        risk=DiseaseRisk(
            disease_name="Bluetongue Disease",
            risk_level=RiskLevel.HIGH,
            message="Warm and humid conditions favor biting midges, increasing Bluetongue risk.",
            preventive_measures=(
                "House animals during dusk/dawn when midges are active.",
                "Use insect repellents or nets.",
                "Vaccinate sheep in endemic areas.",
            ),
        ),
    ),
    DiseaseRule(
        predicate=lambda p: p.humidity_percent > 70 and p.is_rain,
        min_periods_exclusive=2,
        risk=DiseaseRisk(
            disease_name="Lumpy Skin Disease (LSD)",
            risk_level=RiskLevel.MODERATE,
            message="Rainy and humid weather may increase fly/mosquito populations, raising LSD risk.",
            preventive_measures=(
                "Vaccinate cattle if available in the region.",
                "Control flies and mosquitoes around sheds.",
                "Isolate affected animals immediately.",
            ),
        ),
    ),
    DiseaseRule(
        predicate=lambda p: p.temperature_c > 25 and p.humidity_percent > 65,
        min_periods_exclusive=4,
        risk=DiseaseRisk(
            disease_name="Tick-borne Diseases (Theileriosis, Babesiosis)",
            risk_level=RiskLevel.MODERATE,
            message="Warm and humid conditions can increase tick populations, raising disease risk.",
            preventive_measures=(
                "Regular tick control with acaricides.",
                "Rotate pastures to reduce tick load.",
                "Check animals frequently for ticks.",
            ),
        ),
    ),
    DiseaseRule(
        predicate=lambda p: p.is_rain,
        min_periods_exclusive=2,
        risk=DiseaseRisk(
            disease_name="Anthrax",
            risk_level=RiskLevel.HIGH,
            message="Heavy rainfall may expose anthrax spores in soil, increasing risk.",
            preventive_measures=(
                "Vaccinate in endemic zones.",
                "Do not graze animals on marshy or flood-prone lands.",
                "Dispose of dead animals safely by burning or deep burial.",
            ),
        ),
    ),
    DiseaseRule(
        predicate=lambda p: p.is_rain,
        min_periods_exclusive=3,
        risk=DiseaseRisk(
            disease_name="Enterotoxaemia (ET)",
            risk_level=RiskLevel.MODERATE,
            message="Sudden rainfall may cause lush pasture growth, raising risk of ET in sheep/goats.",
            preventive_measures=(
                "Vaccinate susceptible animals.",
                "Avoid sudden shift to lush grazing.",
                "Provide balanced diet and controlled grazing.",
            ),
        ),
    ),
    DiseaseRule(
        predicate=lambda p: p.humidity_percent > 75 and p.is_rain,
        min_periods_exclusive=3,
        risk=DiseaseRisk(
            disease_name="Mastitis",
            risk_level=RiskLevel.HIGH,
            message="High humidity and damp conditions increase mastitis risk in dairy cattle.",
            preventive_measures=(
                "Maintain proper milking hygiene.",
                "Keep bedding dry and clean.",
                "Use teat dips after milking.",
            ),
        ),
    ),
]


def evaluate_disease_risk(
    periods: Sequence[ForecastPeriod],
    now: datetime | None = None,
    rules: Sequence[DiseaseRule] = DISEASE_RULES,
) -> DiseaseRisk | None:
    """Return the first matching rule's risk, or None when no rule fires."""
    now = now or datetime.utcnow()
    for rule in rules:
        if rule.matches(periods, now):
            logger.debug("weather.rule_matched", disease_name=rule.risk.disease_name)
            return rule.risk
    return None
