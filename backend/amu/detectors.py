"""
AMU Detector Strategies — six independent per-farm evaluators.

Detects:
  - Historical spike: last 7 days vs the farm's own 6-month weekly average
  - Peer comparison: last month vs farms of the same species and herd tier
  - Absolute threshold: treatments per animal per month above policy limit
  - Trend increase: three strictly rising monthly buckets, >30% overall
  - Critical drug usage: Watch/Reserve share of classified events >40%
  - Sustained high usage: N consecutive weeks above 2x the farm baseline

Each ``evaluate_*`` function is the pure decision rule; the detector
classes gather the counts through a ``UsageDataReader`` and turn a hit
into an ``AlertCandidate``. ``run_detector`` drives one detector across
all farms and hands candidates to the ``AlertStore``.
"""

import uuid
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError

from alerts.engine import (
    AlertStore,
    classify_critical_drug_severity,
    classify_deviation_severity,
    classify_exceedance_severity,
    classify_trend_severity,
)
from alerts.schemas import AlertCandidate, AlertType, RunSummary, Severity
from amu.drug_classes import DrugClassBreakdown, build_breakdown
from amu.peer_groups import PeerGroupKey, PeerGroupStat, compute_peer_group_stats, peer_group_key
from amu.usage import APPROVED, MONTH, SIX_MONTHS, WEEK, DateRange, FarmProfile, UsageDataReader
from core.config import Settings, get_settings
from core.errors import DetectionRunError, FarmDataError

logger = structlog.get_logger()

SUSTAINED_BASELINE_WEEKS = 26


# ── Pure decision rules ────────────────────────────────────────────────────


def evaluate_historical_spike(
    current_week_count: int,
    historical_count: int,
    *,
    multiplier: float = 2.0,
    min_events: int = 3,
    weeks_divisor: int = 25,
    ratio_floor: float = 0.1,
) -> dict[str, Any] | None:
    """
    Both comparisons are strict: current must exceed ``min_events`` and
    ``multiplier`` x the historical weekly average. The ratio floor only
    guards the reported ratio against a zero average.
    """
    historical_weekly_average = historical_count / weeks_divisor
    if current_week_count <= min_events:
        return None
    if current_week_count <= historical_weekly_average * multiplier:
        return None

    spike_ratio = current_week_count / (historical_weekly_average or ratio_floor)
    return {
        "current_week_count": current_week_count,
        "historical_count": historical_count,
        "historical_weekly_average": round(historical_weekly_average, 2),
        "spike_ratio": round(spike_ratio, 2),
        "threshold": f">{multiplier * 100:.0f}%",
    }


def evaluate_peer_comparison(
    farm_usage: int,
    peer_stat: PeerGroupStat | None,
    *,
    multiplier: float = 1.5,
) -> dict[str, Any] | None:
    # A group holding only this farm has no peers to compare against.
    if peer_stat is None or peer_stat.farm_count < 2:
        return None
    if farm_usage <= 0 or peer_stat.average_usage <= 0:
        return None
    if farm_usage <= peer_stat.average_usage * multiplier:
        return None

    return {
        "farm_usage": farm_usage,
        "peer_group_average": round(peer_stat.average_usage, 2),
        "peer_group_farm_count": peer_stat.farm_count,
        "peer_ratio": round(farm_usage / peer_stat.average_usage, 2),
        "threshold": f">{multiplier * 100:.0f}%",
    }


def evaluate_absolute_threshold(
    event_count: int,
    herd_size: int,
    *,
    threshold: float = 0.5,
    min_events: int = 5,
) -> dict[str, Any] | None:
    if herd_size <= 0 or event_count < min_events:
        return None
    intensity = event_count / herd_size
    if intensity <= threshold:
        return None

    exceedance = intensity / threshold
    return {
        "event_count": event_count,
        "herd_size": herd_size,
        "current_intensity": round(intensity, 4),
        "threshold": threshold,
        "exceedance_ratio": round(exceedance, 4),
        "exceedance_percentage": f"{(exceedance - 1) * 100:.0f}%",
    }


def evaluate_trend_increase(monthly_counts: Sequence[int], *, floor: float = 0.30) -> dict[str, Any] | None:
    """
    ``monthly_counts`` is oldest first; the last three buckets are used.
    Every month-over-month delta must be positive, so a single early spike
    followed by a dip never reads as a trend.
    """
    if len(monthly_counts) < 3:
        return None
    first, second, third = monthly_counts[-3:]
    deltas = (second - first, third - second)
    if any(delta <= 0 for delta in deltas):
        return None
    if first <= 0:
        return None

    increase = (third - first) / first
    if increase <= floor:
        return None

    return {
        "month1_count": first,
        "month2_count": second,
        "month3_count": third,
        "month_over_month_deltas": list(deltas),
        "percentage_increase": round(increase * 100, 1),
        "threshold": f"{floor * 100:.0f}%",
        "_increase": increase,
    }


def evaluate_critical_drug_usage(
    breakdown: DrugClassBreakdown,
    *,
    threshold: float = 0.40,
    min_events: int = 5,
) -> dict[str, Any] | None:
    if breakdown.classified_total < min_events:
        return None
    ratio = breakdown.critical_ratio
    if ratio <= threshold:
        return None

    return {
        "classified_events": breakdown.classified_total,
        "critical_drug_count": breakdown.critical_count,
        "critical_percentage": round(ratio * 100, 2),
        "threshold": round(threshold * 100, 2),
        "_ratio": ratio,
    }


def longest_high_usage_streak(weekly_counts: Sequence[int], limit: float) -> int:
    """Longest run of consecutive weeks strictly above ``limit``; any other week resets it."""
    streak = best = 0
    for count in weekly_counts:
        streak = streak + 1 if count > limit else 0
        best = max(best, streak)
    return best


def evaluate_sustained_high_usage(
    weekly_counts: Sequence[int],
    farm_weekly_average: float,
    *,
    multiplier: float = 2.0,
    required_weeks: int = 4,
) -> dict[str, Any] | None:
    if farm_weekly_average <= 0:
        return None
    limit = farm_weekly_average * multiplier
    streak = longest_high_usage_streak(weekly_counts, limit)
    if streak < required_weeks:
        return None

    return {
        "weekly_counts": list(weekly_counts),
        "farm_weekly_average": round(farm_weekly_average, 2),
        "weekly_limit": round(limit, 2),
        "consecutive_weeks": streak,
        "required_weeks": required_weeks,
    }


# ── Detector plumbing ─────────────────────────────────────────────────────


@dataclass
class DetectionContext:
    """Per-run state shared read-only across farms."""

    reader: UsageDataReader
    settings: Settings
    now: datetime
    peer_stats: dict[PeerGroupKey, PeerGroupStat] = field(default_factory=dict)


async def _usage_breakdowns(ctx: DetectionContext, farm_id: uuid.UUID, window: DateRange) -> dict[str, Any]:
    drugs = await ctx.reader.count_usage_by_drug(farm_id, APPROVED, window)
    events = await ctx.reader.count_usage_by_event_type(farm_id, APPROVED, window)
    return {
        "drug_class_breakdown": build_breakdown(drugs).as_dict(),
        "event_breakdown": {
            "treatment": events.get("treatment", 0),
            "feed": events.get("feed", 0),
        },
    }


def _public(evidence: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in evidence.items() if not k.startswith("_")}


class AmuDetector(ABC):
    """Base class for all detector strategies."""

    job_name: str
    alert_type: AlertType

    async def prepare(self, ctx: DetectionContext) -> None:
        """Compute run-wide state before farms are evaluated."""

    @abstractmethod
    async def evaluate(self, farm: FarmProfile, ctx: DetectionContext) -> AlertCandidate | None:
        """Return a candidate for this farm, None when nothing triggers."""

    async def _candidate(
        self,
        ctx: DetectionContext,
        farm: FarmProfile,
        window: DateRange,
        severity: Severity,
        message: str,
        evidence: dict[str, Any],
    ) -> AlertCandidate:
        details = _public(evidence)
        details["window_start"] = window.start.isoformat()
        details["window_end"] = window.end.isoformat()
        details.update(await _usage_breakdowns(ctx, farm.farm_id, window))
        return AlertCandidate(
            farm_id=farm.farm_id,
            alert_type=self.alert_type,
            severity=severity,
            message=message,
            details=details,
        )


class HistoricalSpikeDetector(AmuDetector):
    job_name = "historical_spike"
    alert_type = AlertType.HISTORICAL_SPIKE

    async def evaluate(self, farm, ctx):
        s = ctx.settings
        current_window = DateRange.ending_at(ctx.now, WEEK)
        historical_window = DateRange(start=ctx.now - SIX_MONTHS, end=current_window.start)

        current = await ctx.reader.count_usage_events(farm.farm_id, APPROVED, current_window)
        historical = await ctx.reader.count_usage_events(farm.farm_id, APPROVED, historical_window)

        evidence = evaluate_historical_spike(
            current,
            historical,
            multiplier=s.historical_spike_multiplier,
            min_events=s.historical_spike_min_events,
            weeks_divisor=s.historical_weeks_divisor,
            ratio_floor=s.historical_ratio_floor,
        )
        if evidence is None:
            return None

        ratio = evidence["spike_ratio"]
        return await self._candidate(
            ctx,
            farm,
            current_window,
            classify_deviation_severity(ratio / s.historical_spike_multiplier),
            f"Farm has a {round(ratio * 100)}% spike in AMU this week.",
            evidence,
        )


class PeerComparisonDetector(AmuDetector):
    job_name = "peer_comparison"
    alert_type = AlertType.PEER_COMPARISON_SPIKE

    async def prepare(self, ctx):
        ctx.peer_stats = await compute_peer_group_stats(ctx.reader, DateRange.ending_at(ctx.now, MONTH))

    async def evaluate(self, farm, ctx):
        key = peer_group_key(farm)
        if key is None:
            raise FarmDataError("species or herd size missing; farm cannot be peer-compared")

        window = DateRange.ending_at(ctx.now, MONTH)
        usage = await ctx.reader.count_usage_events(farm.farm_id, APPROVED, window)
        multiplier = ctx.settings.peer_comparison_multiplier
        evidence = evaluate_peer_comparison(usage, ctx.peer_stats.get(key), multiplier=multiplier)
        if evidence is None:
            return None

        evidence["species"] = key.species
        evidence["herd_size_bucket"] = key.herd_size_bucket.value
        ratio = evidence["peer_ratio"]
        return await self._candidate(
            ctx,
            farm,
            window,
            classify_deviation_severity(ratio / multiplier),
            f"AMU usage {ratio:.1f}x higher than similar farms ({key.label()})",
            evidence,
        )


class AbsoluteThresholdDetector(AmuDetector):
    job_name = "absolute_threshold"
    alert_type = AlertType.ABSOLUTE_THRESHOLD

    async def evaluate(self, farm, ctx):
        if not farm.herd_size or farm.herd_size <= 0:
            raise FarmDataError("herd size missing; usage intensity is undefined")

        s = ctx.settings
        window = DateRange.ending_at(ctx.now, MONTH)
        events = await ctx.reader.count_usage_events(farm.farm_id, APPROVED, window)
        evidence = evaluate_absolute_threshold(
            events,
            farm.herd_size,
            threshold=s.absolute_intensity_threshold,
            min_events=s.minimum_events_threshold,
        )
        if evidence is None:
            return None

        return await self._candidate(
            ctx,
            farm,
            window,
            classify_exceedance_severity(evidence["exceedance_ratio"]),
            (
                f"Absolute AMU threshold exceeded: {evidence['current_intensity']:.2f} "
                f"(limit: {s.absolute_intensity_threshold})"
            ),
            evidence,
        )


class TrendIncreaseDetector(AmuDetector):
    job_name = "trend_increase"
    alert_type = AlertType.TREND_INCREASE

    async def evaluate(self, farm, ctx):
        windows = [
            DateRange(start=ctx.now - MONTH * (3 - i), end=ctx.now - MONTH * (2 - i))
            for i in range(3)
        ]
        counts = [await ctx.reader.count_usage_events(farm.farm_id, APPROVED, w) for w in windows]

        floor = ctx.settings.trend_increase_threshold
        evidence = evaluate_trend_increase(counts, floor=floor)
        if evidence is None:
            return None

        if farm.herd_size and farm.herd_size > 0:
            evidence["monthly_intensity"] = [round(c / farm.herd_size, 4) for c in counts]
        return await self._candidate(
            ctx,
            farm,
            DateRange(start=windows[0].start, end=windows[-1].end),
            classify_trend_severity(evidence["_increase"], floor),
            f"AMU trending upward: +{evidence['percentage_increase']:.0f}% over last 3 months",
            evidence,
        )


class CriticalDrugUsageDetector(AmuDetector):
    job_name = "critical_drug_usage"
    alert_type = AlertType.CRITICAL_DRUG_USAGE

    async def evaluate(self, farm, ctx):
        s = ctx.settings
        window = DateRange.ending_at(ctx.now, MONTH)
        breakdown = build_breakdown(await ctx.reader.count_usage_by_drug(farm.farm_id, APPROVED, window))
        evidence = evaluate_critical_drug_usage(
            breakdown,
            threshold=s.critical_drug_threshold,
            min_events=s.minimum_events_threshold,
        )
        if evidence is None:
            return None

        return await self._candidate(
            ctx,
            farm,
            window,
            classify_critical_drug_severity(evidence["_ratio"], s.critical_drug_threshold),
            (
                f"Critical antibiotic usage: {evidence['critical_percentage']:.0f}% of AMU uses "
                f"Watch/Reserve drugs (limit: {evidence['threshold']:.0f}%)"
            ),
            evidence,
        )


class SustainedHighUsageDetector(AmuDetector):
    job_name = "sustained_high_usage"
    alert_type = AlertType.SUSTAINED_HIGH_USAGE

    async def evaluate(self, farm, ctx):
        s = ctx.settings
        weeks = s.sustained_high_usage_weeks
        window = DateRange.ending_at(ctx.now, WEEK * weeks)
        baseline_window = DateRange(start=ctx.now - WEEK * SUSTAINED_BASELINE_WEEKS, end=window.start)

        baseline_count = await ctx.reader.count_usage_events(farm.farm_id, APPROVED, baseline_window)
        baseline_weeks = SUSTAINED_BASELINE_WEEKS - weeks
        farm_weekly_average = baseline_count / baseline_weeks
        if farm_weekly_average <= 0:
            raise FarmDataError("no baseline usage history to compare weekly usage against")

        weekly_counts = [
            await ctx.reader.count_usage_events(
                farm.farm_id,
                APPROVED,
                DateRange(start=window.start + WEEK * i, end=window.start + WEEK * (i + 1)),
            )
            for i in range(weeks)
        ]
        evidence = evaluate_sustained_high_usage(
            weekly_counts,
            farm_weekly_average,
            multiplier=s.sustained_high_usage_multiplier,
            required_weeks=weeks,
        )
        if evidence is None:
            return None

        if farm.herd_size and farm.herd_size > 0:
            evidence["weekly_intensity"] = [round(c / farm.herd_size, 4) for c in weekly_counts]
        return await self._candidate(
            ctx,
            farm,
            window,
            Severity.CRITICAL,
            (
                f"Sustained high AMU: {evidence['consecutive_weeks']} consecutive weeks above "
                f"{s.sustained_high_usage_multiplier:g}x the farm's weekly average"
            ),
            evidence,
        )


DETECTORS: dict[str, AmuDetector] = {
    detector.job_name: detector
    for detector in (
        HistoricalSpikeDetector(),
        PeerComparisonDetector(),
        AbsoluteThresholdDetector(),
        TrendIncreaseDetector(),
        CriticalDrugUsageDetector(),
        SustainedHighUsageDetector(),
    )
}


def get_detector(job_name: str) -> AmuDetector:
    try:
        return DETECTORS[job_name]
    except KeyError:
        raise ValueError(f"No detector registered for '{job_name}'. Available: {sorted(DETECTORS)}") from None


# ── Run loop ──────────────────────────────────────────────────────────────


async def run_detector(
    detector: AmuDetector,
    reader: UsageDataReader,
    store: AlertStore,
    *,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> RunSummary:
    """
    Evaluate every farm once and persist new, deduplicated alerts.

    Farms that lack required data are skipped; a farm whose evaluation
    blows up is counted as failed. Only run-level problems (farm listing,
    peer statistics, alert store writes) raise ``DetectionRunError``.
    """
    ctx = DetectionContext(reader=reader, settings=settings or get_settings(), now=now or datetime.utcnow())
    summary = RunSummary(job=detector.job_name, metadata={"alert_type": detector.alert_type.value})
    log = logger.bind(job=detector.job_name)
    log.info("amu.detector.started", as_of=ctx.now.isoformat())

    try:
        await detector.prepare(ctx)
        farms = await reader.list_farms()
    except Exception as exc:
        log.error("amu.detector.setup_failed", error=str(exc), exc_info=True)
        raise DetectionRunError(detector.job_name, str(exc)) from exc

    for farm in farms:
        summary.farms_evaluated += 1
        try:
            candidate = await detector.evaluate(farm, ctx)
        except FarmDataError as exc:
            summary.farms_skipped += 1
            log.info("amu.detector.farm_skipped", farm_id=str(farm.farm_id), reason=str(exc))
            continue
        except Exception as exc:  # noqa: BLE001
            summary.farms_failed += 1
            log.warning("amu.detector.farm_failed", farm_id=str(farm.farm_id), error=str(exc), exc_info=True)
            await store.discard_pending()
            continue

        if candidate is None:
            continue

        try:
            created = await store.record_candidate(candidate)
        except SQLAlchemyError as exc:
            log.error("amu.detector.store_failed", farm_id=str(farm.farm_id), error=str(exc), exc_info=True)
            raise DetectionRunError(detector.job_name, f"alert store unavailable: {exc}") from exc

        if created is None:
            summary.duplicates_skipped += 1
        else:
            summary.alerts_created += 1
            log.info(
                "amu.detector.alert_created",
                farm_id=str(farm.farm_id),
                alert_type=candidate.alert_type.value,
                severity=candidate.severity.value,
            )

    summary.complete()
    log.info("amu.detector.completed", **summary.as_dict())
    return summary
