"""
Journey Analytics: derived metrics over the (stages × sections) matrix.

compute_analytics(document) walks every live cell once and produces:

  - sentiment_by_stage     mean sentiment_graph value per stage, rounded half-up,
                           0 (never None) when a stage has no sentiment
  - sentiment_trend        the per-stage means as a curve, built with the same
                           interpolation as the editor overlay
  - pain_by_stage          max declared severity over every pain cell + count
                           of described pain points
  - touchpoints_by_stage   number of touchpoint items per stage
  - channel_distribution   touchpoint category frequency (missing -> "Other"),
                           count desc then name
  - kpis                   every non-empty KPI cell, collected as-is
  - opportunities          non-empty opportunity cells, impact desc, ties in
                           encounter order (stable sort)
  - completeness           filled / (stages × sections), "filled" decided by the
                           variant registry, 0 when the grid is empty

Dispatch is always on the section's type, never on payload shape. Cells
keyed by removed stages are never visited.

portfolio_analytics(records) is the cross-map roll-up behind the dashboard.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field

from app.services.journey.cell_variants import extract_text, is_empty
from app.services.journey.document import JourneyMapDocument
from app.services.journey.sentiment_curve import TREND_SCALE, SentimentCurve, build_curve

SEVERITY_MAX = 5
IMPACT_MAX = 5
DEFAULT_CHANNEL = "Other"


# ═════════════════════════════════════════════════════════════════════════════
# Result types
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class StagePain:
    stage_id: str
    stage: str
    severity: int
    count: int


@dataclass(frozen=True)
class KpiRecord:
    stage_id: str
    stage: str
    section_id: str
    label: str
    value: str
    trend: str


@dataclass(frozen=True)
class OpportunityRecord:
    stage_id: str
    stage: str
    section_id: str
    text: str
    impact: int


@dataclass
class JourneyAnalytics:
    stage_ids: list[str] = field(default_factory=list)
    stage_names: list[str] = field(default_factory=list)
    section_count: int = 0
    sentiment_by_stage: list[int] = field(default_factory=list)
    sentiment_trend: SentimentCurve = field(default_factory=SentimentCurve)
    pain_by_stage: list[StagePain] = field(default_factory=list)
    touchpoints_by_stage: list[int] = field(default_factory=list)
    channel_distribution: list[tuple[str, int]] = field(default_factory=list)
    kpis: list[KpiRecord] = field(default_factory=list)
    opportunities: list[OpportunityRecord] = field(default_factory=list)
    filled_cells: int = 0
    total_cells: int = 0

    @property
    def stage_count(self) -> int:
        return len(self.stage_ids)

    @property
    def completeness(self) -> float:
        """Fraction in [0, 1]; a 0-cell grid is guarded to 0."""
        if self.total_cells <= 0:
            return 0.0
        return self.filled_cells / self.total_cells

    def to_dict(self) -> dict:
        stages = list(zip(self.stage_ids, self.stage_names))
        return {
            "stage_count": self.stage_count,
            "section_count": self.section_count,
            "sentiment_by_stage": [
                {"stage_id": sid, "stage": name, "sentiment": value}
                for (sid, name), value in zip(stages, self.sentiment_by_stage)
            ],
            "sentiment_trend": self.sentiment_trend.to_dict(),
            "pain_by_stage": [
                {"stage_id": p.stage_id, "stage": p.stage, "severity": p.severity, "count": p.count}
                for p in self.pain_by_stage
            ],
            "touchpoints_by_stage": [
                {"stage_id": sid, "stage": name, "touchpoints": count}
                for (sid, name), count in zip(stages, self.touchpoints_by_stage)
            ],
            "channel_distribution": [
                {"name": name, "value": count} for name, count in self.channel_distribution
            ],
            "kpis": [
                {"stage_id": k.stage_id, "stage": k.stage, "section_id": k.section_id,
                 "label": k.label, "value": k.value, "trend": k.trend}
                for k in self.kpis
            ],
            "opportunities": [
                {"stage_id": o.stage_id, "stage": o.stage, "section_id": o.section_id,
                 "text": o.text, "impact": o.impact}
                for o in self.opportunities
            ],
            "filled_cells": self.filled_cells,
            "total_cells": self.total_cells,
            "completeness": self.completeness,
            "completeness_pct": round_half_up(self.completeness * 100),
        }


# ── Helpers ──────────────────────────────────────────────────────────────


def round_half_up(value: float) -> int:
    """0.5 rounds toward +inf, matching the chart labels (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def _number(value) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _bounded_int(value, low: int, high: int) -> int:
    number = _number(value)
    if number is None:
        return 0
    return max(low, min(high, int(number)))


def _text(value) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


# ═════════════════════════════════════════════════════════════════════════════
# Reducer
# ═════════════════════════════════════════════════════════════════════════════


def compute_analytics(document: JourneyMapDocument) -> JourneyAnalytics:
    stages = document.stages
    sections = document.sections

    sentiment_sum = [0.0] * len(stages)
    sentiment_n = [0] * len(stages)
    pain_max = [0] * len(stages)
    pain_count = [0] * len(stages)
    touchpoints = [0] * len(stages)
    channels: Counter[str] = Counter()
    kpis: list[KpiRecord] = []
    opportunities: list[OpportunityRecord] = []
    filled = 0

    for section in sections:
        for idx, stage in enumerate(stages):
            cell = section.cell(stage.id)
            # severity counts even when the pain point has no description yet
            if section.type == "pain_point" and cell is not None:
                pain_max[idx] = max(pain_max[idx], _bounded_int(cell.get("severity"), 0, SEVERITY_MAX))
            if is_empty(cell, section.type):
                continue
            filled += 1

            if section.type == "sentiment_graph":
                value = _number(cell.get("value"))
                if value is not None:
                    sentiment_sum[idx] += value
                    sentiment_n[idx] += 1

            elif section.type == "pain_point":
                pain_count[idx] += 1

            elif section.type == "touchpoints":
                items = cell.get("items")
                items = items if isinstance(items, list) else []
                touchpoints[idx] += len(items)
                for item in items:
                    category = _text(item.get("category")) if isinstance(item, dict) else ""
                    channels[category or DEFAULT_CHANNEL] += 1

            elif section.type == "kpi":
                kpis.append(KpiRecord(
                    stage_id=stage.id,
                    stage=stage.name,
                    section_id=section.id,
                    label=_text(cell.get("label")) or section.title or "KPI",
                    value=_text(cell.get("value")),
                    trend=_text(cell.get("trend")) or "flat",
                ))

            elif section.type == "opportunity":
                opportunities.append(OpportunityRecord(
                    stage_id=stage.id,
                    stage=stage.name,
                    section_id=section.id,
                    text=extract_text(cell, section.type),
                    impact=_bounded_int(cell.get("impact"), 0, IMPACT_MAX),
                ))

    sentiment = [
        round_half_up(total / n) if n else 0 for total, n in zip(sentiment_sum, sentiment_n)
    ]
    # sorted() is stable: equal impacts keep encounter order
    ranked = sorted(opportunities, key=lambda o: -o.impact)

    return JourneyAnalytics(
        stage_ids=[s.id for s in stages],
        stage_names=[s.name for s in stages],
        section_count=len(sections),
        sentiment_by_stage=sentiment,
        sentiment_trend=build_curve(sentiment, TREND_SCALE),
        pain_by_stage=[
            StagePain(stage_id=s.id, stage=s.name, severity=pain_max[i], count=pain_count[i])
            for i, s in enumerate(stages)
        ],
        touchpoints_by_stage=touchpoints,
        channel_distribution=sorted(channels.items(), key=lambda kv: (-kv[1], kv[0])),
        kpis=kpis,
        opportunities=ranked,
        filled_cells=filled,
        total_cells=len(stages) * len(sections),
    )


# ═════════════════════════════════════════════════════════════════════════════
# Cross-map roll-up
# ═════════════════════════════════════════════════════════════════════════════


def portfolio_analytics(records: list[dict], *, top_n: int = 10, stage_top_n: int = 8) -> dict:
    """Aggregate many maps for the dashboard.

    Each record is ``{"title", "status", "document": JourneyMapDocument}``.
    """
    pain_by_map = []
    sentiment_by_map = []
    completeness_by_map = []
    touchpoint_counts: Counter[str] = Counter()
    stage_names: Counter[str] = Counter()
    statuses: Counter[str] = Counter()

    for record in records:
        title = record.get("title") or "Untitled"
        statuses[record.get("status") or "draft"] += 1
        doc = record.get("document")
        if doc is None:
            continue

        severities = []
        sentiments = []
        for section in doc.sections:
            for stage in doc.stages:
                cell = section.cell(stage.id)
                if is_empty(cell, section.type):
                    continue
                if section.type == "pain_point":
                    severity = _bounded_int(cell.get("severity"), 0, SEVERITY_MAX)
                    if severity:
                        severities.append(severity)
                elif section.type == "sentiment_graph":
                    value = _number(cell.get("value"))
                    if value is not None:
                        sentiments.append(value)
                elif section.type == "touchpoints":
                    items = cell.get("items")
                    for item in items if isinstance(items, list) else []:
                        if isinstance(item, dict):
                            name = _text(item.get("category")) or _text(item.get("label"))
                        else:
                            name = _text(item)
                        touchpoint_counts[name or DEFAULT_CHANNEL] += 1

        for stage in doc.stages:
            stage_names[stage.name] += 1

        pain_by_map.append({
            "name": title,
            "avg_pain": round(sum(severities) / len(severities), 1) if severities else 0,
            "pain_count": len(severities),
        })
        sentiment_by_map.append({
            "name": title,
            "avg_sentiment": round_half_up(sum(sentiments) / len(sentiments)) if sentiments else 0,
        })
        completeness_by_map.append({
            "name": title,
            "completeness_pct": round_half_up(compute_analytics(doc).completeness * 100),
        })

    return {
        "total_maps": len(records),
        "pain_by_map": pain_by_map,
        "sentiment_by_map": sentiment_by_map,
        "completeness_by_map": completeness_by_map,
        "top_touchpoints": [
            {"name": name, "count": count} for name, count in touchpoint_counts.most_common(top_n)
        ],
        "common_stages": [
            {"name": name, "count": count} for name, count in stage_names.most_common(stage_top_n)
        ],
        "status_distribution": [
            {"name": name, "value": count} for name, count in statuses.items() if count
        ],
    }
