"""
Sentiment curve interpolation.

Turns one scalar per stage into a smooth path through every sample. Each
segment is a cubic bezier whose two control points sit at the horizontal
midpoint between consecutive samples, each at the height of its own
endpoint ("flat handles"):

    p0 ── c1 = (p0.x + dx, p0.y)
    c2 = (p1.x - dx, p1.y) ── p1          dx = (p1.x - p0.x) / 2

The curve passes exactly through every sample and never overshoots at the
first or last point. The editor overlay and the analytics trend both build
their curves here; only the coordinate scale differs.

Fewer than two stages produce an empty curve (not an error).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

CURVE_SECTION_TYPES = frozenset({"sentiment_graph", "emotion_curve"})


@dataclass(frozen=True)
class Point:
    x: float
    y: float

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class BezierSegment:
    start: Point
    control1: Point
    control2: Point
    end: Point

    def at(self, t: float) -> Point:
        """Evaluate the segment at ``t`` in [0, 1]. ``at(0)``/``at(1)`` are the endpoints."""
        if t <= 0:
            return self.start
        if t >= 1:
            return self.end
        u = 1 - t
        a, b, c, d = u ** 3, 3 * u * u * t, 3 * u * t * t, t ** 3
        return Point(
            x=a * self.start.x + b * self.control1.x + c * self.control2.x + d * self.end.x,
            y=a * self.start.y + b * self.control1.y + c * self.control2.y + d * self.end.y,
        )


@dataclass(frozen=True)
class CurveScale:
    """Maps (stage index, value) to drawing coordinates.

    ``width=None`` puts stage ``i`` at ``x = i``; otherwise stages are
    centred in equal columns across ``width``. ``y = baseline + value * y_factor``.
    ``floor`` is where the closed fill path drops to.
    """
    width: float | None = 100.0
    baseline: float = 50.0
    y_factor: float = -8.0
    floor: float = 100.0

    def x(self, index: int, count: int) -> float:
        if self.width is None:
            return float(index)
        return ((index + 0.5) / count) * self.width

    def y(self, value: float) -> float:
        return self.baseline + value * self.y_factor


# SVG overlay: 0..100 viewBox, y grows downward, +5 sits near the top.
EDITOR_SCALE = CurveScale(width=100.0, baseline=50.0, y_factor=-8.0, floor=100.0)
# Analytics trend: x = stage index, y = sentiment value.
TREND_SCALE = CurveScale(width=None, baseline=0.0, y_factor=1.0, floor=-5.0)


def _fmt(value: float) -> str:
    return f"{round(value, 4):g}"


@dataclass(frozen=True)
class SentimentCurve:
    points: tuple[Point, ...] = ()
    segments: tuple[BezierSegment, ...] = ()
    floor: float = 100.0

    @property
    def is_empty(self) -> bool:
        return not self.segments

    @property
    def path(self) -> str:
        """SVG path data: ``M x y C c1x c1y, c2x c2y, x y ...``."""
        if self.is_empty:
            return ""
        first = self.points[0]
        parts = [f"M {_fmt(first.x)} {_fmt(first.y)}"]
        for seg in self.segments:
            parts.append(
                f"C {_fmt(seg.control1.x)} {_fmt(seg.control1.y)}, "
                f"{_fmt(seg.control2.x)} {_fmt(seg.control2.y)}, "
                f"{_fmt(seg.end.x)} {_fmt(seg.end.y)}"
            )
        return " ".join(parts)

    @property
    def fill_path(self) -> str:
        """The curve closed down to ``floor`` for the gradient fill."""
        if self.is_empty:
            return ""
        first, last = self.points[0], self.points[-1]
        return (
            f"{self.path} L {_fmt(last.x)} {_fmt(self.floor)} "
            f"L {_fmt(first.x)} {_fmt(self.floor)} Z"
        )

    def sample(self, steps_per_segment: int = 8) -> list[Point]:
        """Points along the curve; every input sample is included exactly."""
        if self.is_empty:
            return []
        steps = max(1, int(steps_per_segment))
        out = [self.segments[0].start]
        for seg in self.segments:
            for i in range(1, steps + 1):
                out.append(seg.at(i / steps))
        return out

    def to_dict(self) -> dict:
        return {
            "points": [p.to_dict() for p in self.points],
            "path": self.path,
            "fill_path": self.fill_path,
        }


def _as_float(value) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def build_curve(values: Sequence, scale: CurveScale = EDITOR_SCALE) -> SentimentCurve:
    """Interpolate one value per stage (``None``/non-numeric read as 0)."""
    count = len(values)
    if count < 2:
        return SentimentCurve(floor=scale.floor)

    points = tuple(
        Point(x=scale.x(idx, count), y=scale.y(_as_float(v))) for idx, v in enumerate(values)
    )
    segments = []
    for p0, p1 in zip(points, points[1:]):
        dx = (p1.x - p0.x) / 2
        segments.append(BezierSegment(
            start=p0,
            control1=Point(p0.x + dx, p0.y),
            control2=Point(p1.x - dx, p1.y),
            end=p1,
        ))
    return SentimentCurve(points=points, segments=tuple(segments), floor=scale.floor)


def curve_from_samples(
    samples: Iterable[tuple[int, float]],
    stage_count: int,
    scale: CurveScale = EDITOR_SCALE,
) -> SentimentCurve:
    """Build from sparse ``(stage_index, value)`` pairs; absent stages are 0."""
    values = [0.0] * max(0, stage_count)
    for idx, value in samples:
        if 0 <= idx < stage_count:
            values[idx] = _as_float(value)
    return build_curve(values, scale)


def stage_values(document, section) -> list[float]:
    """One value per stage of ``document`` read from ``section``'s cells."""
    values = []
    for stage in document.stages:
        cell = section.cell(stage.id)
        values.append(_as_float(cell.get("value")) if cell else 0.0)
    return values


def section_curve(document, section, scale: CurveScale = EDITOR_SCALE) -> SentimentCurve:
    """Overlay curve for a sentiment/emotion row; other row types get an empty curve."""
    if section.type not in CURVE_SECTION_TYPES:
        return SentimentCurve(floor=scale.floor)
    return build_curve(stage_values(document, section), scale)
