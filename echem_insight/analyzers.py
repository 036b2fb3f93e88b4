"""
echem_insight.analyzers
~~~~~~~~~~~~~~~~~~~~~~~
Peak finding, noise estimation, data-quality checks and the technique
specific analyzers (cyclic voltammetry, impedance spectroscopy).

All analyzers tolerate non-finite samples: comparisons against NaN are
false, so such samples never become peaks, and aggregate statistics are
taken over the finite values only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from .insight import Insight, InsightType, Severity
from .narrative import format_si
from .series import Series
from .settings import InsightSettings

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Peaks
# ------------------------------------------------------------------


@dataclass(frozen=True)
class Peak:
    index: int
    value: float
    prominence: float


def find_peaks(y: Any, min_prominence: float = 0.0) -> list[Peak]:
    """Strict local maxima of *y*.

    Index ``i`` (``0 < i < n - 1``) is a peak when it is greater than both
    neighbours.  Its prominence is the smaller of the two rises; peaks with
    prominence below *min_prominence* are dropped.
    """
    y = np.asarray(y, dtype=float)
    if len(y) < 3:
        return []
    centre, left, right = y[1:-1], y[:-2], y[2:]
    with np.errstate(invalid="ignore"):
        is_peak = (centre > left) & (centre > right)
        prominence = np.minimum(centre - left, centre - right)
    return [
        Peak(index=int(i + 1), value=float(centre[i]), prominence=float(prominence[i]))
        for i in np.flatnonzero(is_peak)
        if prominence[i] >= min_prominence
    ]


@dataclass(frozen=True)
class Reversibility:
    """Oxidation / reduction peak pairing for a voltammogram.

    ``peak_separation_mv`` is *None* when either peak type is missing, in
    which case ``is_reversible`` is *None* as well.
    """

    oxidation_index: Optional[int]
    reduction_index: Optional[int]
    peak_separation_mv: Optional[float]
    is_reversible: Optional[bool]


PEAK_PAIRINGS = ("first", "strongest")


def check_reversibility(
    potential: Any,
    current: Any,
    min_prominence: float = 0.1,
    limit_mv: float = 100.0,
    scale_mv: float = 1000.0,
    pairing: str = "first",
) -> Reversibility:
    """Pair an anodic with a cathodic peak and compare their potential
    separation to *limit_mv*.

    Anodic peaks are maxima of *current*, cathodic peaks maxima of
    ``-current``.  With ``pairing="first"`` the earliest peak of each kind
    is used; ``"strongest"`` takes the largest of each kind instead.
    *scale_mv* converts potential units to millivolts.
    """
    if pairing not in PEAK_PAIRINGS:
        raise ValueError(f"pairing must be one of {', '.join(PEAK_PAIRINGS)}, got {pairing!r}")
    potential = np.asarray(potential, dtype=float)
    current = np.asarray(current, dtype=float)
    oxidation = find_peaks(current, min_prominence)
    reduction = find_peaks(-current, min_prominence)
    if not oxidation or not reduction:
        return Reversibility(
            oxidation_index=oxidation[0].index if oxidation else None,
            reduction_index=reduction[0].index if reduction else None,
            peak_separation_mv=None,
            is_reversible=None,
        )
    if pairing == "strongest":
        ox = max(oxidation, key=lambda p: p.value)
        red = max(reduction, key=lambda p: p.value)
    else:
        ox, red = oxidation[0], reduction[0]
    separation = abs(potential[ox.index] - potential[red.index]) * scale_mv
    return Reversibility(
        oxidation_index=ox.index,
        reduction_index=red.index,
        peak_separation_mv=float(separation),
        is_reversible=bool(separation <= limit_mv),
    )


# ------------------------------------------------------------------
# Generic analyzers
# ------------------------------------------------------------------


def estimate_noise(y: Any) -> float:
    """Mean absolute first difference divided by the total range.

    Computed over the finite samples; returns ``0`` for fewer than three
    samples or a zero range.
    """
    y = np.asarray(y, dtype=float)
    y = y[np.isfinite(y)]
    if len(y) < 3:
        return 0.0
    span = np.max(y) - np.min(y)
    if span == 0:
        return 0.0
    return float(np.mean(np.abs(np.diff(y))) / span)


def check_data_quality(y: Any) -> Optional[Insight]:
    """Critical insight for non-finite values, warning for an all-zero
    series, otherwise *None*."""
    y = np.asarray(y, dtype=float)
    invalid = np.flatnonzero(~np.isfinite(y))
    if len(invalid):
        n_nan = int(np.isnan(y).sum())
        return Insight(
            type=InsightType.ANOMALY,
            severity=Severity.CRITICAL,
            title="Data Quality Issue",
            description=(
                f"Dataset contains {len(invalid)} invalid value(s) "
                f"({n_nan} NaN, {len(invalid) - n_nan} infinite)"
            ),
            confidence=1.0,
            affected_points=tuple(invalid),
            suggestion="Check measurement equipment and data acquisition settings",
        )
    if len(y) and np.all(y == 0):
        return Insight(
            type=InsightType.ANOMALY,
            severity=Severity.WARNING,
            title="All Zero Values",
            description="All data points are zero - possible measurement failure",
            confidence=1.0,
            suggestion="Verify connections and restart measurement",
        )
    return None


# ------------------------------------------------------------------
# Technique specific
# ------------------------------------------------------------------


def analyze_cyclic_voltammetry(
    series: Series, settings: Optional[InsightSettings] = None
) -> list[Insight]:
    """Redox peak detection and reversibility assessment.

    *series.x* is the potential, *series.y* the current.
    """
    settings = settings or InsightSettings()
    insights: list[Insight] = []
    oxidation = find_peaks(series.y, settings.peak_min_prominence)
    reduction = find_peaks(-series.y, settings.peak_min_prominence)

    if oxidation or reduction:
        points = sorted(p.index for p in oxidation + reduction)
        insights.append(
            Insight(
                type=InsightType.PATTERN,
                severity=Severity.INFO,
                title="Redox Peaks Detected",
                description=(
                    f"Identified {len(oxidation)} oxidation and {len(reduction)} "
                    f"reduction peak(s) in cyclic voltammogram"
                ),
                confidence=0.9,
                affected_points=tuple(points),
                suggestion="Analyze peak potentials and currents for reversibility assessment",
            )
        )

    result = check_reversibility(
        series.x,
        series.y,
        min_prominence=settings.peak_min_prominence,
        limit_mv=settings.reversibility_limit_mv,
        scale_mv=settings.potential_scale_mv,
        pairing=settings.reversibility_pairing,
    )
    if result.is_reversible is False:
        insights.append(
            Insight(
                type=InsightType.RECOMMENDATION,
                severity=Severity.INFO,
                title="Quasi-reversible or Irreversible Process",
                description=f"Peak separation: {result.peak_separation_mv:.0f} mV",
                confidence=0.75,
                affected_points=(result.oxidation_index, result.reduction_index),
                suggestion="Consider kinetic analysis or varying scan rate",
            )
        )
    return insights


def analyze_impedance(
    series: Series, settings: Optional[InsightSettings] = None
) -> list[Insight]:
    """Flag a wide impedance range when ``max / min`` exceeds the configured
    ratio.  *series.y* holds impedance magnitudes."""
    settings = settings or InsightSettings()
    z = series.y[np.isfinite(series.y)]
    if len(z) == 0:
        return []
    z_min, z_max = float(np.min(z)), float(np.max(z))
    if z_min <= 0:
        logger.debug("Skipping impedance range check: minimum %s is not positive", z_min)
        return []
    ratio = z_max / z_min
    if ratio <= settings.eis_range_ratio:
        return []
    return [
        Insight(
            type=InsightType.PATTERN,
            severity=Severity.INFO,
            title="Wide Impedance Range",
            description=(
                f"Impedance varies by {ratio:.1f}x across frequency spectrum "
                f"({format_si(z_min, 'Ω')} to {format_si(z_max, 'Ω')})"
            ),
            confidence=0.9,
            suggestion="Typical for systems with multiple time constants",
        )
    ]
