"""
echem_insight.detector
~~~~~~~~~~~~~~~~~~~~~~
Trend estimation against sample index.

:meth:`TrendDetector.analyze` fits a single ordinary-least-squares line and
classifies its direction.  :meth:`TrendDetector.extract_segments` fits a
piecewise-linear model with a BIC-optimised segment count and breakpoints
snapped to whole sample indices or local extrema, for series whose trend
changes direction part-way through a measurement.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from itertools import product
from typing import Any, Optional

import numpy as np
import pwlf
from scipy.signal import find_peaks
from scipy.stats import linregress

logger = logging.getLogger(__name__)


class TrendDirection(str, Enum):
    INCREASING = "Increasing"
    DECREASING = "Decreasing"
    STABLE = "Stable"


@dataclass(frozen=True)
class TrendResult:
    direction: TrendDirection
    slope: float
    intercept: float
    r_squared: float

    @property
    def confidence(self) -> float:
        return abs(self.r_squared)


def _finite_samples(y: Any) -> tuple[np.ndarray, np.ndarray]:
    """Return (sample index, value) pairs for the finite entries of *y*."""
    y = np.asarray(y, dtype=float)
    index = np.flatnonzero(np.isfinite(y)).astype(float)
    return index, y[np.isfinite(y)]


class TrendDetector:
    """Linear and piecewise-linear trend estimation.

    Parameters
    ----------
    stable_slope : float
        Slopes with magnitude below this are reported as stable
        (default ``1e-10``).
    max_segments : int
        Maximum number of linear segments considered by
        :meth:`extract_segments` (default 3).
    threshold : float
        p-value threshold for segment slope significance (default 0.05).
    """

    def __init__(
        self,
        stable_slope: float = 1e-10,
        max_segments: int = 3,
        threshold: float = 0.05,
    ) -> None:
        self.stable_slope = stable_slope
        self.max_segments = max_segments
        self.threshold = threshold

    # ------------------------------------------------------------------
    # Single linear trend
    # ------------------------------------------------------------------

    def analyze(self, y: Any) -> Optional[TrendResult]:
        """OLS fit of *y* against sample index.

        Non-finite samples are left out of the fit.  Returns *None* when
        fewer than two finite samples remain.
        """
        index, values = _finite_samples(y)
        if len(values) < 2:
            return None
        fit = linregress(index, values)
        slope = float(fit.slope)
        if abs(slope) < self.stable_slope:
            direction = TrendDirection.STABLE
        elif slope > 0:
            direction = TrendDirection.INCREASING
        else:
            direction = TrendDirection.DECREASING
        return TrendResult(
            direction=direction,
            slope=slope,
            intercept=float(fit.intercept),
            r_squared=float(fit.rvalue) ** 2,
        )

    # ------------------------------------------------------------------
    # Piecewise helpers
    # ------------------------------------------------------------------

    @staticmethod
    def calculate_bic(ssr: float, n_data_points: int, n_segments: int) -> float:
        """Bayesian Information Criterion for a piecewise-linear fit.

        Parameters
        ----------
        ssr : float
            Sum of squared residuals from the fit.
        n_data_points : int
            Number of observations.
        n_segments : int
            Number of linear segments in the model.

        Returns
        -------
        float
            BIC score (lower is better).
        """
        k = (2 * n_segments) + (n_segments - 1)
        return float(n_data_points * np.log(ssr / n_data_points) + k * np.log(n_data_points))

    def find_local_extrema(self, x: np.ndarray, y: np.ndarray) -> list[float]:
        """Return the x-values at local peaks and valleys of *y*."""
        peaks, _ = find_peaks(y)
        valleys, _ = find_peaks(-y)
        extrema_indices = set(peaks) | set(valleys)
        return [x[i] for i in range(len(x)) if i in extrema_indices]

    def is_valid_fit(self, model: pwlf.PiecewiseLinFit) -> bool:
        """True when every slope change is significant and no two
        breakpoints coincide."""
        breakpoints = [int(b) for b in model.fit_breaks]
        if len(breakpoints) != len(set(breakpoints)):
            return False
        for p_val in model.p_values()[1:]:
            if not p_val <= self.threshold:
                return False
        return True

    def _find_preliminary_model(
        self, x: np.ndarray, y: np.ndarray
    ) -> tuple[Optional[pwlf.PiecewiseLinFit], int]:
        """Pass 1 – find the best segment count and rough breakpoints."""
        best_model: Optional[pwlf.PiecewiseLinFit] = None
        best_seg_count = 0

        for n_seg in range(1, self.max_segments + 1):
            if len(x) - n_seg <= 1:
                break
            try:
                model = pwlf.PiecewiseLinFit(x, y)
                model.fit(n_seg, seed=42)
                if self.is_valid_fit(model):
                    best_model = model
                    best_seg_count = n_seg
            except Exception as exc:  # noqa: BLE001
                logger.debug("Fit failed for %d segments: %s", n_seg, exc)
                continue

        return best_model, best_seg_count

    @staticmethod
    def _snap_candidates(breakpoint: float, extrema: set[float]) -> list[int]:
        """Whole-index positions a fitted breakpoint may snap to.

        An integral breakpoint stays put.  Otherwise a neighbouring local
        extremum wins; with none, both neighbours are tried.
        """
        below, above = math.floor(breakpoint), math.ceil(breakpoint)
        if below == above:
            return [below]
        for side in (below, above):
            if side in extrema:
                return [side]
        return [below, above]

    def _snap_breakpoints(
        self,
        x: np.ndarray,
        y: np.ndarray,
        prelim_model: pwlf.PiecewiseLinFit,
        seg_count: int,
    ) -> Optional[pwlf.PiecewiseLinFit]:
        """Pass 2 – snap breakpoints to whole indices or local extrema and
        keep the combination with the lowest BIC."""
        extrema = set(self.find_local_extrema(x, y))
        options = [self._snap_candidates(b, extrema) for b in prelim_model.fit_breaks]

        chosen: Optional[pwlf.PiecewiseLinFit] = None
        lowest = np.inf
        for breaks in product(*options):
            if len(set(breaks)) < len(breaks):
                continue
            model = pwlf.PiecewiseLinFit(x, y)
            try:
                ssr = model.fit_with_breaks(breaks)
            except np.linalg.LinAlgError as exc:
                logger.debug("Snapped breaks %s not fittable: %s", breaks, exc)
                continue
            bic = self.calculate_bic(ssr, len(x), seg_count)
            if bic < lowest:
                lowest, chosen = bic, model
        return chosen

    def fit_best_model(
        self, x: np.ndarray, y: np.ndarray
    ) -> Optional[pwlf.PiecewiseLinFit]:
        prelim_model, seg_count = self._find_preliminary_model(x, y)
        if prelim_model is None:
            return None
        return self._snap_breakpoints(x, y, prelim_model, seg_count)

    # ------------------------------------------------------------------
    # Piecewise trend
    # ------------------------------------------------------------------

    def extract_segments(self, y: Any) -> list[dict]:
        """Fit a piecewise-linear model of *y* against sample index.

        Returns
        -------
        list[dict]
            One dict per segment with keys ``start_index``, ``end_index``,
            ``start_value``, ``end_value``, ``slope``, ``p_value``.  Empty
            when no statistically valid fit exists.
        """
        x, values = _finite_samples(y)
        if len(values) < 3:
            return []

        model = self.fit_best_model(x, values)
        if model is None:
            return []

        p_values = model.p_values()
        slopes = np.cumsum(model.beta[1:])
        breaks = model.fit_breaks
        segments: list[dict] = []

        for i in range(len(breaks) - 1):
            start, end = breaks[i], breaks[i + 1]
            start_pos = min(np.searchsorted(x, start), len(values) - 1)
            end_pos = min(np.searchsorted(x, end), len(values) - 1)
            segments.append(
                {
                    "start_index": int(round(start)),
                    "end_index": int(round(end)),
                    "start_value": float(values[start_pos]),
                    "end_value": float(values[end_pos]),
                    "slope": float(slopes[i]),
                    "p_value": float(p_values[i]),
                }
            )

        return segments
