"""
echem_insight.anomaly
~~~~~~~~~~~~~~~~~~~~~
Stateless outlier detectors over the dependent variable of a series.

Each detector returns an :class:`AnomalyResult` with one score per input
sample.  Non-finite samples get a NaN score and are never flagged; the
statistics are computed over the finite samples only.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np


class AnomalyMethod(str, Enum):
    ZSCORE = "zscore"
    IQR = "iqr"
    MOVING_AVERAGE = "moving_average"


@dataclass(frozen=True)
class AnomalyResult:
    """Detector output.

    Attributes
    ----------
    anomalies : tuple[int, ...]
        Sorted, unique indices of flagged samples.
    scores : np.ndarray
        One score per input sample.
    threshold : float
        Score above which a sample is flagged; ``anomalies`` holds exactly
        the indices whose score exceeds it.
    method : AnomalyMethod
    """

    anomalies: tuple[int, ...]
    scores: np.ndarray
    threshold: float
    method: AnomalyMethod

    def to_dict(self) -> dict:
        return {
            "anomalies": list(self.anomalies),
            "scores": self.scores.tolist(),
            "threshold": self.threshold,
            "method": self.method.value,
        }


def _flagged(mask: np.ndarray) -> tuple[int, ...]:
    return tuple(int(i) for i in np.flatnonzero(mask))


def detect_zscore(y: Any, threshold: float = 3.0) -> AnomalyResult:
    """Flag samples whose ``|y - mean| / std`` exceeds *threshold*.

    Uses the population standard deviation.  A zero standard deviation
    yields all-zero scores and no anomalies.
    """
    y = np.asarray(y, dtype=float)
    finite = np.isfinite(y)
    scores = np.full(len(y), np.nan)
    if finite.any():
        values = y[finite]
        mean = np.mean(values)
        std = np.sqrt(np.mean((values - mean) ** 2))
        scores[finite] = 0.0 if std == 0 else np.abs(values - mean) / std
    with np.errstate(invalid="ignore"):
        mask = scores > threshold
    return AnomalyResult(_flagged(mask), scores, float(threshold), AnomalyMethod.ZSCORE)


def detect_iqr(y: Any, multiplier: float = 1.5) -> AnomalyResult:
    """Tukey fences from index-based quartiles.

    ``Q1`` and ``Q3`` are the sorted values at ``floor(0.25 * n)`` and
    ``floor(0.75 * n)``.  The score is the distance beyond the nearest fence
    of ``[Q1 - k * iqr, Q3 + k * iqr]`` divided by ``iqr`` (by ``1`` when
    ``iqr`` is zero).  Samples inside the fences score ``0`` and the
    reported threshold is ``0``.
    """
    y = np.asarray(y, dtype=float)
    finite = np.isfinite(y)
    scores = np.full(len(y), np.nan)
    mask = np.zeros(len(y), dtype=bool)
    if finite.any():
        ordered = np.sort(y[finite])
        n = len(ordered)
        q1 = ordered[int(np.floor(n * 0.25))]
        q3 = ordered[int(np.floor(n * 0.75))]
        iqr = q3 - q1
        lower = q1 - multiplier * iqr
        upper = q3 + multiplier * iqr
        scale = iqr if iqr != 0 else 1.0
        values = y[finite]
        beyond = np.maximum(np.maximum(lower - values, values - upper), 0.0)
        scores[finite] = beyond / scale
        mask[finite] = scores[finite] > 0.0
    return AnomalyResult(_flagged(mask), scores, 0.0, AnomalyMethod.IQR)


def detect_moving_average(
    y: Any, window: int = 10, threshold: float = 2.0
) -> AnomalyResult:
    """Flag samples deviating from a trailing window's mean.

    The window for index ``i`` covers ``y[max(0, i - window) : i + 1]``; it
    grows from the start of the series and never wraps.  A zero window
    standard deviation is treated as ``1``.
    """
    y = np.asarray(y, dtype=float)
    n = len(y)
    scores = np.full(n, np.nan)
    for i in range(n):
        if not np.isfinite(y[i]):
            continue
        chunk = y[max(0, i - window) : i + 1]
        chunk = chunk[np.isfinite(chunk)]
        mean = np.mean(chunk)
        std = np.sqrt(np.mean((chunk - mean) ** 2))
        scores[i] = abs(y[i] - mean) / (std if std != 0 else 1.0)
    with np.errstate(invalid="ignore"):
        mask = scores > threshold
    return AnomalyResult(
        _flagged(mask), scores, float(threshold), AnomalyMethod.MOVING_AVERAGE
    )


def detect_anomalies(
    y: Any, method: "AnomalyMethod | str" = AnomalyMethod.ZSCORE, **params: Any
) -> AnomalyResult:
    """Dispatch to the detector for *method*, forwarding keyword parameters."""
    method = AnomalyMethod(method)
    if method is AnomalyMethod.ZSCORE:
        return detect_zscore(y, **params)
    if method is AnomalyMethod.IQR:
        return detect_iqr(y, **params)
    return detect_moving_average(y, **params)
