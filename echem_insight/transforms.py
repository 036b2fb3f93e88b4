"""
echem_insight.transforms
~~~~~~~~~~~~~~~~~~~~~~~~
Pure numeric operators, one per :class:`StepKind`.

Every operator maps a :class:`~echem_insight.series.Series` to a new
``Series`` and never mutates its input.  ``derivative``, ``resample`` and
``fft`` may change the number of points; every other operator preserves it.

Operators can be called directly::

    from echem_insight.series import Series
    from echem_insight import transforms

    smoothed = transforms.smooth(Series(x, y), window=7)

or through :func:`apply_step`, which is what the pipeline uses and which
accepts the serialized parameter mapping of a step.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Mapping, Optional

import numpy as np
from scipy.integrate import cumulative_trapezoid
from scipy.interpolate import CubicSpline

from .errors import ExpressionError, StepConfigurationError
from .expression import compile_expression
from .series import Series

# Non-positive inputs to ``log`` are floored to this value.
LOG_FLOOR = 1e-10

FILTER_TYPES = ("lowpass", "highpass")
INTERPOLATION_METHODS = ("linear", "cubic")

WINDOW_FUNCTIONS: dict[str, Callable[[int], np.ndarray]] = {
    "rectangular": np.ones,
    "hamming": np.hamming,
    "hanning": np.hanning,
    "blackman": np.blackman,
}


class StepKind(str, Enum):
    NORMALIZE = "normalize"
    STANDARDIZE = "standardize"
    SMOOTH = "smooth"
    DERIVATIVE = "derivative"
    INTEGRAL = "integral"
    BASELINE = "baseline"
    FILTER = "filter"
    RESAMPLE = "resample"
    INTERPOLATE = "interpolate"
    FFT = "fft"
    ABS = "abs"
    LOG = "log"
    EXP = "exp"
    SQRT = "sqrt"
    CUSTOM = "custom"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            key = value.strip().lower()
            if key in ("spectral-transform", "spectral_transform", "spectral"):
                return cls.FFT
            for member in cls:
                if member.value == key:
                    return member
        return None

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    StepKind.NORMALIZE: "Normalize (0-1)",
    StepKind.STANDARDIZE: "Standardize (Z-score)",
    StepKind.SMOOTH: "Smooth (Moving Avg)",
    StepKind.DERIVATIVE: "Derivative (dy/dx)",
    StepKind.INTEGRAL: "Integral",
    StepKind.BASELINE: "Baseline Correction",
    StepKind.FILTER: "Filter",
    StepKind.RESAMPLE: "Resample",
    StepKind.INTERPOLATE: "Interpolate",
    StepKind.FFT: "FFT",
    StepKind.ABS: "Absolute Value",
    StepKind.LOG: "Logarithm",
    StepKind.EXP: "Exponential",
    StepKind.SQRT: "Square Root",
    StepKind.CUSTOM: "Custom Expression",
}


# ------------------------------------------------------------------
# Scaling
# ------------------------------------------------------------------


def normalize(series: Series) -> Series:
    """Rescale y linearly onto ``[0, 1]``; a constant series maps to zeros."""
    series.require_points(1, "normalize")
    y = series.y
    lo, hi = np.min(y), np.max(y)
    span = hi - lo
    if span == 0:
        return series.replace(y=np.zeros_like(y))
    return series.replace(y=(y - lo) / span)


def standardize(series: Series) -> Series:
    """Shift and scale y to zero mean and unit (population) variance.

    A zero-variance series maps to zeros.
    """
    series.require_points(1, "standardize")
    y = series.y
    mean = np.mean(y)
    std = np.sqrt(np.mean((y - mean) ** 2))
    if std == 0:
        return series.replace(y=np.zeros_like(y))
    return series.replace(y=(y - mean) / std)


# ------------------------------------------------------------------
# Smoothing and filtering
# ------------------------------------------------------------------


def _moving_average(y: np.ndarray, window: int) -> np.ndarray:
    half = window // 2
    n = len(y)
    out = np.empty(n, dtype=float)
    for i in range(n):
        start = max(0, i - half)
        end = min(n, i + half + 1)
        out[i] = np.mean(y[start:end])
    return out


def smooth(series: Series, window: int = 5) -> Series:
    """Centred moving average over ``window // 2`` samples on each side.

    An odd *window* averages exactly *window* samples; an even one covers
    ``window + 1``, so ``window=4`` smooths like ``window=5``.  Windows
    shrink at the boundaries rather than wrapping or padding, so the first
    and last points average over fewer samples.
    """
    series.require_points(1, "smooth")
    return series.replace(y=_moving_average(series.y, int(window)))


def filter_signal(
    series: Series, cutoff: float = 0.1, type: str = "lowpass"
) -> Series:
    """Moving-average low-pass (window ``max(3, floor(1 / cutoff))``) or its
    complement, ``y - lowpass(y)``, as a high-pass."""
    series.require_points(1, "filter")
    window = max(3, int(np.floor(1.0 / cutoff)))
    lowpass = _moving_average(series.y, window)
    if type == "lowpass":
        return series.replace(y=lowpass)
    return series.replace(y=series.y - lowpass)


# ------------------------------------------------------------------
# Calculus
# ------------------------------------------------------------------


def derivative(series: Series) -> Series:
    """Forward first difference evaluated at interval midpoints.

    Returns ``n - 1`` points.  Intervals where ``x[i + 1] == x[i]`` yield a
    slope of ``0`` rather than infinity.
    """
    series.require_points(1, "derivative")
    dx = np.diff(series.x)
    dy = np.diff(series.y)
    slope = np.zeros_like(dy)
    np.divide(dy, dx, out=slope, where=dx != 0)
    midpoints = (series.x[1:] + series.x[:-1]) / 2
    return series.replace(x=midpoints, y=slope)


def integral(series: Series) -> Series:
    """Cumulative trapezoidal integral of y over x, starting at ``0``."""
    series.require_points(1, "integral")
    return series.replace(y=cumulative_trapezoid(series.y, series.x, initial=0))


# ------------------------------------------------------------------
# Baseline
# ------------------------------------------------------------------


def baseline(series: Series, order: int = 1) -> Series:
    """Subtract a least-squares polynomial baseline fitted against sample
    index.

    ``order=0`` subtracts the mean, ``order=1`` a straight line.  Higher
    orders are fitted exactly as well; the degree is capped at ``n - 1``.
    """
    series.require_points(1, "baseline")
    y = series.y
    order = int(order)
    if order == 0:
        return series.replace(y=y - np.mean(y))
    index = np.arange(len(y), dtype=float)
    degree = min(order, len(y) - 1)
    coeffs = np.polynomial.polynomial.polyfit(index, y, degree)
    fitted = np.polynomial.polynomial.polyval(index, coeffs)
    return series.replace(y=y - fitted)


# ------------------------------------------------------------------
# Resampling and gap filling
# ------------------------------------------------------------------


def _sorted_by_x(x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    order = np.argsort(x, kind="stable")
    return x[order], y[order]


def resample(series: Series, points: int = 100) -> Series:
    """Piecewise-linear resampling onto *points* evenly spaced x-values
    spanning ``[min(x), max(x)]``.

    Samples are ordered by x before interpolating; targets outside the data
    clamp to the nearest endpoint value.
    """
    series.require_points(1, "resample")
    points = int(points)
    xs, ys = _sorted_by_x(series.x, series.y)
    grid = np.linspace(xs[0], xs[-1], points)
    return series.replace(x=grid, y=np.interp(grid, xs, ys))


def interpolate(series: Series, method: str = "linear") -> Series:
    """Fill non-finite y samples from their finite neighbours over x.

    ``linear`` joins neighbours with straight lines, ``cubic`` fits a cubic
    spline through every finite sample.  Gaps before the first or after the
    last finite sample take that endpoint's value.  With no gaps, or no
    finite samples at all, y is returned unchanged.
    """
    series.require_points(1, "interpolate")
    y = series.y.copy()
    missing = ~np.isfinite(y)
    if not missing.any() or missing.all():
        return series.replace(y=y)

    known_x, known_y = _sorted_by_x(series.x[~missing], y[~missing])
    known_x, first = np.unique(known_x, return_index=True)
    known_y = known_y[first]
    targets = series.x[missing]

    if method == "cubic" and len(known_x) >= 2:
        spline = CubicSpline(known_x, known_y)
        clamped = np.clip(targets, known_x[0], known_x[-1])
        filled = spline(clamped)
        filled[targets < known_x[0]] = known_y[0]
        filled[targets > known_x[-1]] = known_y[-1]
    else:
        filled = np.interp(targets, known_x, known_y)
    y[missing] = filled
    return series.replace(y=y)


# ------------------------------------------------------------------
# Spectral
# ------------------------------------------------------------------


def fft(series: Series, window: str = "rectangular") -> Series:
    """Discrete Fourier magnitude spectrum.

    Returns ``floor(n / 2)`` points.  The frequency axis is ``k / span``
    where *span* is ``|x[-1] - x[0]|``, so it follows the recorded x-range
    instead of assuming unit sampling; a zero span falls back to cycles per
    sample (``k / n``).  Magnitudes are normalised by *n*.  An optional
    window function is applied to y first.
    """
    series.require_points(1, "fft")
    n = len(series)
    weighted = series.y * WINDOW_FUNCTIONS[window](n)
    magnitudes = np.abs(np.fft.rfft(weighted))[: n // 2] / n
    k = np.arange(n // 2, dtype=float)
    span = abs(series.x[-1] - series.x[0])
    frequencies = k / span if span != 0 else k / n
    return series.replace(x=frequencies, y=magnitudes)


# ------------------------------------------------------------------
# Elementwise
# ------------------------------------------------------------------


def absolute(series: Series) -> Series:
    return series.replace(y=np.abs(series.y))


def log(series: Series) -> Series:
    """Natural log; non-positive inputs are floored to :data:`LOG_FLOOR`."""
    return series.replace(y=np.log(np.where(series.y <= 0, LOG_FLOOR, series.y)))


def exp(series: Series) -> Series:
    with np.errstate(over="ignore"):
        return series.replace(y=np.exp(series.y))


def sqrt(series: Series) -> Series:
    """Square root of the magnitude."""
    return series.replace(y=np.sqrt(np.abs(series.y)))


def custom(series: Series, expression: str = "") -> Series:
    """Evaluate a sandboxed arithmetic *expression* of ``x`` and ``y`` per
    sample.  See :mod:`echem_insight.expression`."""
    compiled = compile_expression(expression)
    return series.replace(y=compiled(series.x, series.y))


# ------------------------------------------------------------------
# Registry
# ------------------------------------------------------------------

OPERATORS: dict[StepKind, Callable[..., Series]] = {
    StepKind.NORMALIZE: normalize,
    StepKind.STANDARDIZE: standardize,
    StepKind.SMOOTH: smooth,
    StepKind.DERIVATIVE: derivative,
    StepKind.INTEGRAL: integral,
    StepKind.BASELINE: baseline,
    StepKind.FILTER: filter_signal,
    StepKind.RESAMPLE: resample,
    StepKind.INTERPOLATE: interpolate,
    StepKind.FFT: fft,
    StepKind.ABS: absolute,
    StepKind.LOG: log,
    StepKind.EXP: exp,
    StepKind.SQRT: sqrt,
    StepKind.CUSTOM: custom,
}

DEFAULT_PARAMETERS: dict[StepKind, dict[str, Any]] = {
    StepKind.SMOOTH: {"window": 5},
    StepKind.BASELINE: {"order": 1},
    StepKind.FILTER: {"cutoff": 0.1, "type": "lowpass"},
    StepKind.RESAMPLE: {"points": 100},
    StepKind.INTERPOLATE: {"method": "linear"},
    StepKind.FFT: {"window": "rectangular"},
    StepKind.CUSTOM: {"expression": ""},
}


def parse_kind(kind: "StepKind | str") -> StepKind:
    """Resolve *kind* to a :class:`StepKind` or raise
    :class:`StepConfigurationError`."""
    try:
        return StepKind(kind)
    except ValueError:
        raise StepConfigurationError(f"Unknown step kind: {kind!r}") from None


def default_parameters(kind: "StepKind | str") -> dict[str, Any]:
    return dict(DEFAULT_PARAMETERS.get(parse_kind(kind), {}))


def _require_int(params: Mapping[str, Any], name: str, minimum: int) -> None:
    value = params[name]
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not float(value).is_integer():
        raise StepConfigurationError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise StepConfigurationError(f"{name} must be >= {minimum}, got {value!r}")


def _require_choice(params: Mapping[str, Any], name: str, choices) -> None:
    if params[name] not in choices:
        raise StepConfigurationError(
            f"{name} must be one of {', '.join(choices)}, got {params[name]!r}"
        )


def validate_parameters(
    kind: "StepKind | str", parameters: Optional[Mapping[str, Any]] = None
) -> dict[str, Any]:
    """Merge *parameters* over the defaults for *kind* and validate them.

    Returns
    -------
    dict
        The complete, validated parameter mapping.

    Raises
    ------
    StepConfigurationError
        For unknown kinds, unknown parameter names or out-of-range values.
    ExpressionError
        For a non-empty ``custom`` expression the sandbox rejects.
    """
    kind = parse_kind(kind)
    defaults = DEFAULT_PARAMETERS.get(kind, {})
    merged = {**defaults, **dict(parameters or {})}
    unknown = set(merged) - set(defaults)
    if unknown:
        raise StepConfigurationError(
            f"Unknown parameter(s) for {kind.value}: {', '.join(sorted(unknown))}"
        )

    if kind is StepKind.SMOOTH:
        _require_int(merged, "window", 1)
    elif kind is StepKind.BASELINE:
        _require_int(merged, "order", 0)
    elif kind is StepKind.RESAMPLE:
        _require_int(merged, "points", 1)
    elif kind is StepKind.FILTER:
        cutoff = merged["cutoff"]
        if isinstance(cutoff, bool) or not isinstance(cutoff, (int, float)) or not cutoff > 0:
            raise StepConfigurationError(f"cutoff must be a positive number, got {cutoff!r}")
        _require_choice(merged, "type", FILTER_TYPES)
    elif kind is StepKind.INTERPOLATE:
        _require_choice(merged, "method", INTERPOLATION_METHODS)
    elif kind is StepKind.FFT:
        _require_choice(merged, "window", tuple(WINDOW_FUNCTIONS))
    elif kind is StepKind.CUSTOM:
        expression = merged["expression"]
        if not isinstance(expression, str):
            raise ExpressionError(f"expression must be a string, got {expression!r}")
        if expression.strip():
            compile_expression(expression)
    return merged


def apply_step(
    kind: "StepKind | str",
    series: Series,
    parameters: Optional[Mapping[str, Any]] = None,
) -> Series:
    """Validate *parameters* for *kind* and apply the operator to *series*.

    Raises
    ------
    StepConfigurationError
        If the kind or parameters are unusable (including an empty custom
        expression).
    InvalidSeries
        If *series* is too short for the operator.
    """
    kind = parse_kind(kind)
    params = validate_parameters(kind, parameters)
    return OPERATORS[kind](series, **params)
