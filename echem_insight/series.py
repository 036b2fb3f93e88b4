"""
echem_insight.series
~~~~~~~~~~~~~~~~~~~~
Immutable paired measurement series shared by every layer of the package.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import numpy as np

from .errors import InvalidSeries


class Technique(str, Enum):
    """Electrochemical technique a series was recorded with."""

    CV = "CV"    # cyclic voltammetry: potential / current
    EIS = "EIS"  # impedance spectroscopy: frequency / impedance
    CA = "CA"    # chronoamperometry
    CP = "CP"    # chronopotentiometry
    LSV = "LSV"  # linear sweep voltammetry

    @classmethod
    def parse(cls, value: "Technique | str | None") -> Optional["Technique"]:
        """Coerce a tag (any case) to a :class:`Technique`, passing *None*
        through.  Unknown tags raise :class:`ValueError`."""
        if value is None or isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown technique: {value!r}") from None


def _frozen_array(values: Any, name: str) -> np.ndarray:
    arr = np.array(values, dtype=float)
    if arr.ndim != 1:
        raise InvalidSeries(f"{name} must be one-dimensional, got shape {arr.shape}")
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class Series:
    """Two equal-length float64 sequences plus an optional technique tag.

    Parameters
    ----------
    x : array-like
        Independent variable (potential, frequency, time, ...).
    y : array-like
        Dependent variable aligned with *x*.
    domain : Technique or str, optional
        Technique the data was recorded with.

    Both arrays are copied and made read-only; operators always return a
    new :class:`Series`.

    Raises
    ------
    InvalidSeries
        If *x* and *y* differ in length or are not 1-D.
    """

    x: np.ndarray
    y: np.ndarray
    domain: Optional[Technique] = None

    def __post_init__(self) -> None:
        x = _frozen_array(self.x, "x")
        y = _frozen_array(self.y, "y")
        if len(x) != len(y):
            raise InvalidSeries(
                f"x and y must have equal length, got {len(x)} and {len(y)}"
            )
        object.__setattr__(self, "x", x)
        object.__setattr__(self, "y", y)
        object.__setattr__(self, "domain", Technique.parse(self.domain))

    def __len__(self) -> int:
        return len(self.y)

    def require_points(self, minimum: int = 1, operation: str = "operation") -> None:
        """Raise :class:`InvalidSeries` unless the series has *minimum* points."""
        if len(self) < minimum:
            raise InvalidSeries(
                f"{operation} requires at least {minimum} point(s), got {len(self)}"
            )

    def replace(self, x: Any = None, y: Any = None) -> "Series":
        """Return a new series with *x* and/or *y* swapped out, same domain."""
        return Series(
            self.x if x is None else x,
            self.y if y is None else y,
            domain=self.domain,
        )

    def equals(self, other: "Series") -> bool:
        """Bit-for-bit comparison, treating NaNs in the same slot as equal."""
        return (
            isinstance(other, Series)
            and self.domain == other.domain
            and np.array_equal(self.x, other.x, equal_nan=True)
            and np.array_equal(self.y, other.y, equal_nan=True)
        )

    def to_dict(self) -> dict:
        return {
            "x": self.x.tolist(),
            "y": self.y.tolist(),
            "domain": self.domain.value if self.domain is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Series":
        return cls(data.get("x", []), data.get("y", []), domain=data.get("domain"))
