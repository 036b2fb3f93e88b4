"""
echem_insight.insight
~~~~~~~~~~~~~~~~~~~~~
Structured findings produced by the analyzers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class InsightType(str, Enum):
    TREND = "trend"
    ANOMALY = "anomaly"
    PATTERN = "pattern"
    RECOMMENDATION = "recommendation"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Insight:
    """A single finding about a series.

    Parameters
    ----------
    type : InsightType
    severity : Severity
    title : str
        Short headline, e.g. ``"Anomalies Detected"``.
    description : str
        One-sentence explanation with the relevant numbers.
    confidence : float
        Value in ``[0, 1]``.
    affected_points : tuple[int, ...], optional
        Indices into the analysed series.
    suggestion : str, optional
        Follow-up action for the researcher.
    """

    type: InsightType
    severity: Severity
    title: str
    description: str
    confidence: float
    affected_points: Optional[tuple[int, ...]] = None
    suggestion: Optional[str] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        if self.affected_points is not None:
            object.__setattr__(
                self, "affected_points", tuple(int(i) for i in self.affected_points)
            )

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "confidence": self.confidence,
            "affected_points": (
                list(self.affected_points) if self.affected_points is not None else None
            ),
            "suggestion": self.suggestion,
        }
