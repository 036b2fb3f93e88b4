"""
echem_insight.errors
~~~~~~~~~~~~~~~~~~~~
Exception hierarchy shared by the transform and insight layers.
"""

from __future__ import annotations


class EchemInsightError(Exception):
    """Base class for every error raised by :mod:`echem_insight`."""


class InvalidSeries(EchemInsightError, ValueError):
    """A series is malformed (length mismatch, not 1-D) or too short for
    the requested operation."""


class StepConfigurationError(EchemInsightError, ValueError):
    """A transform step has an unknown kind or unusable parameters."""


class ExpressionError(StepConfigurationError):
    """A custom expression was rejected by the sandboxed evaluator."""
