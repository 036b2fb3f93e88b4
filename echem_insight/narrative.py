"""
echem_insight.narrative
~~~~~~~~~~~~~~~~~~~~~~~
Turn structured analysis output into plain text.

* :func:`describe_segments` narrates a piecewise-linear trend.
* :func:`summarize_insights` renders insights as a numbered list.
* :func:`build_recommendation_prompt` assembles the context handed to an
  external recommendation service.  Sending it is the caller's job.
"""

from __future__ import annotations

import math
from typing import Iterable, Optional

from .insight import Insight
from .series import Technique

# ------------------------------------------------------------------
# Constants
# ------------------------------------------------------------------

_SI_PREFIXES = {
    -12: "p",
    -9: "n",
    -6: "µ",
    -3: "m",
    0: "",
    3: "k",
    6: "M",
    9: "G",
}

_TRANSITION_PREFIXES = [
    "Trend then shifted,",
    "This trajectory pivoted again,",
    "Then,",
]

_SEVERITY_TAGS = {
    "info": "INFO",
    "warning": "WARNING",
    "critical": "CRITICAL",
}


# ------------------------------------------------------------------
# Formatting helpers
# ------------------------------------------------------------------


def format_si(value: float, unit: str = "") -> str:
    """Format *value* with an engineering SI prefix.

    Examples
    --------
    >>> format_si(0.0000152, "A")
    '15.20 µA'
    >>> format_si(2_500, "Ω")
    '2.50 kΩ'
    >>> format_si(0)
    '0.00'
    """
    value = float(value)
    if value == 0 or not math.isfinite(value):
        exponent = 0
    else:
        exponent = 3 * int(math.floor(math.log10(abs(value)) / 3))
        exponent = max(min(exponent, max(_SI_PREFIXES)), min(_SI_PREFIXES))
    prefix = _SI_PREFIXES[exponent]
    suffix = f" {prefix}{unit}" if prefix or unit else ""
    return f"{value / 10 ** exponent:.2f}{suffix}"


# ------------------------------------------------------------------
# Segment consolidation
# ------------------------------------------------------------------


def consolidate_segments(segments: list[dict]) -> list[dict]:
    """Merge consecutive segments that share the same slope direction.

    Two segments are merged when both slopes are non-negative or both
    are negative.  The merged segment spans from the first ``start_index``
    to the last ``end_index``, and its slope is recomputed as the
    rise-over-run of the combined span.

    Parameters
    ----------
    segments : list[dict]
        Raw segment list as returned by
        :meth:`TrendDetector.extract_segments`.

    Returns
    -------
    list[dict]
        Consolidated segment list (may be shorter than *segments*).
    """
    if not segments:
        return []

    # copy so the caller's dicts stay untouched
    consolidated = [dict(segments[0])]

    for seg in segments[1:]:
        last = consolidated[-1]
        same_direction = (last["slope"] >= 0 and seg["slope"] >= 0) or (
            last["slope"] < 0 and seg["slope"] < 0
        )
        if same_direction:
            last["end_index"] = seg["end_index"]
            last["end_value"] = seg["end_value"]
            duration = last["end_index"] - last["start_index"]
            last["slope"] = (
                (last["end_value"] - last["start_value"]) / duration
                if duration != 0
                else 0.0
            )
        else:
            consolidated.append(dict(seg))

    return consolidated


def describe_segments(segments: list[dict], metric: str = "signal") -> str:
    """Narrate consolidated *segments* in a few sentences.

    Returns an empty string for an empty list.
    """
    segments = consolidate_segments(segments)
    if not segments:
        return ""

    if len(segments) == 1:
        seg = segments[0]
        direction = "increased" if seg["end_value"] > seg["start_value"] else "decreased"
        return (
            f"Between samples {seg['start_index']} and {seg['end_index']}, "
            f"the {metric} {direction} steadily."
        )

    narrative: list[str] = []
    for i, seg in enumerate(segments):
        direction = "an upward" if seg["slope"] > 0 else "a downward"
        if i == 0:
            narrative.append(
                f"From sample {seg['start_index']} to {seg['end_index']}, "
                f"the {metric} showed {direction} trend."
            )
            continue

        prev_slope = segments[i - 1]["slope"]
        prefix = _TRANSITION_PREFIXES[min(i - 1, len(_TRANSITION_PREFIXES) - 1)]
        if prev_slope > 0 and seg["slope"] < 0:
            transition = (
                f"reaching a peak at sample {seg['start_index']} "
                f"before reversing into a decline."
            )
        elif prev_slope < 0 and seg["slope"] > 0:
            transition = (
                f"hitting a low at sample {seg['start_index']} "
                f"followed by a recovery."
            )
        else:
            transition = f"continuing {direction} path through sample {seg['end_index']}."
        narrative.append(f"{prefix} {transition}")

    return " ".join(narrative)


# ------------------------------------------------------------------
# Insight text
# ------------------------------------------------------------------


def summarize_insights(insights: Iterable[Insight]) -> str:
    """One numbered line per insight: ``1. [WARNING] Title: description``."""
    lines = [
        f"{i}. [{_SEVERITY_TAGS[ins.severity.value]}] {ins.title}: {ins.description}"
        for i, ins in enumerate(insights, start=1)
    ]
    return "\n".join(lines)


def build_recommendation_prompt(
    technique: "Technique | str | None", insights: Iterable[Insight]
) -> str:
    """Prompt context asking an electrochemistry assistant for
    recommendations based on *insights*."""
    technique = Technique.parse(technique)
    data_type = technique.value if technique is not None else "unspecified"
    summary = summarize_insights(insights) or "No notable findings."
    return (
        "You are an electrochemistry expert. Analyze the following data "
        "insights and provide specific recommendations:\n\n"
        f"Data Type: {data_type}\n\n"
        f"Insights:\n{summary}\n\n"
        "Provide 3-5 specific, actionable recommendations for improving the "
        "experiment or interpreting the results. Focus on practical advice."
    )
