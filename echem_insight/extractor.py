"""
echem_insight.extractor
~~~~~~~~~~~~~~~~~~~~~~~
High-level facade that runs every analyzer over one series and collects
the resulting insights.

Order of evaluation: data quality first, then anomaly detection, trend,
noise, the optional piecewise-trend check, and finally the analyzer for
the series' technique.  A quality problem never stops the later analyzers;
they work on the finite samples.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .analyzers import (
    analyze_cyclic_voltammetry,
    analyze_impedance,
    check_data_quality,
    estimate_noise,
)
from .anomaly import AnomalyMethod, AnomalyResult, detect_anomalies
from .detector import TrendDetector, TrendDirection
from .insight import Insight, InsightType, Severity
from .narrative import consolidate_segments, describe_segments
from .series import Series, Technique
from .settings import InsightSettings

logger = logging.getLogger(__name__)

DomainAnalyzer = Callable[[Series, InsightSettings], list[Insight]]

DOMAIN_ANALYZERS: dict[Technique, DomainAnalyzer] = {
    Technique.CV: analyze_cyclic_voltammetry,
    Technique.EIS: analyze_impedance,
}


class InsightExtractor:
    """Extract insights from a single measurement series.

    Parameters
    ----------
    series : Series
        Data to analyse, raw or pipeline-processed.
    domain : Technique or str, optional
        Technique hint; defaults to ``series.domain``.
    settings : InsightSettings, optional
        Thresholds; defaults are used when not provided.
    detector : TrendDetector, optional
        Custom trend detector.  One built from *settings* is used when not
        provided.

    Raises
    ------
    InvalidSeries
        If *series* is empty.

    Examples
    --------
    >>> from echem_insight import InsightExtractor, Series
    >>> extractor = InsightExtractor(Series(range(20), range(20)))
    >>> [i.title for i in extractor.extract_full_suite()]
    ['Increasing Trend Detected']
    """

    def __init__(
        self,
        series: Series,
        domain: "Technique | str | None" = None,
        settings: Optional[InsightSettings] = None,
        detector: Optional[TrendDetector] = None,
    ) -> None:
        series.require_points(1, "insight extraction")
        self.series = series
        self.domain = Technique.parse(domain) or series.domain
        self.settings = settings or InsightSettings()
        self.trend_detector = detector if detector is not None else TrendDetector(
            stable_slope=self.settings.stable_slope,
            max_segments=self.settings.max_segments,
            threshold=self.settings.segment_p_threshold,
        )

    # ------------------------------------------------------------------
    # Individual analyzers
    # ------------------------------------------------------------------

    def get_quality_insight(self) -> Optional[Insight]:
        return check_data_quality(self.series.y)

    def detect_anomalies(
        self, method: "AnomalyMethod | str | None" = None
    ) -> AnomalyResult:
        """Run one anomaly detector with the configured thresholds.

        Switching *method* re-runs a different pure detector over the same
        data; nothing is cached between calls.
        """
        method = AnomalyMethod(method or self.settings.anomaly_method)
        if method is AnomalyMethod.ZSCORE:
            params = {"threshold": self.settings.zscore_threshold}
        elif method is AnomalyMethod.IQR:
            params = {"multiplier": self.settings.iqr_multiplier}
        else:
            params = {
                "window": self.settings.moving_average_window,
                "threshold": self.settings.moving_average_threshold,
            }
        return detect_anomalies(self.series.y, method, **params)

    def get_anomaly_insight(self) -> Optional[Insight]:
        result = self.detect_anomalies()
        count = len(result.anomalies)
        if count == 0:
            return None
        n = len(self.series)
        share = count / n
        critical = share > self.settings.anomaly_critical_fraction
        return Insight(
            type=InsightType.ANOMALY,
            severity=Severity.CRITICAL if critical else Severity.WARNING,
            title="Anomalies Detected",
            description=(
                f"Found {count} anomalous data points ({share * 100:.1f}% of total) "
                f"using {result.method.value} detection"
            ),
            confidence=0.85,
            affected_points=result.anomalies,
            suggestion="Review measurement conditions and verify electrode stability",
        )

    def get_trend_insight(self) -> Optional[Insight]:
        trend = self.trend_detector.analyze(self.series.y)
        if trend is None or trend.direction is TrendDirection.STABLE:
            return None
        direction = trend.direction.value
        if trend.direction is TrendDirection.INCREASING:
            suggestion = "Monitor for potential degradation or fouling"
        else:
            suggestion = "Verify experimental conditions for unexpected decay"
        return Insight(
            type=InsightType.TREND,
            severity=Severity.INFO,
            title=f"{direction} Trend Detected",
            description=(
                f"Data shows a {direction.lower()} trend with slope "
                f"{trend.slope:.2e} per sample (R² = {trend.r_squared:.2f})"
            ),
            confidence=min(trend.confidence, 1.0),
            suggestion=suggestion,
        )

    def get_noise_insight(self) -> Optional[Insight]:
        noise = estimate_noise(self.series.y)
        if noise <= self.settings.noise_threshold:
            return None
        return Insight(
            type=InsightType.PATTERN,
            severity=(
                Severity.WARNING
                if noise > self.settings.noise_warning_threshold
                else Severity.INFO
            ),
            title="High Noise Level",
            description=f"Signal-to-noise ratio suggests {noise * 100:.1f}% noise",
            confidence=0.75,
            suggestion="Consider applying smoothing filter or checking electrical connections",
        )

    def get_segment_insight(self) -> Optional[Insight]:
        """Report a change of trend direction found by piecewise fitting."""
        segments = consolidate_segments(
            self.trend_detector.extract_segments(self.series.y)
        )
        if len(segments) < 2:
            return None
        breakpoints = tuple(seg["start_index"] for seg in segments[1:])
        return Insight(
            type=InsightType.PATTERN,
            severity=Severity.INFO,
            title="Trend Reversal",
            description=describe_segments(segments, metric="signal"),
            confidence=0.8,
            affected_points=breakpoints,
            suggestion="Check whether the reversal matches a change in experimental conditions",
        )

    def get_domain_insights(self) -> list[Insight]:
        if self.domain is None:
            return []
        analyzer = DOMAIN_ANALYZERS.get(self.domain)
        if analyzer is None:
            logger.debug("No domain analyzer for %s", self.domain.value)
            return []
        return analyzer(self.series, self.settings)

    # ------------------------------------------------------------------
    # Convenience bundle
    # ------------------------------------------------------------------

    def extract_full_suite(self) -> list[Insight]:
        """Run every analyzer and return all insights, quality check first."""
        insights: list[Insight] = []

        quality = self.get_quality_insight()
        if quality is not None:
            insights.append(quality)

        for produce in (self.get_anomaly_insight, self.get_trend_insight, self.get_noise_insight):
            insight = produce()
            if insight is not None:
                insights.append(insight)

        if self.settings.segmented_trends:
            segment = self.get_segment_insight()
            if segment is not None:
                insights.append(segment)

        insights.extend(self.get_domain_insights())
        return insights


def generate_insights(
    series: Series,
    domain: "Technique | str | None" = None,
    settings: Optional[InsightSettings] = None,
) -> list[Insight]:
    """Shortcut for ``InsightExtractor(series, domain, settings).extract_full_suite()``."""
    return InsightExtractor(series, domain=domain, settings=settings).extract_full_suite()
