"""
echem_insight
~~~~~~~~~~~~~
Numeric analysis core for electrochemistry measurement series: a
reproducible transform pipeline and an insight engine that reports
anomalies, trends, noise and technique-specific findings.

Two calling paths are supported:

Path 1 – transform, then analyse:

    from echem_insight import InsightExtractor, Pipeline, Series

    pipeline = Pipeline()
    pipeline.add("baseline", {"order": 1})
    pipeline.add("smooth", {"window": 5})
    result = pipeline.execute(Series(potential, current, domain="CV"))
    if result.ok:
        insights = InsightExtractor(result.series).extract_full_suite()

Path 2 – analyse raw data directly:

    from echem_insight import Series, generate_insights

    insights = generate_insights(Series(frequency, impedance), domain="EIS")

Pipelines serialize with ``Pipeline.to_json()`` / ``Pipeline.from_json()``;
re-running a restored pipeline on the same input reproduces its output
exactly.
"""

from .anomaly import (
    AnomalyMethod,
    AnomalyResult,
    detect_anomalies,
    detect_iqr,
    detect_moving_average,
    detect_zscore,
)
from .detector import TrendDetector, TrendDirection, TrendResult
from .errors import (
    EchemInsightError,
    ExpressionError,
    InvalidSeries,
    StepConfigurationError,
)
from .extractor import InsightExtractor, generate_insights
from .insight import Insight, InsightType, Severity
from .narrative import build_recommendation_prompt, summarize_insights
from .pipeline import (
    Pipeline,
    PipelineRecord,
    PipelineResult,
    StepIssue,
    TransformStep,
    load_pipeline,
    save_pipeline,
)
from .series import Series, Technique
from .settings import InsightSettings, load_settings
from .transforms import StepKind, apply_step

__all__ = [
    "AnomalyMethod",
    "AnomalyResult",
    "detect_anomalies",
    "detect_iqr",
    "detect_moving_average",
    "detect_zscore",
    "TrendDetector",
    "TrendDirection",
    "TrendResult",
    "EchemInsightError",
    "ExpressionError",
    "InvalidSeries",
    "StepConfigurationError",
    "InsightExtractor",
    "generate_insights",
    "Insight",
    "InsightType",
    "Severity",
    "build_recommendation_prompt",
    "summarize_insights",
    "Pipeline",
    "PipelineRecord",
    "PipelineResult",
    "StepIssue",
    "TransformStep",
    "load_pipeline",
    "save_pipeline",
    "Series",
    "Technique",
    "InsightSettings",
    "load_settings",
    "StepKind",
    "apply_step",
]

__version__ = "0.1.0"
