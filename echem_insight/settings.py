"""
echem_insight.settings
~~~~~~~~~~~~~~~~~~~~~~
Analyzer thresholds, validated with pydantic and loadable from YAML.

Values resolve as environment variables (``ECHEM_INSIGHT_<FIELD>``) over
the YAML file over the defaults.
"""

from __future__ import annotations

import logging
import os
from typing import Literal

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .anomaly import AnomalyMethod

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "ECHEM_INSIGHT_CONFIG"
ENV_PREFIX = "ECHEM_INSIGHT_"


class InsightSettings(BaseSettings):
    """Thresholds and switches used by :class:`~echem_insight.InsightExtractor`.

    ``ECHEM_INSIGHT_<FIELD>`` environment variables take precedence over
    keyword arguments, so a value read from a file can always be overridden
    from the environment.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        extra="ignore",
    )

    # --- Anomaly detection ---
    anomaly_method: AnomalyMethod = Field(default=AnomalyMethod.ZSCORE, description="Detector run by the aggregator")
    zscore_threshold: float = Field(default=3.0, gt=0, description="Z-score above which a sample is anomalous")
    iqr_multiplier: float = Field(default=1.5, gt=0, description="Tukey fence multiplier")
    moving_average_window: int = Field(default=10, ge=1, description="Trailing window length")
    moving_average_threshold: float = Field(default=2.0, gt=0, description="Deviation (in window std) above which a sample is anomalous")
    anomaly_critical_fraction: float = Field(default=0.1, ge=0, le=1, description="Share of anomalous samples that escalates to critical")

    # --- Trend ---
    stable_slope: float = Field(default=1e-10, ge=0, description="Slopes below this magnitude count as stable")
    segmented_trends: bool = Field(default=False, description="Also run piecewise-linear trend segmentation")
    max_segments: int = Field(default=3, ge=1, description="Segment limit for piecewise trends")
    segment_p_threshold: float = Field(default=0.05, gt=0, le=1, description="Slope significance for piecewise trends")

    # --- Noise ---
    noise_threshold: float = Field(default=0.1, ge=0, description="Noise ratio that triggers a high-noise insight")
    noise_warning_threshold: float = Field(default=0.3, ge=0, description="Noise ratio that escalates to a warning")

    # --- Cyclic voltammetry ---
    peak_min_prominence: float = Field(default=0.1, ge=0, description="Minimum prominence for redox peaks")
    reversibility_limit_mv: float = Field(default=100.0, gt=0, description="Peak separation (mV) above which a couple is non-reversible")
    reversibility_pairing: Literal["first", "strongest"] = Field(default="first", description="Which oxidation/reduction peaks are paired")
    potential_scale_mv: float = Field(default=1000.0, gt=0, description="Factor converting potential units to mV")

    # --- Impedance ---
    eis_range_ratio: float = Field(default=10.0, gt=1, description="max/min impedance ratio that counts as a wide range")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # environment first: file values arrive as keyword arguments
        return env_settings, init_settings


def load_settings(path: str | None = None) -> InsightSettings:
    """Load :class:`InsightSettings` from a YAML file.

    Args:
        path: YAML file. Defaults to the ``ECHEM_INSIGHT_CONFIG`` env var,
            then ``echem_insight.yaml``. A missing file is not an error.

    Raises:
        RuntimeError: If the file exists but cannot be parsed.
    """
    if path is None:
        path = os.getenv(CONFIG_ENV_VAR, "echem_insight.yaml")

    config_data: dict = {}
    if os.path.exists(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise RuntimeError(f"Failed to load configuration from {path}: {e}") from e
        if not isinstance(config_data, dict):
            raise RuntimeError(f"Configuration in {path} must be a mapping")
        logger.debug("Loaded insight settings from %s", path)

    return InsightSettings(**config_data)
