"""Unit tests for echem_insight.settings."""

import pydantic
import pytest

from echem_insight.anomaly import AnomalyMethod
from echem_insight.settings import InsightSettings, load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in InsightSettings.model_fields:
        monkeypatch.delenv(f"ECHEM_INSIGHT_{name.upper()}", raising=False)
    monkeypatch.delenv("ECHEM_INSIGHT_CONFIG", raising=False)


class TestInsightSettings:
    def test_defaults(self):
        settings = InsightSettings()
        assert settings.anomaly_method is AnomalyMethod.ZSCORE
        assert settings.zscore_threshold == 3.0
        assert settings.iqr_multiplier == 1.5
        assert settings.moving_average_window == 10
        assert settings.noise_threshold == 0.1
        assert settings.reversibility_limit_mv == 100.0
        assert settings.eis_range_ratio == 10.0
        assert settings.reversibility_pairing == "first"
        assert settings.segmented_trends is False

    @pytest.mark.parametrize(
        "field, value",
        [
            ("zscore_threshold", 0),
            ("moving_average_window", 0),
            ("anomaly_critical_fraction", 1.5),
            ("eis_range_ratio", 1),
            ("anomaly_method", "dbscan"),
            ("reversibility_pairing", "largest"),
        ],
    )
    def test_validation(self, field, value):
        with pytest.raises(pydantic.ValidationError):
            InsightSettings(**{field: value})


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_settings(str(tmp_path / "absent.yaml")) == InsightSettings()

    def test_reads_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("anomaly_method: iqr\niqr_multiplier: 3\n", encoding="utf-8")
        settings = load_settings(str(path))
        assert settings.anomaly_method is AnomalyMethod.IQR
        assert settings.iqr_multiplier == 3.0

    def test_path_from_environment(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("noise_threshold: 0.2\n", encoding="utf-8")
        monkeypatch.setenv("ECHEM_INSIGHT_CONFIG", str(path))
        assert load_settings().noise_threshold == 0.2

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "settings.yaml"
        path.write_text("zscore_threshold: 2.5\n", encoding="utf-8")
        monkeypatch.setenv("ECHEM_INSIGHT_ZSCORE_THRESHOLD", "4")
        monkeypatch.setenv("ECHEM_INSIGHT_SEGMENTED_TRENDS", "true")
        settings = load_settings(str(path))
        assert settings.zscore_threshold == 4.0
        assert settings.segmented_trends is True

    def test_empty_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("", encoding="utf-8")
        assert load_settings(str(path)) == InsightSettings()

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("zscore_threshold: [unclosed\n", encoding="utf-8")
        with pytest.raises(RuntimeError):
            load_settings(str(path))

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")
        with pytest.raises(RuntimeError):
            load_settings(str(path))

    def test_environment_overrides_keyword_arguments(self, monkeypatch):
        monkeypatch.setenv("ECHEM_INSIGHT_REVERSIBILITY_PAIRING", "strongest")
        settings = InsightSettings(reversibility_pairing="first")
        assert settings.reversibility_pairing == "strongest"

    def test_invalid_environment_value(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ECHEM_INSIGHT_MOVING_AVERAGE_WINDOW", "0")
        with pytest.raises(pydantic.ValidationError):
            load_settings(str(tmp_path / "absent.yaml"))
