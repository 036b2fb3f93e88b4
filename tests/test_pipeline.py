"""Unit tests for echem_insight.pipeline."""

import json

import numpy as np
import pydantic
import pytest

from echem_insight.errors import ExpressionError, InvalidSeries, StepConfigurationError
from echem_insight.pipeline import (
    Pipeline,
    PipelineRecord,
    load_pipeline,
    save_pipeline,
)
from echem_insight.series import Series


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def square_wave():
    return Series([0, 1, 2, 3, 4], [0, 10, 0, 10, 0])


@pytest.fixture
def voltammogram():
    x = np.linspace(-0.2, 0.6, 80)
    rng = np.random.default_rng(3)
    y = np.exp(-((x - 0.25) ** 2) / 0.004) + 0.5 * x + rng.normal(0, 0.02, len(x))
    return Series(x, y, domain="CV")


@pytest.fixture
def configured():
    pipeline = Pipeline()
    pipeline.add("baseline", {"order": 1})
    pipeline.add("smooth", {"window": 5})
    pipeline.add("normalize")
    pipeline.add("custom", {"expression": "y * 2 - 1"})
    return pipeline


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

class TestExecute:
    def test_normalize_then_smooth(self, square_wave):
        pipeline = Pipeline()
        pipeline.add("normalize")
        pipeline.add("smooth", {"window": 3})
        result = pipeline.execute(square_wave)
        assert result.ok
        np.testing.assert_allclose(result.series.y, [0.5, 1 / 3, 2 / 3, 1 / 3, 0.5])
        assert [s.kind for s in result.applied_steps] == ["normalize", "smooth"]

    def test_empty_series_is_an_error(self):
        pipeline = Pipeline()
        pipeline.add("normalize")
        result = pipeline.execute(Series([], []))
        assert not result.ok
        assert isinstance(result.error, InvalidSeries)
        assert result.series is None
        assert result.applied_steps == []

    def test_empty_pipeline_returns_input(self, square_wave):
        result = Pipeline().execute(square_wave)
        assert result.ok
        assert result.series.equals(square_wave)

    def test_disabled_steps_are_skipped(self, square_wave):
        pipeline = Pipeline()
        log_id = pipeline.add("log")
        pipeline.add("normalize")
        pipeline.toggle(log_id)
        result = pipeline.execute(square_wave)
        np.testing.assert_allclose(result.series.y, [0, 1, 0, 1, 0])
        assert [s.kind for s in result.applied_steps] == ["normalize"]

    def test_deterministic(self, configured, voltammogram):
        first = configured.execute(voltammogram)
        second = configured.execute(voltammogram)
        assert first.series.equals(second.series)

    def test_does_not_mutate_configuration(self, configured, voltammogram):
        before = configured.to_dict()
        configured.execute(voltammogram)
        assert configured.to_dict() == before

    def test_applied_steps_are_snapshots(self, square_wave):
        pipeline = Pipeline()
        step_id = pipeline.add("smooth", {"window": 3})
        result = pipeline.execute(square_wave)
        pipeline.update(step_id, {"window": 5})
        assert result.applied_steps[0].parameters["window"] == 3

    def test_domain_survives(self, configured, voltammogram):
        assert configured.execute(voltammogram).series.domain == voltammogram.domain

    def test_length_changing_steps(self, voltammogram):
        pipeline = Pipeline()
        pipeline.add("resample", {"points": 64})
        pipeline.add("fft")
        result = pipeline.execute(voltammogram)
        assert len(result.series) == 32

    def test_too_few_points_mid_pipeline(self):
        pipeline = Pipeline()
        pipeline.add("derivative")
        pipeline.add("normalize")
        result = pipeline.execute(Series([1], [1]))
        assert isinstance(result.error, InvalidSeries)
        assert [s.kind for s in result.applied_steps] == ["derivative"]

    def test_empty_custom_expression_passes_through(self, square_wave):
        pipeline = Pipeline()
        custom_id = pipeline.add("custom")
        pipeline.add("normalize")
        result = pipeline.execute(square_wave)
        assert result.ok
        np.testing.assert_allclose(result.series.y, [0, 1, 0, 1, 0])
        assert [issue.step_id for issue in result.issues] == [custom_id]
        assert [s.kind for s in result.applied_steps] == ["normalize"]

    def test_unknown_kind_from_record_passes_through(self, square_wave):
        pipeline = Pipeline.from_record(
            {"steps": [{"id": "a", "kind": "wavelet"}, {"id": "b", "kind": "abs"}]}
        )
        result = pipeline.execute(square_wave)
        assert result.ok
        assert result.issues[0].kind == "wavelet"
        assert [s.id for s in result.applied_steps] == ["b"]

    def test_alias_resolves_to_fft(self):
        pipeline = Pipeline()
        step_id = pipeline.add("spectral-transform")
        assert pipeline.get(step_id).kind == "fft"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class TestConfiguration:
    def test_add_returns_unique_ids(self):
        pipeline = Pipeline()
        ids = {pipeline.add("abs") for _ in range(20)}
        assert len(ids) == 20

    def test_add_merges_defaults(self):
        pipeline = Pipeline()
        step_id = pipeline.add("filter", {"type": "highpass"})
        assert pipeline.get(step_id).parameters == {"cutoff": 0.1, "type": "highpass"}

    def test_add_unknown_kind(self):
        with pytest.raises(StepConfigurationError):
            Pipeline().add("wavelet")

    def test_add_invalid_parameters(self):
        pipeline = Pipeline()
        with pytest.raises(StepConfigurationError):
            pipeline.add("smooth", {"window": 0})
        assert len(pipeline) == 0

    def test_add_unsafe_expression(self):
        with pytest.raises(ExpressionError):
            Pipeline().add("custom", {"expression": "__import__('os').system('ls')"})

    def test_remove(self, configured):
        first = configured.steps[0].id
        configured.remove(first)
        assert len(configured) == 3
        assert first not in [s.id for s in configured]

    def test_remove_unknown_id(self, configured):
        with pytest.raises(KeyError):
            configured.remove("missing")

    def test_toggle_returns_new_state(self, configured):
        step_id = configured.steps[0].id
        assert configured.toggle(step_id) is False
        assert configured.toggle(step_id) is True

    def test_update_merges(self):
        pipeline = Pipeline()
        step_id = pipeline.add("filter", {"cutoff": 0.2})
        pipeline.update(step_id, {"type": "highpass"})
        assert pipeline.get(step_id).parameters == {"cutoff": 0.2, "type": "highpass"}

    def test_failed_update_leaves_step_untouched(self):
        pipeline = Pipeline()
        step_id = pipeline.add("smooth", {"window": 3})
        with pytest.raises(StepConfigurationError):
            pipeline.update(step_id, {"window": -2})
        assert pipeline.get(step_id).parameters == {"window": 3}

    def test_reorder(self, configured):
        kinds = [s.kind for s in configured]
        configured.reorder(0, 3)
        assert [s.kind for s in configured] == kinds[1:] + kinds[:1]

    def test_reorder_changes_output(self, square_wave):
        pipeline = Pipeline()
        pipeline.add("log")
        pipeline.add("normalize")
        before = pipeline.execute(square_wave).series
        pipeline.move(1, 0)
        after = pipeline.execute(square_wave).series
        assert not before.equals(after)

    def test_reorder_out_of_range(self, configured):
        with pytest.raises(IndexError):
            configured.reorder(0, 4)

    def test_steps_are_copies(self, configured):
        configured.steps[0].parameters["order"] = 7
        assert configured.steps[0].parameters["order"] == 1

    def test_labels(self, configured):
        assert [s.label for s in configured] == [
            "Baseline Correction",
            "Smooth (Moving Avg)",
            "Normalize (0-1)",
            "Custom Expression",
        ]

    def test_clear(self, configured):
        configured.clear()
        assert len(configured) == 0


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

class TestSerialization:
    def test_json_round_trip_reproduces_output(self, configured, voltammogram):
        configured.toggle(configured.steps[2].id)
        restored = Pipeline.from_json(configured.to_json())
        assert [s.id for s in restored] == [s.id for s in configured]
        assert restored.to_dict() == configured.to_dict()
        assert restored.execute(voltammogram).series.equals(
            configured.execute(voltammogram).series
        )

    def test_record_shape(self):
        pipeline = Pipeline()
        step_id = pipeline.add("smooth", {"window": 3})
        assert json.loads(pipeline.to_json()) == {
            "steps": [
                {"id": step_id, "kind": "smooth", "parameters": {"window": 3}, "enabled": True}
            ]
        }

    def test_from_record_model(self, configured):
        record = PipelineRecord.model_validate(configured.to_dict())
        assert Pipeline.from_record(record).to_dict() == configured.to_dict()

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            Pipeline.from_record(
                {"steps": [{"id": "a", "kind": "abs"}, {"id": "a", "kind": "log"}]}
            )

    def test_malformed_record_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            Pipeline.from_record({"steps": [{"kind": "abs"}]})

    @pytest.mark.parametrize("suffix", [".json", ".yaml"])
    def test_file_round_trip(self, tmp_path, configured, voltammogram, suffix):
        path = tmp_path / f"pipeline{suffix}"
        save_pipeline(configured, path)
        restored = load_pipeline(path)
        assert restored.to_dict() == configured.to_dict()
        assert restored.execute(voltammogram).series.equals(
            configured.execute(voltammogram).series
        )
