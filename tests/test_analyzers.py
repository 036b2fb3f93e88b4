"""Unit tests for echem_insight.analyzers."""

import numpy as np
import pytest

from echem_insight.analyzers import (
    analyze_cyclic_voltammetry,
    analyze_impedance,
    check_data_quality,
    check_reversibility,
    estimate_noise,
    find_peaks,
)
from echem_insight.insight import InsightType, Severity
from echem_insight.series import Series
from echem_insight.settings import InsightSettings


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def potential():
    return np.linspace(0.0, 0.5, 11)


def _current(n, peaks):
    y = np.zeros(n)
    for index, value in peaks.items():
        y[index] = value
    return y


# ---------------------------------------------------------------------------
# Peaks
# ---------------------------------------------------------------------------

class TestFindPeaks:
    def test_strict_local_maxima(self):
        peaks = find_peaks([0, 1, 0, 2, 0])
        assert [p.index for p in peaks] == [1, 3]
        assert [p.prominence for p in peaks] == [1.0, 2.0]

    def test_min_prominence(self):
        assert [p.index for p in find_peaks([0, 1, 0, 2, 0], 1.5)] == [3]

    def test_plateau_is_not_a_peak(self):
        assert find_peaks([0, 1, 1, 0]) == []

    def test_endpoints_are_not_peaks(self):
        assert find_peaks([5, 1, 0, 1, 5]) == []

    def test_short_input(self):
        assert find_peaks([1, 2]) == []

    def test_nan_never_a_peak(self):
        assert [p.index for p in find_peaks([0, np.nan, 0, 1, 0])] == [3]


class TestReversibility:
    def test_wide_separation(self, potential):
        result = check_reversibility(potential, _current(11, {3: 1.0, 7: -1.0}))
        assert (result.oxidation_index, result.reduction_index) == (3, 7)
        assert result.peak_separation_mv == pytest.approx(200.0)
        assert result.is_reversible is False

    def test_narrow_separation(self, potential):
        result = check_reversibility(potential, _current(11, {5: 1.0, 6: -1.0}))
        assert result.peak_separation_mv == pytest.approx(50.0)
        assert result.is_reversible is True

    def test_first_peaks_are_paired_by_default(self):
        potential = np.linspace(0.0, 1.0, 11)
        current = [0, 0, 1, 0, -1, 0, 0, 5, 0, 0, 0]
        result = check_reversibility(potential, current)
        assert (result.oxidation_index, result.reduction_index) == (2, 4)
        assert result.peak_separation_mv == pytest.approx(200.0)

    def test_strongest_pairing(self):
        potential = np.linspace(0.0, 1.0, 11)
        current = [0, 0, 1, 0, -1, 0, 0, 5, 0, 0, 0]
        result = check_reversibility(potential, current, pairing="strongest")
        assert (result.oxidation_index, result.reduction_index) == (7, 4)
        assert result.peak_separation_mv == pytest.approx(300.0)

    def test_unknown_pairing(self, potential):
        with pytest.raises(ValueError):
            check_reversibility(potential, potential, pairing="last")

    def test_missing_reduction_peak(self, potential):
        result = check_reversibility(potential, _current(11, {3: 1.0}))
        assert result.oxidation_index == 3
        assert result.reduction_index is None
        assert result.is_reversible is None


# ---------------------------------------------------------------------------
# Generic analyzers
# ---------------------------------------------------------------------------

class TestEstimateNoise:
    def test_alternating(self):
        assert estimate_noise([0, 1, 0, 1]) == pytest.approx(1.0)

    def test_ramp(self):
        assert estimate_noise(np.arange(11)) == pytest.approx(0.1)

    def test_constant(self):
        assert estimate_noise([3, 3, 3, 3]) == 0.0

    def test_too_short(self):
        assert estimate_noise([0, 10]) == 0.0

    def test_ignores_non_finite(self):
        assert estimate_noise([0, 1, np.nan, 2, 3]) == pytest.approx(1 / 3)


class TestDataQuality:
    def test_non_finite_values(self):
        insight = check_data_quality([1, np.nan, np.inf, 2])
        assert insight.severity is Severity.CRITICAL
        assert insight.title == "Data Quality Issue"
        assert insight.affected_points == (1, 2)
        assert "1 NaN, 1 infinite" in insight.description

    def test_all_zero(self):
        insight = check_data_quality([0, 0, 0])
        assert insight.severity is Severity.WARNING
        assert insight.title == "All Zero Values"

    def test_clean(self):
        assert check_data_quality([0, 1, 2]) is None

    def test_empty(self):
        assert check_data_quality([]) is None


# ---------------------------------------------------------------------------
# Technique specific
# ---------------------------------------------------------------------------

class TestCyclicVoltammetry:
    def test_irreversible_couple(self, potential):
        series = Series(potential, _current(11, {3: 1.0, 7: -1.0}), domain="CV")
        insights = analyze_cyclic_voltammetry(series)
        assert [i.title for i in insights] == [
            "Redox Peaks Detected",
            "Quasi-reversible or Irreversible Process",
        ]
        peaks, kinetics = insights
        assert peaks.affected_points == (3, 7)
        assert "1 oxidation and 1 reduction" in peaks.description
        assert kinetics.type is InsightType.RECOMMENDATION
        assert kinetics.description == "Peak separation: 200 mV"

    def test_reversible_couple(self, potential):
        series = Series(potential, _current(11, {5: 1.0, 6: -1.0}))
        titles = [i.title for i in analyze_cyclic_voltammetry(series)]
        assert titles == ["Redox Peaks Detected"]

    def test_limit_from_settings(self, potential):
        series = Series(potential, _current(11, {3: 1.0, 7: -1.0}))
        settings = InsightSettings(reversibility_limit_mv=250)
        assert len(analyze_cyclic_voltammetry(series, settings)) == 1

    def test_pairing_from_settings(self):
        series = Series(np.linspace(0.0, 1.0, 11), [0, 0, 1, 0, -1, 0, 0, 5, 0, 0, 0])
        first = analyze_cyclic_voltammetry(series)[-1]
        strongest = analyze_cyclic_voltammetry(
            series, InsightSettings(reversibility_pairing="strongest")
        )[-1]
        assert first.description == "Peak separation: 200 mV"
        assert strongest.description == "Peak separation: 300 mV"
        assert strongest.affected_points == (7, 4)

    def test_no_peaks(self, potential):
        assert analyze_cyclic_voltammetry(Series(potential, potential)) == []


class TestImpedance:
    def test_wide_range(self):
        insights = analyze_impedance(Series([1, 10, 100], [200, 50, 10]))
        assert len(insights) == 1
        assert insights[0].title == "Wide Impedance Range"
        assert "20.0x" in insights[0].description
        assert "10.00 Ω" in insights[0].description

    def test_ratio_at_limit_not_flagged(self):
        assert analyze_impedance(Series([1, 10, 100], [100, 50, 10])) == []

    def test_non_positive_minimum_skipped(self):
        assert analyze_impedance(Series([1, 10, 100], [1000, 50, 0])) == []

    def test_ratio_from_settings(self):
        settings = InsightSettings(eis_range_ratio=50)
        assert analyze_impedance(Series([1, 10, 100], [200, 50, 10]), settings) == []
