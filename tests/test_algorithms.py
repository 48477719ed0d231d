"""Tests for the anomaly detection algorithms."""

from datetime import timedelta

import pytest

from argus.detection.algorithms import (
    detect,
    detect_iqr,
    detect_moving_average,
    detect_seasonal,
    detect_zscore,
    iqr_multiplier,
    lookback_minutes,
    percentile,
    relative_threshold,
    zscore_threshold,
)
from argus.models import DetectionAlgorithm, DetectionConfig, Severity

from tests.conftest import T0, make_samples


def _config(algorithm: DetectionAlgorithm, sensitivity: float = 5, window: int = 6) -> DetectionConfig:
    return DetectionConfig(
        metric_name="cpu.usage",
        service="web-1",
        algorithm=algorithm,
        sensitivity=sensitivity,
        window_minutes=window,
    )


class TestSensitivityMapping:
    def test_higher_sensitivity_lowers_thresholds(self):
        for fn in (iqr_multiplier, relative_threshold):
            assert fn(10) < fn(5) < fn(1)
        assert zscore_threshold(5) < zscore_threshold(2) < zscore_threshold(1)

    def test_bounds(self):
        assert zscore_threshold(1) == 5.0
        assert zscore_threshold(5) == 1.0
        assert zscore_threshold(10) == 1.0
        assert iqr_multiplier(1) == 3.0
        assert iqr_multiplier(10) == 0.75
        assert relative_threshold(1) == pytest.approx(0.50)
        assert relative_threshold(10) == pytest.approx(0.05)

    def test_percentile_interpolates(self):
        assert percentile([1, 2, 3, 4], 0.5) == 2.5
        assert percentile([1, 2, 3, 4, 5], 0.25) == 2


class TestZeroVariance:
    @pytest.mark.parametrize("algorithm", [DetectionAlgorithm.ZSCORE, DetectionAlgorithm.IQR])
    def test_flat_window_never_flags(self, algorithm):
        window = make_samples("cpu.usage", "web-1", [42.0] * 30)
        assert detect(_config(algorithm, sensitivity=10), window) is None

    def test_flat_baseline_with_spike_is_not_zscore_anomaly(self):
        # Baseline std is zero; there is nothing to measure against
        window = make_samples("cpu.usage", "web-1", [10, 10, 10, 95])
        assert detect_zscore(window, 10, 6) is None

    @pytest.mark.parametrize(
        "value, sensitivity",
        [(0.1, 10), (99.9, 6), (0.3, 10)],
    )
    def test_flat_inexact_values_never_flag(self, value, sensitivity):
        window = make_samples("cpu.usage", "web-1", [value] * 4)
        assert detect_zscore(window, sensitivity, 6) is None



class TestZscore:
    def test_cpu_spike_scenario(self):
        window = make_samples("cpu.usage", "web-1", [10, 10, 10, 95, 95, 95])

        anomaly = detect(_config(DetectionAlgorithm.ZSCORE), window)

        assert anomaly is not None
        assert anomaly.actual_value == 95
        assert anomaly.expected_value == pytest.approx(44.0)
        assert anomaly.severity in (Severity.MEDIUM, Severity.HIGH)
        assert anomaly.detected_at == T0 + timedelta(minutes=5)
        assert anomaly.status.value == "active"

    def test_value_within_threshold(self):
        window = make_samples("cpu.usage", "web-1", [10, 12, 11, 9, 10, 11])
        assert detect_zscore(window, 5, 6) is None

    def test_single_sample(self):
        window = make_samples("cpu.usage", "web-1", [10])
        assert detect(_config(DetectionAlgorithm.ZSCORE), window) is None


class TestIqr:
    def test_outlier_above_upper_fence(self):
        window = make_samples("lat", "api", [10, 11, 12, 13, 14, 15, 16, 17, 100])

        deviation = detect_iqr(window, 5, 10)

        assert deviation is not None
        assert deviation.actual == 100
        assert deviation.score >= 1

    def test_value_inside_fences(self):
        window = make_samples("lat", "api", [10, 11, 12, 13, 14, 15, 16, 17, 15])
        assert detect_iqr(window, 5, 10) is None


class TestMovingAverage:
    def test_relative_breach(self):
        window = make_samples("rps", "api", [100] * 10 + [200])

        deviation = detect_moving_average(window, 5, 10)

        assert deviation is not None
        assert deviation.expected == 100
        assert deviation.magnitude == pytest.approx(1.0)

    def test_uses_last_twenty_points(self):
        values = [1000] * 10 + [100] * 20 + [110]
        assert detect_moving_average(make_samples("rps", "api", values), 5, 10) is None

    def test_zero_average_is_skipped(self):
        window = make_samples("errors", "api", [0, 0, 0, 5])
        assert detect_moving_average(window, 10, 10) is None


class TestSeasonal:
    def _cycles(self, cycles: int, spike: float):
        # 10-minute cycle sampled every minute: a ramp 0..9 repeated
        values = [float(10 + i % 10) for i in range(cycles * 10)]
        values.append(spike)
        return make_samples("rps", "api", values)

    def test_matches_previous_cycles(self):
        window = self._cycles(3, 10.0)
        assert detect_seasonal(window, 5, 10) is None

    def test_flags_phase_deviation(self):
        window = self._cycles(3, 40.0)

        deviation = detect_seasonal(window, 5, 10)

        assert deviation is not None
        assert deviation.expected == pytest.approx(10.0)
        assert deviation.actual == 40.0

    def test_needs_two_cycles_of_history(self):
        window = make_samples("rps", "api", [10.0] * 15 + [40.0])
        assert detect_seasonal(window, 5, 10) is None

    def test_lookback_covers_three_cycles(self):
        assert lookback_minutes(_config(DetectionAlgorithm.SEASONAL, window=10)) == 30
        assert lookback_minutes(_config(DetectionAlgorithm.ZSCORE, window=10)) == 10
