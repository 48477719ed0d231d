"""
Statistical anomaly detection algorithms.

Each algorithm is a pure function of a window snapshot and a sensitivity.
It returns a Deviation when the latest sample breaches the algorithm's
threshold, or None. ``detect`` picks the function from ALGORITHMS by the
config's algorithm and turns a Deviation into an Anomaly.

Key Safety Features:
    - Empty and single-sample windows never produce an anomaly
    - Zero spread (sigma == 0, IQR == 0, mean == 0) never produces an anomaly
    - Seasonal detection silently skips windows shorter than two cycles

Sensitivity mappings (1 = least, 10 = most sensitive):
    zscore:          z-threshold = max(1.0, 5.0 / sensitivity)
    iqr:             fence k = max(0.5, 3.0 - 0.25 * (sensitivity - 1))
    moving_average:  allowed deviation = max(5, 55 - 5 * sensitivity) percent
    seasonal:        same percentage as moving_average

Example:
    >>> window = store.snapshot("cpu.usage", "web-1", lookback_minutes=6)
    >>> anomaly = detect(config, window)
    >>> if anomaly is not None:
    ...     print(anomaly.severity, anomaly.anomaly_score)
"""

import bisect
import math
import statistics
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from argus.models.anomalies import Anomaly, DetectionAlgorithm, DetectionConfig
from argus.models.common import Severity
from argus.models.metrics import MetricSample


# Trailing samples averaged by the moving_average algorithm
MOVING_AVERAGE_POINTS = 20

# Minimum tolerance when matching a seasonal phase sample
SEASONAL_MIN_TOLERANCE = timedelta(seconds=60)

# Seasonal configs look back this many cycles
SEASONAL_LOOKBACK_CYCLES = 3


@dataclass
class Deviation:
    """
    Result of a breaching algorithm run.

    Attributes:
        expected: Baseline value the algorithm expected.
        actual: Latest observed value.
        magnitude: Deviation in the algorithm's own unit (sigmas, IQRs, ratio).
        threshold: The sensitivity-derived limit for ``magnitude``.
        detail: Short human-readable explanation.
    """

    expected: float
    actual: float
    magnitude: float
    threshold: float
    detail: str

    @property
    def score(self) -> float:
        """Deviation relative to the threshold; >= 1 for a breach."""
        return self.magnitude / self.threshold


AlgorithmFn = Callable[[Sequence[MetricSample], float, int], Optional[Deviation]]


def zscore_threshold(sensitivity: float) -> float:
    """Z-threshold for a sensitivity (1 -> 5.0 sigma, 5 and above -> 1.0 sigma)."""
    return max(1.0, 5.0 / sensitivity)


def iqr_multiplier(sensitivity: float) -> float:
    """Tukey fence multiplier for a sensitivity (1 -> 3.0, 10 -> 0.75)."""
    return max(0.5, 3.0 - 0.25 * (sensitivity - 1))


def relative_threshold(sensitivity: float) -> float:
    """Allowed relative deviation as a fraction (1 -> 0.50, 10 -> 0.05)."""
    return max(5.0, 55.0 - 5.0 * sensitivity) / 100.0


def percentile(sorted_values: Sequence[float], fraction: float) -> float:
    """
    Linear-interpolation percentile of pre-sorted values.

    Args:
        sorted_values: Values in ascending order (non-empty).
        fraction: Percentile as a fraction in [0, 1].

    Returns:
        float: Interpolated percentile.
    """
    position = (len(sorted_values) - 1) * fraction
    lower = math.floor(position)
    upper = math.ceil(position)
    if lower == upper:
        return sorted_values[lower]
    weight = position - lower
    return sorted_values[lower] * (1 - weight) + sorted_values[upper] * weight


def detect_zscore(
    window: Sequence[MetricSample],
    sensitivity: float,
    window_minutes: int,
) -> Optional[Deviation]:
    """
    Flag the latest sample when it is far from the baseline mean.

    The baseline is every sample except the latest; mean and standard
    deviation are population statistics of the baseline.

    Args:
        window: Samples in timestamp order.
        sensitivity: Sensitivity dial (1-10).
        window_minutes: Unused, part of the common signature.

    Returns:
        Optional[Deviation]: Deviation in sigmas, or None.
    """
    if len(window) < 2:
        return None

    latest = window[-1].value
    baseline = [s.value for s in window[:-1]]
    mean = statistics.fmean(baseline)
    # Exact mean inside pstdev; a rounded mu leaves one-ulp residue on flat data
    std = statistics.pstdev(baseline)

    # Flat baseline: no spread to measure against
    if std == 0:
        return None

    z = abs(latest - mean) / std
    threshold = zscore_threshold(sensitivity)
    if z <= threshold:
        return None

    return Deviation(
        expected=mean,
        actual=latest,
        magnitude=z,
        threshold=threshold,
        detail=f"z={z:.2f} exceeds {threshold:.2f}",
    )


def detect_iqr(
    window: Sequence[MetricSample],
    sensitivity: float,
    window_minutes: int,
) -> Optional[Deviation]:
    """
    Flag the latest sample when it falls outside the Tukey fences.

    Quartiles are computed over the whole window. The magnitude is the
    distance beyond the nearer quartile in IQR units, compared against k.

    Args:
        window: Samples in timestamp order.
        sensitivity: Sensitivity dial (1-10).
        window_minutes: Unused, part of the common signature.

    Returns:
        Optional[Deviation]: Deviation in IQRs, or None.
    """
    if len(window) < 2:
        return None

    latest = window[-1].value
    values = sorted(s.value for s in window)
    q1 = percentile(values, 0.25)
    q3 = percentile(values, 0.75)
    iqr = q3 - q1

    if iqr == 0:
        return None

    k = iqr_multiplier(sensitivity)
    lower = q1 - k * iqr
    upper = q3 + k * iqr
    if lower <= latest <= upper:
        return None

    if latest > upper:
        magnitude = (latest - q3) / iqr
    else:
        magnitude = (q1 - latest) / iqr

    return Deviation(
        expected=(q1 + q3) / 2,
        actual=latest,
        magnitude=magnitude,
        threshold=k,
        detail=f"value {latest:g} outside [{lower:.2f}, {upper:.2f}]",
    )


def detect_moving_average(
    window: Sequence[MetricSample],
    sensitivity: float,
    window_minutes: int,
) -> Optional[Deviation]:
    """
    Flag the latest sample when it strays from the trailing moving average.

    Args:
        window: Samples in timestamp order.
        sensitivity: Sensitivity dial (1-10).
        window_minutes: Unused, part of the common signature.

    Returns:
        Optional[Deviation]: Relative deviation (fraction of the average), or None.
    """
    if len(window) < 2:
        return None

    latest = window[-1].value
    baseline = window[:-1]
    points = min(MOVING_AVERAGE_POINTS, len(baseline))
    ma = statistics.fmean(s.value for s in baseline[-points:])

    if ma == 0:
        return None

    relative = abs(latest - ma) / abs(ma)
    threshold = relative_threshold(sensitivity)
    if relative <= threshold:
        return None

    return Deviation(
        expected=ma,
        actual=latest,
        magnitude=relative,
        threshold=threshold,
        detail=f"{relative:.1%} from {points}-point average (limit {threshold:.0%})",
    )


def _phase_tolerance(timestamps: List[datetime]) -> timedelta:
    """Half the median sample spacing, at least SEASONAL_MIN_TOLERANCE."""
    spacings = [
        (b - a).total_seconds() for a, b in zip(timestamps, timestamps[1:])
    ]
    if not spacings:
        return SEASONAL_MIN_TOLERANCE
    half_median = timedelta(seconds=statistics.median(spacings) / 2)
    return max(half_median, SEASONAL_MIN_TOLERANCE)


def _nearest(
    window: Sequence[MetricSample],
    timestamps: List[datetime],
    target: datetime,
    tolerance: timedelta,
) -> Optional[MetricSample]:
    """Sample nearest to ``target`` within ``tolerance``, or None."""
    index = bisect.bisect_left(timestamps, target)
    candidates = [i for i in (index - 1, index) if 0 <= i < len(window)]
    if not candidates:
        return None
    best = min(candidates, key=lambda i: abs(timestamps[i] - target))
    if abs(timestamps[best] - target) > tolerance:
        return None
    return window[best]


def detect_seasonal(
    window: Sequence[MetricSample],
    sensitivity: float,
    window_minutes: int,
) -> Optional[Deviation]:
    """
    Compare the latest sample with the same phase of previous cycles.

    The cycle length is ``window_minutes``. For each earlier cycle the sample
    nearest to ``latest - c * period`` is taken; their mean is the expected
    value. At least two full cycles of history are required.

    Args:
        window: Samples in timestamp order.
        sensitivity: Sensitivity dial (1-10).
        window_minutes: Cycle length in minutes.

    Returns:
        Optional[Deviation]: Relative deviation from the seasonal mean, or None.
    """
    if len(window) < 3:
        return None

    period = timedelta(minutes=window_minutes)
    latest = window[-1]
    timestamps = [s.timestamp for s in window]
    tolerance = _phase_tolerance(timestamps)

    # Insufficient history is not an error
    if latest.timestamp - timestamps[0] + tolerance < 2 * period:
        return None

    phase_values: List[float] = []
    cycle = 1
    while latest.timestamp - cycle * period >= timestamps[0] - tolerance:
        match = _nearest(window[:-1], timestamps[:-1], latest.timestamp - cycle * period, tolerance)
        if match is not None:
            phase_values.append(match.value)
        cycle += 1

    if len(phase_values) < 2:
        return None

    expected = statistics.fmean(phase_values)
    if expected == 0:
        return None

    relative = abs(latest.value - expected) / abs(expected)
    threshold = relative_threshold(sensitivity)
    if relative <= threshold:
        return None

    return Deviation(
        expected=expected,
        actual=latest.value,
        magnitude=relative,
        threshold=threshold,
        detail=(
            f"{relative:.1%} from the mean of {len(phase_values)} previous cycles "
            f"(limit {threshold:.0%})"
        ),
    )


ALGORITHMS: Dict[DetectionAlgorithm, AlgorithmFn] = {
    DetectionAlgorithm.ZSCORE: detect_zscore,
    DetectionAlgorithm.IQR: detect_iqr,
    DetectionAlgorithm.MOVING_AVERAGE: detect_moving_average,
    DetectionAlgorithm.SEASONAL: detect_seasonal,
}


def lookback_minutes(config: DetectionConfig) -> int:
    """
    Window length to snapshot for a config.

    Seasonal configs need several cycles of history; the others use
    ``window_minutes`` directly.
    """
    if config.algorithm == DetectionAlgorithm.SEASONAL:
        return config.window_minutes * SEASONAL_LOOKBACK_CYCLES
    return config.window_minutes


def detect(
    config: DetectionConfig,
    window: Sequence[MetricSample],
) -> Optional[Anomaly]:
    """
    Run the config's algorithm over a window snapshot.

    Args:
        config: Detection configuration.
        window: Samples for one concrete (metric_name, service) key, in
            timestamp order.

    Returns:
        Optional[Anomaly]: An active anomaly for the latest sample, or None.

    Example:
        >>> anomaly = detect(config, store.snapshot("cpu.usage", "web-1", 6))
    """
    if len(window) < 2:
        return None

    deviation = ALGORITHMS[config.algorithm](
        window, config.sensitivity, config.window_minutes
    )
    if deviation is None:
        return None

    latest = window[-1]
    score = deviation.score
    return Anomaly(
        metric_name=latest.metric_name,
        service=latest.service,
        algorithm=config.algorithm,
        expected_value=deviation.expected,
        actual_value=deviation.actual,
        anomaly_score=round(score, 4),
        severity=Severity.from_ratio(score),
        detected_at=latest.timestamp,
        description=f"{config.algorithm.value} anomaly: {deviation.detail}",
    )
