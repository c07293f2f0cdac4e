"""Statistics over repeated benchmark samples.

Throughput and latency values of a Result are summarised with a median (the
default for reports) or an arithmetic mean (used for archival and the
host-vs-pod comparison), a linear-interpolation percentile, and a Student t
confidence interval for the mean.
"""

from typing import List, Sequence, Tuple

import numpy as np
from pydantic import BaseModel, Field, computed_field
from scipy import stats

DEFAULT_CONFIDENCE = 0.95


def _as_array(data: Sequence[float]) -> np.ndarray:
    if len(data) == 0:
        raise ValueError("Data cannot be empty")
    arr = np.asarray(data, dtype=float)
    if np.any(np.isnan(arr)) or np.any(np.isinf(arr)):
        raise ValueError("Data contains NaN or infinite values")
    return arr


def mean(data: Sequence[float]) -> float:
    """Arithmetic mean. Raises ValueError on empty input."""
    return float(np.mean(_as_array(data)))


def median(data: Sequence[float]) -> float:
    """Median of an unordered sequence. Raises ValueError on empty input."""
    return float(np.median(_as_array(data)))


def percentile(data: Sequence[float], q: float) -> float:
    """Percentile using linear interpolation between closest ranks.

    Args:
        data: Values in any order
        q: Percentile in the range 0-100

    Returns:
        The interpolated value; a single value is returned unchanged

    Raises:
        ValueError: If data is empty or q is out of range
    """
    if not 0 <= q <= 100:
        raise ValueError(f"Percentile must be between 0 and 100, got {q}")
    return float(np.percentile(_as_array(data), q, method="linear"))


def confidence_interval(
    data: Sequence[float], confidence: float = DEFAULT_CONFIDENCE
) -> Tuple[float, float]:
    """Student t confidence interval for the mean.

    A single sample has no spread to estimate, so the interval collapses to
    ``(value, value)``.
    """
    arr = _as_array(data)
    center = float(np.mean(arr))
    if len(arr) < 2:
        return (center, center)

    sem = float(np.std(arr, ddof=1)) / np.sqrt(len(arr))
    t_crit = float(stats.t.ppf((1 + confidence) / 2, df=len(arr) - 1))
    margin = t_crit * sem
    return (center - margin, center + margin)


class DescriptiveStatistics(BaseModel):
    """Summary of one metric across the samples of a Result."""

    mean: float = Field(description="Arithmetic mean")
    median: float = Field(description="Median (50th percentile)")
    std_dev: float = Field(description="Sample standard deviation, 0 for one sample")
    min_value: float = Field(description="Minimum value")
    max_value: float = Field(description="Maximum value")
    sample_size: int = Field(description="Number of samples", ge=1)
    p99: float = Field(description="99th percentile")
    ci_lower: float = Field(description="Lower bound of the 95% confidence interval")
    ci_upper: float = Field(description="Upper bound of the 95% confidence interval")

    @computed_field
    @property
    def coefficient_of_variation(self) -> float:
        return self.std_dev / self.mean if self.mean != 0 else 0.0

    @computed_field
    @property
    def ci_width(self) -> float:
        return self.ci_upper - self.ci_lower

    def central(self, method: str = "median") -> float:
        """Central value used by result tables: ``median`` or ``mean``."""
        if method == "median":
            return self.median
        if method == "mean":
            return self.mean
        raise ValueError(f"Unknown summary method '{method}'")


def calculate_descriptive_statistics(data: List[float]) -> DescriptiveStatistics:
    """Calculate descriptive statistics for a list of sample values.

    Args:
        data: List of numeric values.

    Returns:
        DescriptiveStatistics object with all calculated metrics.

    Raises:
        ValueError: If data is empty or contains invalid values.
    """
    arr = _as_array(data)
    lower, upper = confidence_interval(data)

    return DescriptiveStatistics(
        mean=mean(data),
        median=median(data),
        std_dev=float(np.std(arr, ddof=1)) if len(arr) > 1 else 0.0,
        min_value=float(np.min(arr)),
        max_value=float(np.max(arr)),
        sample_size=len(arr),
        p99=percentile(data, 99),
        ci_lower=lower,
        ci_upper=upper,
    )
