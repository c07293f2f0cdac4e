"""Sample statistics and the host vs pod regression check."""

from k8s_netperf.analysis.regression import (
    RegressionReport,
    ThroughputComparison,
    check_regression,
    has_host_results,
    percent_difference,
)
from k8s_netperf.analysis.statistical_analysis import (
    DescriptiveStatistics,
    calculate_descriptive_statistics,
    confidence_interval,
    mean,
    median,
    percentile,
)

__all__ = [
    # Statistics
    "DescriptiveStatistics",
    "calculate_descriptive_statistics",
    "confidence_interval",
    "mean",
    "median",
    "percentile",
    # Regression
    "RegressionReport",
    "ThroughputComparison",
    "check_regression",
    "has_host_results",
    "percent_difference",
]
