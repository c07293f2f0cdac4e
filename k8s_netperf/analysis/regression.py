"""Host-network vs pod-network TCP throughput regression check.

Pod networking is expected to stay within a tolerance of the host network's
TCP_STREAM throughput. Only single-stream, non-service runs are compared,
grouped by message size.
"""

import logging
from typing import List

import pandas as pd
from pydantic import BaseModel, Field, computed_field

from k8s_netperf.common.errors import RegressionComputationError
from k8s_netperf.common.models import ScenarioResults

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 10.0

EXIT_OK = 0
EXIT_REGRESSION = 1


def percent_difference(a: float, b: float) -> float:
    """Difference of ``a`` over ``b`` relative to their midpoint, in percent.

    Raises:
        RegressionComputationError: If both values are zero
    """
    midpoint = (a + b) / 2
    if midpoint == 0:
        raise RegressionComputationError("cannot compare throughput when both values are zero")
    return (a - b) / midpoint * 100


class ThroughputComparison(BaseModel):
    """Host vs pod throughput for one message size."""

    message_size: int = Field(description="Message size in bytes")
    host_throughput: float = Field(description="Mean host-network throughput")
    pod_throughput: float = Field(description="Mean pod-network throughput")
    percent_difference: float = Field(description="Host minus pod, relative to the midpoint")
    tolerance: float = Field(description="Allowed difference in percent")

    @computed_field
    @property
    def is_regression(self) -> bool:
        return self.percent_difference > self.tolerance


class RegressionReport(BaseModel):
    """Outcome of a regression check over a whole run."""

    skipped: bool = Field(default=False, description="No host-network results were available")
    tolerance: float = DEFAULT_TOLERANCE
    comparisons: List[ThroughputComparison] = Field(default_factory=list)

    @computed_field
    @property
    def regressed(self) -> bool:
        return any(c.is_regression for c in self.comparisons)

    @property
    def exit_code(self) -> int:
        return EXIT_REGRESSION if self.regressed else EXIT_OK


def has_host_results(results: ScenarioResults) -> bool:
    """Whether any populated result was collected over the host network."""
    return any(r.host_network for r in results.populated())


def _tcp_stream_frame(results: ScenarioResults) -> pd.DataFrame:
    rows = [
        {
            "message_size": r.message_size,
            "network": "host" if r.host_network else "pod",
            "throughput": value,
        }
        for r in results.populated()
        if r.profile == "TCP_STREAM" and r.parallelism == 1 and not r.scenario.service
        for value in r.throughput_summary
    ]
    return pd.DataFrame(rows, columns=["message_size", "network", "throughput"])


def check_regression(results: ScenarioResults, tolerance: float = DEFAULT_TOLERANCE) -> RegressionReport:
    """Compare mean host and pod TCP_STREAM throughput per message size.

    Args:
        results: All results of the run
        tolerance: Allowed host-over-pod difference in percent

    Returns:
        A report; ``skipped`` is set when there is nothing to compare against

    Raises:
        RegressionComputationError: If a difference cannot be computed
    """
    if not has_host_results(results):
        logger.info("No host network results, skipping regression check")
        return RegressionReport(skipped=True, tolerance=tolerance)

    frame = _tcp_stream_frame(results)
    if frame.empty:
        logger.info("No single-stream TCP_STREAM results, skipping regression check")
        return RegressionReport(skipped=True, tolerance=tolerance)

    means = frame.groupby(["message_size", "network"])["throughput"].mean().unstack()
    report = RegressionReport(tolerance=tolerance)
    for size, row in means.iterrows():
        host = row.get("host")
        pod = row.get("pod")
        if pd.isna(host) or pd.isna(pod):
            logger.warning(f"Message size {size} lacks host or pod results, not compared")
            continue
        diff = percent_difference(float(host), float(pod))
        comparison = ThroughputComparison(
            message_size=int(size),
            host_throughput=float(host),
            pod_throughput=float(pod),
            percent_difference=diff,
            tolerance=tolerance,
        )
        if comparison.is_regression:
            logger.warning(
                f"TCP_STREAM {size}B: pod throughput {pod:.2f} is {diff:.2f}% below host {host:.2f}"
            )
        else:
            logger.info(f"TCP_STREAM {size}B: host vs pod difference {diff:.2f}%")
        report.comparisons.append(comparison)
    return report
