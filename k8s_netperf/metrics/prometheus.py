"""Prometheus queries for node CPU, top pod consumers and cluster metadata.

Metrics are best effort: a failed query is logged and leaves the matching
field of the result unset.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import numpy as np
import requests

from k8s_netperf.common.errors import MetricsError
from k8s_netperf.common.models import (
    Metadata,
    NodeCPU,
    NodeInfo,
    PodMetric,
    PodValues,
    Result,
    ScenarioResults,
)

logger = logging.getLogger(__name__)

STEP_SECONDS = 60
REQUEST_TIMEOUT = 10
TOP_PODS = 5

CPU_MODES = ("idle", "user", "steal", "system", "nice", "irq", "softirq", "iowait")


class PrometheusClient:
    """Minimal client for the Prometheus HTTP range query API."""

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        verify: bool = True,
        session: Optional[requests.Session] = None,
    ):
        self.url = url.rstrip("/")
        self.verify = verify
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def query_range(
        self, query: str, start: datetime, end: datetime, step: int = STEP_SECONDS
    ) -> List[Dict[str, Any]]:
        """Run a range query and return the matrix series.

        Raises:
            MetricsError: If the request fails or Prometheus reports an error
        """
        logger.debug(f"Prom query: {query}")
        params = {
            "query": query,
            "start": start.timestamp(),
            "end": end.timestamp(),
            "step": step,
        }
        try:
            response = self.session.get(
                f"{self.url}/api/v1/query_range",
                params=params,
                verify=self.verify,
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            raise MetricsError(f"query '{query}' failed: {e}") from e

        if body.get("status") != "success":
            raise MetricsError(f"query '{query}' failed: {body.get('error', 'unknown error')}")
        return body.get("data", {}).get("result", [])


def series_average(series: Dict[str, Any]) -> float:
    """Mean of a series' sample values, ignoring NaN points."""
    values = [float(v[1]) for v in series.get("values", [])]
    values = [v for v in values if not np.isnan(v)]
    if not values:
        return 0.0
    return float(np.mean(values))


def query_node_cpu(prom: PrometheusClient, node: NodeInfo, start: datetime, end: datetime) -> NodeCPU:
    """Average CPU usage per mode for one node, in percent."""
    query = (
        f'(avg by(mode) (rate(node_cpu_seconds_total{{instance=~"{node.ip}:.*"}}[2m])) * 100)'
    )
    cpu: Dict[str, float] = {}
    for series in prom.query_range(query, start, end):
        mode = series.get("metric", {}).get("mode")
        if mode in CPU_MODES:
            cpu[mode] = series_average(series)
    return NodeCPU(**cpu)


def _top_pods(prom: PrometheusClient, query: str, start: datetime, end: datetime) -> PodValues:
    return PodValues(
        results=[
            PodMetric(name=series.get("metric", {}).get("pod", ""), value=series_average(series))
            for series in prom.query_range(query, start, end)
        ]
    )


def top_pod_cpu(prom: PrometheusClient, node: NodeInfo, start: datetime, end: datetime) -> PodValues:
    query = (
        f'topk({TOP_PODS},sum(irate(container_cpu_usage_seconds_total'
        f'{{name!="",instance=~"{node.ip}:.*"}}[2m]) * 100) by (pod, namespace, instance))'
    )
    return _top_pods(prom, query, start, end)


def top_pod_mem(prom: PrometheusClient, node: NodeInfo, start: datetime, end: datetime) -> PodValues:
    query = (
        f'topk({TOP_PODS},sum(container_memory_rss'
        f'{{name!="",instance=~"{node.ip}:.*"}}) by (pod, namespace, instance))'
    )
    return _top_pods(prom, query, start, end)


def attach_metrics(prom: PrometheusClient, result: Result) -> None:
    """Fill the CPU and top-pod fields of a result from its time window."""
    if result.is_empty or not result.start_time or not result.end_time:
        return
    start, end = result.start_time, result.end_time
    for side, node in (("client", result.client_node_info), ("server", result.server_node_info)):
        if not node.ip:
            continue
        try:
            setattr(result, f"{side}_metrics", query_node_cpu(prom, node, start, end))
            setattr(result, f"{side}_pod_cpu", top_pod_cpu(prom, node, start, end))
            setattr(result, f"{side}_pod_mem", top_pod_mem(prom, node, start, end))
        except MetricsError as e:
            logger.warning(f"Unable to collect {side} metrics for {result.scenario.name}: {e}")


def _first_label(prom: PrometheusClient, query: str, label: str, start: datetime, end: datetime) -> str:
    for series in prom.query_range(query, start, end):
        value = series.get("metric", {}).get(label)
        if value:
            return value
    return ""


def _first_value(prom: PrometheusClient, query: str, start: datetime, end: datetime) -> float:
    for series in prom.query_range(query, start, end):
        if series.get("values"):
            return float(series["values"][0][1])
    return 0.0


def collect_metadata(prom: PrometheusClient) -> Metadata:
    """Platform, kernel, kubelet, cluster version, IPsec and MTU of the cluster."""
    end = datetime.now(timezone.utc)
    start = end - timedelta(minutes=1)
    metadata = Metadata()
    try:
        metadata.platform = _first_label(prom, "cluster_infrastructure_provider", "type", start, end)
        metadata.kernel = _first_label(prom, "kube_node_info", "kernel_version", start, end)
        metadata.kubelet = _first_label(prom, "kube_node_info", "kubelet_version", start, end)
        metadata.cluster_version = _first_label(
            prom, 'cluster_version{type="current"}', "version", start, end
        )
        metadata.mtu = int(_first_value(prom, "node_network_mtu_bytes", start, end))
        metadata.ipsec = _first_value(prom, "ovnkube_master_ipsec_enabled", start, end) != 0
    except MetricsError as e:
        logger.warning(f"Unable to collect cluster metadata: {e}")
    return metadata


def collect_all(prom: PrometheusClient, results: ScenarioResults) -> None:
    """Attach metadata and per-result metrics to a finished run."""
    results.metadata = collect_metadata(prom)
    for result in results.results:
        attach_metrics(prom, result)
