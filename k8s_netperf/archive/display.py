"""Console tables for a finished run."""

from typing import Callable, List, Optional

from tabulate import tabulate

from k8s_netperf.analysis.statistical_analysis import calculate_descriptive_statistics
from k8s_netperf.common.models import LATENCY_METRIC, Result, ScenarioResults

HEADERS = [
    "Result Type",
    "Driver",
    "Scenario",
    "Parallelism",
    "Host Network",
    "Service",
    "Message Size",
    "Burst",
    "Same node",
    "Duration",
    "Samples",
    "Avg value",
    "95% Confidence Interval",
]


def _row(label: str, r: Result, values: List[float], unit: str, method: str) -> List[object]:
    stats = calculate_descriptive_statistics(values)
    return [
        label,
        r.driver,
        r.scenario.profile,
        r.scenario.parallelism,
        r.host_network,
        r.service,
        r.scenario.message_size,
        r.scenario.burst,
        r.same_node,
        r.scenario.duration,
        r.scenario.samples,
        f"{stats.central(method):.6f} ({unit})",
        f"{stats.ci_lower:.6f}-{stats.ci_upper:.6f}",
    ]


def _table(
    results: ScenarioResults,
    label: str,
    keep: Callable[[Result], bool],
    method: str,
    latency: bool = False,
) -> str:
    rows = []
    for r in results.populated():
        if not keep(r):
            continue
        values = r.latency_summary if latency else r.throughput_summary
        unit = LATENCY_METRIC if latency else r.metric
        rows.append(_row(label, r, values, unit, method))
    return tabulate(rows, headers=HEADERS, tablefmt="grid")


def show_stream_result(results: ScenarioResults, method: str = "median") -> str:
    return _table(results, "📊 Stream Results", lambda r: r.scenario.is_stream, method)


def show_rr_result(results: ScenarioResults, method: str = "median") -> str:
    return _table(results, "📊 RR Results", lambda r: not r.scenario.is_stream, method)


def show_latency_result(results: ScenarioResults, method: str = "median") -> str:
    """99th percentile latency per result; tools that do not report it show zero."""
    return _table(results, "📊 Latency Results", lambda r: True, method, latency=True)


def show_node_cpu(results: ScenarioResults) -> Optional[str]:
    rows = []
    for r in results.populated():
        for role, cpu in (("Client", r.client_metrics), ("Server", r.server_metrics)):
            if cpu is None:
                continue
            rows.append(
                [role, r.driver, r.scenario.profile, r.host_network, r.service,
                 cpu.idle, cpu.user, cpu.system, cpu.iowait, cpu.steal, cpu.softirq, cpu.irq]
            )
    if not rows:
        return None
    headers = ["Role", "Driver", "Scenario", "Host Network", "Service",
               "Idle CPU", "User CPU", "System CPU", "IOWait CPU", "Steal CPU", "SoftIRQ CPU", "IRQ CPU"]
    return tabulate(rows, headers=headers, tablefmt="grid", floatfmt=".2f")


def show_pod_cpu(results: ScenarioResults) -> Optional[str]:
    rows = []
    for r in results.populated():
        for role, pods in (("Client", r.client_pod_cpu), ("Server", r.server_pod_cpu)):
            for pod in pods.results if pods else []:
                rows.append([role, r.driver, r.scenario.profile, r.host_network, pod.name, pod.value])
    if not rows:
        return None
    headers = ["Role", "Driver", "Scenario", "Host Network", "Pod", "Utilization"]
    return tabulate(rows, headers=headers, tablefmt="grid", floatfmt=".2f")
