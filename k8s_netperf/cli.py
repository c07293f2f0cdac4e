"""k8s-netperf command line entry point.

Runs the scenarios of a config file against an already provisioned netperf
namespace, prints result tables, archives them and checks pod-network TCP
throughput against the host network.

Exit codes:
    0  all scenarios ran and no regression was found (or none was checked)
    1  a fatal error aborted the run, or pod throughput regressed
"""

import argparse
import logging
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from k8s_netperf.analysis.regression import EXIT_REGRESSION, check_regression
from k8s_netperf.archive import display
from k8s_netperf.archive.results import (
    build_docs,
    index_docs,
    write_csv_result,
    write_json_docs,
    write_prom_csv_result,
)
from k8s_netperf.common.config import load_scenarios
from k8s_netperf.common.errors import ConfigurationError, NetperfError
from k8s_netperf.common.models import ScenarioConfig, ScenarioResults
from k8s_netperf.common.settings import RunSettings
from k8s_netperf.engine.context import ExecutionContext
from k8s_netperf.engine.runner import run_all
from k8s_netperf.k8s.discovery import discover_topology, load_core_api
from k8s_netperf.k8s.executor import PodExecutor, VirtctlExecutor
from k8s_netperf.metrics.prometheus import PrometheusClient, collect_all

logger = logging.getLogger("k8s_netperf")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO, format=LOG_FORMAT)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="k8s-netperf",
        description="Run network benchmarks between Kubernetes pods",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", type=Path, help="Scenario file (default: netperf.yml)")
    parser.add_argument("--kubeconfig", type=Path, help="Path to kubeconfig file")
    parser.add_argument("--namespace", help="Namespace of the benchmark workload")

    topo = parser.add_argument_group("topology")
    topo.add_argument("--local", dest="node_local", action="store_true", default=None,
                      help="Client and server on the same node")
    topo.add_argument("--hostnet", action="store_true", default=None,
                      help="Also run host-network scenarios")
    topo.add_argument("--across", dest="across_az", action="store_true", default=None,
                      help="Place client and server in different zones")
    topo.add_argument("--udn", choices=["layer2", "layer3"], help="Use a primary user defined network")
    topo.add_argument("--cudn", action="store_true", default=None,
                      help="Use a cluster user defined network")
    topo.add_argument("--bridge", help="Bridge network attachment name")
    topo.add_argument("--bridge-namespace", help="Namespace of the bridge network attachment")
    topo.add_argument("--bridge-network", help="Static server address for VMs on a bridge")
    topo.add_argument("--vm", action="store_true", default=None, help="Run in virtual machines")
    topo.add_argument("--vm-binding", dest="udn_plugin_binding", help="VM binding for primary UDN")
    topo.add_argument("--external-server", help="Benchmark a server outside the cluster")

    drivers = parser.add_argument_group("drivers")
    drivers.add_argument("--iperf", action="store_true", help="Also run iperf3")
    drivers.add_argument("--uperf", action="store_true", help="Also run uperf")
    drivers.add_argument("--ib-write-bw", metavar="DEVICE:GID",
                         help="Also run ib_write_bw on the given RDMA device and GID index")

    out = parser.add_argument_group("results")
    out.add_argument("--uuid", help="Run identifier stored with indexed documents")
    out.add_argument("--tcp-tolerance", type=float, help="Allowed host vs pod difference in %%")
    out.add_argument("--prom", dest="prom_url", help="Prometheus URL for CPU metrics")
    out.add_argument("--prom-token", help="Bearer token for Prometheus")
    out.add_argument("--search", dest="search_url", help="OpenSearch URL to index results into")
    out.add_argument("--json", dest="json_file", type=Path, help="Write result documents to a file")
    out.add_argument("--results-dir", type=Path, help="Directory for CSV files")
    out.add_argument("--no-csv", dest="csv", action="store_false", default=None,
                     help="Do not write CSV files")
    out.add_argument("--mean", action="store_true", help="Summarise tables with the mean, not the median")
    parser.add_argument("--debug", action="store_true", default=None, help="Enable debug logging")
    return parser


def build_settings(args: argparse.Namespace) -> RunSettings:
    """Merge CLI flags over environment settings.

    Raises:
        ConfigurationError: If the combination of options is invalid
    """
    skip = {"iperf", "uperf", "ib_write_bw", "mean"}
    overrides: Dict[str, Any] = {
        k: v for k, v in vars(args).items() if v is not None and k not in skip
    }
    try:
        settings = RunSettings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"invalid options: {e}") from e

    drivers: List[str] = list(settings.drivers)
    for enabled, name in ((args.iperf, "iperf3"), (args.uperf, "uperf"), (args.ib_write_bw, "ib_write_bw")):
        if enabled and name not in drivers:
            drivers.append(name)
    settings.drivers = drivers
    if args.ib_write_bw:
        settings.ib_device = args.ib_write_bw
    return settings


def execute(settings: RunSettings, scenarios: List[ScenarioConfig]) -> ScenarioResults:
    """Discover the workload and run every scenario."""
    core = load_core_api(settings.kubeconfig)
    topology = discover_topology(core, settings)
    executor = VirtctlExecutor() if settings.vm else PodExecutor(core)
    ctx = ExecutionContext(topology=topology, executor=executor, settings=settings, logger=logger)
    return run_all(ctx, scenarios)


def publish(settings: RunSettings, results: ScenarioResults, method: str) -> None:
    """Print tables and write every configured archive."""
    print(display.show_stream_result(results, method))
    print(display.show_rr_result(results, method))
    print(display.show_latency_result(results, method))
    for table in (display.show_node_cpu(results), display.show_pod_cpu(results)):
        if table:
            print(table)

    if settings.csv:
        write_csv_result(results, settings.results_dir)
        if settings.prom_url:
            write_prom_csv_result(results, settings.results_dir)

    if settings.json_file or settings.search_url:
        docs = build_docs(results, settings.uuid or str(uuid.uuid4()))
        if settings.json_file:
            write_json_docs(docs, settings.json_file)
        if settings.search_url:
            indexed = index_docs(settings.search_url, docs)
            logger.info(f"Indexed {indexed} documents")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(bool(args.debug))

    try:
        settings = build_settings(args)
        scenarios = load_scenarios(settings.config)
        results = execute(settings, scenarios)
        if settings.prom_url:
            collect_all(PrometheusClient(settings.prom_url, settings.prom_token), results)
        publish(settings, results, "mean" if args.mean else "median")
        report = check_regression(results, settings.tcp_tolerance)
    except NetperfError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return EXIT_REGRESSION

    if report.skipped:
        return 0
    if report.regressed:
        logger.error(f"Pod network TCP throughput is more than {settings.tcp_tolerance}% below host network")
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
