"""iperf3 driver. Stream profiles only."""

import json
import uuid
from typing import Any, Dict, List

from kubernetes.client import V1Pod

from k8s_netperf.common.errors import ParseError, UnsupportedTestError
from k8s_netperf.common.models import STREAM_METRIC, Sample, ScenarioConfig
from k8s_netperf.drivers.base import Driver
from k8s_netperf.engine.context import ExecutionContext

IPERF_SERVER_PORT = 22865


class IperfDriver(Driver):
    """Runs iperf3 in JSON mode and reads the report back from a log file."""

    name = "iperf3"
    binary = "iperf3"

    def is_test_supported(self) -> bool:
        return self.scenario.is_stream

    def build_command(self, scenario: ScenarioConfig, server_address: str, logfile: str) -> List[str]:
        cmd = [
            "iperf3",
            "-J",
            "-P",
            str(scenario.parallelism),
            "-c",
            server_address,
            "-t",
            str(scenario.duration),
            "-l",
            str(scenario.message_size),
            "-p",
            str(IPERF_SERVER_PORT),
            f"--logfile={logfile}",
        ]
        if scenario.protocol == "udp":
            # -b 0 removes iperf3's default 1 Mbit/s UDP rate cap
            cmd[1:1] = ["-u", "-b", "0"]
        return cmd

    def run(
        self,
        ctx: ExecutionContext,
        scenario: ScenarioConfig,
        client_pods: List[V1Pod],
        server_address: str,
    ) -> str:
        if not scenario.is_stream:
            raise UnsupportedTestError(f"{self.name} does not support {scenario.profile}")
        pod = self.client_pod(client_pods)
        self.wait_for_binary(ctx, pod)

        logfile = f"/tmp/iperf-{uuid.uuid4()}"
        self.execute(ctx, pod, self.build_command(scenario, server_address, logfile))
        return self.execute(ctx, pod, ["cat", logfile])

    def parse_results(self, raw: str, scenario: ScenarioConfig) -> Sample:
        """Read throughput and retransmits (TCP) or loss (UDP) from the JSON report."""
        try:
            report: Dict[str, Any] = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ParseError(self.name, f"output is not valid JSON: {e}") from e
        if not isinstance(report, dict):
            raise ParseError(self.name, "output is not a JSON object")
        if report.get("error"):
            raise ParseError(self.name, f"iperf3 reported an error: {report['error']}")

        end = report.get("end") or {}
        try:
            if scenario.protocol == "udp":
                bps = float(end["sum"]["bits_per_second"])
                loss = float(end["sum"].get("lost_percent", 0.0))
                retransmits = 0.0
            else:
                bps = float(end["sum_received"]["bits_per_second"])
                retransmits = float(end.get("sum_sent", {}).get("retransmits", 0))
                loss = 0.0
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(self.name, f"report is missing field {e}") from e

        return Sample(
            driver=self.name,
            throughput=bps / 1e6,
            loss_percent=loss,
            retransmits=max(retransmits, 0.0),
            metric=STREAM_METRIC,
        )
