"""netperf driver, run through the super-netperf wrapper."""

import math
from typing import Dict, List

from kubernetes.client import V1Pod

from k8s_netperf.common.errors import ParseError
from k8s_netperf.common.models import Sample, ScenarioConfig
from k8s_netperf.drivers.base import Driver
from k8s_netperf.engine.context import ExecutionContext

NETPERF_DATA_PORT = 42424
NETPERF_CTL_PORT = 12865

OUTPUT_KEYS = (
    "rt_latency,p99_latency,throughput,throughput_units,"
    "remote_recv_calls,local_send_calls,local_transport_retrans"
)

# Minimum number of KEY=VALUE lines a complete run prints
MIN_OUTPUT_LINES = 5


class NetperfDriver(Driver):
    """Supports every stream and request/response profile."""

    name = "netperf"
    binary = "super-netperf"

    def is_test_supported(self) -> bool:
        return True

    def build_command(self, scenario: ScenarioConfig, server_address: str) -> List[str]:
        cmd = [
            "super-netperf",
            str(scenario.parallelism),
            str(NETPERF_DATA_PORT),
            "-H",
            server_address,
            "-l",
            str(scenario.duration),
            "-t",
            scenario.profile,
            "--",
            "-k",
            OUTPUT_KEYS,
        ]
        if scenario.is_stream:
            cmd += ["-m", str(scenario.message_size)]
            if scenario.protocol == "udp":
                cmd += ["-R", "1"]
        else:
            cmd += ["-r", f"{scenario.message_size},{scenario.message_size}"]
            if scenario.profile == "TCP_RR" and scenario.burst > 0:
                cmd += ["-b", str(scenario.burst)]
        return cmd

    def run(
        self,
        ctx: ExecutionContext,
        scenario: ScenarioConfig,
        client_pods: List[V1Pod],
        server_address: str,
    ) -> str:
        pod = self.client_pod(client_pods)
        self.wait_for_binary(ctx, pod)
        return self.execute(ctx, pod, self.build_command(scenario, server_address))

    def parse_results(self, raw: str, scenario: ScenarioConfig) -> Sample:
        """Parse ``KEY=VALUE`` lines printed by netperf's ``-k`` selector.

        UDP runs report a negative retransmit count; loss is then derived
        from the send and receive call counters.
        """
        lines = [line for line in raw.splitlines() if line.strip()]
        if len(lines) < MIN_OUTPUT_LINES:
            raise ParseError(self.name, f"expected at least {MIN_OUTPUT_LINES} lines, got {len(lines)}")

        values: Dict[str, str] = {}
        for line in lines:
            parts = line.split("=")
            if len(parts) < 2:
                continue
            key, value = parts[0].strip(), parts[1].strip()
            # THROUGHPUT_UNITS contains THROUGHPUT, so it must be checked first
            if "THROUGHPUT_UNITS" in key:
                values["metric"] = value
            elif "THROUGHPUT" in key:
                values["throughput"] = value
            elif "P99_LATENCY" in key:
                values["p99"] = value
            elif "RT_LATENCY" in key:
                values["latency"] = value
            elif "LOCAL_SEND_CALLS" in key:
                values["send"] = value
            elif "REMOTE_RECV_CALLS" in key:
                values["recv"] = value
            elif "LOCAL_TRANSPORT_RETRANS" in key:
                values["retransmits"] = value

        if not values.get("throughput"):
            raise ParseError(self.name, "throughput missing from output")
        if not values.get("p99"):
            raise ParseError(self.name, "p99 latency missing from output")

        throughput = _to_float(values["throughput"])
        latency_p99 = _to_float(values["p99"])
        if math.isnan(throughput):
            raise ParseError(self.name, "throughput is not a number")
        if math.isnan(latency_p99):
            raise ParseError(self.name, "p99 latency is not a number")

        retransmits = _to_float(values.get("retransmits", ""), default=0.0)
        loss = 0.0
        if retransmits < 0:
            send = _to_float(values.get("send", ""), default=0.0)
            recv = _to_float(values.get("recv", ""), default=0.0)
            if send <= 0:
                raise ParseError(self.name, "local send calls missing, cannot compute loss")
            loss = 100 - (recv / send * 100)

        return Sample(
            driver=self.name,
            throughput=throughput,
            latency_p99=latency_p99,
            latency=_to_float(values.get("latency", ""), default=0.0),
            loss_percent=loss,
            retransmits=retransmits,
            metric=values.get("metric", ""),
        )


def _to_float(value: str, default: float = math.nan) -> float:
    try:
        return float(value)
    except ValueError:
        return default
