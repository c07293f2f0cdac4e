"""uperf driver.

uperf is driven by an XML profile that is written on the client before each
run. With ``-a -R -i 1`` it prints cumulative per-transaction counters once a
second; the timed transaction is always ``Txn2``.
"""

import re
from typing import List

from kubernetes.client import V1Pod

from k8s_netperf.analysis.statistical_analysis import mean, percentile
from k8s_netperf.common.errors import ParseError
from k8s_netperf.common.models import RR_METRIC, STREAM_METRIC, Sample, ScenarioConfig
from k8s_netperf.drivers.base import Driver
from k8s_netperf.engine.context import ExecutionContext

UPERF_SERVER_CTL_PORT = 30000

TXN2_PATTERN = re.compile(r"timestamp_ms:(\S+) name:Txn2 nr_bytes:(\S+) nr_ops:(\S+)")

STREAM_TEMPLATE = """<?xml version="1.0"?>
<profile name="{name}">
<group nprocs="{parallelism}">
<transaction iterations="1">
<flowop type="connect" options="remotehost={server} protocol={protocol} port={port}"/>
</transaction>
<transaction duration="{duration}">
<flowop type="write" options="count=16 size={size}"/>
</transaction>
<transaction iterations="1">
<flowop type="disconnect"/>
</transaction>
</group>
</profile>"""

RR_TEMPLATE = """<?xml version="1.0"?>
<profile name="{name}">
<group nprocs="{parallelism}">
<transaction iterations="1">
<flowop type="connect" options="remotehost={server} protocol={protocol} port={port}"/>
</transaction>
<transaction duration="{duration}">
<flowop type="write" options="size={size}"/>
<flowop type="read" options="size={size}"/>
</transaction>
<transaction iterations="1">
<flowop type="disconnect"/>
</transaction>
</group>
</profile>"""


class UperfDriver(Driver):
    """Runs stream and request/response profiles; connect/request/response is not modelled."""

    name = "uperf"
    binary = "uperf"

    def is_test_supported(self) -> bool:
        return self.scenario.profile != "TCP_CRR"

    def profile_name(self, scenario: ScenarioConfig) -> str:
        kind = "stream" if scenario.is_stream else "rr"
        return f"{kind}-{scenario.protocol}-{scenario.message_size}-{scenario.parallelism}"

    def render_profile(self, scenario: ScenarioConfig, server_address: str) -> str:
        template = STREAM_TEMPLATE if scenario.is_stream else RR_TEMPLATE
        return template.format(
            name=self.profile_name(scenario),
            parallelism=scenario.parallelism,
            server=server_address,
            protocol=scenario.protocol,
            port=UPERF_SERVER_CTL_PORT + 1,
            duration=scenario.duration,
            size=scenario.message_size,
        )

    def run(
        self,
        ctx: ExecutionContext,
        scenario: ScenarioConfig,
        client_pods: List[V1Pod],
        server_address: str,
    ) -> str:
        pod = self.client_pod(client_pods)
        self.wait_for_binary(ctx, pod)

        path = f"/tmp/uperf-{self.profile_name(scenario)}"
        profile = self.render_profile(scenario, server_address)
        self.execute(ctx, pod, ["bash", "-c", f"echo '{profile}' > {path}"])

        cmd = ["uperf", "-v", "-a", "-R", "-i", "1", "-m", path, "-P", str(UPERF_SERVER_CTL_PORT)]
        return self.execute(ctx, pod, cmd)

    def parse_results(self, raw: str, scenario: ScenarioConfig) -> Sample:
        """Turn cumulative Txn2 counters into per-interval throughput and latency.

        A request/response transaction counts as two operations (write and
        read), so interval op counts are halved for RR profiles.
        """
        byte_summary: List[float] = []
        op_summary: List[float] = []
        latencies: List[float] = []

        prev_ts = prev_bytes = prev_ops = 0.0
        for match in TXN2_PATTERN.finditer(raw):
            try:
                ts, nbytes, ops = (float(g) for g in match.groups())
            except ValueError as e:
                raise ParseError(self.name, f"bad counter line '{match.group(0)}': {e}") from e

            norm_ops = ops - prev_ops
            if scenario.is_request_response:
                norm_ops /= 2
            if norm_ops != 0 and prev_ts != 0.0:
                latencies.append((ts - prev_ts) / norm_ops * 1000)
                byte_summary.append(nbytes - prev_bytes)
                op_summary.append(norm_ops)
            prev_ts, prev_bytes, prev_ops = ts, nbytes, ops

        if not latencies:
            raise ParseError(self.name, "no Txn2 intervals found in output")

        if scenario.is_request_response:
            throughput, metric = mean(op_summary), RR_METRIC
        else:
            throughput, metric = mean(byte_summary) * 8 / 1e6, STREAM_METRIC

        return Sample(
            driver=self.name,
            throughput=throughput,
            latency_p99=percentile(latencies, 99),
            latency=mean(latencies),
            metric=metric,
        )
