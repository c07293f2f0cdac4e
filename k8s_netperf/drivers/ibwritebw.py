"""ib_write_bw driver for RDMA bandwidth between client and server pods."""

from typing import List, Optional, Tuple

from kubernetes.client import V1Pod

from k8s_netperf.common.errors import ConfigurationError, ParseError
from k8s_netperf.common.models import Sample, ScenarioConfig
from k8s_netperf.common.settings import RunSettings
from k8s_netperf.drivers.base import Driver
from k8s_netperf.engine.context import ExecutionContext

IB_METRIC = "Gb/s"

# Column of "BW average[Gb/sec]" in the ib_write_bw report table
BW_AVERAGE_COLUMN = 3

# RDMA has no transport variants; a UDP stream scenario selects the driver
SUPPORTED_PROFILE = "UDP_STREAM"


def parse_device_spec(spec: Optional[str]) -> Tuple[str, str]:
    """Split ``device:gid-index`` into its parts.

    Raises:
        ConfigurationError: If the value is missing or malformed
    """
    if not spec:
        raise ConfigurationError("ib_write_bw requires a device:gid-index setting")
    device, sep, gid = spec.partition(":")
    if not sep or not device or not gid.isdigit():
        raise ConfigurationError(f"invalid ib_write_bw device '{spec}', expected device:gid-index")
    return device, gid


class IbWriteBwDriver(Driver):
    name = "ib_write_bw"
    binary = "ib_write_bw"

    def __init__(self, scenario: ScenarioConfig, settings: Optional[RunSettings] = None):
        super().__init__(scenario, settings)
        self.device, self.gid_index = parse_device_spec(settings.ib_device if settings else None)

    def is_test_supported(self) -> bool:
        return self.scenario.profile == SUPPORTED_PROFILE

    def build_command(self, scenario: ScenarioConfig, server_address: str) -> List[str]:
        return [
            "ib_write_bw",
            "-d",
            self.device,
            "-x",
            self.gid_index,
            "-F",
            "--report_gbits",
            server_address,
            "-D",
            str(scenario.duration),
        ]

    def run(
        self,
        ctx: ExecutionContext,
        scenario: ScenarioConfig,
        client_pods: List[V1Pod],
        server_address: str,
    ) -> Optional[str]:
        """Run one bandwidth test.

        Returns None in VM mode, where RDMA devices are not available.
        """
        if ctx.topology.vm:
            ctx.logger.warning(f"{self.name} is not supported in VM mode, skipping sample")
            return None
        pod = self.client_pod(client_pods)
        return self.execute(ctx, pod, self.build_command(scenario, server_address))

    def parse_results(self, raw: str, scenario: ScenarioConfig) -> Sample:
        for line in raw.splitlines():
            fields = line.split()
            if len(fields) <= BW_AVERAGE_COLUMN:
                continue
            try:
                numbers = [float(f) for f in fields]
            except ValueError:
                continue
            return Sample(driver=self.name, throughput=numbers[BW_AVERAGE_COLUMN], metric=IB_METRIC)
        raise ParseError(self.name, "no bandwidth row found in output")
