"""Driver contract shared by all benchmark tools."""

from abc import ABC, abstractmethod
from typing import List, Optional

from kubernetes.client import V1Pod

from k8s_netperf.common.errors import TopologyError
from k8s_netperf.common.models import Sample, ScenarioConfig
from k8s_netperf.common.settings import RunSettings
from k8s_netperf.engine.context import ExecutionContext

# VM images install benchmark tools at boot; poll until they show up
BINARY_WAIT_INTERVAL = 30


class Driver(ABC):
    """Adapter around one benchmark tool.

    A driver builds the tool invocation for a scenario, executes it on the
    first client pod and turns the raw output into a :class:`Sample`.
    Drivers never retry; the execution loop owns the retry budget.
    """

    name: str = ""
    binary: str = ""

    def __init__(self, scenario: ScenarioConfig, settings: Optional[RunSettings] = None):
        self.scenario = scenario
        self.settings = settings

    @abstractmethod
    def is_test_supported(self) -> bool:
        """Whether this tool can run the driver's scenario profile."""

    @abstractmethod
    def run(
        self,
        ctx: ExecutionContext,
        scenario: ScenarioConfig,
        client_pods: List[V1Pod],
        server_address: str,
    ) -> Optional[str]:
        """Execute one benchmark invocation and return its raw output.

        None means the driver declined to run in this topology and the loop
        records an empty sample.
        """

    @abstractmethod
    def parse_results(self, raw: str, scenario: ScenarioConfig) -> Sample:
        """Turn raw tool output into a sample or raise ParseError."""

    def client_pod(self, client_pods: List[V1Pod]) -> V1Pod:
        if not client_pods:
            raise TopologyError(f"{self.name}: no client pods to run from")
        return client_pods[0]

    def execute(self, ctx: ExecutionContext, pod: V1Pod, command: List[str]) -> str:
        ctx.logger.debug(f"{self.name} command: {' '.join(command)}")
        return ctx.executor.run(pod, command, timeout=ctx.exec_timeout(self.scenario))

    def wait_for_binary(self, ctx: ExecutionContext, pod: V1Pod) -> None:
        """Block until the tool is installed inside a VM client."""
        if not ctx.topology.vm or not self.binary:
            return
        script = f"until which {self.binary}; do sleep {BINARY_WAIT_INTERVAL}; done"
        ctx.executor.run(pod, ["bash", "-c", script], timeout=ctx.settings.ready_timeout)
