"""Execution context shared by the loop and the drivers."""

import logging
from dataclasses import dataclass, field

from k8s_netperf.common.models import ScenarioConfig
from k8s_netperf.common.settings import RunSettings
from k8s_netperf.engine.topology import TopologyState
from k8s_netperf.k8s.executor import RemoteExecutor


@dataclass
class ExecutionContext:
    """Everything a driver needs to run a sample, passed explicitly."""

    topology: TopologyState
    executor: RemoteExecutor
    settings: RunSettings = field(default_factory=RunSettings)
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("k8s_netperf"))

    def exec_timeout(self, scenario: ScenarioConfig) -> int:
        """Seconds a remote benchmark invocation may take."""
        return scenario.duration + self.settings.exec_timeout_margin

    def for_topology(self, topology: TopologyState) -> "ExecutionContext":
        return ExecutionContext(topology, self.executor, self.settings, self.logger)
