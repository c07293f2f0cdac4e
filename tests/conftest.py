"""Pytest configuration and shared fixtures for k8s-netperf tests."""

import logging
from typing import Any, Callable, Dict, List, Optional, Union

import pytest
from kubernetes.client import V1ObjectMeta, V1Pod, V1PodCondition, V1PodSpec, V1PodStatus

from k8s_netperf.common.models import NodeInfo, ScenarioConfig
from k8s_netperf.common.settings import RunSettings
from k8s_netperf.engine.context import ExecutionContext
from k8s_netperf.engine.topology import PodRole, TopologyState

NETPERF_STREAM_OUTPUT = """RT_LATENCY=-1.000
P99_LATENCY=12
THROUGHPUT=9394.53
THROUGHPUT_UNITS=10^6bits/s
REMOTE_RECV_CALLS=356102
LOCAL_SEND_CALLS=356120
LOCAL_TRANSPORT_RETRANS=42
"""

NETPERF_UDP_OUTPUT = """RT_LATENCY=-1.000
P99_LATENCY=8
THROUGHPUT=1530.20
THROUGHPUT_UNITS=10^6bits/s
REMOTE_RECV_CALLS=900
LOCAL_SEND_CALLS=1000
LOCAL_TRANSPORT_RETRANS=-1
"""

IPERF_TCP_OUTPUT = """{
  "start": {"version": "iperf 3.9"},
  "end": {
    "sum_sent": {"bits_per_second": 9500000000.0, "retransmits": 17},
    "sum_received": {"bits_per_second": 9400000000.0}
  }
}"""

IPERF_UDP_OUTPUT = """{
  "end": {
    "sum": {"bits_per_second": 1200000000.0, "lost_percent": 2.5}
  }
}"""

UPERF_STREAM_OUTPUT = (
    "timestamp_ms:1000.0 name:Txn2 nr_bytes:0 nr_ops:0\r\n"
    "timestamp_ms:2000.0 name:Txn2 nr_bytes:125000000 nr_ops:1000\r\n"
    "timestamp_ms:3000.0 name:Txn2 nr_bytes:250000000 nr_ops:2000\r\n"
    "timestamp_ms:4000.0 name:Txn2 nr_bytes:375000000 nr_ops:3000\r\n"
)

UPERF_RR_OUTPUT = (
    "timestamp_ms:1000.0 name:Txn2 nr_bytes:0 nr_ops:0\n"
    "timestamp_ms:2000.0 name:Txn2 nr_bytes:1024000 nr_ops:2000\n"
    "timestamp_ms:3000.0 name:Txn2 nr_bytes:2048000 nr_ops:4000\n"
)

IB_WRITE_BW_OUTPUT = """
************************************
* Waiting for client to connect... *
************************************
---------------------------------------------------------------------------------------
                    RDMA_Write BW Test
 Dual-port       : OFF          Device         : mlx5_0
---------------------------------------------------------------------------------------
 #bytes     #iterations    BW peak[Gb/sec]    BW average[Gb/sec]   MsgRate[Mpps]
 65536      1049900          0.00               91.73              0.174963
---------------------------------------------------------------------------------------
"""

Response = Union[str, Exception, None]


class FakeExecutor:
    """Records commands and replays canned responses in order."""

    def __init__(
        self,
        responses: Optional[List[Response]] = None,
        default: Response = "",
        by_command: Optional[Dict[str, Response]] = None,
    ):
        self.responses = list(responses or [])
        self.default = default
        self.by_command = by_command or {}
        self.calls: List[Dict[str, Any]] = []

    def run(self, pod: V1Pod, command: List[str], timeout: Optional[int] = None) -> str:
        self.calls.append({"pod": pod.metadata.name, "command": command, "timeout": timeout})
        if self.responses:
            response = self.responses.pop(0)
        else:
            response = self.by_command.get(command[0], self.default)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def commands(self) -> List[List[str]]:
        return [c["command"] for c in self.calls]


def make_pod(
    name: str,
    ip: Optional[str] = "10.128.0.10",
    annotations: Optional[Dict[str, str]] = None,
    labels: Optional[Dict[str, str]] = None,
    node: str = "worker-0",
    host_ip: str = "192.168.1.10",
    ready: bool = True,
    namespace: str = "netperf",
) -> V1Pod:
    return V1Pod(
        metadata=V1ObjectMeta(name=name, namespace=namespace, annotations=annotations, labels=labels),
        spec=V1PodSpec(containers=[], node_name=node),
        status=V1PodStatus(
            pod_ip=ip,
            host_ip=host_ip,
            conditions=[V1PodCondition(type="Ready", status="True" if ready else "False")],
        ),
    )


@pytest.fixture
def pod_factory() -> Callable[..., V1Pod]:
    return make_pod


@pytest.fixture
def scenario_factory() -> Callable[..., ScenarioConfig]:
    def _make(**overrides: Any) -> ScenarioConfig:
        values: Dict[str, Any] = {
            "name": "TCPStream",
            "profile": "TCP_STREAM",
            "duration": 10,
            "samples": 3,
            "message_size": 1024,
        }
        values.update(overrides)
        return ScenarioConfig(**values)

    return _make


@pytest.fixture
def tcp_stream(scenario_factory) -> ScenarioConfig:
    return scenario_factory()


@pytest.fixture
def pods() -> Dict[PodRole, List[V1Pod]]:
    """One pod per role, each with a distinct IP."""
    return {
        PodRole.CLIENT: [make_pod("client", "10.128.0.11")],
        PodRole.CLIENT_ACROSS: [make_pod("client-across", "10.129.0.12", node="worker-1",
                                         host_ip="192.168.1.11")],
        PodRole.CLIENT_HOST: [make_pod("client-host", "192.168.1.11", node="worker-1",
                                       host_ip="192.168.1.11")],
        PodRole.SERVER: [make_pod("server", "10.128.0.20")],
        PodRole.SERVER_HOST: [make_pod("server-host", "192.168.1.10")],
        PodRole.VM_CLIENT: [make_pod("virt-launcher-client", "10.128.2.11",
                                     labels={"kubevirt.io/domain": "client"})],
        PodRole.VM_CLIENT_ACROSS: [make_pod("virt-launcher-client-across", "10.129.2.12",
                                            labels={"kubevirt.io/domain": "client-across"})],
        PodRole.VM_SERVER: [make_pod("virt-launcher-server", "10.128.2.20",
                                     labels={"kubevirt.io/domain": "server"})],
    }


@pytest.fixture
def topology(pods) -> TopologyState:
    return TopologyState(
        pods=pods,
        services={"netperf": "172.30.0.10", "iperf3": "172.30.0.11", "uperf": "172.30.0.12"},
        client_node_info=NodeInfo(ip="192.168.1.11", hostname="worker-1", node_name="worker-1"),
        server_node_info=NodeInfo(ip="192.168.1.10", hostname="worker-0", node_name="worker-0"),
    )


@pytest.fixture
def settings(monkeypatch, tmp_path) -> RunSettings:
    monkeypatch.chdir(tmp_path)
    return RunSettings(results_dir=tmp_path)


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def ctx(topology, executor, settings) -> ExecutionContext:
    return ExecutionContext(
        topology=topology,
        executor=executor,
        settings=settings,
        logger=logging.getLogger("k8s_netperf.tests"),
    )


@pytest.fixture
def outputs() -> Dict[str, str]:
    """Canned tool output keyed by tool and mode."""
    return {
        "netperf_stream": NETPERF_STREAM_OUTPUT,
        "netperf_udp": NETPERF_UDP_OUTPUT,
        "iperf_tcp": IPERF_TCP_OUTPUT,
        "iperf_udp": IPERF_UDP_OUTPUT,
        "uperf_stream": UPERF_STREAM_OUTPUT,
        "uperf_rr": UPERF_RR_OUTPUT,
        "ib_write_bw": IB_WRITE_BW_OUTPUT,
    }


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "config: Scenario and settings validation tests")
    config.addinivalue_line("markers", "drivers: Benchmark tool driver tests")
    config.addinivalue_line("markers", "engine: Endpoint resolution and execution loop tests")
    config.addinivalue_line("markers", "analysis: Statistics and regression check tests")
    config.addinivalue_line("markers", "archive: CSV, document and table output tests")
    config.addinivalue_line("markers", "k8s: Kubernetes discovery and execution tests")
