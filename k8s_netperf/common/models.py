"""Pydantic models for scenarios, samples and aggregated results."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Profile(str, Enum):
    """Benchmark profiles: stream or request/response over TCP, UDP or SCTP."""

    TCP_STREAM = "TCP_STREAM"
    UDP_STREAM = "UDP_STREAM"
    SCTP_STREAM = "SCTP_STREAM"
    TCP_RR = "TCP_RR"
    UDP_RR = "UDP_RR"
    SCTP_RR = "SCTP_RR"
    TCP_CRR = "TCP_CRR"
    UDP_CRR = "UDP_CRR"
    SCTP_CRR = "SCTP_CRR"


STREAM_METRIC = "Mb/s"
RR_METRIC = "OP/s"
LATENCY_METRIC = "usec"


class ScenarioConfig(BaseModel):
    """One named benchmark scenario from the configuration file."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    name: str = Field(description="Scenario name as written in the config file")
    profile: Profile = Field(description="Benchmark profile")
    duration: int = Field(gt=0, description="Duration of a single sample in seconds")
    samples: int = Field(gt=0, description="Number of samples to collect")
    message_size: int = Field(gt=0, description="Message size in bytes")
    parallelism: int = Field(default=1, gt=0, description="Number of parallel streams")
    burst: int = Field(default=0, ge=0, description="Outstanding transactions for TCP_RR")
    service: bool = Field(default=False, description="Reach the server through its Service")

    @field_validator("profile", mode="before")
    @classmethod
    def normalize_profile(cls, v):
        """Accept profile names in any case."""
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @model_validator(mode="after")
    def check_service_parallelism(self) -> "ScenarioConfig":
        if self.service and self.parallelism > 1:
            raise ValueError("parallelism must be 1 when using a service")
        return self

    @property
    def is_stream(self) -> bool:
        return "STREAM" in self.profile

    @property
    def is_request_response(self) -> bool:
        return "RR" in self.profile

    @property
    def protocol(self) -> str:
        """Transport protocol in lower case: tcp, udp or sctp."""
        return self.profile.split("_", 1)[0].lower()

    @property
    def metric(self) -> str:
        return STREAM_METRIC if self.is_stream else RR_METRIC


class Sample(BaseModel):
    """Outcome of one benchmark tool invocation."""

    model_config = ConfigDict(frozen=True)

    driver: str = ""
    throughput: float = 0.0
    latency_p99: float = 0.0
    latency: float = 0.0
    loss_percent: float = 0.0
    retransmits: float = 0.0
    metric: str = ""


class NodeInfo(BaseModel):
    """Node a client or server pod was scheduled on."""

    ip: str = ""
    hostname: str = ""
    node_name: str = ""


class NodeCPU(BaseModel):
    """Average CPU mode usage of a node over a scenario window."""

    idle: float = 0.0
    user: float = 0.0
    steal: float = 0.0
    system: float = 0.0
    nice: float = 0.0
    irq: float = 0.0
    softirq: float = 0.0
    iowait: float = 0.0


class PodMetric(BaseModel):
    """One pod in a top-N consumer list."""

    name: str
    value: float


class PodValues(BaseModel):
    results: List[PodMetric] = Field(default_factory=list)


class Metadata(BaseModel):
    """Cluster facts recorded alongside the results of a run."""

    platform: str = ""
    kernel: str = ""
    kubelet: str = ""
    cluster_version: str = ""
    ipsec: bool = False
    mtu: int = 0


class Result(BaseModel):
    """Every sample collected for one (scenario, network mode, driver) triple."""

    scenario: ScenarioConfig
    driver: str
    metric: str = ""
    host_network: bool = False
    same_node: bool = False
    service: bool = False
    across_az: bool = False
    udn_info: str = ""
    bridge: bool = False
    vm: bool = False
    external_server: bool = False
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    throughput_summary: List[float] = Field(default_factory=list)
    latency_summary: List[float] = Field(default_factory=list)
    loss_summary: List[float] = Field(default_factory=list)
    retransmit_summary: List[float] = Field(default_factory=list)

    client_node_info: NodeInfo = Field(default_factory=NodeInfo)
    server_node_info: NodeInfo = Field(default_factory=NodeInfo)
    client_metrics: Optional[NodeCPU] = None
    server_metrics: Optional[NodeCPU] = None
    client_pod_cpu: Optional[PodValues] = None
    server_pod_cpu: Optional[PodValues] = None
    client_pod_mem: Optional[PodValues] = None
    server_pod_mem: Optional[PodValues] = None

    def add_sample(self, sample: Sample) -> None:
        """Append a sample to the parallel summary lists."""
        self.throughput_summary.append(sample.throughput)
        self.latency_summary.append(sample.latency_p99)
        self.loss_summary.append(sample.loss_percent)
        self.retransmit_summary.append(sample.retransmits)
        if sample.metric:
            self.metric = sample.metric

    @property
    def is_empty(self) -> bool:
        return not self.throughput_summary

    @property
    def profile(self) -> str:
        return self.scenario.profile

    @property
    def message_size(self) -> int:
        return self.scenario.message_size

    @property
    def parallelism(self) -> int:
        return self.scenario.parallelism


class ScenarioResults(BaseModel):
    """Ordered results of a whole run plus cluster metadata."""

    results: List[Result] = Field(default_factory=list)
    metadata: Metadata = Field(default_factory=Metadata)

    def populated(self) -> List[Result]:
        """Results that hold at least one sample."""
        return [r for r in self.results if not r.is_empty]
