"""Run settings loaded from the environment and overridden by CLI flags."""

from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

NAMESPACE = "netperf"
UDN_NAME = "udn-l2-primary"
CUDN_NAME = "cudn-l2-primary"
INDEX_NAME = "k8s-netperf"


class RunSettings(BaseSettings):
    """Topology flags and run options.

    Values come from ``K8S_NETPERF_*`` environment variables or a ``.env``
    file; the CLI overrides them per invocation.
    """

    model_config = SettingsConfigDict(
        env_prefix="K8S_NETPERF_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    config: Path = Field(default=Path("netperf.yml"), description="Scenario file")
    kubeconfig: Optional[Path] = Field(default=None, description="Path to kubeconfig")
    namespace: str = Field(default=NAMESPACE, description="Namespace of the workload")

    # Topology
    node_local: bool = Field(default=False, description="Client and server on the same node")
    hostnet: bool = Field(default=False, description="Also run host-network scenarios")
    across_az: bool = Field(default=False, description="Place client and server in different zones")
    udn: Optional[str] = Field(default=None, description="Primary UDN layer: layer2 or layer3")
    cudn: bool = Field(default=False, description="Use a cluster user defined network")
    bridge: Optional[str] = Field(default=None, description="Bridge network attachment name")
    bridge_namespace: str = Field(default="default", description="Namespace of the bridge NAD")
    bridge_network: str = Field(
        default="10.10.10.12/24", description="Static server address used by VMs on a bridge"
    )
    vm: bool = Field(default=False, description="Run client and server in virtual machines")
    udn_plugin_binding: str = Field(default="passt", description="VM binding for primary UDN")
    external_server: Optional[str] = Field(default=None, description="Server outside the cluster")

    # Drivers
    drivers: List[str] = Field(default_factory=lambda: ["netperf"], description="Drivers to run")
    ib_device: Optional[str] = Field(
        default=None, description="RDMA device and GID index for ib_write_bw, as device:gid"
    )

    # Execution
    ready_timeout: int = Field(default=300, gt=0, description="Seconds to wait for pods")
    exec_timeout_margin: int = Field(
        default=60, ge=0, description="Seconds added to a scenario duration for remote exec"
    )

    # Results
    tcp_tolerance: float = Field(default=10.0, ge=0, description="Host vs pod tolerance in %")
    uuid: Optional[str] = Field(default=None, description="Run identifier")
    results_dir: Path = Field(default=Path("."), description="Directory for CSV output")
    csv: bool = Field(default=True, description="Write CSV result files")
    json_file: Optional[Path] = Field(default=None, description="Write result documents here")
    search_url: Optional[str] = Field(default=None, description="OpenSearch endpoint to index into")
    prom_url: Optional[str] = Field(default=None, description="Prometheus endpoint for metrics")
    prom_token: Optional[str] = Field(default=None, description="Bearer token for Prometheus")
    debug: bool = Field(default=False, description="Enable debug logging")

    @field_validator("drivers", mode="before")
    @classmethod
    def split_drivers(cls, v):
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [d.strip() for d in v.split(",") if d.strip()]
        return v

    @field_validator("udn")
    @classmethod
    def check_udn_layer(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in ("layer2", "layer3"):
            raise ValueError(f"udn must be layer2 or layer3, got '{v}'")
        return v

    @model_validator(mode="after")
    def check_exclusive_networks(self) -> "RunSettings":
        chosen = [
            name
            for name, enabled in (
                ("udn", self.udn is not None),
                ("cudn", self.cudn),
                ("bridge", self.bridge is not None),
                ("external-server", self.external_server is not None),
            )
            if enabled
        ]
        if len(chosen) > 1:
            raise ValueError(f"network options are mutually exclusive: {', '.join(chosen)}")
        return self
