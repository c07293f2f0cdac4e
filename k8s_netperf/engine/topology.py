"""Topology snapshot handed to the resolver and the execution loop."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional

from kubernetes.client import V1Pod

from k8s_netperf.common.errors import ConfigurationError
from k8s_netperf.common.models import NodeInfo


class PodRole(str, Enum):
    """Role a set of pods plays in a benchmark."""

    CLIENT = "client-local"
    CLIENT_ACROSS = "client-across"
    CLIENT_HOST = "host-client"
    SERVER = "server"
    SERVER_HOST = "host-server"
    VM_CLIENT = "vm-client-local"
    VM_CLIENT_ACROSS = "vm-client-across"
    VM_CLIENT_HOST = "vm-host-client"
    VM_SERVER = "vm-server"
    VM_SERVER_HOST = "vm-host-server"

    def for_vm(self) -> "PodRole":
        """VM-flavoured counterpart of a container role."""
        if self.value.startswith("vm-"):
            return self
        return PodRole("vm-" + self.value)


@dataclass
class TopologyState:
    """What the provisioned system under test looks like for one network mode."""

    node_local: bool = False
    host_network: bool = False
    across_az: bool = False
    udn: Optional[str] = None
    cudn: bool = False
    bridge_network: Optional[str] = None
    bridge_namespace: str = "default"
    bridge_server_network: str = ""
    vm: bool = False
    udn_plugin_binding: str = ""
    external_server: Optional[str] = None
    namespace: str = "netperf"
    pods: Dict[PodRole, List[V1Pod]] = field(default_factory=dict)
    services: Dict[str, str] = field(default_factory=dict)
    client_node_info: NodeInfo = field(default_factory=NodeInfo)
    server_node_info: NodeInfo = field(default_factory=NodeInfo)

    def __post_init__(self):
        chosen = [
            flag
            for flag, enabled in (
                ("udn", bool(self.udn)),
                ("cudn", self.cudn),
                ("bridge", bool(self.bridge_network)),
                ("external server", bool(self.external_server)),
            )
            if enabled
        ]
        if len(chosen) > 1:
            raise ConfigurationError(
                f"at most one of udn, cudn, bridge, external server may be set: {chosen}"
            )

    def pod_set(self, role: PodRole) -> List[V1Pod]:
        """Pods for a role, using the VM flavour when running in VM mode."""
        if self.vm:
            role = role.for_vm()
        return self.pods.get(role, [])

    def with_host_network(self, enabled: bool) -> "TopologyState":
        """Copy of this snapshot for a different network mode."""
        return replace(self, host_network=enabled)
