"""Server address and client pod set selection.

The resolver walks a fixed priority chain. The first rule that applies wins:

1. an external server address,
2. the driver's Service cluster IP in service mode,
3. the server pod's address on a primary user defined network,
4. the server pod's address on a cluster user defined network,
5. the server pod's address on a secondary bridge network,
6. the static bridge server address when VMs sit on a bridge,
7. the server pod's primary IP.
"""

import logging
from dataclasses import dataclass
from typing import List

from kubernetes.client import V1Pod

from k8s_netperf.common.errors import AddressExtractionError, TopologyError
from k8s_netperf.common.models import ScenarioConfig
from k8s_netperf.common.settings import CUDN_NAME, UDN_NAME
from k8s_netperf.engine.topology import PodRole, TopologyState
from k8s_netperf.k8s.network import extract_bridge_ip, extract_udn_ip, strip_prefix

logger = logging.getLogger(__name__)

# Drivers without a dedicated Service share the netperf one
DEFAULT_SERVICE_DRIVER = "netperf"


@dataclass
class ResolvedEndpoint:
    """Where a scenario sends traffic and from which pods."""

    server_address: str
    client_pods: List[V1Pod]
    annotation: str = ""


def _first(topology: TopologyState, role: PodRole) -> V1Pod:
    pods = topology.pod_set(role)
    if not pods:
        raise TopologyError(f"no pods available for role {role.value}")
    return pods[0]


def _pod_ip(pod: V1Pod) -> str:
    ip = pod.status.pod_ip if pod.status else None
    if not ip:
        raise TopologyError(f"pod {pod.metadata.name} has no IP address")
    return ip


def select_client_pods(topology: TopologyState) -> List[V1Pod]:
    """Client pod set for the snapshot's network mode and placement."""
    if topology.host_network and not topology.node_local:
        role = PodRole.CLIENT_HOST
    elif not topology.node_local and not topology.external_server:
        role = PodRole.CLIENT_ACROSS
    else:
        role = PodRole.CLIENT
    pods = topology.pod_set(role)
    if not pods:
        raise TopologyError(f"no client pods available for role {role.value}")
    return pods


def _service_address(topology: TopologyState, driver_name: str) -> str:
    address = topology.services.get(driver_name) or topology.services.get(DEFAULT_SERVICE_DRIVER)
    if not address:
        raise TopologyError(f"no service cluster IP known for driver {driver_name}")
    return address


def resolve(topology: TopologyState, scenario: ScenarioConfig, driver_name: str) -> ResolvedEndpoint:
    """Pick the server address and client pods for one scenario and driver.

    Args:
        topology: Snapshot for the current network mode
        scenario: Scenario being run
        driver_name: Name of the driver that will send traffic

    Returns:
        The resolved endpoint; ``annotation`` names the network used when it
        is not the pod network

    Raises:
        TopologyError: If required pods are missing or a UDN address cannot
            be extracted
    """
    if topology.external_server:
        pods = topology.pod_set(PodRole.CLIENT)
        if not pods:
            raise TopologyError("no client pods available for external server")
        return ResolvedEndpoint(topology.external_server, pods)

    clients = select_client_pods(topology)

    if scenario.service:
        return ResolvedEndpoint(_service_address(topology, driver_name), clients)

    if topology.udn:
        server = _first(topology, PodRole.SERVER)
        address = extract_udn_ip(server, topology.namespace, UDN_NAME)
        annotation = topology.udn
        if topology.vm:
            annotation = f"{topology.udn}/{topology.udn_plugin_binding}"
        return ResolvedEndpoint(address, clients, annotation)

    if topology.cudn:
        server = _first(topology, PodRole.SERVER)
        address = extract_udn_ip(server, topology.namespace, CUDN_NAME)
        return ResolvedEndpoint(address, clients, CUDN_NAME)

    if topology.bridge_network and not topology.vm:
        server = _first(topology, PodRole.SERVER)
        try:
            address = extract_bridge_ip(server, topology.bridge_namespace, topology.bridge_network)
        except AddressExtractionError as e:
            address = _pod_ip(server)
            logger.warning(f"Falling back to primary pod IP {address}: {e}")
        return ResolvedEndpoint(address, clients, topology.bridge_network)

    if topology.bridge_network and topology.vm:
        if not topology.bridge_server_network:
            raise TopologyError("bridge server network is not set for VM mode")
        address = strip_prefix(topology.bridge_server_network)
        return ResolvedEndpoint(address, clients, topology.bridge_network)

    role = PodRole.SERVER
    if topology.host_network and not topology.node_local:
        role = PodRole.SERVER_HOST
    return ResolvedEndpoint(_pod_ip(_first(topology, role)), clients)
