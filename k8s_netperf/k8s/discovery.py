"""Discovery of the provisioned system under test.

Workloads are created outside this tool. Discovery waits until the pods of
each required role are ready and records them, together with Service cluster
IPs and node placement, in a :class:`TopologyState`.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

from kubernetes import client, config as k8s_config
from kubernetes.client.rest import ApiException

from k8s_netperf.common.errors import ReadinessTimeoutError, TopologyError
from k8s_netperf.common.models import NodeInfo
from k8s_netperf.common.settings import RunSettings
from k8s_netperf.engine.topology import PodRole, TopologyState

logger = logging.getLogger(__name__)

ROLE_LABEL = "role"
# virt-launcher pods carry the role under the app label
VM_ROLE_LABEL = "app"
POLL_INTERVAL = 2.0

SERVICE_NAMES = {
    "netperf": "netperf-service",
    "iperf3": "iperf-service",
    "uperf": "uperf-service",
}


def load_core_api(kubeconfig: Optional[Path] = None) -> client.CoreV1Api:
    """CoreV1 client from a kubeconfig file, or the in-cluster service account."""
    try:
        k8s_config.load_kube_config(config_file=str(kubeconfig) if kubeconfig else None)
    except k8s_config.ConfigException:
        logger.info("No kubeconfig found, using in-cluster configuration")
        k8s_config.load_incluster_config()
    return client.CoreV1Api()


def pod_ready(pod: client.V1Pod) -> bool:
    if not pod.status or not pod.status.conditions:
        return False
    ready_condition = next((c for c in pod.status.conditions if c.type == "Ready"), None)
    return bool(ready_condition and ready_condition.status == "True")


def wait_for_pods(
    core: client.CoreV1Api,
    namespace: str,
    label_selector: str,
    timeout: float,
    cancel: Optional[threading.Event] = None,
    interval: float = POLL_INTERVAL,
) -> List[client.V1Pod]:
    """Wait until every pod matching a selector is ready.

    Args:
        core: CoreV1 API client
        namespace: Kubernetes namespace
        label_selector: Label selector (e.g., "role=server")
        timeout: Seconds before giving up
        cancel: Event that aborts the wait when set
        interval: Seconds between polls

    Returns:
        The ready pods

    Raises:
        ReadinessTimeoutError: If the deadline passes or the wait is cancelled
    """
    cancel = cancel or threading.Event()
    deadline = time.monotonic() + timeout

    while True:
        if cancel.is_set():
            raise ReadinessTimeoutError(f"wait for pods '{label_selector}' was cancelled")
        try:
            pods = core.list_namespaced_pod(namespace=namespace, label_selector=label_selector).items
        except ApiException as e:
            logger.warning(f"Error listing pods '{label_selector}': {e.reason}")
        else:
            if pods and all(pod_ready(p) for p in pods):
                logger.debug(f"{len(pods)} pods ready for '{label_selector}'")
                return pods

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ReadinessTimeoutError(
                f"pods '{label_selector}' in {namespace} not ready after {timeout}s"
            )
        cancel.wait(min(interval, remaining))


def required_roles(settings: RunSettings) -> List[PodRole]:
    """Roles the run will address, in container flavour."""
    if settings.external_server:
        return [PodRole.CLIENT]
    roles = [PodRole.CLIENT, PodRole.SERVER]
    if not settings.node_local:
        roles.append(PodRole.CLIENT_ACROSS)
        if settings.hostnet:
            roles += [PodRole.CLIENT_HOST, PodRole.SERVER_HOST]
    return roles


def service_addresses(core: client.CoreV1Api, namespace: str, drivers: List[str]) -> Dict[str, str]:
    """Cluster IPs of driver Services that exist, keyed by driver name."""
    addresses: Dict[str, str] = {}
    for driver in ["netperf"] + [d for d in drivers if d != "netperf"]:
        name = SERVICE_NAMES.get(driver)
        if not name:
            continue
        try:
            svc = core.read_namespaced_service(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"Service {name} not found")
                continue
            raise TopologyError(f"cannot read service {name}: {e.reason}") from e
        addresses[driver] = svc.spec.cluster_ip
    return addresses


def node_info(pod: client.V1Pod) -> NodeInfo:
    return NodeInfo(
        ip=pod.status.host_ip or "",
        hostname=pod.spec.node_name or "",
        node_name=pod.spec.node_name or "",
    )


def discover_topology(
    core: client.CoreV1Api,
    settings: RunSettings,
    cancel: Optional[threading.Event] = None,
) -> TopologyState:
    """Build the pod-network topology snapshot for a run.

    Raises:
        ReadinessTimeoutError: If a role's pods never become ready
        TopologyError: If Services cannot be read
    """
    pods: Dict[PodRole, List[client.V1Pod]] = {}
    label = VM_ROLE_LABEL if settings.vm else ROLE_LABEL
    for role in required_roles(settings):
        if settings.vm:
            role = role.for_vm()
        selector = f"{label}={role.value}"
        logger.info(f"Waiting for {role.value} pods")
        pods[role] = wait_for_pods(core, settings.namespace, selector, settings.ready_timeout, cancel)

    topology = TopologyState(
        node_local=settings.node_local,
        across_az=settings.across_az,
        udn=settings.udn,
        cudn=settings.cudn,
        bridge_network=settings.bridge,
        bridge_namespace=settings.bridge_namespace,
        bridge_server_network=settings.bridge_network,
        vm=settings.vm,
        udn_plugin_binding=settings.udn_plugin_binding,
        external_server=settings.external_server,
        namespace=settings.namespace,
        pods=pods,
        services=service_addresses(core, settings.namespace, settings.drivers),
    )

    clients = topology.pod_set(PodRole.CLIENT if settings.node_local else PodRole.CLIENT_ACROSS)
    if settings.external_server:
        clients = topology.pod_set(PodRole.CLIENT)
    if clients:
        topology.client_node_info = node_info(clients[0])
    servers = topology.pod_set(PodRole.SERVER)
    if servers:
        topology.server_node_info = node_info(servers[0])
    return topology
