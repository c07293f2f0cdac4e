"""Server address extraction from pod network annotations."""

import ipaddress
import json
import logging
from typing import Any, Dict, List

from kubernetes.client import V1Pod

from k8s_netperf.common.errors import AddressExtractionError

logger = logging.getLogger(__name__)

POD_NETWORKS_ANNOTATION = "k8s.ovn.org/pod-networks"
NETWORK_STATUS_ANNOTATION = "k8s.v1.cni.cncf.io/network-status"


def strip_prefix(address: str) -> str:
    """Drop a CIDR prefix length: ``10.0.0.5/24`` -> ``10.0.0.5``."""
    return address.split("/", 1)[0].strip()


def _annotation(pod: V1Pod, key: str) -> str:
    annotations = (pod.metadata.annotations or {}) if pod.metadata else {}
    value = annotations.get(key)
    if not value:
        raise AddressExtractionError(
            f"pod {pod.metadata.name if pod.metadata else '?'} has no {key} annotation"
        )
    return value


def _is_ipv4(address: str) -> bool:
    try:
        return isinstance(ipaddress.ip_address(strip_prefix(address)), ipaddress.IPv4Address)
    except ValueError:
        return False


def extract_udn_ip(pod: V1Pod, namespace: str, network_name: str) -> str:
    """IPv4 address of a pod on a user defined network.

    Args:
        pod: Server pod
        namespace: Namespace the network belongs to
        network_name: UDN or cluster UDN name

    Returns:
        The address without prefix length

    Raises:
        AddressExtractionError: If the annotation is missing, malformed, or
            carries no IPv4 address for the network
    """
    raw = _annotation(pod, POD_NETWORKS_ANNOTATION)
    try:
        networks: Dict[str, Any] = json.loads(raw)
    except json.JSONDecodeError as e:
        raise AddressExtractionError(f"cannot decode {POD_NETWORKS_ANNOTATION}: {e}") from e

    key = f"{namespace}/{network_name}"
    entry = networks.get(key)
    if not isinstance(entry, dict):
        raise AddressExtractionError(f"no network '{key}' in {POD_NETWORKS_ANNOTATION}")

    candidates: List[str] = list(entry.get("ip_addresses") or [])
    if entry.get("ip_address"):
        candidates.append(entry["ip_address"])
    for candidate in candidates:
        if _is_ipv4(candidate):
            return strip_prefix(candidate)
    raise AddressExtractionError(f"network '{key}' has no IPv4 address")


def extract_bridge_ip(pod: V1Pod, bridge_namespace: str, bridge_name: str) -> str:
    """First address of a pod on a secondary bridge network.

    Raises:
        AddressExtractionError: If the network status does not list the bridge
    """
    raw = _annotation(pod, NETWORK_STATUS_ANNOTATION)
    try:
        statuses = json.loads(raw)
    except json.JSONDecodeError as e:
        raise AddressExtractionError(f"cannot decode {NETWORK_STATUS_ANNOTATION}: {e}") from e

    wanted = f"{bridge_namespace}/{bridge_name}"
    for status in statuses if isinstance(statuses, list) else []:
        if status.get("name") == wanted and status.get("ips"):
            return strip_prefix(status["ips"][0])
    raise AddressExtractionError(f"no address for network '{wanted}' in network status")
