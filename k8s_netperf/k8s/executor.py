"""Remote command execution inside benchmark pods and virtual machines."""

import logging
import shlex
import subprocess
import time
from typing import List, Optional, Protocol

import websocket
from kubernetes import client
from kubernetes.client.rest import ApiException
from kubernetes.stream import stream

from k8s_netperf.common.errors import DriverExecutionError

logger = logging.getLogger(__name__)

VM_NAME_LABELS = ("kubevirt.io/domain", "vm.kubevirt.io/name")
VM_USER = "fedora"


class RemoteExecutor(Protocol):
    """Runs a command on a client workload and returns its standard output."""

    def run(self, pod: client.V1Pod, command: List[str], timeout: Optional[int] = None) -> str:
        ...


class PodExecutor:
    """Executes commands in pods through the Kubernetes exec API."""

    def __init__(self, core_v1: client.CoreV1Api, container: Optional[str] = None):
        self.core_v1 = core_v1
        self.container = container

    def run(self, pod: client.V1Pod, command: List[str], timeout: Optional[int] = None) -> str:
        """Run ``command`` in ``pod``.

        Args:
            pod: Target pod
            command: Command and arguments, executed without a shell
            timeout: Seconds before the call is abandoned

        Returns:
            Standard output of the command

        Raises:
            DriverExecutionError: If the API call fails, times out, or the
                command exits non-zero
        """
        name = pod.metadata.name
        namespace = pod.metadata.namespace
        logger.debug(f"Executing in {namespace}/{name}: {' '.join(command)}")

        kwargs = {}
        if self.container:
            kwargs["container"] = self.container
        try:
            resp = stream(
                self.core_v1.connect_get_namespaced_pod_exec,
                name,
                namespace,
                command=command,
                stderr=True,
                stdin=False,
                stdout=True,
                tty=False,
                _preload_content=False,
                **kwargs,
            )
        except ApiException as e:
            raise DriverExecutionError(command[0], f"exec in pod {name} failed: {e.reason}") from e

        stdout: List[str] = []
        stderr: List[str] = []
        deadline = time.monotonic() + timeout if timeout else None
        try:
            while resp.is_open():
                resp.update(timeout=1)
                if resp.peek_stdout():
                    stdout.append(resp.read_stdout())
                if resp.peek_stderr():
                    stderr.append(resp.read_stderr())
                if deadline and time.monotonic() > deadline:
                    raise DriverExecutionError(
                        command[0], f"exec in pod {name} timed out after {timeout}s"
                    )
            # Raises TypeError when the channel closed without a status frame
            returncode = resp.returncode
        except (websocket.WebSocketException, OSError, TypeError, KeyError) as e:
            raise DriverExecutionError(command[0], f"exec stream in pod {name} failed: {e}") from e
        finally:
            resp.close()

        if returncode:
            raise DriverExecutionError(
                command[0],
                f"exited with {returncode} in pod {name}: {''.join(stderr).strip()}",
            )
        return "".join(stdout)


def vm_name(pod: client.V1Pod) -> str:
    """Name of the VM instance a virt-launcher pod belongs to."""
    labels = pod.metadata.labels or {}
    for label in VM_NAME_LABELS:
        if labels.get(label):
            return labels[label]
    return pod.metadata.name


class VirtctlExecutor:
    """Executes commands inside virtual machines over ``virtctl ssh``."""

    def __init__(self, user: str = VM_USER, binary: str = "virtctl"):
        self.user = user
        self.binary = binary

    def build_command(self, pod: client.V1Pod, command: List[str]) -> List[str]:
        return [
            self.binary,
            "ssh",
            "--namespace",
            pod.metadata.namespace,
            "--local-ssh-opts",
            "-o StrictHostKeyChecking=no",
            "-c",
            shlex.join(command),
            f"{self.user}@vmi/{vm_name(pod)}",
        ]

    def run(self, pod: client.V1Pod, command: List[str], timeout: Optional[int] = None) -> str:
        argv = self.build_command(pod, command)
        logger.debug(f"Executing in VM {vm_name(pod)}: {' '.join(command)}")
        try:
            result = subprocess.run(argv, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise DriverExecutionError(command[0], f"ssh timed out after {timeout}s") from e
        except OSError as e:
            raise DriverExecutionError(command[0], f"cannot run {self.binary}: {e}") from e

        if result.returncode != 0:
            raise DriverExecutionError(
                command[0], f"exited with {result.returncode}: {result.stderr.strip()}"
            )
        return result.stdout
