"""CSV files, JSON documents and search indexing for a finished run."""

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
import requests
from pydantic import BaseModel, ConfigDict, Field

from k8s_netperf.analysis.statistical_analysis import mean
from k8s_netperf.common.errors import ArchiveError
from k8s_netperf.common.models import (
    LATENCY_METRIC,
    Metadata,
    NodeCPU,
    PodMetric,
    Result,
    ScenarioResults,
)
from k8s_netperf.common.settings import INDEX_NAME

logger = logging.getLogger(__name__)

COMMON_COLUMNS = [
    "Driver",
    "Profile",
    "Same node",
    "Host Network",
    "Service",
    "Duration",
    "Parallelism",
    "# of Samples",
    "Message Size",
]

CPU_COLUMNS = [
    ("Idle CPU", "idle"),
    ("User CPU", "user"),
    ("System CPU", "system"),
    ("IOWait CPU", "iowait"),
    ("Steal CPU", "steal"),
    ("SoftIRQ CPU", "softirq"),
    ("IRQ CPU", "irq"),
]


class Doc(BaseModel):
    """One result as indexed into the search backend."""

    model_config = ConfigDict(populate_by_name=True)

    uuid: str
    timestamp: datetime
    host_network: bool = Field(alias="hostNetwork")
    driver: str
    parallelism: int
    profile: str
    duration: int
    samples: int
    message_size: int = Field(alias="messageSize")
    throughput: float
    latency: float
    tput_metric: str = Field(alias="tputMetric")
    ltcy_metric: str = Field(default=LATENCY_METRIC, alias="ltcyMetric")
    metadata: Metadata
    server_cpu: NodeCPU = Field(default_factory=NodeCPU, alias="serverCPU")
    server_pods: List[PodMetric] = Field(default_factory=list, alias="serverPods")
    client_cpu: NodeCPU = Field(default_factory=NodeCPU, alias="clientCPU")
    client_pods: List[PodMetric] = Field(default_factory=list, alias="clientPods")


def _common_fields(result: Result) -> List[Any]:
    s = result.scenario
    return [
        result.driver,
        s.profile,
        result.same_node,
        result.host_network,
        result.service,
        s.duration,
        s.parallelism,
        s.samples,
        s.message_size,
    ]


def build_docs(results: ScenarioResults, uuid: str) -> List[Doc]:
    """Documents for every populated result, sharing one timestamp.

    Raises:
        ArchiveError: If the run produced no results at all
    """
    if not results.results:
        raise ArchiveError("no result documents")
    now = datetime.now(timezone.utc)
    docs = []
    for r in results.populated():
        docs.append(
            Doc(
                uuid=uuid,
                timestamp=now,
                host_network=r.host_network,
                driver=r.driver,
                parallelism=r.scenario.parallelism,
                profile=r.scenario.profile,
                duration=r.scenario.duration,
                samples=r.scenario.samples,
                message_size=r.scenario.message_size,
                throughput=mean(r.throughput_summary),
                latency=mean(r.latency_summary),
                tput_metric=r.metric,
                metadata=results.metadata,
                server_cpu=r.server_metrics or NodeCPU(),
                server_pods=r.server_pod_cpu.results if r.server_pod_cpu else [],
                client_cpu=r.client_metrics or NodeCPU(),
                client_pods=r.client_pod_cpu.results if r.client_pod_cpu else [],
            )
        )
    return docs


def write_json_docs(docs: List[Doc], path: Path) -> Path:
    """Write documents as a JSON array using their indexed field names."""
    payload = [doc.model_dump(mode="json", by_alias=True) for doc in docs]
    try:
        with open(path, "w") as f:
            json.dump(payload, f, indent=2)
    except OSError as e:
        raise ArchiveError(f"cannot write {path}: {e}") from e
    logger.info(f"Wrote {len(docs)} documents to {path}")
    return path


def index_docs(url: str, docs: List[Doc], index: str = INDEX_NAME, verify: bool = True) -> int:
    """Index documents with one bulk request.

    Returns:
        Number of documents indexed

    Raises:
        ArchiveError: If the request fails or any document is rejected
    """
    if not docs:
        return 0
    logger.info(f"Attempting to index {len(docs)} documents")
    lines = []
    for doc in docs:
        lines.append(json.dumps({"index": {"_index": index}}))
        lines.append(doc.model_dump_json(by_alias=True))
    body = "\n".join(lines) + "\n"
    try:
        response = requests.post(
            f"{url.rstrip('/')}/_bulk",
            data=body,
            headers={"Content-Type": "application/x-ndjson"},
            verify=verify,
            timeout=30,
        )
        response.raise_for_status()
        reply = response.json()
    except (requests.RequestException, ValueError) as e:
        raise ArchiveError(f"bulk indexing failed: {e}") from e
    if reply.get("errors"):
        raise ArchiveError("bulk indexing reported document errors")
    return len(docs)


def _csv_path(directory: Path, prefix: str, stamp: int) -> Path:
    return Path(directory) / f"{prefix}-{stamp}.csv"


def result_frame(results: ScenarioResults) -> pd.DataFrame:
    """Throughput and latency summary per populated result."""
    rows = [
        _common_fields(r)
        + [mean(r.throughput_summary), r.metric, mean(r.latency_summary), LATENCY_METRIC]
        for r in results.populated()
    ]
    columns = COMMON_COLUMNS + [
        "Avg Throughput",
        "Throughput Metric",
        "99%tile Observed Latency",
        "Latency Metric",
    ]
    return pd.DataFrame(rows, columns=columns)


def write_csv_result(results: ScenarioResults, directory: Path = Path("."), stamp: Optional[int] = None) -> Path:
    """Write ``result-<timestamp>.csv``."""
    path = _csv_path(directory, "result", stamp or int(time.time()))
    try:
        result_frame(results).to_csv(path, index=False)
    except OSError as e:
        raise ArchiveError(f"cannot write {path}: {e}") from e
    logger.info(f"Wrote results to {path}")
    return path


def metrics_frames(results: ScenarioResults) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Node CPU rows and top pod CPU rows, one per client/server side."""
    cpu_rows = []
    pod_rows = []
    for r in results.populated():
        for role, cpu, pods in (
            ("Client", r.client_metrics, r.client_pod_cpu),
            ("Server", r.server_metrics, r.server_pod_cpu),
        ):
            common = [role] + _common_fields(r)
            cpu = cpu or NodeCPU()
            cpu_rows.append(common + [getattr(cpu, field) for _, field in CPU_COLUMNS])
            for pod in pods.results if pods else []:
                pod_rows.append(common + [pod.name, pod.value])

    cpu_frame = pd.DataFrame(cpu_rows, columns=["Role"] + COMMON_COLUMNS + [c for c, _ in CPU_COLUMNS])
    pod_frame = pd.DataFrame(pod_rows, columns=["Role"] + COMMON_COLUMNS + ["Pod Name", "Utilization"])
    return cpu_frame, pod_frame


def write_prom_csv_result(
    results: ScenarioResults, directory: Path = Path("."), stamp: Optional[int] = None
) -> Dict[str, Path]:
    """Write ``cpu-result-<ts>.csv`` and ``podcpu-result-<ts>.csv``."""
    stamp = stamp or int(time.time())
    cpu_frame, pod_frame = metrics_frames(results)
    paths = {
        "cpu": _csv_path(directory, "cpu-result", stamp),
        "podcpu": _csv_path(directory, "podcpu-result", stamp),
    }
    try:
        cpu_frame.to_csv(paths["cpu"], index=False)
        pod_frame.to_csv(paths["podcpu"], index=False)
    except OSError as e:
        raise ArchiveError(f"cannot write metrics CSV: {e}") from e
    return paths
