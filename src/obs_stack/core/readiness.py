"""Poll workloads until they report ready or a timeout expires."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from obs_stack.config.settings import StackSettings
from obs_stack.core.cluster_probe import ClusterProbe
from obs_stack.core.generators import mesh_observability_enabled
from obs_stack.models.capability import CapabilityModel
from obs_stack.models.resource import ResourceDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Workload:
    kind: str
    name: str
    namespace: str

    def __str__(self) -> str:
        return f"{self.kind.lower()}/{self.name}"


def is_ready(resource: ResourceDescriptor) -> bool:
    if resource.kind == "DaemonSet":
        return resource.ready_replicas >= resource.replicas
    return resource.replicas >= 1 and resource.ready_replicas >= resource.replicas


def readiness_targets(
    model: CapabilityModel,
    settings: StackSettings,
    tracing: bool = True,
) -> list[Workload]:
    ns = settings.namespace
    release = settings.metrics_release
    targets = [
        Workload("Deployment", f"{release}-operator", ns),
        Workload("Deployment", f"{release}-grafana", ns),
        Workload("StatefulSet", f"prometheus-{release}-prometheus", ns),
    ]
    if not model.local:
        targets.append(Workload("DaemonSet", f"{release}-prometheus-node-exporter", ns))
    if tracing:
        targets.append(Workload("Deployment", settings.tracing_release, ns))
    if mesh_observability_enabled(model):
        targets.append(Workload("Deployment", "kiali", ns))
    return targets


def wait_for_ready(
    probe: ClusterProbe,
    workload: Workload,
    timeout: float,
    interval: float = 5,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """Return True once the workload is ready, False if ``timeout`` elapses first."""
    deadline = clock() + timeout
    while True:
        resource = probe.get_resource(workload.kind, workload.name, workload.namespace)
        if resource is not None and is_ready(resource):
            logger.debug("%s ready", workload)
            return True
        if clock() >= deadline:
            logger.debug("%s not ready after %ss", workload, timeout)
            return False
        sleep(interval)
