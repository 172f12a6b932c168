"""Detect whether a service mesh is installed and which data-plane mode it runs.

Mode detection is a prioritized cascade of independent signals. Ambient
signals come first: a cluster migrated from sidecar to ambient can keep a
stale injector webhook, and ambient evidence wins over it.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable

from obs_stack.config.settings import StackSettings
from obs_stack.core.cluster_probe import ClusterProbe
from obs_stack.models import MeshMode
from obs_stack.models.mesh import MeshState
from obs_stack.models.resource import ResourceDescriptor
from obs_stack.utils.version_compare import is_valid_image_tag

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModeSignal:
    name: str
    check: Callable[[], bool]
    mode: MeshMode


def image_tag(image: str) -> str | None:
    """Return the tag suffix of an image reference, or None if it has none."""
    if not image or "@" in image:
        return None
    last = image.rsplit("/", 1)[-1]
    if ":" not in last:
        return None
    tag = last.rsplit(":", 1)[1]
    return tag if is_valid_image_tag(tag) else None


class MeshClassifier:
    """Classify mesh presence, health and mode from cluster state."""

    def __init__(self, probe: ClusterProbe, settings: StackSettings | None = None):
        self.probe = probe
        self.settings = settings or StackSettings()

    def detect(self, concurrent: bool = False) -> MeshState:
        s = self.settings
        if not self.probe.namespace_exists(s.mesh_namespace):
            return MeshState.not_installed(f"Namespace '{s.mesh_namespace}' not found")

        control_plane = self.probe.get_resource(
            "Deployment", s.control_plane_deployment, s.mesh_namespace,
        )
        if control_plane is None:
            return MeshState.not_installed(
                f"Deployment '{s.control_plane_deployment}' not found in '{s.mesh_namespace}'"
            )

        version = self._extract_version(control_plane)
        healthy = control_plane.ready_replicas >= 1 and (
            control_plane.ready_replicas == control_plane.replicas
        )
        has_gateway = self.probe.get_resource(
            "Deployment", s.gateway_deployment, s.mesh_namespace,
        ) is not None

        matched = self._classify(concurrent)
        health_text = (
            "healthy" if healthy
            else f"unhealthy ({control_plane.ready_replicas}/{control_plane.replicas} ready)"
        )
        if matched is None:
            logger.warning("Mesh installed but no data-plane mode signal matched")
            return MeshState(
                installed=True,
                mode=MeshMode.SIDECAR,
                healthy=healthy,
                version=version,
                has_gateway=has_gateway,
                detail=(
                    f"Control plane {health_text}; mode unresolved ({MeshMode.UNKNOWN.value}): "
                    f"no mode signal matched, defaulting to {MeshMode.SIDECAR.value}"
                ),
                resolved=False,
            )

        return MeshState(
            installed=True,
            mode=matched.mode,
            healthy=healthy,
            version=version,
            has_gateway=has_gateway,
            detail=f"Control plane {health_text}; {matched.mode.value} mode via {matched.name}",
        )

    def signals(self) -> list[ModeSignal]:
        """Mode signals in priority order."""
        return [
            ModeSignal("ztunnel-daemonset", self._has_ztunnel, MeshMode.AMBIENT),
            ModeSignal("cni-ambient-args", self._has_ambient_cni, MeshMode.AMBIENT),
            ModeSignal("waypoint-gateway", self._has_waypoint, MeshMode.AMBIENT),
            ModeSignal("ambient-namespace-label", self._has_ambient_namespace, MeshMode.AMBIENT),
            ModeSignal("sidecar-injector-webhook", self._has_injector_webhook, MeshMode.SIDECAR),
            ModeSignal("sidecar-proxy-container", self._has_sidecar_pod, MeshMode.SIDECAR),
        ]

    def _classify(self, concurrent: bool) -> ModeSignal | None:
        signals = self.signals()
        if concurrent:
            with ThreadPoolExecutor(max_workers=len(signals)) as pool:
                outcomes = list(pool.map(self._evaluate, signals))
            for signal, hit in zip(signals, outcomes):
                if hit:
                    return signal
            return None

        for signal in signals:
            if self._evaluate(signal):
                return signal
        return None

    @staticmethod
    def _evaluate(signal: ModeSignal) -> bool:
        try:
            hit = bool(signal.check())
        except Exception:
            logger.debug("Mode signal %s failed", signal.name, exc_info=True)
            return False
        logger.debug("Mode signal %s: %s", signal.name, hit)
        return hit

    @staticmethod
    def _extract_version(deployment: ResourceDescriptor) -> str | None:
        if not deployment.images:
            return None
        return image_tag(deployment.images[0])

    # Signals

    def _has_ztunnel(self) -> bool:
        s = self.settings
        return self.probe.get_resource("DaemonSet", s.ztunnel_daemonset, s.mesh_namespace) is not None

    def _has_ambient_cni(self) -> bool:
        s = self.settings
        cni = self.probe.get_resource("DaemonSet", s.cni_daemonset, s.mesh_namespace)
        if cni is None:
            return False
        for container in cni.all_containers:
            if any(s.cni_ambient_marker in arg for arg in container.argv):
                return True
        return False

    def _has_waypoint(self) -> bool:
        s = self.settings
        for gw in self.probe.list_resources("Gateway"):
            if s.waypoint_label in gw.labels:
                return True
            if (gw.raw.get("spec", {}) or {}).get("gatewayClassName") == s.waypoint_gateway_class:
                return True
        return False

    def _has_ambient_namespace(self) -> bool:
        # The stack namespace is labelled by namespace_policy itself
        selector = f"{self.settings.dataplane_mode_label}=ambient"
        return any(
            ns.name != self.settings.namespace
            for ns in self.probe.list_resources("Namespace", label_selector=selector)
        )

    def _has_injector_webhook(self) -> bool:
        s = self.settings
        if self.probe.list_resources(
            "MutatingWebhookConfiguration", label_selector=s.sidecar_injector_selector,
        ):
            return True
        return any(
            wh.name.startswith(s.sidecar_injector_prefix)
            for wh in self.probe.list_resources("MutatingWebhookConfiguration")
        )

    def _has_sidecar_pod(self) -> bool:
        name = self.settings.sidecar_container
        for pod in self.probe.list_resources("Pod"):
            if any(c.name == name for c in pod.all_containers):
                return True
        return False
