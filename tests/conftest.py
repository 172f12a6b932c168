"""Shared test fixtures for obs-stack tests.

- FakeK8s: in-memory stand-in for K8sClient, so the real ClusterProbe runs against it
- FakeInstaller: records install/upgrade calls and updates FakeK8s state
- helpers that lay down Istio resources for each detection signal
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

import pytest
from kubernetes.client import ApiException

from obs_stack.config.settings import StackSettings
from obs_stack.core.cluster_probe import ClusterProbe
from obs_stack.core.installer import InstallResult
from obs_stack.core.mesh_classifier import MeshClassifier
from obs_stack.core.preflight import ToolStatus
from obs_stack.models import InstallDecision

CLUSTER_SCOPED = {"Namespace", "MutatingWebhookConfiguration"}


def _matches(labels: dict[str, str], selector: str | None) -> bool:
    if not selector:
        return True
    for term in selector.split(","):
        term = term.strip()
        if "=" in term:
            key, value = term.split("=", 1)
            if labels.get(key) != value:
                return False
        elif term not in labels:
            return False
    return True


class FakeK8s:
    """Dict-backed cluster implementing the K8sClient surface the code uses."""

    def __init__(self):
        self.context: str | None = None
        self.active_context_name = "fake-context"
        self.objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.helm_releases: set[tuple[str, str]] = set()
        self.forbidden_kinds: set[str] = set()
        self.reachable = True
        self.updates: list[dict[str, Any]] = []

    def _key(self, kind: str, name: str, namespace: str) -> tuple[str, str, str]:
        return (kind, "" if kind in CLUSTER_SCOPED else namespace or "", name)

    def add(
        self,
        kind: str,
        name: str,
        namespace: str = "",
        labels: dict[str, str] | None = None,
        spec: dict[str, Any] | None = None,
        status: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        metadata: dict[str, Any] = {"name": name, "labels": labels or {}}
        if kind not in CLUSTER_SCOPED:
            metadata["namespace"] = namespace
        obj = {"kind": kind, "metadata": metadata, "spec": spec or {}, "status": status or {}}
        self.objects[self._key(kind, name, namespace)] = obj
        return obj

    def server_version(self) -> str:
        if not self.reachable:
            raise ConnectionRefusedError("connection refused")
        return "v1.29.2"

    def _check(self, kind: str) -> None:
        if not self.reachable:
            raise ConnectionRefusedError("connection refused")
        if kind in self.forbidden_kinds:
            raise ApiException(status=403, reason="Forbidden")

    def get(self, kind: str, name: str, namespace: str = "") -> dict | None:
        self._check(kind)
        obj = self.objects.get(self._key(kind, name, namespace))
        return copy.deepcopy(obj) if obj else None

    def list(self, kind: str, namespace: str | None = None, label_selector: str | None = None) -> list[dict]:
        self._check(kind)
        return [
            copy.deepcopy(obj)
            for (k, ns, _), obj in self.objects.items()
            if k == kind
            and (namespace is None or ns == namespace)
            and _matches(obj["metadata"].get("labels", {}), label_selector)
        ]

    def list_helm_secrets(self, namespace: str, release_name: str, label_selector: str = "owner=helm") -> list:
        self._check("Secret")
        return [object()] if (release_name, namespace) in self.helm_releases else []

    def create(self, doc: dict) -> None:
        metadata = doc["metadata"]
        key = self._key(doc["kind"], metadata["name"], metadata.get("namespace", ""))
        if key in self.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        self.objects[key] = copy.deepcopy(doc)

    def update(self, doc: dict, remove_labels: tuple[str, ...] = ()) -> None:
        metadata = doc["metadata"]
        key = self._key(doc["kind"], metadata["name"], metadata.get("namespace", ""))
        self.updates.append(copy.deepcopy(doc))
        if doc["kind"] == "Namespace" and key in self.objects:
            labels = self.objects[key]["metadata"].setdefault("labels", {})
            labels.update(metadata.get("labels", {}))
            for label in remove_labels:
                labels.pop(label, None)
        else:
            self.objects[key] = copy.deepcopy(doc)

    def delete(self, kind: str, name: str, namespace: str = "") -> bool:
        return self.objects.pop(self._key(kind, name, namespace), None) is not None


@dataclass
class InstallCall:
    kind: str
    name: str
    decision: InstallDecision
    values: dict[str, Any] = field(default_factory=dict)
    version: str | None = None


class FakeInstaller:
    """Installer double: records calls and reflects them into FakeK8s."""

    def __init__(self, k8s: FakeK8s, fail_release: str | None = None):
        self.k8s = k8s
        self.calls: list[InstallCall] = []
        self.fail_release = fail_release
        self.uninstalled: list[str] = []

    def apply_release(self, release, chart, namespace, fragment, decision, version=None, timeout=None):
        from obs_stack.core.errors import ApplyError

        if release == self.fail_release:
            raise ApplyError(f"helm {decision.value} {release} failed: boom", hint="retry")
        self.calls.append(InstallCall("release", release, decision, fragment.values, version))
        self.k8s.helm_releases.add((release, namespace))
        return InstallResult(name=release, decision=decision)

    def apply_manifest(self, doc, decision, owned_labels=()):
        self.calls.append(InstallCall("manifest", doc["metadata"]["name"], decision))
        if decision == InstallDecision.INSTALL:
            self.k8s.create(doc)
        else:
            labels = doc["metadata"].get("labels", {})
            self.k8s.update(doc, remove_labels=tuple(k for k in owned_labels if k not in labels))
        return InstallResult(name=doc["metadata"]["name"], decision=decision)

    def uninstall(self, release, namespace, timeout=None):
        self.uninstalled.append(release)
        self.k8s.helm_releases.discard((release, namespace))
        return True

    def delete_manifest(self, kind, name, namespace=""):
        self.uninstalled.append(name)
        return self.k8s.delete(kind, name, namespace)

    def calls_for(self, name: str) -> list[InstallCall]:
        return [c for c in self.calls if c.name == name]


class StubTools:
    def __init__(self, error=None):
        self.error = error

    def require(self):
        if self.error is not None:
            raise self.error
        return [ToolStatus("helm", True, "/usr/bin/helm", "v3.14.4"),
                ToolStatus("kubectl", True, "/usr/bin/kubectl", "v1.29.2")]


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


# Istio fixtures

def add_control_plane(
    k8s: FakeK8s,
    settings: StackSettings,
    ready: int = 1,
    replicas: int = 1,
    image: str = "docker.io/istio/pilot:1.22.1",
) -> None:
    k8s.add("Namespace", settings.mesh_namespace)
    k8s.add(
        "Deployment", settings.control_plane_deployment, settings.mesh_namespace,
        spec={
            "replicas": replicas,
            "template": {"spec": {"containers": [{"name": "discovery", "image": image}]}},
        },
        status={"readyReplicas": ready},
    )


def add_gateway(k8s: FakeK8s, settings: StackSettings) -> None:
    k8s.add("Deployment", settings.gateway_deployment, settings.mesh_namespace)


def add_ztunnel(k8s: FakeK8s, settings: StackSettings) -> None:
    k8s.add("DaemonSet", settings.ztunnel_daemonset, settings.mesh_namespace,
            labels={"app": "ztunnel"})


def add_cni(k8s: FakeK8s, settings: StackSettings, args: list[str]) -> None:
    k8s.add(
        "DaemonSet", settings.cni_daemonset, settings.mesh_namespace,
        spec={"template": {"spec": {"containers": [
            {"name": "install-cni", "image": "istio/install-cni:1.22.1", "args": args},
        ]}}},
    )


def add_waypoint(k8s: FakeK8s, settings: StackSettings, namespace: str = "bookinfo") -> None:
    k8s.add("Gateway", "waypoint", namespace, labels={settings.waypoint_label: "service"},
            spec={"gatewayClassName": "istio-waypoint"})


def add_ambient_namespace(k8s: FakeK8s, settings: StackSettings, name: str = "bookinfo") -> None:
    k8s.add("Namespace", name, labels={settings.dataplane_mode_label: "ambient"})


def add_injector_webhook(k8s: FakeK8s, name: str = "istio-sidecar-injector") -> None:
    k8s.add("MutatingWebhookConfiguration", name, labels={"app": "sidecar-injector"})


def add_sidecar_pod(k8s: FakeK8s, settings: StackSettings, namespace: str = "bookinfo") -> None:
    k8s.add("Pod", "reviews-v1-abc", namespace, spec={"containers": [
        {"name": "reviews", "image": "bookinfo/reviews:1.0"},
        {"name": settings.sidecar_container, "image": "istio/proxyv2:1.22.1"},
    ]})


def add_ready_workloads(k8s: FakeK8s, settings: StackSettings) -> None:
    ns = settings.namespace
    release = settings.metrics_release
    ready = {"readyReplicas": 1}
    for name in (f"{release}-operator", f"{release}-grafana", settings.tracing_release, "kiali"):
        k8s.add("Deployment", name, ns, spec={"replicas": 1}, status=ready)
    k8s.add("StatefulSet", f"prometheus-{release}-prometheus", ns, spec={"replicas": 1}, status=ready)
    k8s.add("DaemonSet", f"{release}-prometheus-node-exporter", ns,
            status={"desiredNumberScheduled": 3, "numberReady": 3})


@pytest.fixture
def settings() -> StackSettings:
    return StackSettings()


@pytest.fixture
def k8s() -> FakeK8s:
    return FakeK8s()


@pytest.fixture
def probe(k8s, settings) -> ClusterProbe:
    return ClusterProbe(k8s, settings)


@pytest.fixture
def classifier(probe, settings) -> MeshClassifier:
    return MeshClassifier(probe, settings)
