"""Stack configuration and defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace


def _env(name: str, default: str) -> str:
    return os.environ.get(f"OBS_STACK_{name}", "") or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(f"OBS_STACK_{name}", "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class StackSettings:
    # Namespaces
    namespace: str = "monitoring"
    mesh_namespace: str = "istio-system"

    # Mesh resources probed during detection
    control_plane_deployment: str = "istiod"
    gateway_deployment: str = "istio-ingressgateway"
    ztunnel_daemonset: str = "ztunnel"
    cni_daemonset: str = "istio-cni-node"
    cni_ambient_marker: str = "ambient"
    sidecar_container: str = "istio-proxy"
    sidecar_injector_selector: str = "app=sidecar-injector"
    sidecar_injector_prefix: str = "istio-sidecar-injector"
    waypoint_label: str = "istio.io/waypoint-for"
    waypoint_gateway_class: str = "istio-waypoint"
    dataplane_mode_label: str = "istio.io/dataplane-mode"
    injection_label: str = "istio-injection"
    inject_annotation: str = "sidecar.istio.io/inject"

    # Releases
    metrics_release: str = "kube-prometheus-stack"
    metrics_chart: str = "prometheus-community/kube-prometheus-stack"
    tracing_release: str = "jaeger"
    tracing_chart: str = "jaegertracing/jaeger"
    mesh_observability_release: str = "kiali-server"
    mesh_observability_chart: str = "kiali/kiali-server"
    network_policy_name: str = "obs-stack-default"

    # Default versions
    metrics_version: str = "58.2.2"
    visualization_image_tag: str = "10.4.1"
    tracing_version: str = "3.0.10"
    mesh_observability_version: str = "1.84.0"

    # Timeouts (seconds)
    install_timeout: int = 300
    readiness_timeout: int = 300
    readiness_poll_interval: int = 5
    request_timeout: int = 30

    helm_label_selector: str = "owner=helm"
    internal_lb_annotation: str = "service.beta.kubernetes.io/azure-load-balancer-internal"

    @property
    def repositories(self) -> dict[str, str]:
        return {
            "prometheus-community": "https://prometheus-community.github.io/helm-charts",
            "jaegertracing": "https://jaegertracing.github.io/helm-charts",
            "kiali": "https://kiali.org/helm-charts",
        }

    @property
    def prometheus_url(self) -> str:
        return f"http://{self.metrics_release}-prometheus.{self.namespace}:9090"

    @property
    def tracing_url(self) -> str:
        return f"http://{self.tracing_release}-query.{self.namespace}:16686"

    def with_overrides(self, **overrides) -> StackSettings:
        """Return a copy with the non-empty overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_env(cls) -> StackSettings:
        """Build settings from OBS_STACK_* environment variables.

        String fields map to their upper-cased name (``OBS_STACK_NAMESPACE``),
        integer fields are parsed and fall back to the default when invalid.
        """
        base = cls()
        values = {}
        for f in fields(cls):
            current = getattr(base, f.name)
            if isinstance(current, int):
                values[f.name] = _env_int(f.name.upper(), current)
            else:
                values[f.name] = _env(f.name.upper(), current)
        return cls(**values)
