"""Derive per-component configuration from the capability model.

Every generator is a pure function of the model (and static settings); no
cluster access happens here.
"""

from __future__ import annotations

import copy
from typing import Any

from obs_stack.config.settings import StackSettings
from obs_stack.models import MeshMode
from obs_stack.models.capability import CapabilityModel
from obs_stack.models.rollout import ConfigFragment

ADMIN_ROLE = "Admin"
VIEWER_ROLE = "Viewer"

MANAGED_BY_LABEL = {"app.kubernetes.io/managed-by": "obs-stack"}
HBONE_PORT = 15008


def merge_values(base: dict[str, Any], *overlays: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge dicts left to right; later values win, nested dicts merge."""
    result = copy.deepcopy(base)
    for overlay in overlays:
        for key, value in overlay.items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = merge_values(result[key], value)
            else:
                result[key] = copy.deepcopy(value)
    return result


def _sidecar_mode(model: CapabilityModel) -> bool:
    return model.mesh_installed and model.mesh.mode != MeshMode.AMBIENT


# Namespace policy

def namespace_policy(model: CapabilityModel, settings: StackSettings) -> ConfigFragment:
    """Namespace labels for the monitoring namespace.

    Sidecar injection is never enabled namespace-wide: chart hook jobs would
    get a proxy that keeps them from completing. Workloads opt in through pod
    annotations instead (see :func:`workload_pod_annotations`).
    """
    labels: dict[str, str] = dict(MANAGED_BY_LABEL)
    if model.mesh.ambient:
        labels[settings.dataplane_mode_label] = "ambient"
    elif _sidecar_mode(model):
        labels[settings.injection_label] = "disabled"

    manifest = {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {"name": settings.namespace, "labels": labels},
    }
    return ConfigFragment(
        component="namespace",
        values={"labels": labels, "podAnnotations": workload_pod_annotations(model, settings)},
        manifests=[manifest],
    )


def owned_namespace_labels(settings: StackSettings) -> tuple[str, ...]:
    """Mesh label keys obs-stack manages on its namespace, present or not."""
    return (settings.dataplane_mode_label, settings.injection_label)


def workload_pod_annotations(model: CapabilityModel, settings: StackSettings) -> dict[str, str]:
    if _sidecar_mode(model):
        return {settings.inject_annotation: "true"}
    return {}


# Metrics

def _base_scrape_jobs() -> list[dict[str, Any]]:
    return [
        {
            "job_name": "kubernetes-pods",
            "kubernetes_sd_configs": [{"role": "pod"}],
            "relabel_configs": [
                {
                    "source_labels": ["__meta_kubernetes_pod_annotation_prometheus_io_scrape"],
                    "action": "keep",
                    "regex": "true",
                },
            ],
        },
        {
            "job_name": "kubernetes-service-endpoints",
            "kubernetes_sd_configs": [{"role": "endpoints"}],
            "relabel_configs": [
                {
                    "source_labels": ["__meta_kubernetes_service_annotation_prometheus_io_scrape"],
                    "action": "keep",
                    "regex": "true",
                },
            ],
        },
    ]


def _control_plane_job(settings: StackSettings) -> dict[str, Any]:
    return {
        "job_name": "istiod",
        "kubernetes_sd_configs": [
            {"role": "endpoints", "namespaces": {"names": [settings.mesh_namespace]}},
        ],
        "relabel_configs": [
            {
                "source_labels": [
                    "__meta_kubernetes_service_name",
                    "__meta_kubernetes_endpoint_port_name",
                ],
                "action": "keep",
                "regex": f"{settings.control_plane_deployment};http-monitoring",
            },
        ],
    }


def _ztunnel_job(settings: StackSettings) -> dict[str, Any]:
    return {
        "job_name": "ztunnel",
        "metrics_path": "/stats/prometheus",
        "kubernetes_sd_configs": [
            {"role": "pod", "namespaces": {"names": [settings.mesh_namespace]}},
        ],
        "relabel_configs": [
            {
                "source_labels": ["__meta_kubernetes_pod_label_app"],
                "action": "keep",
                "regex": settings.ztunnel_daemonset,
            },
            {
                "source_labels": ["__address__"],
                "action": "replace",
                "regex": r"([^:]+)(?::\d+)?",
                "replacement": "$1:15020",
                "target_label": "__address__",
            },
        ],
    }


def _envoy_job(settings: StackSettings) -> dict[str, Any]:
    return {
        "job_name": "envoy-stats",
        "metrics_path": "/stats/prometheus",
        "kubernetes_sd_configs": [{"role": "pod"}],
        "relabel_configs": [
            {
                "source_labels": ["__meta_kubernetes_pod_container_port_name"],
                "action": "keep",
                "regex": ".*-envoy-prom",
            },
        ],
    }


def metrics_scrape_config(model: CapabilityModel, settings: StackSettings) -> ConfigFragment:
    jobs = _base_scrape_jobs()
    if model.mesh_installed:
        jobs.append(_control_plane_job(settings))
        if model.mesh.ambient:
            jobs.append(_ztunnel_job(settings))
        else:
            jobs.append(_envoy_job(settings))
    return ConfigFragment(
        component="metrics-scrape",
        values={"prometheus": {"prometheusSpec": {"additionalScrapeConfigs": jobs}}},
    )


def scrape_job_names(fragment: ConfigFragment) -> list[str]:
    jobs = fragment.values["prometheus"]["prometheusSpec"]["additionalScrapeConfigs"]
    return [job["job_name"] for job in jobs]


def node_metrics_agent(model: CapabilityModel) -> ConfigFragment:
    """Node exporter needs host-path mounts with propagation the local runtime lacks."""
    return ConfigFragment(
        component="node-metrics-agent",
        values={"nodeExporter": {"enabled": not model.local}},
    )


# Exposure

def service_exposure(model: CapabilityModel, settings: StackSettings) -> ConfigFragment:
    service: dict[str, Any] = {"type": "ClusterIP"}
    if not model.local and model.load_balancer_preference:
        service = {
            "type": "LoadBalancer",
            "annotations": {settings.internal_lb_annotation: "true"},
        }
    return ConfigFragment(component="service-exposure", values={"service": service})


# Visualization

def visualization_auth(model: CapabilityModel) -> ConfigFragment:
    fragment = ConfigFragment(component="visualization-auth")

    if model.authenticated:
        identity = model.identity
        authority = f"https://login.microsoftonline.com/{identity.tenant_id}"
        fragment.values = {
            "grafana.ini": {
                "auth": {"disable_login_form": False},
                "auth.anonymous": {"enabled": False},
                "auth.generic_oauth": {
                    "enabled": True,
                    "name": "Microsoft Entra ID",
                    "allow_sign_up": True,
                    "client_id": identity.client_id or "",
                    "client_secret": "$__env{GF_AUTH_GENERIC_OAUTH_CLIENT_SECRET}",
                    "scopes": "openid email profile",
                    "auth_url": f"{authority}/oauth2/v2.0/authorize",
                    "token_url": f"{authority}/oauth2/v2.0/token",
                    "groups_attribute_path": "groups",
                    "role_attribute_path": (
                        f"contains(groups[*], '{identity.group_id}') "
                        f"&& '{ADMIN_ROLE}' || '{VIEWER_ROLE}'"
                    ),
                    "role_attribute_strict": False,
                },
            },
        }
        if not identity.client_id:
            fragment.warnings.append(
                "Entra ID login has no client id; pass --client-id with the "
                "app registration used by Grafana"
            )
        return fragment

    fragment.values = {
        "grafana.ini": {
            "auth": {"disable_login_form": True},
            "auth.anonymous": {"enabled": True, "org_role": ADMIN_ROLE},
        },
    }
    if not model.local:
        fragment.warnings.append(
            "Anonymous admin access enabled on a managed cluster; "
            "pass --tenant-id and --group-id to enable Entra ID login"
        )
    return fragment


def visualization_role_for(model: CapabilityModel, groups: list[str] | None) -> str:
    """Grafana role granted to a caller belonging to ``groups``."""
    if not model.authenticated:
        return ADMIN_ROLE
    if groups and model.identity.group_id in groups:
        return ADMIN_ROLE
    return VIEWER_ROLE


def metrics_values(model: CapabilityModel, settings: StackSettings) -> ConfigFragment:
    """Values for the metrics chart, which also carries Grafana and node exporter."""
    scrape = metrics_scrape_config(model, settings)
    agent = node_metrics_agent(model)
    auth = visualization_auth(model)
    service = service_exposure(model, settings).values["service"]

    grafana: dict[str, Any] = {
        "image": {"tag": model.versions.visualization_image_tag},
        "service": service,
        **auth.values,
    }
    annotations = workload_pod_annotations(model, settings)
    if annotations:
        grafana["podAnnotations"] = annotations

    values = merge_values(
        scrape.values,
        agent.values,
        {"grafana": grafana},
        {"prometheus": {"service": {"type": "ClusterIP"}}},
    )
    return ConfigFragment(
        component="metrics",
        values=values,
        warnings=[*agent.warnings, *auth.warnings],
    )


# Tracing

def tracing_values(model: CapabilityModel, settings: StackSettings) -> ConfigFragment:
    service = service_exposure(model, settings).values["service"]
    values: dict[str, Any] = {
        "provisionDataStore": {"cassandra": False},
        "storage": {"type": "memory"},
        "allInOne": {"enabled": True},
        "agent": {"enabled": False},
        "collector": {"enabled": False},
        "query": {"enabled": False, "service": service},
    }
    annotations = workload_pod_annotations(model, settings)
    if annotations:
        values["allInOne"]["podAnnotations"] = annotations
    return ConfigFragment(component="tracing", values=values)


# Mesh observability

def mesh_observability_enabled(model: CapabilityModel) -> bool:
    return model.mesh_installed


def mesh_observability(model: CapabilityModel, settings: StackSettings) -> ConfigFragment | None:
    """Kiali values, or None when no mesh is installed."""
    if not mesh_observability_enabled(model):
        return None
    service = service_exposure(model, settings).values["service"]
    deployment: dict[str, Any] = {
        "service_type": service["type"],
        "service_annotations": service.get("annotations", {}),
    }
    annotations = workload_pod_annotations(model, settings)
    if annotations:
        deployment["pod_annotations"] = annotations

    values = {
        "auth": {"strategy": "anonymous"},
        "istio_namespace": settings.mesh_namespace,
        "deployment": deployment,
        "external_services": {
            "prometheus": {"url": settings.prometheus_url},
            "tracing": {"enabled": True, "in_cluster_url": settings.tracing_url},
            "istio": {"root_namespace": settings.mesh_namespace},
        },
    }
    fragment = ConfigFragment(component="mesh-observability", values=values)
    if not model.mesh.resolved:
        fragment.warnings.append("Mesh mode unresolved; Kiali configured for sidecar mode")
    return fragment


# Network policy

def network_policy(model: CapabilityModel, settings: StackSettings) -> ConfigFragment:
    ingress: list[dict[str, Any]] = [{"from": [{"podSelector": {}}]}]
    if model.mesh_installed:
        ingress.append({
            "from": [{
                "namespaceSelector": {
                    "matchLabels": {"kubernetes.io/metadata.name": settings.mesh_namespace},
                },
            }],
        })
    if model.mesh.ambient:
        # ztunnel delivers in-mesh traffic over HBONE
        ingress.append({"ports": [{"port": HBONE_PORT, "protocol": "TCP"}]})

    manifest = {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "NetworkPolicy",
        "metadata": {
            "name": settings.network_policy_name,
            "namespace": settings.namespace,
            "labels": dict(MANAGED_BY_LABEL),
        },
        "spec": {
            "podSelector": {},
            "policyTypes": ["Ingress"],
            "ingress": ingress,
        },
    }
    return ConfigFragment(component="network-policy", manifests=[manifest])


def generate_all(model: CapabilityModel, settings: StackSettings) -> list[ConfigFragment]:
    """All fragments for the model, in rollout order. Skipped components are omitted."""
    fragments = [
        namespace_policy(model, settings),
        metrics_values(model, settings),
        tracing_values(model, settings),
    ]
    kiali = mesh_observability(model, settings)
    if kiali is not None:
        fragments.append(kiali)
    fragments.append(network_policy(model, settings))
    return fragments
