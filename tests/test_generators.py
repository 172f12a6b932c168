"""Tests for capability-driven configuration generators."""

from __future__ import annotations

import pytest

from obs_stack.core import generators
from obs_stack.core.capability import build_capability_model
from obs_stack.models import MeshMode, Target
from obs_stack.models.mesh import MeshState

NO_MESH = MeshState.not_installed("none")
AMBIENT = MeshState(installed=True, mode=MeshMode.AMBIENT, healthy=True)
SIDECAR = MeshState(installed=True, mode=MeshMode.SIDECAR, healthy=True)
UNRESOLVED = MeshState(installed=True, mode=MeshMode.SIDECAR, healthy=True, resolved=False)


def model(target=Target.LOCAL, mesh=NO_MESH, **kwargs):
    return build_capability_model(target, mesh, **kwargs)


class TestNamespacePolicy:
    def test_no_mesh_no_label(self, settings):
        f = generators.namespace_policy(model(), settings)
        labels = f.values["labels"]
        assert settings.dataplane_mode_label not in labels
        assert settings.injection_label not in labels
        assert f.values["podAnnotations"] == {}

    def test_ambient_label(self, settings):
        f = generators.namespace_policy(model(mesh=AMBIENT), settings)
        assert f.values["labels"][settings.dataplane_mode_label] == "ambient"
        assert settings.injection_label not in f.values["labels"]

    @pytest.mark.parametrize("mesh", [SIDECAR, UNRESOLVED])
    def test_sidecar_disables_namespace_injection(self, settings, mesh):
        f = generators.namespace_policy(model(mesh=mesh), settings)
        assert f.values["labels"][settings.injection_label] == "disabled"
        assert f.values["podAnnotations"] == {settings.inject_annotation: "true"}

    def test_namespace_manifest(self, settings):
        f = generators.namespace_policy(model(mesh=AMBIENT), settings)
        doc = f.manifests[0]
        assert doc["kind"] == "Namespace"
        assert doc["metadata"]["name"] == settings.namespace
        assert doc["metadata"]["labels"] == f.values["labels"]


class TestMetricsScrape:
    def test_base_jobs_only_without_mesh(self, settings):
        f = generators.metrics_scrape_config(model(), settings)
        assert generators.scrape_job_names(f) == ["kubernetes-pods", "kubernetes-service-endpoints"]

    def test_ambient_jobs(self, settings):
        names = generators.scrape_job_names(generators.metrics_scrape_config(model(mesh=AMBIENT), settings))
        assert "istiod" in names
        assert "ztunnel" in names
        assert "envoy-stats" not in names

    @pytest.mark.parametrize("mesh", [SIDECAR, UNRESOLVED])
    def test_sidecar_jobs(self, settings, mesh):
        names = generators.scrape_job_names(generators.metrics_scrape_config(model(mesh=mesh), settings))
        assert "istiod" in names
        assert "envoy-stats" in names
        assert "ztunnel" not in names


class TestVisualizationAuth:
    def test_local_anonymous_even_with_identity(self):
        m = model(Target.LOCAL, tenant_id="t-1", group_id="g-1")
        ini = generators.visualization_auth(m).values["grafana.ini"]
        assert ini["auth.anonymous"] == {"enabled": True, "org_role": "Admin"}
        assert "auth.generic_oauth" not in ini
        assert generators.visualization_auth(m).warnings == []

    def test_managed_with_identity_maps_group(self):
        m = model(Target.MANAGED, tenant_id="t-1", group_id="g-1", client_id="c-1")
        ini = generators.visualization_auth(m).values["grafana.ini"]
        oauth = ini["auth.generic_oauth"]
        assert ini["auth.anonymous"]["enabled"] is False
        assert oauth["enabled"] is True
        assert oauth["client_id"] == "c-1"
        assert "login.microsoftonline.com/t-1/" in oauth["auth_url"]
        assert oauth["role_attribute_path"] == "contains(groups[*], 'g-1') && 'Admin' || 'Viewer'"

    def test_managed_with_identity_no_client_id_warns(self):
        f = generators.visualization_auth(model(Target.MANAGED, tenant_id="t-1", group_id="g-1"))
        assert f.values["grafana.ini"]["auth.generic_oauth"]["enabled"] is True
        assert len(f.warnings) == 1
        assert "--client-id" in f.warnings[0]

    def test_managed_with_client_id_has_no_warnings(self):
        m = model(Target.MANAGED, tenant_id="t-1", group_id="g-1", client_id="c-1")
        assert generators.visualization_auth(m).warnings == []

    def test_managed_without_identity_warns(self):
        f = generators.visualization_auth(model(Target.MANAGED))
        assert f.values["grafana.ini"]["auth.anonymous"]["enabled"] is True
        assert len(f.warnings) == 1

    def test_role_for_matching_group(self):
        m = model(Target.MANAGED, tenant_id="t-1", group_id="g-1")
        assert generators.visualization_role_for(m, ["other", "g-1"]) == "Admin"

    @pytest.mark.parametrize("groups", [["other"], [], None])
    def test_role_for_non_matching_group(self, groups):
        m = model(Target.MANAGED, tenant_id="t-1", group_id="g-1")
        assert generators.visualization_role_for(m, groups) == "Viewer"

    def test_role_for_anonymous(self):
        assert generators.visualization_role_for(model(Target.LOCAL, tenant_id="t", group_id="g"), None) == "Admin"


class TestNodeAgentAndExposure:
    def test_node_agent(self):
        assert generators.node_metrics_agent(model(Target.LOCAL)).values == {"nodeExporter": {"enabled": False}}
        assert generators.node_metrics_agent(model(Target.MANAGED)).values == {"nodeExporter": {"enabled": True}}

    def test_local_always_cluster_ip(self, settings):
        f = generators.service_exposure(model(Target.LOCAL, load_balancer_preference=True), settings)
        assert f.values["service"] == {"type": "ClusterIP"}

    def test_managed_internal_lb(self, settings):
        f = generators.service_exposure(model(Target.MANAGED, load_balancer_preference=True), settings)
        assert f.values["service"]["type"] == "LoadBalancer"
        assert f.values["service"]["annotations"] == {settings.internal_lb_annotation: "true"}

    def test_managed_default_cluster_ip(self, settings):
        f = generators.service_exposure(model(Target.MANAGED), settings)
        assert f.values["service"] == {"type": "ClusterIP"}


class TestMeshObservability:
    def test_gate(self):
        assert generators.mesh_observability_enabled(model(mesh=NO_MESH)) is False
        assert generators.mesh_observability_enabled(model(mesh=SIDECAR)) is True

    def test_skipped_without_mesh_even_with_identity(self, settings):
        m = model(Target.MANAGED, NO_MESH, tenant_id="t", group_id="g")
        assert generators.mesh_observability(m, settings) is None

    def test_kiali_values(self, settings):
        f = generators.mesh_observability(model(Target.MANAGED, AMBIENT, load_balancer_preference=True), settings)
        assert f.values["istio_namespace"] == settings.mesh_namespace
        assert f.values["external_services"]["prometheus"]["url"] == settings.prometheus_url
        assert f.values["deployment"]["service_type"] == "LoadBalancer"
        assert "pod_annotations" not in f.values["deployment"]

    def test_unresolved_mode_warns(self, settings):
        f = generators.mesh_observability(model(mesh=UNRESOLVED), settings)
        assert f.warnings


class TestCombinedValues:
    def test_metrics_values_merge(self, settings):
        m = model(Target.MANAGED, SIDECAR, tenant_id="t", group_id="g", load_balancer_preference=True)
        v = generators.metrics_values(m, settings).values
        assert v["nodeExporter"]["enabled"] is True
        assert v["grafana"]["service"]["type"] == "LoadBalancer"
        assert v["grafana"]["image"]["tag"] == settings.visualization_image_tag
        assert v["grafana"]["podAnnotations"] == {settings.inject_annotation: "true"}
        assert "auth.generic_oauth" in v["grafana"]["grafana.ini"]
        assert v["prometheus"]["service"]["type"] == "ClusterIP"
        assert v["prometheus"]["prometheusSpec"]["additionalScrapeConfigs"]

    def test_merge_values_is_deep_and_pure(self):
        base = {"a": {"b": 1, "c": 2}}
        merged = generators.merge_values(base, {"a": {"c": 3}}, {"d": 4})
        assert merged == {"a": {"b": 1, "c": 3}, "d": 4}
        assert base == {"a": {"b": 1, "c": 2}}

    def test_tracing_exposure(self, settings):
        v = generators.tracing_values(model(Target.MANAGED, load_balancer_preference=True), settings).values
        assert v["query"]["service"]["type"] == "LoadBalancer"
        assert v["allInOne"]["enabled"] is True


class TestNetworkPolicy:
    def _rules(self, m, settings):
        return generators.network_policy(m, settings).manifests[0]["spec"]["ingress"]

    def test_no_mesh(self, settings):
        assert self._rules(model(), settings) == [{"from": [{"podSelector": {}}]}]

    def test_sidecar_allows_control_plane(self, settings):
        rules = self._rules(model(mesh=SIDECAR), settings)
        assert len(rules) == 2
        selector = rules[1]["from"][0]["namespaceSelector"]["matchLabels"]
        assert selector == {"kubernetes.io/metadata.name": settings.mesh_namespace}

    def test_ambient_allows_hbone(self, settings):
        rules = self._rules(model(mesh=AMBIENT), settings)
        assert {"ports": [{"port": 15008, "protocol": "TCP"}]} in rules


class TestScenarios:
    def test_local_without_mesh(self, settings):
        m = model(Target.LOCAL, NO_MESH)
        assert m.identity is None
        assert m.mesh.mode == MeshMode.NOT_INSTALLED
        components = [f.component for f in generators.generate_all(m, settings)]
        assert "mesh-observability" not in components
        metrics = generators.metrics_values(m, settings).values
        assert metrics["grafana"]["grafana.ini"]["auth.anonymous"]["enabled"] is True
        assert metrics["nodeExporter"]["enabled"] is False
        jobs = [j["job_name"] for j in metrics["prometheus"]["prometheusSpec"]["additionalScrapeConfigs"]]
        assert jobs == ["kubernetes-pods", "kubernetes-service-endpoints"]

    def test_managed_ambient_with_identity(self, settings):
        m = model(Target.MANAGED, AMBIENT, tenant_id="t-1", group_id="g-1")
        fragments = {f.component: f for f in generators.generate_all(m, settings)}
        assert fragments["namespace"].values["labels"][settings.dataplane_mode_label] == "ambient"
        jobs = [j["job_name"] for j in fragments["metrics"].values["prometheus"]["prometheusSpec"]["additionalScrapeConfigs"]]
        assert "ztunnel" in jobs
        assert "auth.generic_oauth" in fragments["metrics"].values["grafana"]["grafana.ini"]
        assert "mesh-observability" in fragments
