"""Tests for workload readiness polling."""

from __future__ import annotations

from conftest import FakeClock
from obs_stack.core.capability import build_capability_model
from obs_stack.core.readiness import Workload, readiness_targets, wait_for_ready
from obs_stack.models import MeshMode, Target
from obs_stack.models.mesh import MeshState

NO_MESH = MeshState.not_installed("none")
SIDECAR = MeshState(installed=True, mode=MeshMode.SIDECAR, healthy=True)


class TestTargets:
    def test_local_without_mesh(self, settings):
        names = [w.name for w in readiness_targets(build_capability_model(Target.LOCAL, NO_MESH), settings)]
        assert f"{settings.metrics_release}-grafana" in names
        assert settings.tracing_release in names
        assert not any("node-exporter" in n for n in names)
        assert "kiali" not in names

    def test_managed_with_mesh(self, settings):
        targets = readiness_targets(build_capability_model(Target.MANAGED, SIDECAR), settings, tracing=False)
        names = [w.name for w in targets]
        assert f"{settings.metrics_release}-prometheus-node-exporter" in names
        assert "kiali" in names
        assert settings.tracing_release not in names


class TestWait:
    def test_ready_immediately(self, k8s, probe):
        k8s.add("Deployment", "grafana", "monitoring", spec={"replicas": 2}, status={"readyReplicas": 2})
        clock = FakeClock()
        assert wait_for_ready(probe, Workload("Deployment", "grafana", "monitoring"), 60,
                              sleep=clock.sleep, clock=clock) is True
        assert clock.now == 0

    def test_becomes_ready(self, k8s, probe):
        obj = k8s.add("Deployment", "grafana", "monitoring", spec={"replicas": 1}, status={"readyReplicas": 0})
        clock = FakeClock()

        def sleep(seconds):
            clock.sleep(seconds)
            if clock.now >= 15:
                obj["status"]["readyReplicas"] = 1

        assert wait_for_ready(probe, Workload("Deployment", "grafana", "monitoring"), 60,
                              interval=5, sleep=sleep, clock=clock) is True
        assert clock.now == 15

    def test_times_out(self, probe):
        clock = FakeClock()
        assert wait_for_ready(probe, Workload("Deployment", "missing", "monitoring"), 30,
                              interval=5, sleep=clock.sleep, clock=clock) is False
        assert clock.now == 30

    def test_daemonset_with_no_nodes_scheduled_is_ready(self, k8s, probe):
        k8s.add("DaemonSet", "node-exporter", "monitoring",
                status={"desiredNumberScheduled": 0, "numberReady": 0})
        clock = FakeClock()
        assert wait_for_ready(probe, Workload("DaemonSet", "node-exporter", "monitoring"), 0,
                              sleep=clock.sleep, clock=clock) is True

    def test_scaled_to_zero_deployment_is_not_ready(self, k8s, probe):
        k8s.add("Deployment", "grafana", "monitoring", spec={"replicas": 0}, status={})
        clock = FakeClock()
        assert wait_for_ready(probe, Workload("Deployment", "grafana", "monitoring"), 0,
                              sleep=clock.sleep, clock=clock) is False
