"""Sequence a rollout: probe, classify, generate, apply, wait, report.

Each phase either succeeds, is skipped, finishes with a warning, or fails.
A fatal failure stops the run. Every apply step re-checks whether its target
already exists right before acting, so a re-run upgrades in place.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from obs_stack.config.settings import StackSettings
from obs_stack.core.capability import build_capability_model, default_versions
from obs_stack.core.cluster_probe import ClusterProbe
from obs_stack.core.errors import (
    ClassificationAmbiguity,
    ConfigurationError,
    ObsStackError,
    ReadinessTimeout,
)
from obs_stack.core import generators
from obs_stack.core.installer import HelmInstaller, decide_release, decide_resource
from obs_stack.core.mesh_classifier import MeshClassifier
from obs_stack.core.preflight import ToolChecker
from obs_stack.core.readiness import readiness_targets, wait_for_ready
from obs_stack.models import InstallDecision, Target
from obs_stack.models.capability import CapabilityModel, ComponentVersions
from obs_stack.models.rollout import (
    ConfigFragment,
    Phase,
    PhaseResult,
    PhaseStatus,
    RolloutReport,
)
from obs_stack.utils.version_compare import is_valid_image_tag, parse_version

logger = logging.getLogger(__name__)

PHASES: tuple[Phase, ...] = tuple(Phase)

PhaseCallback = Callable[[PhaseResult], None]


@dataclass
class DeployRequest:
    target: Target
    tenant_id: str | None = None
    group_id: str | None = None
    client_id: str | None = None
    metrics_version: str | None = None
    visualization_image_tag: str | None = None
    load_balancer_preference: bool = False
    skip_tracing: bool = False
    skip_network_policy: bool = False
    concurrent_detection: bool = False


@dataclass
class _RunState:
    request: DeployRequest
    report: RolloutReport = field(default_factory=RolloutReport)
    model: CapabilityModel | None = None


class RolloutOrchestrator:
    """Drive one rollout through the ordered phase sequence."""

    def __init__(
        self,
        settings: StackSettings,
        probe: ClusterProbe,
        installer: HelmInstaller,
        tools: ToolChecker | None = None,
        classifier: MeshClassifier | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.probe = probe
        self.installer = installer
        self.tools = tools or ToolChecker()
        self.classifier = classifier or MeshClassifier(probe, settings)
        self._sleep = sleep
        self._clock = clock
        self._handlers: dict[Phase, Callable[[_RunState], PhaseResult]] = {
            Phase.PREFLIGHT: self._preflight,
            Phase.AUTHENTICATE: self._authenticate,
            Phase.DETECT: self._detect,
            Phase.VALIDATE_IMAGES: self._validate_images,
            Phase.NAMESPACE: self._namespace,
            Phase.INSTALL_METRICS: self._install_metrics,
            Phase.INSTALL_TRACING: self._install_tracing,
            Phase.INSTALL_MESH_OBSERVABILITY: self._install_mesh_observability,
            Phase.INSTALL_NETWORK_POLICY: self._install_network_policy,
            Phase.AWAIT_READINESS: self._await_readiness,
            Phase.REPORT: self._report,
        }

    def run(
        self,
        request: DeployRequest,
        cancel: threading.Event | None = None,
        on_phase: PhaseCallback | None = None,
    ) -> RolloutReport:
        state = _RunState(request=request)
        report = state.report

        for index, phase in enumerate(PHASES):
            if cancel is not None and cancel.is_set():
                logger.warning("Rollout cancelled before %s", phase.value)
                for remaining in PHASES[index:]:
                    report.results.append(
                        PhaseResult(remaining, PhaseStatus.CANCELLED, "Cancelled before start")
                    )
                break

            logger.info("Phase %s", phase.value)
            result = self._run_phase(phase, state)
            report.results.append(result)
            if on_phase is not None:
                on_phase(result)

            if result.status == PhaseStatus.WARNING:
                logger.warning("%s: %s", phase.value, result.message)
            if result.fatal:
                logger.error("%s failed: %s", phase.value, result.message)
                break

        report.model = state.model
        return report

    def _run_phase(self, phase: Phase, state: _RunState) -> PhaseResult:
        try:
            return self._handlers[phase](state)
        except ObsStackError as e:
            status = PhaseStatus.FAILED if e.fatal else PhaseStatus.WARNING
            return PhaseResult(phase, status, e.message, hint=e.hint)

    # Phases

    def _preflight(self, state: _RunState) -> PhaseResult:
        statuses = self.tools.require()
        found = ", ".join(f"{s.name} {s.version or ''}".strip() for s in statuses)
        return PhaseResult(Phase.PREFLIGHT, PhaseStatus.SUCCEEDED, f"Tools found: {found}")

    def _authenticate(self, state: _RunState) -> PhaseResult:
        version = self.probe.check_connectivity()
        context = self.probe.context_name
        if state.request.target == Target.MANAGED:
            logger.info("Using managed cluster context %s", context)
        return PhaseResult(
            Phase.AUTHENTICATE, PhaseStatus.SUCCEEDED,
            f"Connected to {context} (server {version})",
        )

    def _detect(self, state: _RunState) -> PhaseResult:
        request = state.request
        mesh = self.classifier.detect(concurrent=request.concurrent_detection)
        versions = default_versions(self.settings)
        versions = ComponentVersions(
            metrics_version=request.metrics_version or versions.metrics_version,
            visualization_image_tag=(
                request.visualization_image_tag or versions.visualization_image_tag
            ),
            tracing_version=versions.tracing_version,
            mesh_observability_version=versions.mesh_observability_version,
        )
        state.model = build_capability_model(
            target=request.target,
            mesh=mesh,
            tenant_id=request.tenant_id,
            group_id=request.group_id,
            client_id=request.client_id,
            versions=versions,
            load_balancer_preference=request.load_balancer_preference,
            settings=self.settings,
        )
        if mesh.installed and not mesh.resolved:
            raise ClassificationAmbiguity(
                mesh.detail,
                hint="Label namespaces with istio.io/dataplane-mode or check the mesh install.",
            )
        return PhaseResult(Phase.DETECT, PhaseStatus.SUCCEEDED, mesh.detail)

    def _validate_images(self, state: _RunState) -> PhaseResult:
        versions = state.model.versions
        for label, value in (
            ("metrics chart", versions.metrics_version),
            ("tracing chart", versions.tracing_version),
            ("mesh observability chart", versions.mesh_observability_version),
        ):
            if value and parse_version(value) is None:
                raise ConfigurationError(
                    f"Invalid {label} version '{value}'",
                    hint="Use a semantic version such as 58.2.2.",
                )
        if not is_valid_image_tag(versions.visualization_image_tag):
            raise ConfigurationError(
                f"Invalid Grafana image tag '{versions.visualization_image_tag}'",
                hint="Use a tag such as 10.4.1.",
            )
        pinned = ", ".join(f"{label} {value}" for label, value in versions.items())
        return PhaseResult(Phase.VALIDATE_IMAGES, PhaseStatus.SUCCEEDED, pinned)

    def _namespace(self, state: _RunState) -> PhaseResult:
        fragment = generators.namespace_policy(state.model, self.settings)
        doc = fragment.manifests[0]
        decision = decide_resource(self.probe, doc)
        result = self.installer.apply_manifest(
            doc, decision, owned_labels=generators.owned_namespace_labels(self.settings),
        )
        labels = ", ".join(f"{k}={v}" for k, v in fragment.values["labels"].items())
        action = "created" if decision == InstallDecision.INSTALL else (
            "updated" if result.changed else "unchanged"
        )
        return PhaseResult(
            Phase.NAMESPACE, PhaseStatus.SUCCEEDED,
            f"Namespace {self.settings.namespace} {action} ({labels})",
            decision=decision,
        )

    def _apply_release(
        self,
        phase: Phase,
        release: str,
        chart: str,
        fragment: ConfigFragment,
        version: str | None,
    ) -> PhaseResult:
        decision = decide_release(self.probe, release, self.settings.namespace)
        self.installer.apply_release(
            release, chart, self.settings.namespace, fragment, decision, version=version,
        )
        message = f"{decision.value} {release}"
        if fragment.warnings:
            return PhaseResult(
                phase, PhaseStatus.WARNING,
                f"{message}; " + "; ".join(fragment.warnings),
                decision=decision,
            )
        return PhaseResult(phase, PhaseStatus.SUCCEEDED, message, decision=decision)

    def _install_metrics(self, state: _RunState) -> PhaseResult:
        fragment = generators.metrics_values(state.model, self.settings)
        return self._apply_release(
            Phase.INSTALL_METRICS,
            self.settings.metrics_release,
            self.settings.metrics_chart,
            fragment,
            state.model.versions.metrics_version,
        )

    def _install_tracing(self, state: _RunState) -> PhaseResult:
        if state.request.skip_tracing:
            return PhaseResult(Phase.INSTALL_TRACING, PhaseStatus.SKIPPED, "Tracing disabled")
        fragment = generators.tracing_values(state.model, self.settings)
        return self._apply_release(
            Phase.INSTALL_TRACING,
            self.settings.tracing_release,
            self.settings.tracing_chart,
            fragment,
            state.model.versions.tracing_version,
        )

    def _install_mesh_observability(self, state: _RunState) -> PhaseResult:
        fragment = generators.mesh_observability(state.model, self.settings)
        if fragment is None:
            return PhaseResult(
                Phase.INSTALL_MESH_OBSERVABILITY, PhaseStatus.SKIPPED, "No service mesh detected",
            )
        return self._apply_release(
            Phase.INSTALL_MESH_OBSERVABILITY,
            self.settings.mesh_observability_release,
            self.settings.mesh_observability_chart,
            fragment,
            state.model.versions.mesh_observability_version,
        )

    def _install_network_policy(self, state: _RunState) -> PhaseResult:
        if state.request.skip_network_policy:
            return PhaseResult(
                Phase.INSTALL_NETWORK_POLICY, PhaseStatus.SKIPPED, "Network policy disabled",
            )
        fragment = generators.network_policy(state.model, self.settings)
        applied: list[tuple[str, InstallDecision]] = []
        for doc in fragment.manifests:
            decision = decide_resource(self.probe, doc)
            self.installer.apply_manifest(doc, decision)
            applied.append((doc["metadata"]["name"], decision))
        if not applied:
            return PhaseResult(
                Phase.INSTALL_NETWORK_POLICY, PhaseStatus.SKIPPED, "No network policy to apply",
            )
        decisions = {decision for _, decision in applied}
        return PhaseResult(
            Phase.INSTALL_NETWORK_POLICY, PhaseStatus.SUCCEEDED,
            ", ".join(f"{decision.value} NetworkPolicy {name}" for name, decision in applied),
            decision=decisions.pop() if len(decisions) == 1 else None,
        )

    def _await_readiness(self, state: _RunState) -> PhaseResult:
        targets = readiness_targets(
            state.model, self.settings, tracing=not state.request.skip_tracing,
        )
        deadline = self._clock() + self.settings.readiness_timeout
        pending = []
        for workload in targets:
            remaining = max(0.0, deadline - self._clock())
            ready = wait_for_ready(
                self.probe, workload, remaining,
                interval=self.settings.readiness_poll_interval,
                sleep=self._sleep,
                clock=self._clock,
            )
            if not ready:
                pending.append(str(workload))
        if pending:
            raise ReadinessTimeout(
                f"Not ready after {self.settings.readiness_timeout}s: {', '.join(pending)}",
                hint=f"Check 'kubectl get pods -n {self.settings.namespace}'.",
            )
        return PhaseResult(
            Phase.AWAIT_READINESS, PhaseStatus.SUCCEEDED, f"{len(targets)} workload(s) ready",
        )

    def _report(self, state: _RunState) -> PhaseResult:
        report = state.report
        message = f"Stack {report.summary}"
        return PhaseResult(Phase.REPORT, PhaseStatus.SUCCEEDED, message)
