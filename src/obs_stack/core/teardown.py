"""Remove a deployed stack in reverse rollout order."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field

from obs_stack.config.settings import StackSettings
from obs_stack.core.cluster_probe import ClusterProbe
from obs_stack.core.errors import ApplyError
from obs_stack.core.installer import HelmInstaller

logger = logging.getLogger(__name__)


class StepKind(enum.Enum):
    RELEASE = "release"
    MANIFEST = "manifest"


@dataclass(frozen=True)
class TeardownStep:
    kind: StepKind
    name: str
    namespace: str
    resource_kind: str = ""

    @property
    def label(self) -> str:
        if self.kind == StepKind.RELEASE:
            return f"release {self.name}"
        return f"{self.resource_kind} {self.name}"


@dataclass
class TeardownResult:
    removed: list[str] = field(default_factory=list)
    absent: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def plan_teardown(settings: StackSettings, delete_namespace: bool = False) -> list[TeardownStep]:
    ns = settings.namespace
    steps = [
        TeardownStep(StepKind.MANIFEST, settings.network_policy_name, ns, "NetworkPolicy"),
        TeardownStep(StepKind.RELEASE, settings.mesh_observability_release, ns),
        TeardownStep(StepKind.RELEASE, settings.tracing_release, ns),
        TeardownStep(StepKind.RELEASE, settings.metrics_release, ns),
    ]
    if delete_namespace:
        steps.append(TeardownStep(StepKind.MANIFEST, ns, "", "Namespace"))
    return steps


def run_teardown(
    steps: list[TeardownStep],
    probe: ClusterProbe,
    installer: HelmInstaller,
) -> TeardownResult:
    """Execute steps, skipping anything already gone. Failures do not stop later steps."""
    result = TeardownResult()
    for step in steps:
        if not _present(step, probe):
            logger.debug("%s already absent", step.label)
            result.absent.append(step.label)
            continue
        try:
            if step.kind == StepKind.RELEASE:
                removed = installer.uninstall(step.name, step.namespace)
            else:
                removed = installer.delete_manifest(step.resource_kind, step.name, step.namespace)
        except ApplyError as e:
            logger.warning("Could not remove %s: %s", step.label, e.message)
            result.errors.append(f"{step.label}: {e.message}")
            continue
        (result.removed if removed else result.absent).append(step.label)
    return result


def _present(step: TeardownStep, probe: ClusterProbe) -> bool:
    if step.kind == StepKind.RELEASE:
        return probe.release_exists(step.name, step.namespace)
    return probe.get_resource(step.resource_kind, step.name, step.namespace) is not None
