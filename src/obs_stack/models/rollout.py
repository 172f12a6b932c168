"""Rollout phase, fragment and report models."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from obs_stack.models import InstallDecision
from obs_stack.models.capability import CapabilityModel


class Phase(enum.Enum):
    PREFLIGHT = "preflight"
    AUTHENTICATE = "authenticate"
    DETECT = "detect"
    VALIDATE_IMAGES = "validate-images"
    NAMESPACE = "namespace"
    INSTALL_METRICS = "install-metrics"
    INSTALL_TRACING = "install-tracing"
    INSTALL_MESH_OBSERVABILITY = "install-mesh-observability"
    INSTALL_NETWORK_POLICY = "install-network-policy"
    AWAIT_READINESS = "await-readiness"
    REPORT = "report"


class PhaseStatus(enum.Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    WARNING = "warning"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ConfigFragment:
    component: str
    values: dict[str, Any] = field(default_factory=dict)
    manifests: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class PhaseResult:
    phase: Phase
    status: PhaseStatus
    message: str = ""
    hint: str = ""
    decision: InstallDecision | None = None

    @property
    def fatal(self) -> bool:
        return self.status == PhaseStatus.FAILED


@dataclass
class RolloutReport:
    results: list[PhaseResult] = field(default_factory=list)
    model: CapabilityModel | None = None

    @property
    def ok(self) -> bool:
        return not any(
            r.status in (PhaseStatus.FAILED, PhaseStatus.CANCELLED) for r in self.results
        )

    @property
    def degraded(self) -> bool:
        return self.ok and any(r.status == PhaseStatus.WARNING for r in self.results)

    @property
    def failure(self) -> PhaseResult | None:
        for r in self.results:
            if r.fatal:
                return r
        return None

    @property
    def summary(self) -> str:
        if not self.ok:
            return "failed"
        return "partially ready" if self.degraded else "ready"

    def result_for(self, phase: Phase) -> PhaseResult | None:
        for r in self.results:
            if r.phase == phase:
                return r
        return None
