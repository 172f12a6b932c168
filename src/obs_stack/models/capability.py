"""Capability model: the environment snapshot driving config generation."""

from __future__ import annotations

from dataclasses import dataclass, field

from obs_stack.models import Target
from obs_stack.models.mesh import MeshState


@dataclass(frozen=True)
class Identity:
    tenant_id: str
    group_id: str
    client_id: str | None = None


@dataclass(frozen=True)
class ComponentVersions:
    metrics_version: str
    visualization_image_tag: str
    tracing_version: str | None = None
    mesh_observability_version: str | None = None

    def items(self) -> list[tuple[str, str]]:
        """Set versions as (label, value) pairs."""
        pairs = [
            ("metrics chart", self.metrics_version),
            ("grafana image", self.visualization_image_tag),
            ("tracing chart", self.tracing_version),
            ("mesh observability chart", self.mesh_observability_version),
        ]
        return [(label, value) for label, value in pairs if value]


@dataclass(frozen=True)
class CapabilityModel:
    target: Target
    mesh: MeshState
    versions: ComponentVersions
    identity: Identity | None = None
    load_balancer_preference: bool = False
    warnings: tuple[str, ...] = field(default=())

    @property
    def local(self) -> bool:
        return self.target == Target.LOCAL

    @property
    def mesh_installed(self) -> bool:
        return self.mesh.installed

    @property
    def authenticated(self) -> bool:
        """True when the visualization backend uses external identity."""
        return self.target == Target.MANAGED and self.identity is not None
