"""Build the capability model from detection results and operator input."""

from __future__ import annotations

import logging

from obs_stack.config.settings import StackSettings
from obs_stack.core.errors import ConfigurationError
from obs_stack.models import Target
from obs_stack.models.capability import CapabilityModel, ComponentVersions, Identity
from obs_stack.models.mesh import MeshState

logger = logging.getLogger(__name__)


def default_versions(settings: StackSettings) -> ComponentVersions:
    return ComponentVersions(
        metrics_version=settings.metrics_version,
        visualization_image_tag=settings.visualization_image_tag,
        tracing_version=settings.tracing_version,
        mesh_observability_version=settings.mesh_observability_version,
    )


def build_capability_model(
    target: Target,
    mesh: MeshState,
    tenant_id: str | None = None,
    group_id: str | None = None,
    client_id: str | None = None,
    versions: ComponentVersions | None = None,
    load_balancer_preference: bool = False,
    settings: StackSettings | None = None,
) -> CapabilityModel:
    """Aggregate target, mesh state and operator options into one immutable model.

    On a managed target a tenant without a group (or a group without a tenant)
    is rejected instead of silently falling back to anonymous access.
    """
    settings = settings or StackSettings()
    tenant_id = tenant_id or None
    group_id = group_id or None

    if target == Target.MANAGED and bool(tenant_id) != bool(group_id):
        missing = "--tenant-id" if group_id else "--group-id"
        raise ConfigurationError(
            "Partial identity configuration: tenant and group must be supplied together",
            hint=f"Pass {missing} as well, or omit both for anonymous access.",
        )

    identity = None
    if tenant_id and group_id:
        identity = Identity(tenant_id=tenant_id, group_id=group_id, client_id=client_id or None)
    elif target == Target.LOCAL and (tenant_id or group_id):
        logger.debug("Ignoring partial identity on local target")

    warnings: list[str] = []
    if target == Target.MANAGED and identity is None:
        warnings.append(
            "No identity configured: Grafana will allow anonymous admin access on a managed cluster"
        )
    if mesh.installed and not mesh.resolved:
        warnings.append(
            f"Mesh mode could not be classified, assuming {mesh.mode.value}"
        )

    return CapabilityModel(
        target=target,
        mesh=mesh,
        versions=versions or default_versions(settings),
        identity=identity,
        load_balancer_preference=load_balancer_preference,
        warnings=tuple(warnings),
    )
