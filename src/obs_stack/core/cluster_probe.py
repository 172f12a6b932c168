"""Read-only, best-effort cluster queries.

Every query except :meth:`ClusterProbe.check_connectivity` treats a failure
(API error, RBAC denial, unreachable cluster) as an absent or empty result so
that individual detection signals can be silently unavailable.
"""

from __future__ import annotations

import logging

from obs_stack.config.settings import StackSettings
from obs_stack.core.errors import ConnectivityError
from obs_stack.core.k8s_client import K8sClient
from obs_stack.models.resource import ResourceDescriptor

logger = logging.getLogger(__name__)


class ClusterProbe:
    """Narrow query interface over a single cluster context."""

    def __init__(self, k8s: K8sClient, settings: StackSettings | None = None):
        self.k8s = k8s
        self.settings = settings or StackSettings()

    @property
    def context_name(self) -> str:
        return self.k8s.active_context_name

    def check_connectivity(self) -> str:
        """Return the server version, raising ConnectivityError when unreachable."""
        try:
            return self.k8s.server_version()
        except Exception as e:
            raise ConnectivityError(
                f"Cannot reach cluster (context: {self.k8s.active_context_name}): {e}",
                hint="Check your kubeconfig and current context with 'kubectl cluster-info'.",
            ) from e

    def namespace_exists(self, name: str) -> bool:
        return self.get_resource("Namespace", name) is not None

    def get_resource(
        self, kind: str, name: str, namespace: str = "",
    ) -> ResourceDescriptor | None:
        try:
            raw = self.k8s.get(kind, name, namespace)
        except Exception:
            logger.debug("Could not read %s %s/%s", kind, namespace, name, exc_info=True)
            return None
        if raw is None:
            return None
        return ResourceDescriptor.from_dict(kind, raw)

    def list_resources(
        self,
        kind: str,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[ResourceDescriptor]:
        try:
            items = self.k8s.list(kind, namespace=namespace, label_selector=label_selector)
        except Exception:
            logger.debug(
                "Could not list %s (namespace=%s, selector=%s)",
                kind, namespace or "*", label_selector, exc_info=True,
            )
            return []
        return [ResourceDescriptor.from_dict(kind, item) for item in items]

    def release_exists(self, name: str, namespace: str) -> bool:
        """True if Helm has stored at least one revision of the release."""
        try:
            secrets = self.k8s.list_helm_secrets(
                namespace, name, label_selector=self.settings.helm_label_selector,
            )
        except Exception:
            logger.debug("Could not query release %s/%s", namespace, name, exc_info=True)
            return False
        return bool(secrets)
