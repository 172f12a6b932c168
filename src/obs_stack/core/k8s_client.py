"""Kubernetes API wrapper."""

from __future__ import annotations

from typing import Any, Callable

from kubernetes import client, config
from kubernetes.client import ApiException

GATEWAY_GROUP = "gateway.networking.k8s.io"
GATEWAY_VERSION = "v1"


class K8sClient:
    """Thin wrapper around the Kubernetes Python client."""

    def __init__(self, context: str | None = None, request_timeout: int = 30):
        self.context = context
        self.request_timeout = request_timeout
        self._core_v1: client.CoreV1Api | None = None
        self._apps_v1: client.AppsV1Api | None = None
        self._custom: client.CustomObjectsApi | None = None
        self._networking_v1: client.NetworkingV1Api | None = None
        self._admission_v1: client.AdmissionregistrationV1Api | None = None
        self._api_client: client.ApiClient | None = None

    def _load_config(self) -> client.ApiClient:
        if self._api_client is not None:
            return self._api_client
        try:
            cfg = client.Configuration()
            config.load_kube_config(
                context=self.context,
                client_configuration=cfg,
            )
            # Prevent indefinite hangs on unreachable clusters
            cfg.retries = 1
            if not cfg.connection_pool_maxsize:
                cfg.connection_pool_maxsize = 4
            self._api_client = client.ApiClient(configuration=cfg)
        except config.ConfigException:
            config.load_incluster_config()
            self._api_client = client.ApiClient()
        return self._api_client

    @property
    def core_v1(self) -> client.CoreV1Api:
        if self._core_v1 is None:
            self._core_v1 = client.CoreV1Api(api_client=self._load_config())
        return self._core_v1

    @property
    def apps_v1(self) -> client.AppsV1Api:
        if self._apps_v1 is None:
            self._apps_v1 = client.AppsV1Api(api_client=self._load_config())
        return self._apps_v1

    @property
    def custom(self) -> client.CustomObjectsApi:
        if self._custom is None:
            self._custom = client.CustomObjectsApi(api_client=self._load_config())
        return self._custom

    @property
    def networking_v1(self) -> client.NetworkingV1Api:
        if self._networking_v1 is None:
            self._networking_v1 = client.NetworkingV1Api(api_client=self._load_config())
        return self._networking_v1

    @property
    def admission_v1(self) -> client.AdmissionregistrationV1Api:
        if self._admission_v1 is None:
            self._admission_v1 = client.AdmissionregistrationV1Api(api_client=self._load_config())
        return self._admission_v1

    @property
    def active_context_name(self) -> str:
        if self.context:
            return self.context
        try:
            _, ctx = config.list_kube_config_contexts()
            return ctx.get("name", "unknown") if ctx else "unknown"
        except Exception:
            return "in-cluster"

    def server_version(self) -> str:
        """Return the API server git version. Raises when the cluster is unreachable."""
        info = client.VersionApi(api_client=self._load_config()).get_code(
            _request_timeout=self.request_timeout,
        )
        return info.git_version

    def _serialize(self, obj: Any) -> dict:
        if isinstance(obj, dict):
            return obj
        return self._load_config().sanitize_for_serialization(obj)

    def list_helm_secrets(
        self, namespace: str, release_name: str, label_selector: str = "owner=helm",
    ) -> list[Any]:
        """List Helm release storage secrets for one release."""
        result = self.core_v1.list_namespaced_secret(
            namespace=namespace,
            label_selector=f"{label_selector},name={release_name}",
            field_selector="type=helm.sh/release.v1",
            _request_timeout=self.request_timeout,
        )
        return result.items

    def get(self, kind: str, name: str, namespace: str = "") -> dict | None:
        """Get a single resource by kind/name/namespace, None when not found."""
        reader = self._readers().get(kind)
        if reader is None:
            raise ValueError(f"Unsupported kind: {kind}")
        try:
            return self._serialize(reader(name, namespace))
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def list(
        self,
        kind: str,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict]:
        """List resources of a kind in one namespace, or cluster-wide when namespace is None."""
        lister = self._listers().get(kind)
        if lister is None:
            raise ValueError(f"Unsupported kind: {kind}")
        result = lister(namespace, label_selector)
        if isinstance(result, dict):
            return result.get("items", [])
        return [self._serialize(item) for item in result.items]

    def _readers(self) -> dict[str, Callable[[str, str], Any]]:
        t = self.request_timeout
        return {
            "Namespace": lambda name, ns: self.core_v1.read_namespace(
                name=name, _request_timeout=t),
            "Pod": lambda name, ns: self.core_v1.read_namespaced_pod(
                name=name, namespace=ns, _request_timeout=t),
            "Deployment": lambda name, ns: self.apps_v1.read_namespaced_deployment(
                name=name, namespace=ns, _request_timeout=t),
            "DaemonSet": lambda name, ns: self.apps_v1.read_namespaced_daemon_set(
                name=name, namespace=ns, _request_timeout=t),
            "StatefulSet": lambda name, ns: self.apps_v1.read_namespaced_stateful_set(
                name=name, namespace=ns, _request_timeout=t),
            "MutatingWebhookConfiguration":
                lambda name, ns: self.admission_v1.read_mutating_webhook_configuration(
                    name=name, _request_timeout=t),
            "NetworkPolicy": lambda name, ns: self.networking_v1.read_namespaced_network_policy(
                name=name, namespace=ns, _request_timeout=t),
            "Gateway": lambda name, ns: self.custom.get_namespaced_custom_object(
                group=GATEWAY_GROUP, version=GATEWAY_VERSION, namespace=ns,
                plural="gateways", name=name),
        }

    def _listers(self) -> dict[str, Callable[[str | None, str | None], Any]]:
        t = self.request_timeout

        def scoped(namespaced: Callable, cluster_wide: Callable) -> Callable:
            def _list(ns: str | None, selector: str | None) -> Any:
                if ns:
                    return namespaced(namespace=ns, label_selector=selector, _request_timeout=t)
                return cluster_wide(label_selector=selector, _request_timeout=t)
            return _list

        def gateways(ns: str | None, selector: str | None) -> dict:
            if ns:
                return self.custom.list_namespaced_custom_object(
                    group=GATEWAY_GROUP, version=GATEWAY_VERSION, namespace=ns,
                    plural="gateways", label_selector=selector or "",
                )
            return self.custom.list_cluster_custom_object(
                group=GATEWAY_GROUP, version=GATEWAY_VERSION,
                plural="gateways", label_selector=selector or "",
            )

        return {
            "Namespace": lambda ns, selector: self.core_v1.list_namespace(
                label_selector=selector, _request_timeout=t),
            "Pod": scoped(self.core_v1.list_namespaced_pod,
                          self.core_v1.list_pod_for_all_namespaces),
            "Deployment": scoped(self.apps_v1.list_namespaced_deployment,
                                 self.apps_v1.list_deployment_for_all_namespaces),
            "DaemonSet": scoped(self.apps_v1.list_namespaced_daemon_set,
                                self.apps_v1.list_daemon_set_for_all_namespaces),
            "StatefulSet": scoped(self.apps_v1.list_namespaced_stateful_set,
                                  self.apps_v1.list_stateful_set_for_all_namespaces),
            "MutatingWebhookConfiguration":
                lambda ns, selector: self.admission_v1.list_mutating_webhook_configuration(
                    label_selector=selector, _request_timeout=t),
            "NetworkPolicy": scoped(self.networking_v1.list_namespaced_network_policy,
                                    self.networking_v1.list_network_policy_for_all_namespaces),
            "Gateway": gateways,
        }

    # Writes

    def create(self, doc: dict) -> None:
        kind = doc.get("kind", "")
        namespace = doc.get("metadata", {}).get("namespace", "")
        t = self.request_timeout
        if kind == "Namespace":
            self.core_v1.create_namespace(body=doc, _request_timeout=t)
        elif kind == "NetworkPolicy":
            self.networking_v1.create_namespaced_network_policy(
                namespace=namespace, body=doc, _request_timeout=t)
        else:
            raise ValueError(f"Unsupported kind for create: {kind}")

    def update(self, doc: dict, remove_labels: tuple[str, ...] = ()) -> None:
        """Merge-patch a Namespace (labels only) or replace a NetworkPolicy.

        ``remove_labels`` are sent as null in the Namespace patch, which
        deletes them from the live object.
        """
        kind = doc.get("kind", "")
        metadata = doc.get("metadata", {})
        name = metadata.get("name", "")
        t = self.request_timeout
        if kind == "Namespace":
            labels: dict[str, str | None] = dict(metadata.get("labels", {}) or {})
            labels.update({key: None for key in remove_labels})
            self.core_v1.patch_namespace(
                name=name, body={"metadata": {"labels": labels}},
                _request_timeout=t)
        elif kind == "NetworkPolicy":
            self.networking_v1.replace_namespaced_network_policy(
                name=name, namespace=metadata.get("namespace", ""), body=doc,
                _request_timeout=t)
        else:
            raise ValueError(f"Unsupported kind for update: {kind}")

    def delete(self, kind: str, name: str, namespace: str = "") -> bool:
        """Delete a resource. Returns False when it was already gone."""
        t = self.request_timeout
        try:
            if kind == "Namespace":
                self.core_v1.delete_namespace(name=name, _request_timeout=t)
            elif kind == "NetworkPolicy":
                self.networking_v1.delete_namespaced_network_policy(
                    name=name, namespace=namespace, _request_timeout=t)
            else:
                raise ValueError(f"Unsupported kind for delete: {kind}")
        except ApiException as e:
            if e.status == 404:
                return False
            raise
        return True
