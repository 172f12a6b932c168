"""Apply Helm releases and manifests, choosing install vs upgrade at apply time."""

from __future__ import annotations

import logging
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Any, Callable

import yaml
from deepdiff import DeepDiff

from obs_stack.config.settings import StackSettings
from obs_stack.core.cluster_probe import ClusterProbe
from obs_stack.core.errors import ApplyError
from obs_stack.core.k8s_client import K8sClient
from obs_stack.models import InstallDecision
from obs_stack.models.rollout import ConfigFragment

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


@dataclass
class InstallResult:
    name: str
    decision: InstallDecision
    changed: bool = True
    output: str = ""


def decide_release(probe: ClusterProbe, release: str, namespace: str) -> InstallDecision:
    if probe.release_exists(release, namespace):
        return InstallDecision.UPGRADE
    return InstallDecision.INSTALL


def decide_resource(probe: ClusterProbe, doc: dict[str, Any]) -> InstallDecision:
    metadata = doc.get("metadata", {})
    existing = probe.get_resource(
        doc.get("kind", ""), metadata.get("name", ""), metadata.get("namespace", ""),
    )
    return InstallDecision.UPGRADE if existing is not None else InstallDecision.INSTALL


def manifest_changes(
    desired: dict[str, Any],
    live: dict[str, Any],
    owned_labels: tuple[str, ...] = (),
) -> list[str]:
    """Describe how ``live`` differs from ``desired`` in the fields obs-stack owns.

    Keys in ``owned_labels`` are compared even when ``desired`` omits them, so
    a label obs-stack no longer wants counts as a change until it is removed.
    """
    desired_labels = desired.get("metadata", {}).get("labels", {}) or {}
    live_labels = (live.get("metadata", {}) or {}).get("labels", {}) or {}
    keys = [*desired_labels, *(k for k in owned_labels if k not in desired_labels)]
    left: dict[str, Any] = {"labels": {k: desired_labels.get(k) for k in keys}}
    right: dict[str, Any] = {"labels": {k: live_labels.get(k) for k in keys}}
    if "spec" in desired:
        left["spec"] = desired["spec"]
        right["spec"] = live.get("spec", {})

    diff = DeepDiff(left, right, ignore_order=True)
    changes: list[str] = []
    for key in ("values_changed", "dictionary_item_added", "dictionary_item_removed",
                "iterable_item_added", "iterable_item_removed", "type_changes"):
        if key in diff:
            changes.extend(f"{key}: {path}" for path in diff[key])
    return changes


class HelmInstaller:
    """Installer backed by the helm CLI for charts and the Kubernetes API for manifests."""

    def __init__(
        self,
        k8s: K8sClient,
        settings: StackSettings | None = None,
        helm_binary: str = "helm",
        runner: Runner = subprocess.run,
    ):
        self.k8s = k8s
        self.settings = settings or StackSettings()
        self.helm_binary = helm_binary
        self._run = runner
        self._repos_ready = False

    def _helm(self, args: list[str], timeout: int) -> subprocess.CompletedProcess:
        cmd = [self.helm_binary, *args]
        if self.k8s.context:
            cmd.extend(["--kube-context", self.k8s.context])
        logger.debug("Running %s", " ".join(cmd))
        try:
            return self._run(cmd, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise ApplyError(
                f"helm {args[0]} timed out after {timeout}s",
                hint="Check pod events in the target namespace and retry; the run is re-entrant.",
            ) from e
        except OSError as e:
            raise ApplyError(
                f"Could not run {self.helm_binary}: {e}",
                hint="Check that helm is installed and executable.",
            ) from e

    def ensure_repositories(self) -> None:
        if self._repos_ready:
            return
        for name, url in self.settings.repositories.items():
            result = self._helm(["repo", "add", name, url, "--force-update"], timeout=60)
            if result.returncode != 0:
                raise ApplyError(
                    f"Could not add Helm repository '{name}': {result.stderr.strip()}",
                    hint=f"Check network access to {url}.",
                )
        result = self._helm(["repo", "update"], timeout=120)
        if result.returncode != 0:
            raise ApplyError(
                f"helm repo update failed: {result.stderr.strip()}",
                hint="Check network access to the chart repositories.",
            )
        self._repos_ready = True

    def apply_release(
        self,
        release: str,
        chart: str,
        namespace: str,
        fragment: ConfigFragment,
        decision: InstallDecision,
        version: str | None = None,
        timeout: int | None = None,
    ) -> InstallResult:
        """Install or upgrade a release with the fragment's values."""
        self.ensure_repositories()
        timeout = timeout or self.settings.install_timeout
        action = "install" if decision == InstallDecision.INSTALL else "upgrade"

        with tempfile.NamedTemporaryFile("w", suffix=".yaml", prefix=f"{release}-") as f:
            yaml.safe_dump(fragment.values, f, default_flow_style=False, sort_keys=False)
            f.flush()
            args = [
                action, release, chart,
                "--namespace", namespace,
                "--values", f.name,
                "--timeout", f"{timeout}s",
            ]
            if version:
                args.extend(["--version", version])
            # Grace period on top of helm's own timeout
            result = self._helm(args, timeout=timeout + 60)

        if result.returncode != 0:
            raise ApplyError(
                f"helm {action} {release} failed: {result.stderr.strip()}",
                hint=f"Inspect with 'helm status {release} -n {namespace}'; re-running deploy is safe.",
            )
        logger.info("helm %s %s succeeded", action, release)
        return InstallResult(name=release, decision=decision, output=result.stdout)

    def apply_manifest(
        self,
        doc: dict[str, Any],
        decision: InstallDecision,
        owned_labels: tuple[str, ...] = (),
    ) -> InstallResult:
        """Create, or update when the live object differs from ``doc``.

        On update, keys in ``owned_labels`` that ``doc`` does not set are
        removed from the live object.
        """
        kind = doc.get("kind", "")
        metadata = doc.get("metadata", {})
        name = metadata.get("name", "")
        namespace = metadata.get("namespace", "")
        labels = metadata.get("labels", {}) or {}
        stale = tuple(k for k in owned_labels if k not in labels)
        try:
            if decision == InstallDecision.INSTALL:
                self.k8s.create(doc)
                return InstallResult(name=name, decision=decision)

            live = self.k8s.get(kind, name, namespace)
            if live is not None and not manifest_changes(doc, live, owned_labels):
                logger.debug("%s %s unchanged", kind, name)
                return InstallResult(name=name, decision=decision, changed=False)
            self.k8s.update(doc, remove_labels=stale)
        except Exception as e:
            raise ApplyError(
                f"Could not apply {kind} '{name}': {e}",
                hint="Check RBAC permissions for the current context.",
            ) from e
        return InstallResult(name=name, decision=decision)

    def uninstall(self, release: str, namespace: str, timeout: int | None = None) -> bool:
        """Uninstall a release. Returns False when it was not installed."""
        timeout = timeout or self.settings.install_timeout
        result = self._helm(
            ["uninstall", release, "--namespace", namespace, "--wait", "--timeout", f"{timeout}s"],
            timeout=timeout + 60,
        )
        if result.returncode != 0:
            if "not found" in result.stderr.lower():
                return False
            raise ApplyError(
                f"helm uninstall {release} failed: {result.stderr.strip()}",
                hint=f"Remove it manually with 'helm uninstall {release} -n {namespace}'.",
            )
        return True

    def delete_manifest(self, kind: str, name: str, namespace: str = "") -> bool:
        try:
            return self.k8s.delete(kind, name, namespace)
        except Exception as e:
            raise ApplyError(f"Could not delete {kind} '{name}': {e}") from e
