"""Wire settings, cluster client and collaborators for a command."""

from __future__ import annotations

from dataclasses import dataclass

import typer
from rich.console import Console

from obs_stack.config.settings import StackSettings
from obs_stack.core.cluster_probe import ClusterProbe
from obs_stack.core.errors import ObsStackError
from obs_stack.core.installer import HelmInstaller
from obs_stack.core.k8s_client import K8sClient

err_console = Console(stderr=True)


@dataclass
class Runtime:
    settings: StackSettings
    k8s: K8sClient
    probe: ClusterProbe
    installer: HelmInstaller


def build_runtime(context: str | None, namespace: str | None) -> Runtime:
    settings = StackSettings.from_env().with_overrides(namespace=namespace)
    k8s = K8sClient(context=context, request_timeout=settings.request_timeout)
    return Runtime(
        settings=settings,
        k8s=k8s,
        probe=ClusterProbe(k8s, settings),
        installer=HelmInstaller(k8s, settings),
    )


def exit_with_error(error: ObsStackError) -> None:
    """Print a diagnostic with its remediation hint and exit non-zero."""
    err_console.print(f"[red bold]Error:[/red bold] {error.message}")
    if error.hint:
        err_console.print(f"[dim]Hint: {error.hint}[/dim]")
    raise typer.Exit(code=1)
