"""obs-stack deploy - Roll out the observability stack."""

from __future__ import annotations

import signal
import threading
from typing import Optional

import typer

from obs_stack.cli.options import ContextOption, NamespaceOption, OutputOption, TargetOption
from obs_stack.cli.runtime import build_runtime, err_console
from obs_stack.core.orchestrator import DeployRequest, RolloutOrchestrator
from obs_stack.models import Target
from obs_stack.models.rollout import PhaseResult
from obs_stack.output.formatters import output_report
from obs_stack.output.themes import styled_status

app = typer.Typer()


def _print_phase(result: PhaseResult) -> None:
    err_console.print(f"  {result.phase.value:<28} {styled_status(result.status)}")


@app.callback(invoke_without_command=True)
def deploy(
    target: Target = TargetOption,
    output: str = OutputOption,
    namespace: Optional[str] = NamespaceOption,
    context: Optional[str] = ContextOption,
    metrics_version: Optional[str] = typer.Option(
        None, "--metrics-version", help="kube-prometheus-stack chart version",
    ),
    grafana_tag: Optional[str] = typer.Option(None, "--grafana-tag", help="Grafana image tag"),
    tenant_id: Optional[str] = typer.Option(None, "--tenant-id", help="Entra ID tenant (managed only)"),
    group_id: Optional[str] = typer.Option(
        None, "--group-id", help="Entra ID group granted Grafana Admin (managed only)",
    ),
    client_id: Optional[str] = typer.Option(None, "--client-id", help="Entra ID app registration client id"),
    internal_lb: bool = typer.Option(
        False, "--internal-lb", help="Expose services through an internal load balancer (managed only)",
    ),
    skip_tracing: bool = typer.Option(False, "--skip-tracing", help="Do not install Jaeger"),
    skip_network_policy: bool = typer.Option(
        False, "--skip-network-policy", help="Do not apply the default NetworkPolicy",
    ),
) -> None:
    """Deploy or upgrade the observability stack."""
    rt = build_runtime(context, namespace)
    orchestrator = RolloutOrchestrator(rt.settings, rt.probe, rt.installer)
    request = DeployRequest(
        target=target,
        tenant_id=tenant_id,
        group_id=group_id,
        client_id=client_id,
        metrics_version=metrics_version,
        visualization_image_tag=grafana_tag,
        load_balancer_preference=internal_lb,
        skip_tracing=skip_tracing,
        skip_network_policy=skip_network_policy,
    )

    cancel = threading.Event()

    def _on_sigint(signum, frame):
        if cancel.is_set():
            raise KeyboardInterrupt
        err_console.print("[yellow]Cancelling after the current phase (Ctrl-C again to abort)[/yellow]")
        cancel.set()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        report = orchestrator.run(
            request,
            cancel=cancel,
            on_phase=_print_phase if output == "table" else None,
        )
    finally:
        signal.signal(signal.SIGINT, previous)

    output_report(report, output)
    if not report.ok:
        raise typer.Exit(code=1)
