"""obs-stack detect - Show mesh state and the configuration a deploy would use."""

from __future__ import annotations

from typing import Optional

import typer

from obs_stack.cli.options import ContextOption, NamespaceOption, OutputOption, TargetOption
from obs_stack.cli.runtime import build_runtime, exit_with_error
from obs_stack.core.capability import build_capability_model
from obs_stack.core.errors import ObsStackError
from obs_stack.core.generators import generate_all
from obs_stack.core.mesh_classifier import MeshClassifier
from obs_stack.models import Target
from obs_stack.output.formatters import output_detection

app = typer.Typer()


@app.callback(invoke_without_command=True)
def detect(
    target: Target = TargetOption,
    output: str = OutputOption,
    namespace: Optional[str] = NamespaceOption,
    context: Optional[str] = ContextOption,
    tenant_id: Optional[str] = typer.Option(None, "--tenant-id", help="Entra ID tenant (managed only)"),
    group_id: Optional[str] = typer.Option(None, "--group-id", help="Entra ID admin group (managed only)"),
    internal_lb: bool = typer.Option(False, "--internal-lb", help="Preview internal load balancer exposure"),
) -> None:
    """Classify the cluster without changing anything."""
    rt = build_runtime(context, namespace)
    try:
        rt.probe.check_connectivity()
        mesh = MeshClassifier(rt.probe, rt.settings).detect(concurrent=True)
        model = build_capability_model(
            target=target,
            mesh=mesh,
            tenant_id=tenant_id,
            group_id=group_id,
            load_balancer_preference=internal_lb,
            settings=rt.settings,
        )
    except ObsStackError as e:
        exit_with_error(e)

    output_detection(model, generate_all(model, rt.settings), output)
