"""obs-stack rollback - Remove the observability stack."""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console

from obs_stack.cli.options import ContextOption, NamespaceOption, TargetOption
from obs_stack.cli.runtime import build_runtime, exit_with_error
from obs_stack.core.errors import ObsStackError
from obs_stack.core.preflight import ToolChecker
from obs_stack.core.teardown import plan_teardown, run_teardown
from obs_stack.models import Target
from obs_stack.output.tables import teardown_table

app = typer.Typer()
console = Console()


@app.callback(invoke_without_command=True)
def rollback(
    target: Target = TargetOption,
    namespace: Optional[str] = NamespaceOption,
    context: Optional[str] = ContextOption,
    delete_namespace: bool = typer.Option(
        False, "--delete-namespace", help="Also delete the stack namespace",
    ),
) -> None:
    """Uninstall every component of the stack. Safe to run repeatedly."""
    rt = build_runtime(context, namespace)
    try:
        ToolChecker(tools=("helm",)).require()
        rt.probe.check_connectivity()
    except ObsStackError as e:
        exit_with_error(e)

    console.print(
        f"Rolling back from [cyan]{rt.probe.context_name}[/cyan] "
        f"({target.value}), namespace [cyan]{rt.settings.namespace}[/cyan]"
    )
    steps = plan_teardown(rt.settings, delete_namespace=delete_namespace)
    result = run_teardown(steps, rt.probe, rt.installer)
    console.print(teardown_table(result))

    if not result.ok:
        console.print(f"\n[red]{len(result.errors)} component(s) could not be removed.[/red]")
        raise typer.Exit(code=1)
    console.print("\n[green]Rollback complete.[/green]")
