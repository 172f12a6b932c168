"""Rich table builders for each command."""

from __future__ import annotations

from rich.panel import Panel
from rich.table import Table

from obs_stack.core.generators import scrape_job_names
from obs_stack.core.teardown import TeardownResult
from obs_stack.models.capability import CapabilityModel
from obs_stack.models.mesh import MeshState
from obs_stack.models.rollout import ConfigFragment, RolloutReport
from obs_stack.output.themes import styled_bool, styled_mode, styled_status


def mesh_panel(mesh: MeshState) -> Panel:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold cyan", no_wrap=True)
    table.add_column("Value")

    table.add_row("Installed", styled_bool(mesh.installed))
    table.add_row("Mode", styled_mode(mesh.true_mode))
    if not mesh.resolved:
        table.add_row("Assumed Mode", styled_mode(mesh.mode))
    table.add_row("Healthy", styled_bool(mesh.healthy) if mesh.installed else "-")
    table.add_row("Version", mesh.version or "-")
    table.add_row("Gateway", styled_bool(mesh.has_gateway))
    table.add_row("Detail", mesh.detail or "-")

    return Panel(table, title="[bold]Service Mesh[/bold]", border_style="blue")


def capability_panel(model: CapabilityModel) -> Panel:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold cyan", no_wrap=True)
    table.add_column("Value")

    table.add_row("Target", model.target.value)
    table.add_row("Mesh", styled_mode(model.mesh.true_mode))
    if model.identity:
        table.add_row("Tenant", model.identity.tenant_id)
        table.add_row("Admin Group", model.identity.group_id)
    table.add_row("Grafana Auth", "Entra ID" if model.authenticated else "anonymous")
    table.add_row("Internal LB", styled_bool(model.load_balancer_preference))
    for label, value in model.versions.items():
        table.add_row(label.capitalize(), value)
    for warning in model.warnings:
        table.add_row("[yellow]Warning[/yellow]", warning)

    return Panel(table, title="[bold]Capability Model[/bold]", border_style="green")


def fragment_table(fragments: list[ConfigFragment]) -> Table:
    table = Table(title="Generated Configuration", expand=True)
    table.add_column("Component", style="cyan", no_wrap=True)
    table.add_column("Settings", max_width=70)

    for f in fragments:
        if f.component == "namespace":
            labels = f.values.get("labels", {})
            detail = ", ".join(f"{k}={v}" for k, v in labels.items())
        elif f.component == "metrics":
            grafana_ini = f.values["grafana"]["grafana.ini"]
            auth = "anonymous" if grafana_ini["auth.anonymous"]["enabled"] else "Entra ID"
            detail = (
                f"jobs: {', '.join(scrape_job_names(f))}\n"
                f"node exporter: {f.values['nodeExporter']['enabled']}\n"
                f"grafana auth: {auth}, service: {f.values['grafana']['service']['type']}"
            )
        elif f.component == "network-policy":
            detail = f"{len(f.manifests[0]['spec']['ingress'])} ingress rule(s)"
        else:
            detail = ", ".join(sorted(f.values))
        for warning in f.warnings:
            detail += f"\n[yellow]! {warning}[/yellow]"
        table.add_row(f.component, detail)
    return table


def report_table(report: RolloutReport) -> Table:
    table = Table(title="Rollout", expand=True)
    table.add_column("Phase", style="cyan", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Message", max_width=60)
    table.add_column("Hint", style="dim", max_width=40)

    for r in report.results:
        table.add_row(r.phase.value, styled_status(r.status), r.message, r.hint or "")
    return table


def teardown_table(result: TeardownResult) -> Table:
    table = Table(title="Rollback", expand=True)
    table.add_column("Resource", style="cyan")
    table.add_column("Result", no_wrap=True)

    for label in result.removed:
        table.add_row(label, "[green]removed[/green]")
    for label in result.absent:
        table.add_row(label, "[dim]not present[/dim]")
    for error in result.errors:
        label, _, message = error.partition(": ")
        table.add_row(label, f"[red]{message}[/red]")
    return table
