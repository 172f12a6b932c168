"""Table / JSON / YAML output dispatch."""

from __future__ import annotations

import json
from typing import Any

import yaml
from rich.console import Console

from obs_stack.models.capability import CapabilityModel
from obs_stack.models.mesh import MeshState
from obs_stack.models.rollout import ConfigFragment, RolloutReport

console = Console()


def mesh_to_dict(mesh: MeshState) -> dict[str, Any]:
    return {
        "installed": mesh.installed,
        "mode": mesh.mode.value,
        "resolved": mesh.resolved,
        "classified_mode": mesh.true_mode.value,
        "healthy": mesh.healthy,
        "version": mesh.version,
        "gateway": mesh.has_gateway,
        "detail": mesh.detail,
    }


def model_to_dict(model: CapabilityModel) -> dict[str, Any]:
    return {
        "target": model.target.value,
        "mesh": mesh_to_dict(model.mesh),
        "identity": {
            "tenant_id": model.identity.tenant_id,
            "group_id": model.identity.group_id,
        } if model.identity else None,
        "versions": dict(model.versions.items()),
        "load_balancer_preference": model.load_balancer_preference,
        "warnings": list(model.warnings),
    }


def report_to_dict(report: RolloutReport) -> dict[str, Any]:
    return {
        "status": report.summary,
        "phases": [
            {
                "phase": r.phase.value,
                "status": r.status.value,
                "message": r.message,
                "hint": r.hint,
                "decision": r.decision.value if r.decision else None,
            }
            for r in report.results
        ],
        "model": model_to_dict(report.model) if report.model else None,
    }


def _emit(data: Any, fmt: str) -> None:
    if fmt == "json":
        console.print_json(json.dumps(data, indent=2))
    else:
        console.print(yaml.dump(data, default_flow_style=False, sort_keys=False))


def output_detection(
    model: CapabilityModel,
    fragments: list[ConfigFragment],
    fmt: str,
) -> None:
    if fmt in ("json", "yaml"):
        data = model_to_dict(model)
        data["fragments"] = {f.component: f.values for f in fragments}
        _emit(data, fmt)
        return

    from obs_stack.output.tables import capability_panel, fragment_table, mesh_panel
    console.print(mesh_panel(model.mesh))
    console.print(capability_panel(model))
    console.print(fragment_table(fragments))


def output_report(report: RolloutReport, fmt: str) -> None:
    if fmt in ("json", "yaml"):
        _emit(report_to_dict(report), fmt)
        return

    from obs_stack.output.tables import report_table
    console.print(report_table(report))
    if report.ok and not report.degraded:
        console.print("\n[green]Observability stack ready.[/green]")
    elif report.ok:
        console.print("\n[yellow]Observability stack partially ready.[/yellow]")
    else:
        failure = report.failure
        if failure is not None:
            console.print(f"\n[red]Deploy failed in {failure.phase.value}:[/red] {failure.message}")
            if failure.hint:
                console.print(f"[dim]Hint: {failure.hint}[/dim]")
        else:
            console.print("\n[magenta]Deploy cancelled.[/magenta]")
