"""Shared CLI options."""

from __future__ import annotations

import typer

from obs_stack.models import Target

OutputOption = typer.Option("table", "--output", "-o", help="Output format: table, json, yaml")
NamespaceOption = typer.Option(None, "--namespace", "-n", help="Namespace for the stack (default: monitoring)")
ContextOption = typer.Option(None, "--context", help="Kubernetes context name")
TargetOption = typer.Option(
    Target.LOCAL, "--target", "-t", case_sensitive=False,
    help="Deployment target: local or managed",
)
