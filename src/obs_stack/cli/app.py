"""Root Typer application, mounts sub-commands."""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from obs_stack.cli.runtime import err_console

app = typer.Typer(
    name="obs-stack",
    help="Deploy an observability stack that adapts to the cluster and its service mesh.",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=True)],
    )
    # The kubernetes client is very chatty at debug level
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _register_commands() -> None:
    from obs_stack.cli.commands.deploy_cmd import app as deploy_app
    from obs_stack.cli.commands.rollback_cmd import app as rollback_app
    from obs_stack.cli.commands.detect_cmd import app as detect_app

    app.add_typer(deploy_app, name="deploy", help="Deploy or upgrade the stack")
    app.add_typer(rollback_app, name="rollback", help="Remove the stack")
    app.add_typer(detect_app, name="detect", help="Show detected capabilities without deploying")


_register_commands()


def main() -> None:
    app()
