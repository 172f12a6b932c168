"""Phase status and mesh mode color maps."""

from obs_stack.models import MeshMode
from obs_stack.models.rollout import PhaseStatus

STATUS_COLORS: dict[PhaseStatus, str] = {
    PhaseStatus.SUCCEEDED: "green",
    PhaseStatus.SKIPPED: "dim",
    PhaseStatus.WARNING: "yellow",
    PhaseStatus.FAILED: "red bold",
    PhaseStatus.CANCELLED: "magenta",
}

MODE_COLORS: dict[MeshMode, str] = {
    MeshMode.NOT_INSTALLED: "dim",
    MeshMode.SIDECAR: "cyan",
    MeshMode.AMBIENT: "green",
    MeshMode.UNKNOWN: "yellow",
}


def styled_status(status: PhaseStatus) -> str:
    color = STATUS_COLORS.get(status, "white")
    return f"[{color}]{status.value}[/{color}]"


def styled_mode(mode: MeshMode) -> str:
    color = MODE_COLORS.get(mode, "white")
    return f"[{color}]{mode.value}[/{color}]"


def styled_bool(value: bool) -> str:
    return "[green]yes[/green]" if value else "[dim]no[/dim]"
