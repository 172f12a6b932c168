"""Service-mesh detection result."""

from __future__ import annotations

from dataclasses import dataclass

from obs_stack.models import MeshMode


@dataclass(frozen=True)
class MeshState:
    installed: bool = False
    mode: MeshMode = MeshMode.NOT_INSTALLED
    healthy: bool = False
    version: str | None = None
    has_gateway: bool = False
    detail: str = ""
    # False when no mode signal matched and ``mode`` holds the SIDECAR fallback
    resolved: bool = True

    def __post_init__(self) -> None:
        if (self.mode == MeshMode.NOT_INSTALLED) == self.installed:
            raise ValueError(
                f"Inconsistent mesh state: installed={self.installed} mode={self.mode.value}"
            )

    @property
    def true_mode(self) -> MeshMode:
        """The classified mode, UNKNOWN when only the fallback applies."""
        if self.installed and not self.resolved:
            return MeshMode.UNKNOWN
        return self.mode

    @property
    def ambient(self) -> bool:
        return self.installed and self.mode == MeshMode.AMBIENT

    @classmethod
    def not_installed(cls, detail: str) -> MeshState:
        return cls(installed=False, mode=MeshMode.NOT_INSTALLED, detail=detail)
