"""Detect the external tools a rollout needs."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass

from obs_stack.core.errors import PreconditionError

INSTALL_HINTS: dict[str, str] = {
    "helm": "Install Helm: https://helm.sh/docs/intro/install/",
    "kubectl": "Install kubectl: https://kubernetes.io/docs/tasks/tools/",
}

VERSION_ARGS: dict[str, list[str]] = {
    "helm": ["version", "--short"],
    "kubectl": ["version", "--client"],
}


@dataclass
class ToolStatus:
    """Result of a single tool lookup."""

    name: str
    available: bool
    path: str | None = None
    version: str | None = None
    error: str | None = None


class ToolChecker:
    """Check that required command-line tools are installed."""

    def __init__(self, tools: tuple[str, ...] = ("helm", "kubectl")):
        self.tools = tools

    def check(self) -> list[ToolStatus]:
        return [self._check_tool(name) for name in self.tools]

    def require(self) -> list[ToolStatus]:
        """Return tool statuses, raising PreconditionError if any tool is missing."""
        statuses = self.check()
        missing = [s for s in statuses if not s.available]
        if missing:
            names = ", ".join(s.name for s in missing)
            hints = " ".join(INSTALL_HINTS.get(s.name, f"Install {s.name}.") for s in missing)
            raise PreconditionError(f"Required tool(s) not found: {names}", hint=hints)
        return statuses

    def _check_tool(self, name: str) -> ToolStatus:
        path = shutil.which(name)
        if not path:
            return ToolStatus(name=name, available=False, error=f"{name} not found on PATH")

        try:
            result = subprocess.run(
                [name, *VERSION_ARGS.get(name, ["--version"])],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except subprocess.TimeoutExpired:
            return ToolStatus(name=name, available=False, path=path,
                              error=f"{name} not responding (timeout)")
        except OSError as e:
            return ToolStatus(name=name, available=False, path=path,
                              error=f"{name} could not be run: {e}")

        if result.returncode != 0:
            return ToolStatus(name=name, available=False, path=path,
                              error=f"{name} failed: {result.stderr.strip()}")
        return ToolStatus(name=name, available=True, path=path,
                          version=result.stdout.strip().splitlines()[0] if result.stdout else None)
