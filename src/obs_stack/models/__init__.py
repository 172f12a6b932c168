"""Data models for obs-stack."""

from __future__ import annotations

import enum


class MeshMode(enum.Enum):
    NOT_INSTALLED = "not-installed"
    SIDECAR = "sidecar"
    AMBIENT = "ambient"
    UNKNOWN = "unknown"


class Target(enum.Enum):
    LOCAL = "local"
    MANAGED = "managed"


class InstallDecision(enum.Enum):
    INSTALL = "install"
    UPGRADE = "upgrade"
