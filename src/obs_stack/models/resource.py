"""Structured view over a raw Kubernetes object."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ContainerInfo:
    name: str
    image: str = ""
    args: list[str] = field(default_factory=list)
    command: list[str] = field(default_factory=list)

    @property
    def argv(self) -> list[str]:
        return [*self.command, *self.args]


@dataclass
class ResourceDescriptor:
    kind: str
    name: str
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    containers: list[ContainerInfo] = field(default_factory=list)
    init_containers: list[ContainerInfo] = field(default_factory=list)
    replicas: int = 0
    ready_replicas: int = 0
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def images(self) -> list[str]:
        return [c.image for c in self.containers if c.image]

    @property
    def all_containers(self) -> list[ContainerInfo]:
        return [*self.init_containers, *self.containers]

    @classmethod
    def from_dict(cls, kind: str, d: dict) -> ResourceDescriptor:
        metadata = d.get("metadata", {}) or {}
        spec = d.get("spec", {}) or {}
        status = d.get("status", {}) or {}

        # Workloads nest the pod spec under a template, pods carry it directly
        pod_spec = (spec.get("template", {}) or {}).get("spec") or spec

        if kind == "DaemonSet":
            replicas = status.get("desiredNumberScheduled", 0) or 0
            ready = status.get("numberReady", 0) or 0
        else:
            replicas = spec.get("replicas", 0) or 0
            ready = status.get("readyReplicas", 0) or 0

        return cls(
            kind=kind,
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", "") or "",
            labels=metadata.get("labels", {}) or {},
            annotations=metadata.get("annotations", {}) or {},
            containers=_containers(pod_spec.get("containers")),
            init_containers=_containers(pod_spec.get("initContainers")),
            replicas=replicas,
            ready_replicas=ready,
            raw=d,
        )


def _containers(items: list | None) -> list[ContainerInfo]:
    result: list[ContainerInfo] = []
    for c in items or []:
        if not isinstance(c, dict):
            continue
        result.append(ContainerInfo(
            name=c.get("name", ""),
            image=c.get("image", "") or "",
            args=[str(a) for a in c.get("args") or []],
            command=[str(a) for a in c.get("command") or []],
        ))
    return result
