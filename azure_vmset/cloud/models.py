"""Orchestrator-side models: nodes, services and zones."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Any

from .. import consts


@dataclass(frozen=True)
class Node:
    """A Kubernetes node as seen by the resolver."""

    name: str
    labels: dict[str, str] = field(default_factory=dict)
    host_name: str | None = None

    @property
    def resolved_host_name(self) -> str:
        """The host name address if reported, else the kubernetes.io/hostname label."""
        return self.host_name or self.labels.get(consts.NODE_LABEL_HOST_NAME, "")

    @property
    def is_control_plane(self) -> bool:
        if consts.CONTROL_PLANE_NODE_ROLE_LABEL in self.labels:
            return True
        # master role label for clusters older than 1.19
        if consts.MASTER_NODE_ROLE_LABEL in self.labels:
            return True
        return self.labels.get(consts.NODE_LABEL_ROLE) == "master"

    @classmethod
    def from_kubernetes(cls, obj: Any) -> Node:
        """Build from a kubernetes.client V1Node (or anything shaped like one)."""
        host_name = None
        status = getattr(obj, "status", None)
        for address in getattr(status, "addresses", None) or []:
            if (address.type or "").lower() == "hostname":
                host_name = address.address
        return cls(
            name=obj.metadata.name,
            labels=dict(obj.metadata.labels or {}),
            host_name=host_name,
        )


@dataclass(frozen=True)
class Service:
    """The Kubernetes Service a backend pool operation is performed for."""

    namespace: str
    name: str
    cluster_ip: str = ""
    annotations: dict[str, str] = field(default_factory=dict)

    @property
    def full_name(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def is_ipv6(self) -> bool:
        try:
            return ipaddress.ip_address(self.cluster_ip).version == 6
        except ValueError:
            return False

    def load_balancer_mode(self) -> tuple[bool, bool, list[str]]:
        """Return (has_mode, is_auto, vm_set_names) from the load balancer mode annotation."""
        if consts.SERVICE_ANNOTATION_LOAD_BALANCER_MODE not in self.annotations:
            return False, False, []
        mode = self.annotations[consts.SERVICE_ANNOTATION_LOAD_BALANCER_MODE].strip()
        if mode.lower() == consts.SERVICE_ANNOTATION_LOAD_BALANCER_AUTO_MODE_VALUE:
            return True, True, []
        names = [name.strip().lower() for name in mode.split(",") if name.strip()]
        return True, False, names


@dataclass(frozen=True)
class Zone:
    failure_domain: str
    region: str
