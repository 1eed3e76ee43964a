"""Tracks which nodes exist, where they live and whether they may join load balancers."""

from __future__ import annotations

import logging
import threading

from .. import consts
from .models import Node

logger = logging.getLogger(__name__)


class NodeInventory:
    """Thread-safe view of the cluster's nodes, fed by the caller's node watch."""

    def __init__(self, default_resource_group: str):
        self._default_rg = default_resource_group
        self._lock = threading.RLock()
        self._node_resource_groups: dict[str, str] = {}
        self._unmanaged: set[str] = set()
        self._excluded: set[str] = set()

    def update(self, node: Node) -> None:
        """Record a node addition or change."""
        with self._lock:
            self._forget(node.name)
            rg = node.labels.get(consts.EXTERNAL_RESOURCE_GROUP_LABEL)
            if rg:
                self._node_resource_groups[node.name] = rg.lower()
            if node.labels.get(consts.MANAGED_BY_AZURE_LABEL, "").lower() == "false":
                self._unmanaged.add(node.name)
            if consts.EXCLUDE_FROM_LB_LABEL in node.labels:
                self._excluded.add(node.name)

    def update_all(self, nodes: list[Node]) -> None:
        for node in nodes:
            self.update(node)

    def delete(self, node_name: str) -> None:
        with self._lock:
            self._forget(node_name)

    def get_node_resource_group(self, node_name: str) -> str:
        """The resource group a node's VM lives in; the configured group unless labelled."""
        with self._lock:
            return self._node_resource_groups.get(node_name, self._default_rg)

    def get_resource_groups(self) -> set[str]:
        """Every resource group that hosts cluster nodes."""
        with self._lock:
            groups = {self._default_rg}
            groups.update(self._node_resource_groups.values())
            return groups

    def should_exclude_from_load_balancer(self, node_name: str) -> bool:
        """Nodes that are unmanaged, labelled for exclusion, or in an external resource group."""
        with self._lock:
            rg = self._node_resource_groups.get(node_name)
            if rg is not None and rg.lower() != self._default_rg.lower():
                return True
            return node_name in self._excluded or node_name in self._unmanaged

    def _forget(self, node_name: str) -> None:
        self._node_resource_groups.pop(node_name, None)
        self._unmanaged.discard(node_name)
        self._excluded.discard(node_name)
