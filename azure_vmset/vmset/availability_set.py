"""VM-set resolver for VMs grouped in availability sets (or standalone)."""

from __future__ import annotations

import logging
from typing import Any

from .. import consts
from ..cache import CacheReadType, TimedCache
from ..cloud import resource_ids
from ..cloud.azure_client import AzureClient
from ..cloud.models import Node
from ..cloud.node_inventory import NodeInventory
from ..config import AppConfig
from ..exceptions import InstanceNotFound, NotInRequestedGroup
from ..reconcile import backend_pool
from .common import VMSetBase

logger = logging.getLogger(__name__)


class AvailabilitySet(VMSetBase):
    """Resolves nodes whose VM name equals the node name.

    VMs are cached per name for ``cache.vm_ttl_seconds``; availability sets
    of every known resource group are cached under a single key.
    """

    metric_prefix = "vmas"

    def __init__(self, config: AppConfig, client: AzureClient, inventory: NodeInventory):
        super().__init__(config, client, inventory)
        self._vm_cache = TimedCache(config.cache.vm_ttl_seconds, self._fetch_vm)
        self._vmas_cache = TimedCache(config.cache.availability_sets_ttl_seconds, self._fetch_availability_sets)

    # ── Cache getters ───────────────────────────────────────────────

    def _fetch_vm(self, node_name: str) -> Any | None:
        rg = self._inventory.get_node_resource_group(node_name)
        vm = self._client.get_virtual_machine(rg, node_name)
        if vm is not None and vm.provisioning_state == consts.VM_PROVISIONING_STATE_DELETING:
            logger.debug("VM %s is being deleted", node_name, extra={"node": node_name, "resource_group": rg})
            return None
        return vm

    def _fetch_availability_sets(self, _key: str) -> dict[str, Any]:
        availability_sets: dict[str, Any] = {}
        for rg in sorted(self._inventory.get_resource_groups()):
            for vmas in self._client.list_availability_sets(rg):
                if not vmas.name:
                    logger.warning("Skipping availability set without a name in %s", rg)
                    continue
                availability_sets[vmas.name] = vmas
        return availability_sets

    def _get_vm(self, node_name: str, read_type: CacheReadType = CacheReadType.DEFAULT) -> Any:
        vm = self._vm_cache.get(node_name, read_type)
        if vm is None:
            raise InstanceNotFound(node_name)
        return vm

    # ── VMSet operations ────────────────────────────────────────────

    def get_primary_vm_set_name(self) -> str:
        return self._azure.primary_availability_set_name

    def get_node_name_by_provider_id(self, provider_id: str) -> str:
        return resource_ids.node_name_from_provider_id(provider_id)

    def get_node_vm_set_name(self, node: Node) -> str:
        """Name of the availability set holding the node's VM; "" for standalone VMs."""
        host_name = node.resolved_host_name
        if not host_name:
            logger.warning("Cannot get host name of node %s", node.name, extra={"node": node.name})
            return ""

        for vm in self._client.list_virtual_machines(self._azure.resource_group):
            if (vm.name or "").lower() != host_name.lower():
                continue
            if vm.availability_set is not None and vm.availability_set.id:
                return resource_ids.get_last_segment(vm.availability_set.id)
            break
        return ""

    def get_agent_pool_vm_set_names(self, nodes: list[Node]) -> list[str]:
        """Lower-cased availability set names of the non control plane nodes."""
        vm_to_availability_set = {
            vm.name: vm.availability_set.id
            for vm in self._client.list_virtual_machines(self._azure.resource_group)
            if vm.availability_set is not None and vm.availability_set.id
        }

        names = []
        for node in nodes:
            if node.is_control_plane:
                continue
            availability_set_id = vm_to_availability_set.get(node.name)
            if availability_set_id is None:
                logger.warning("Node %s has no availability set", node.name, extra={"node": node.name})
                continue
            # availability set IDs come back with unpredictable casing
            names.append(resource_ids.get_last_segment(availability_set_id).lower())
        return names

    def get_node_name_by_ip_configuration_id(self, ip_configuration_id: str) -> tuple[str, str]:
        """Return (node_name, availability_set_name) owning a NIC IP configuration."""
        nic_rg, nic_name = resource_ids.parse_ip_configuration_id(ip_configuration_id)
        nic = self._client.get_network_interface(nic_rg, nic_name)
        vm_id = nic.virtual_machine.id if nic.virtual_machine is not None else None
        if not vm_id:
            logger.info("NIC %s of %s is not attached to a VM", nic_name, ip_configuration_id)
            return "", ""

        vm_name = resource_ids.vm_name_from_id(vm_id)
        vm = self._get_vm(vm_name)
        availability_set_id = vm.availability_set.id if vm.availability_set is not None else ""
        if not availability_set_id:
            return vm_name, ""
        return vm_name, resource_ids.availability_set_name_from_id(availability_set_id).lower()

    def _get_vm_set_for_node(self, node_name: str) -> Any:
        availability_sets = self._vmas_cache.get(consts.VMAS_KEY)
        for vmas in (availability_sets or {}).values():
            for vm_ref in vmas.virtual_machines or []:
                if not vm_ref.id:
                    continue
                if resource_ids.vm_name_from_id(vm_ref.id).lower() == node_name.lower():
                    return vmas
        logger.warning("Unable to find the availability set of node %s", node_name, extra={"node": node_name})
        raise InstanceNotFound(node_name)

    def _get_primary_interface_with_vm_set(self, node_name: str, vm_set_name: str) -> tuple[Any, str]:
        vm = self._get_vm(node_name)
        primary_nic_id = backend_pool.primary_interface_id(vm)
        availability_set_id = vm.availability_set.id if vm.availability_set is not None else ""
        availability_set_name = resource_ids.availability_set_name_from_id(availability_set_id or "")

        # vm_set_name is empty when only the node's addresses are wanted
        if vm_set_name and self._needs_vm_set_check(node_name, availability_set_name, vm_set_name):
            expected_id = resource_ids.availability_set_id(
                self._azure.subscription_id, self._inventory.get_node_resource_group(node_name), vm_set_name,
            )
            if not availability_set_id or availability_set_id.lower() != expected_id.lower():
                raise NotInRequestedGroup(node_name, vm_set_name)

        return self._get_interface(primary_nic_id), availability_set_name
