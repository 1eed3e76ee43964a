"""VM-set resolver for VMs in flexible orchestration scale sets."""

from __future__ import annotations

import logging
import threading
from typing import Any

from azure.mgmt.compute.models import (
    SubResource,
    VirtualMachineScaleSet,
    VirtualMachineScaleSetNetworkProfile,
    VirtualMachineScaleSetVMProfile,
)

from .. import consts
from ..cache import CacheReadType, LockMap, TimedCache
from ..cloud import resource_ids
from ..cloud.azure_client import AzureClient
from ..cloud.models import Node, Service
from ..cloud.node_inventory import NodeInventory
from ..config import AppConfig
from ..exceptions import ConflictingLoadBalancerMembership, InstanceNotFound, NotInRequestedGroup, VMSetError
from ..reconcile import backend_pool
from ..reconcile.backend_pool import MembershipResult
from .common import VMSetBase

logger = logging.getLogger(__name__)

NIC_NAME_SUFFIX = "-nic"


class FlexScaleSet(VMSetBase):
    """Resolves nodes backed by VMs of ``Flexible`` scale sets.

    The node name is the lower-cased computer name of the VM, which differs
    from the VM name. Two caches back the lookups: every flexible scale set
    of the known resource groups, and the member VMs of each scale set. The
    member listing also fills the node-to-scale-set and VM-to-node maps.
    """

    metric_prefix = "vmssflex"

    def __init__(self, config: AppConfig, client: AzureClient, inventory: NodeInventory):
        super().__init__(config, client, inventory)
        self._vmss_flex_cache = TimedCache(config.cache.vmss_flex_ttl_seconds, self._fetch_vmss_flex)
        self._vmss_flex_vm_cache = TimedCache(config.cache.vmss_flex_vm_ttl_seconds, self._fetch_vmss_flex_vms)
        self._maps_lock = threading.Lock()
        self._node_name_to_vmss_id: dict[str, str] = {}
        self._vm_name_to_node_name: dict[str, str] = {}
        self._lock_map = LockMap()

    # ── Cache getters ───────────────────────────────────────────────

    def _fetch_vmss_flex(self, _key: str) -> dict[str, Any]:
        scale_sets: dict[str, Any] = {}
        for rg in sorted(self._inventory.get_resource_groups()):
            for vmss in self._client.list_virtual_machine_scale_sets(rg):
                if vmss.orchestration_mode != consts.VMSS_ORCHESTRATION_MODE_FLEXIBLE or not vmss.id:
                    continue
                scale_sets[vmss.id.lower()] = vmss
        return scale_sets

    def _fetch_vmss_flex_vms(self, vmss_id: str) -> dict[str, Any]:
        vms: dict[str, Any] = {}
        for vm in self._client.list_vmss_flex_vms(vmss_id):
            if vm.os_profile is None or not vm.os_profile.computer_name:
                logger.warning("VM %s of scale set %s has no computer name", vm.name, vmss_id)
                continue
            node_name = vm.os_profile.computer_name.lower()
            vms[node_name] = vm
            with self._maps_lock:
                self._node_name_to_vmss_id[node_name] = vmss_id
                self._vm_name_to_node_name[vm.name] = node_name
        return vms

    # ── Lookups ─────────────────────────────────────────────────────

    def _ordered_scale_set_ids(self, scale_sets: dict[str, Any], node_name: str) -> list[str]:
        """Scale sets whose computer name prefix matches the node come first."""

        def prefix(vmss: Any) -> str:
            profile = vmss.virtual_machine_profile
            if profile is not None and profile.os_profile is not None and profile.os_profile.computer_name_prefix:
                return profile.os_profile.computer_name_prefix.lower()
            return (vmss.name or "").lower()

        return sorted(scale_sets, key=lambda vmss_id: not node_name.startswith(prefix(scale_sets[vmss_id])))

    def get_node_vmss_flex_id(self, node_name: str) -> str:
        """ID (lower-cased) of the scale set holding the node; InstanceNotFound if none does."""
        node_name = node_name.lower()
        with self._maps_lock:
            vmss_id = self._node_name_to_vmss_id.get(node_name)
        if vmss_id:
            return vmss_id

        with self._lock_map.locked(consts.GET_NODE_VMSS_FLEX_ID_LOCK_KEY):
            # another caller may have filled the map while we waited
            with self._maps_lock:
                vmss_id = self._node_name_to_vmss_id.get(node_name)
            if vmss_id:
                return vmss_id

            checked: set[str] = set()
            for read_type in (CacheReadType.DEFAULT, CacheReadType.FORCE_REFRESH):
                scale_sets = self._vmss_flex_cache.get(consts.VMSS_FLEX_KEY, read_type)
                for candidate in self._ordered_scale_set_ids(scale_sets, node_name):
                    if candidate in checked:
                        continue
                    checked.add(candidate)
                    try:
                        members = self._vmss_flex_vm_cache.get(candidate, CacheReadType.FORCE_REFRESH)
                    except VMSetError as exc:
                        logger.error(
                            "Failed to list the VMs of scale set %s: %s", candidate, exc,
                            extra={"node": node_name, "vm_set": candidate},
                        )
                        continue
                    if node_name in members:
                        return candidate

        logger.warning("Unable to find the scale set of node %s", node_name, extra={"node": node_name})
        raise InstanceNotFound(node_name)

    def get_node_name_by_vm_name(self, vm_name: str) -> str:
        with self._maps_lock:
            node_name = self._vm_name_to_node_name.get(vm_name)
        if node_name:
            return node_name

        with self._lock_map.locked(consts.GET_NODE_VMSS_FLEX_ID_LOCK_KEY):
            with self._maps_lock:
                node_name = self._vm_name_to_node_name.get(vm_name)
            if node_name:
                return node_name

            scale_sets = self._vmss_flex_cache.get(consts.VMSS_FLEX_KEY, CacheReadType.FORCE_REFRESH)
            for vmss_id in scale_sets:
                self._vmss_flex_vm_cache.get(vmss_id, CacheReadType.FORCE_REFRESH)
                with self._maps_lock:
                    node_name = self._vm_name_to_node_name.get(vm_name)
                if node_name:
                    return node_name

        raise InstanceNotFound(vm_name)

    def get_vmss_flex_by_id(self, vmss_id: str, read_type: CacheReadType = CacheReadType.DEFAULT) -> Any:
        scale_sets = self._vmss_flex_cache.get(consts.VMSS_FLEX_KEY, read_type)
        vmss = scale_sets.get(vmss_id.lower())
        if vmss is None and read_type is not CacheReadType.FORCE_REFRESH:
            logger.debug("Scale set %s not cached, refreshing", vmss_id)
            vmss = self._vmss_flex_cache.get(consts.VMSS_FLEX_KEY, CacheReadType.FORCE_REFRESH).get(vmss_id.lower())
        if vmss is None:
            raise InstanceNotFound(vmss_id)
        return vmss

    def get_vmss_flex_id_by_name(self, vmss_name: str) -> str:
        for read_type in (CacheReadType.DEFAULT, CacheReadType.FORCE_REFRESH):
            scale_sets = self._vmss_flex_cache.get(consts.VMSS_FLEX_KEY, read_type)
            for vmss_id, vmss in scale_sets.items():
                if (vmss.name or "").lower() == vmss_name.lower():
                    return vmss_id
        raise InstanceNotFound(vmss_name)

    def _get_node_vmss_flex_name(self, node_name: str) -> str:
        return resource_ids.get_last_segment(self.get_node_vmss_flex_id(node_name))

    def _get_vm(self, node_name: str, read_type: CacheReadType = CacheReadType.DEFAULT) -> Any:
        node_name = node_name.lower()
        vmss_id = self.get_node_vmss_flex_id(node_name)
        vm = self._vmss_flex_vm_cache.get(vmss_id, read_type).get(node_name)
        if vm is None and read_type is not CacheReadType.FORCE_REFRESH:
            vm = self._vmss_flex_vm_cache.get(vmss_id, CacheReadType.FORCE_REFRESH).get(node_name)
        if vm is None:
            raise InstanceNotFound(node_name)
        return vm

    def _get_vm_set_for_node(self, node_name: str) -> Any:
        return self.get_vmss_flex_by_id(self.get_node_vmss_flex_id(node_name))

    # ── VMSet operations ────────────────────────────────────────────

    def get_primary_vm_set_name(self) -> str:
        return self._azure.primary_scale_set_name

    def get_node_name_by_provider_id(self, provider_id: str) -> str:
        return self.get_node_name_by_vm_name(resource_ids.node_name_from_provider_id(provider_id))

    def get_node_vm_set_name(self, node: Node) -> str:
        return self._get_node_vmss_flex_name(node.name)

    def get_agent_pool_vm_set_names(self, nodes: list[Node]) -> list[str]:
        names = []
        for node in nodes:
            try:
                names.append(self.get_node_vm_set_name(node))
            except VMSetError as exc:
                logger.error("Unable to get the scale set of node %s: %s", node.name, exc, extra={"node": node.name})
        return names

    def get_node_name_by_ip_configuration_id(self, ip_configuration_id: str) -> tuple[str, str]:
        """Return (node_name, scale_set_name); the VM name is the NIC name without ``-nic``."""
        _, nic_name = resource_ids.parse_ip_configuration_id(ip_configuration_id)
        vm_name = nic_name.removesuffix(NIC_NAME_SUFFIX)
        node_name = self.get_node_name_by_vm_name(vm_name)
        return node_name, self._get_node_vmss_flex_name(node_name).lower()

    def _get_primary_interface_with_vm_set(self, node_name: str, vm_set_name: str) -> tuple[Any, str]:
        if not self._lb.use_standard_sku:
            raise VMSetError("flexible scale sets do not support the basic load balancer")

        vmss_name = self._get_node_vmss_flex_name(node_name)
        if (
            vm_set_name
            and self._needs_vm_set_check(node_name, vmss_name, vm_set_name)
            and vm_set_name.lower() != vmss_name.lower()
        ):
            raise NotInRequestedGroup(node_name, vm_set_name)
        return self.get_primary_interface(node_name), vmss_name

    # ── Backend pool reconciliation ─────────────────────────────────

    def ensure_host_in_pool(
        self,
        service: Service,
        node_name: str,
        backend_pool_id: str,
        vm_set_name: str,
    ) -> MembershipResult:
        try:
            self._get_node_vmss_flex_name(node_name)
        except VMSetError as exc:
            logger.error("Skipping node %s: cannot resolve its scale set: %s", node_name, exc, extra={"node": node_name})
            return MembershipResult.UNKNOWN_VM_SET
        return super().ensure_host_in_pool(service, node_name, backend_pool_id, vm_set_name)

    def _after_hosts_in_pool(self, service: Service, nodes: list[Node], backend_pool_id: str, vm_set_name: str) -> None:
        self._ensure_vmss_flex_in_pool(service, nodes, backend_pool_id, vm_set_name)

    def _ensure_vmss_flex_in_pool(
        self,
        service: Service,
        nodes: list[Node],
        backend_pool_id: str,
        vm_set_name: str,
    ) -> None:
        """Add the pool to the VM profile of the relevant scale sets so new instances join it."""
        if not self._lb.use_standard_sku:
            raise VMSetError("flexible scale sets do not support the basic load balancer")

        vmss_ids: dict[str, None] = {}
        if not self._lb.enable_multiple_standard_load_balancers:
            # a single standard load balancer covers the scale sets of all eligible nodes
            for node in nodes:
                if self._should_skip_node(node, backend_pool_id):
                    continue
                try:
                    vmss_id = self.get_node_vmss_flex_id(node.name)
                except VMSetError as exc:
                    logger.error("Unable to get the scale set of node %s: %s", node.name, exc, extra={"node": node.name})
                    continue
                node_rg = self._inventory.get_node_resource_group(node.name)
                if node_rg.lower() == self._azure.resource_group.lower():
                    vmss_ids[vmss_id] = None
        else:
            vmss_ids[self.get_vmss_flex_id_by_name(vm_set_name)] = None

        for vmss_id in vmss_ids:
            self._ensure_vmss_flex_profile_in_pool(service, vmss_id, backend_pool_id)

    def _ensure_vmss_flex_profile_in_pool(self, service: Service, vmss_id: str, backend_pool_id: str) -> None:
        vmss = self.get_vmss_flex_by_id(vmss_id)
        vmss_name = vmss.name

        if (vmss.provisioning_state or "").lower() == consts.VMSS_DEALLOCATING_STATE.lower():
            logger.info("Scale set %s is being deleted, skipping", vmss_name, extra={"vm_set": vmss_name})
            return

        profile = vmss.virtual_machine_profile
        if profile is None or profile.network_profile is None or not profile.network_profile.network_interface_configurations:
            logger.debug("Scale set %s has no network profile, skipping", vmss_name, extra={"vm_set": vmss_name})
            return

        nic_configs = profile.network_profile.network_interface_configurations
        nic_config = backend_pool.primary_scale_set_nic_config(nic_configs, vmss_name)
        ip_config = backend_pool.select_scale_set_ip_config(
            nic_config, service.is_ipv6, self._lb.ipv6_dual_stack_enabled,
        )
        try:
            added = backend_pool.add_backend_pool(ip_config, backend_pool_id, SubResource, standard_sku=True)
        except ConflictingLoadBalancerMembership as exc:
            logger.info(
                "Scale set %s is already in load balancer %s, not adding it to another one",
                vmss_name, exc.existing_load_balancer,
                extra={"vm_set": vmss_name, "backend_pool": backend_pool_id},
            )
            return
        if not added:
            return

        new_vmss = VirtualMachineScaleSet(
            location=vmss.location,
            virtual_machine_profile=VirtualMachineScaleSetVMProfile(
                network_profile=VirtualMachineScaleSetNetworkProfile(network_interface_configurations=nic_configs),
            ),
        )
        logger.info(
            "Adding backend pool to scale set %s", vmss_name,
            extra={"vm_set": vmss_name, "backend_pool": backend_pool_id},
        )
        try:
            self._client.create_or_update_virtual_machine_scale_set(self._azure.resource_group, vmss_name, new_vmss)
        finally:
            # the cached scale set now carries the new pool reference
            self._vmss_flex_cache.delete(consts.VMSS_FLEX_KEY)
