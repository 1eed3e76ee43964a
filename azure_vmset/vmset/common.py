"""Behaviour shared by the availability-set and flexible scale-set resolvers."""

from __future__ import annotations

import functools
import logging
from typing import Any

from azure.mgmt.network.models import BackendAddressPool

from .. import consts
from ..cache import CacheReadType
from ..cloud import resource_ids
from ..cloud.azure_client import AzureClient
from ..cloud.models import Node, Service, Zone
from ..cloud.node_inventory import NodeInventory
from ..config import AppConfig
from ..exceptions import (
    AggregateError,
    ConflictingLoadBalancerMembership,
    IdentifierParseError,
    InstanceNotFound,
    NodeOperationError,
    NotInRequestedGroup,
    VMSetError,
)
from ..metrics import MetricContext
from ..reconcile import backend_pool
from ..reconcile.backend_pool import MembershipResult
from ..reconcile.fanout import collect_errors, run_concurrently

logger = logging.getLogger(__name__)


class VMSetBase:
    """Node lookups and backend pool reconciliation on top of variant-specific VM resolution.

    Subclasses provide how a node name maps to its VM and to its VM set;
    everything that only needs the VM, its primary NIC or the load balancer
    settings lives here.
    """

    metric_prefix = ""

    def __init__(self, config: AppConfig, client: AzureClient, inventory: NodeInventory):
        self._config = config
        self._azure = config.azure
        self._lb = config.load_balancer
        self._client = client
        self._inventory = inventory

    # ── Variant hooks ───────────────────────────────────────────────

    def get_primary_vm_set_name(self) -> str:
        raise NotImplementedError

    def _get_vm(self, node_name: str, read_type: CacheReadType = CacheReadType.DEFAULT) -> Any:
        """The node's VM; raises InstanceNotFound when it has none."""
        raise NotImplementedError

    def _get_primary_interface_with_vm_set(self, node_name: str, vm_set_name: str) -> tuple[Any, str]:
        """Return (primary NIC, node's VM set name); NotInRequestedGroup if the node must be skipped."""
        raise NotImplementedError

    def _get_vm_set_for_node(self, node_name: str) -> Any:
        """The availability set or scale set holding the node; InstanceNotFound if none."""
        raise NotImplementedError

    def get_node_name_by_provider_id(self, provider_id: str) -> str:
        raise NotImplementedError

    def get_node_name_by_ip_configuration_id(self, ip_configuration_id: str) -> tuple[str, str]:
        raise NotImplementedError

    def get_agent_pool_vm_set_names(self, nodes: list[Node]) -> list[str]:
        raise NotImplementedError

    def _after_hosts_in_pool(self, service: Service, nodes: list[Node], backend_pool_id: str, vm_set_name: str) -> None:
        """Runs once every node has been ensured."""

    # ── Instance metadata ───────────────────────────────────────────

    def get_instance_id_by_node_name(self, name: str) -> str:
        vm = self._get_vm(name, CacheReadType.UNSAFE)
        if not vm.id:
            raise VMSetError(f"provider ID of node {name} is empty")
        return resource_ids.convert_resource_group_name_to_lower(vm.id)

    def get_instance_type_by_node_name(self, name: str) -> str:
        vm = self._get_vm(name, CacheReadType.UNSAFE)
        if vm.hardware_profile is None:
            raise VMSetError(f"hardware profile of node {name} is missing")
        return str(vm.hardware_profile.vm_size)

    def get_zone_by_node_name(self, name: str) -> Zone:
        """Availability zone of the node, or its fault domain when it is not zonal."""
        vm = self._get_vm(name, CacheReadType.UNSAFE)
        location = vm.location or ""

        if vm.zones:
            try:
                zone_id = int(vm.zones[0])
            except ValueError as exc:
                raise VMSetError(f"failed to parse zone {vm.zones!r} of node {name}") from exc
            failure_domain = self.make_zone(location, zone_id)
        elif vm.instance_view is not None and vm.instance_view.platform_fault_domain is not None:
            failure_domain = str(vm.instance_view.platform_fault_domain)
        else:
            raise VMSetError(f"failed to get zone info of node {name}")

        return Zone(failure_domain=failure_domain.lower(), region=location.lower())

    @staticmethod
    def make_zone(location: str, zone_id: int) -> str:
        return f"{location.lower()}-{zone_id}"

    def get_provisioning_state_by_node_name(self, name: str) -> str:
        vm = self._get_vm(name)
        return vm.provisioning_state or ""

    def get_power_status_by_node_name(self, name: str) -> str:
        vm = self._get_vm(name)
        statuses = vm.instance_view.statuses if vm.instance_view is not None else None
        for status in statuses or []:
            code = status.code or ""
            if code.startswith(consts.VM_POWER_STATE_PREFIX):
                return code[len(consts.VM_POWER_STATE_PREFIX):]

        # the instance view is gone while the VM is being deleted
        logger.debug("Instance view of node %s is missing, assuming it is stopped", name, extra={"node": name})
        return consts.VM_POWER_STATE_STOPPED

    # ── Network ─────────────────────────────────────────────────────

    def get_primary_interface(self, node_name: str) -> Any:
        vm = self._get_vm(node_name)
        return self._get_interface(backend_pool.primary_interface_id(vm))

    def _get_interface(self, nic_id: str) -> Any:
        nic_name = resource_ids.get_last_segment(nic_id)
        nic_rg = resource_ids.nic_resource_group(nic_id)
        return self._client.get_network_interface(nic_rg, nic_name)

    def get_ip_by_node_name(self, name: str) -> tuple[str, str]:
        """Return (private_ip, public_ip) of the node's primary IP configuration."""
        nic = self.get_primary_interface(name)
        ip_config = backend_pool.primary_ip_config(nic)

        private_ip = ip_config.private_ip_address or ""
        public_ip = ""
        if ip_config.public_ip_address is not None and ip_config.public_ip_address.id:
            pip_id = ip_config.public_ip_address.id
            pip_name = resource_ids.get_last_segment(pip_id)
            try:
                pip_rg = resource_ids.resource_group_from_id(pip_id)
            except IdentifierParseError:
                pip_rg = self._azure.resource_group
            pip = self._client.get_public_ip_address(pip_rg, pip_name)
            if pip is not None:
                public_ip = pip.ip_address or ""

        return private_ip, public_ip

    def get_private_ips_by_node_name(self, name: str) -> list[str]:
        nic = self.get_primary_interface(name)
        if not nic.ip_configurations:
            raise VMSetError(f"ip configurations of {nic.name} are empty")
        return [ip.private_ip_address for ip in nic.ip_configurations if ip.private_ip_address]

    # ── VM sets ─────────────────────────────────────────────────────

    def get_vm_set_names(self, service: Service, nodes: list[Node]) -> list[str]:
        """VM sets a service's load balancer should cover.

        Without a mode annotation, or with a single standard load balancer,
        only the primary VM set applies. ``__auto__`` selects every agent
        pool; otherwise each requested name must be an agent pool.
        """
        has_mode, is_auto, requested = service.load_balancer_mode()
        if not has_mode or self._lb.use_single_standard_load_balancer:
            return [self.get_primary_vm_set_name()]

        agent_pools = self.get_agent_pool_vm_set_names(nodes)
        if not agent_pools:
            raise VMSetError(f"no vm sets found for nodes, node count({len(nodes)})")
        if is_auto:
            return agent_pools

        selected = []
        for name in requested:
            match = next((pool for pool in agent_pools if pool.lower() == name), None)
            if match is None:
                raise VMSetError(f"vm set ({name}) in service {service.full_name} annotation not found")
            selected.append(match)
        return selected

    def get_node_cidr_masks_by_provider_id(self, provider_id: str) -> tuple[int, int]:
        """Node CIDR mask sizes tagged on the node's VM set; defaults when the set is unknown."""
        node_name = self.get_node_name_by_provider_id(provider_id)
        try:
            vm_set = self._get_vm_set_for_node(node_name)
        except InstanceNotFound:
            return self._azure.default_node_mask_cidr_ipv4, self._azure.default_node_mask_cidr_ipv6

        tags = vm_set.tags or {}
        return (
            self._parse_mask(tags, consts.VMSET_CIDR_IPV4_TAG_KEY),
            self._parse_mask(tags, consts.VMSET_CIDR_IPV6_TAG_KEY),
        )

    @staticmethod
    def _parse_mask(tags: dict[str, str], key: str) -> int:
        value = tags.get(key)
        if value is None:
            return 0
        try:
            return int(value)
        except ValueError:
            logger.error("Invalid %s tag value %r", key, value)
            return 0

    def _needs_vm_set_check(self, node_name: str, node_vm_set_name: str, vm_set_name: str) -> bool:
        """Whether a node outside ``vm_set_name`` has to be skipped.

        The basic SKU and multiple standard load balancers bind one VM set
        per load balancer. A single standard load balancer spans all of them.
        """
        if not self._lb.use_standard_sku:
            return True
        if not self._lb.enable_multiple_standard_load_balancers:
            return False
        if (
            self.get_primary_vm_set_name().lower() == vm_set_name.lower()
            and node_vm_set_name.lower() in self._lb.vm_sets_sharing_primary_slb
        ):
            logger.debug(
                "Node %s in vm set %s shares the primary load balancer", node_name, node_vm_set_name,
                extra={"node": node_name, "vm_set": node_vm_set_name},
            )
            return False
        return True

    # ── Backend pool reconciliation ─────────────────────────────────

    def _should_skip_node(self, node: Node, backend_pool_id: str) -> bool:
        if self._lb.use_standard_sku and self._lb.exclude_master_from_standard_lb and node.is_control_plane:
            logger.debug(
                "Excluding control plane node %s from backend pool %s", node.name, backend_pool_id,
                extra={"node": node.name, "backend_pool": backend_pool_id},
            )
            return True
        if self._inventory.should_exclude_from_load_balancer(node.name):
            logger.debug(
                "Excluding unmanaged or external node %s from backend pool %s", node.name, backend_pool_id,
                extra={"node": node.name, "backend_pool": backend_pool_id},
            )
            return True
        return False

    def ensure_host_in_pool(
        self,
        service: Service,
        node_name: str,
        backend_pool_id: str,
        vm_set_name: str,
    ) -> MembershipResult:
        """Make the node's primary NIC IP configuration a member of ``backend_pool_id``."""
        try:
            nic, _ = self._get_primary_interface_with_vm_set(node_name, vm_set_name)
        except NotInRequestedGroup:
            logger.debug(
                "Skipping node %s: not in vm set %s", node_name, vm_set_name,
                extra={"node": node_name, "vm_set": vm_set_name},
            )
            return MembershipResult.NOT_IN_VM_SET

        if nic.provisioning_state == consts.NIC_FAILED_STATE:
            logger.warning(
                "Skipping node %s: primary NIC %s is in Failed state", node_name, nic.name,
                extra={"node": node_name},
            )
            return MembershipResult.FAILED_NIC

        ip_config = backend_pool.select_ip_config(nic, service.is_ipv6, self._lb.ipv6_dual_stack_enabled)
        try:
            added = backend_pool.add_backend_pool(
                ip_config, backend_pool_id, BackendAddressPool, self._lb.use_standard_sku,
            )
        except ConflictingLoadBalancerMembership as exc:
            logger.info(
                "Node %s is already in load balancer %s, not adding it to another one",
                node_name, exc.existing_load_balancer,
                extra={"node": node_name, "backend_pool": backend_pool_id},
            )
            return MembershipResult.CONFLICTING_LOAD_BALANCER

        if not added:
            return MembershipResult.UNCHANGED

        self._update_interface(service, nic, backend_pool_id)
        return MembershipResult.ADDED

    def ensure_hosts_in_pool(
        self,
        service: Service,
        nodes: list[Node],
        backend_pool_id: str,
        vm_set_name: str,
    ) -> dict[str, MembershipResult]:
        """Ensure every eligible node is in the pool, one worker per node.

        Raises AggregateError carrying a NodeOperationError per failed node.
        """
        results: dict[str, MembershipResult] = {}
        with MetricContext(
            f"{self.metric_prefix}_ensure_hosts_in_pool",
            self._azure.resource_group, self._azure.subscription_id, service.full_name,
        ):
            tasks = []
            for node in nodes:
                if self._should_skip_node(node, backend_pool_id):
                    results[node.name] = MembershipResult.EXCLUDED
                    continue
                tasks.append(functools.partial(
                    self._ensure_node, service, node.name, backend_pool_id, vm_set_name, results,
                ))

            run_concurrently(tasks)
            self._after_hosts_in_pool(service, nodes, backend_pool_id, vm_set_name)

        return results

    def _ensure_node(
        self,
        service: Service,
        node_name: str,
        backend_pool_id: str,
        vm_set_name: str,
        results: dict[str, MembershipResult],
    ) -> None:
        try:
            results[node_name] = self.ensure_host_in_pool(service, node_name, backend_pool_id, vm_set_name)
        except Exception as exc:
            raise NodeOperationError(
                node_name,
                f"ensure({service.full_name}): backend pool {backend_pool_id} - "
                f"failed to ensure host {node_name} in pool: {exc}",
            ) from exc

    def ensure_backend_pool_deleted(
        self,
        service: Service,
        backend_pool_id: str,
        vm_set_name: str,
        backend_address_pools: list[Any] | None,
    ) -> None:
        """Remove ``backend_pool_id`` from the NICs of its members that belong to ``vm_set_name``."""
        if backend_address_pools is None:
            return

        with MetricContext(
            f"{self.metric_prefix}_ensure_backend_pool_deleted",
            self._azure.resource_group, self._azure.subscription_id, service.full_name,
        ):
            ip_configuration_ids = []
            for pool in backend_address_pools:
                if (pool.id or "").lower() != backend_pool_id.lower():
                    continue
                for ip_config in pool.backend_ip_configurations or []:
                    if ip_config.id:
                        ip_configuration_ids.append(ip_config.id)

            errors: list[Exception] = []
            nics: dict[str, Any] = {}
            for ip_configuration_id in ip_configuration_ids:
                try:
                    nic = self._nic_to_strip(ip_configuration_id, vm_set_name)
                except VMSetError as exc:
                    logger.error("Failed to resolve backend member %s: %s", ip_configuration_id, exc)
                    errors.append(exc)
                    continue
                if nic is None or nic.id.lower() in nics:
                    continue

                for ip_config in nic.ip_configurations or []:
                    if ip_config.primary:
                        backend_pool.remove_backend_pool(ip_config, backend_pool_id)
                nics[nic.id.lower()] = nic

            errors.extend(collect_errors([
                functools.partial(self._update_interface, service, nic, backend_pool_id)
                for nic in nics.values()
            ]))
            if errors:
                raise AggregateError(errors)

    def _nic_to_strip(self, ip_configuration_id: str, vm_set_name: str) -> Any | None:
        """The member's primary NIC, or None when the member is skipped."""
        try:
            node_name, _ = self.get_node_name_by_ip_configuration_id(ip_configuration_id)
        except InstanceNotFound:
            return None
        if not node_name:
            return None

        try:
            nic, node_vm_set_name = self._get_primary_interface_with_vm_set(node_name, vm_set_name)
        except NotInRequestedGroup:
            logger.debug(
                "Skipping node %s: not in vm set %s", node_name, vm_set_name,
                extra={"node": node_name, "vm_set": vm_set_name},
            )
            return None

        if node_vm_set_name.lower() != vm_set_name.lower():
            logger.debug(
                "Skipping node %s belonging to another vm set %s", node_name, node_vm_set_name,
                extra={"node": node_name, "vm_set": node_vm_set_name},
            )
            return None

        if nic.provisioning_state == consts.NIC_FAILED_STATE:
            logger.warning(
                "Skipping node %s: primary NIC %s is in Failed state", node_name, nic.name,
                extra={"node": node_name},
            )
            return None
        return nic

    def _update_interface(self, service: Service, nic: Any, backend_pool_id: str) -> None:
        nic_rg = resource_ids.nic_resource_group(nic.id)
        logger.info(
            "Updating NIC %s for service %s", nic.name, service.full_name,
            extra={"backend_pool": backend_pool_id, "resource_group": nic_rg},
        )
        self._client.create_or_update_network_interface(nic_rg, nic.name, nic)
