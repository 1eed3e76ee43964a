"""VM-set resolvers: a provider-agnostic Protocol and the factory that picks an implementation."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from .. import consts
from ..cloud.azure_client import AzureClient
from ..cloud.node_inventory import NodeInventory
from ..exceptions import ConfigError
from .availability_set import AvailabilitySet
from .flex_scale_set import FlexScaleSet

if TYPE_CHECKING:
    from ..cloud.models import Node, Service, Zone
    from ..config import AppConfig
    from ..reconcile.backend_pool import MembershipResult


@runtime_checkable
class VMSet(Protocol):
    """Protocol every VM-set resolver satisfies."""

    def get_primary_vm_set_name(self) -> str:
        ...

    def get_instance_id_by_node_name(self, name: str) -> str:
        """VM ID with a lower-cased resource group; InstanceNotFound if the node has no VM."""
        ...

    def get_instance_type_by_node_name(self, name: str) -> str:
        ...

    def get_zone_by_node_name(self, name: str) -> Zone:
        ...

    def get_provisioning_state_by_node_name(self, name: str) -> str:
        ...

    def get_power_status_by_node_name(self, name: str) -> str:
        ...

    def get_node_name_by_provider_id(self, provider_id: str) -> str:
        ...

    def get_primary_interface(self, node_name: str) -> Any:
        ...

    def get_ip_by_node_name(self, name: str) -> tuple[str, str]:
        ...

    def get_private_ips_by_node_name(self, name: str) -> list[str]:
        ...

    def get_node_vm_set_name(self, node: Node) -> str:
        ...

    def get_vm_set_names(self, service: Service, nodes: list[Node]) -> list[str]:
        ...

    def get_agent_pool_vm_set_names(self, nodes: list[Node]) -> list[str]:
        ...

    def get_node_cidr_masks_by_provider_id(self, provider_id: str) -> tuple[int, int]:
        ...

    def get_node_name_by_ip_configuration_id(self, ip_configuration_id: str) -> tuple[str, str]:
        ...

    def ensure_host_in_pool(
        self, service: Service, node_name: str, backend_pool_id: str, vm_set_name: str,
    ) -> MembershipResult:
        ...

    def ensure_hosts_in_pool(
        self, service: Service, nodes: list[Node], backend_pool_id: str, vm_set_name: str,
    ) -> dict[str, MembershipResult]:
        ...

    def ensure_backend_pool_deleted(
        self, service: Service, backend_pool_id: str, vm_set_name: str, backend_address_pools: list[Any] | None,
    ) -> None:
        ...


def new_vm_set(
    config: AppConfig,
    client: AzureClient | None = None,
    inventory: NodeInventory | None = None,
) -> VMSet:
    """Build the resolver for ``config.azure.vm_type``."""
    if client is None:
        client = AzureClient(config.azure)
    if inventory is None:
        inventory = NodeInventory(config.azure.resource_group)

    if config.azure.vm_type == consts.VM_TYPE_STANDARD:
        return AvailabilitySet(config, client, inventory)
    if config.azure.vm_type == consts.VM_TYPE_VMSS_FLEX:
        return FlexScaleSet(config, client, inventory)
    raise ConfigError(f"unsupported vm_type {config.azure.vm_type!r}")


__all__ = ["AvailabilitySet", "FlexScaleSet", "VMSet", "new_vm_set"]
