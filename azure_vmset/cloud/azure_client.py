"""Azure SDK client for the compute and network calls the VM-set resolvers make."""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from azure.identity import DefaultAzureCredential
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.network import NetworkManagementClient

from ..config import AzureConfig
from ..exceptions import CloudAPIError

logger = logging.getLogger(__name__)

T = TypeVar("T")

INSTANCE_VIEW_EXPAND = "instanceView"


class AzureClient:
    """Thin wrapper around the compute and network management clients.

    ARM and transport failures are re-raised as CloudAPIError carrying the
    operation, resource group and resource name. Lookups of VMs and public IPs return
    None when the resource does not exist.
    """

    def __init__(self, azure_config: AzureConfig, credential: Any = None):
        self._config = azure_config
        self._credential = credential or DefaultAzureCredential()
        self._compute = ComputeManagementClient(self._credential, azure_config.subscription_id)
        self._network = NetworkManagementClient(self._credential, azure_config.network_subscription_id)

    # ── Virtual machines ────────────────────────────────────────────

    def get_virtual_machine(self, resource_group: str, name: str) -> Any | None:
        """Fetch a VM with its instance view; None if it does not exist."""
        return self._call(
            "get virtual machine", resource_group, name,
            lambda: self._compute.virtual_machines.get(resource_group, name, expand=INSTANCE_VIEW_EXPAND),
            missing_ok=True,
        )

    def list_virtual_machines(self, resource_group: str) -> list[Any]:
        logger.debug("Listing VMs in resource group %s", resource_group)
        return self._call(
            "list virtual machines", resource_group, "",
            lambda: list(self._compute.virtual_machines.list(resource_group)),
        )

    def list_vmss_flex_vms(self, vmss_id: str) -> list[Any]:
        """List the VMs (with instance views) that belong to a flexible scale set."""
        logger.debug("Listing VMs of scale set %s", vmss_id)
        return self._call(
            "list scale set virtual machines", "", vmss_id,
            lambda: list(self._compute.virtual_machines.list_all(
                filter=f"'virtualMachineScaleSet/id' eq '{vmss_id}'",
                expand=INSTANCE_VIEW_EXPAND,
            )),
        )

    # ── Availability sets and scale sets ────────────────────────────

    def list_availability_sets(self, resource_group: str) -> list[Any]:
        logger.debug("Listing availability sets in resource group %s", resource_group)
        return self._call(
            "list availability sets", resource_group, "",
            lambda: list(self._compute.availability_sets.list(resource_group)),
        )

    def list_virtual_machine_scale_sets(self, resource_group: str) -> list[Any]:
        logger.debug("Listing scale sets in resource group %s", resource_group)
        return self._call(
            "list scale sets", resource_group, "",
            lambda: list(self._compute.virtual_machine_scale_sets.list(resource_group)),
        )

    def create_or_update_virtual_machine_scale_set(self, resource_group: str, name: str, scale_set: Any) -> Any:
        logger.info("Updating scale set %s/%s", resource_group, name, extra={"resource_group": resource_group})
        return self._call(
            "update scale set", resource_group, name,
            lambda: self._compute.virtual_machine_scale_sets.begin_create_or_update(
                resource_group, name, scale_set,
            ).result(),
        )

    # ── Network ─────────────────────────────────────────────────────

    def get_network_interface(self, resource_group: str, name: str) -> Any:
        return self._call(
            "get network interface", resource_group, name,
            lambda: self._network.network_interfaces.get(resource_group, name),
        )

    def create_or_update_network_interface(self, resource_group: str, name: str, nic: Any) -> Any:
        logger.info("Updating network interface %s/%s", resource_group, name, extra={"resource_group": resource_group})
        return self._call(
            "update network interface", resource_group, name,
            lambda: self._network.network_interfaces.begin_create_or_update(resource_group, name, nic).result(),
        )

    def get_public_ip_address(self, resource_group: str, name: str) -> Any | None:
        return self._call(
            "get public ip address", resource_group, name,
            lambda: self._network.public_ip_addresses.get(resource_group, name),
            missing_ok=True,
        )

    # ── Helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _call(
        operation: str,
        resource_group: str,
        name: str,
        fn: Callable[[], T],
        missing_ok: bool = False,
    ) -> T | None:
        target = "/".join(part for part in (resource_group, name) if part)
        try:
            return fn()
        except ResourceNotFoundError as exc:
            if missing_ok:
                logger.debug("%s: %s not found", operation, target)
                return None
            raise CloudAPIError(
                f"{operation} {target}: not found: {exc.message}",
                operation=operation, resource_group=resource_group, name=name, status_code=404,
            ) from exc
        except HttpResponseError as exc:
            raise CloudAPIError(
                f"{operation} {target}: {exc.message}",
                operation=operation, resource_group=resource_group, name=name, status_code=exc.status_code,
            ) from exc
        except AzureError as exc:
            raise CloudAPIError(
                f"{operation} {target}: {exc.message}",
                operation=operation, resource_group=resource_group, name=name,
            ) from exc
