"""Custom exception hierarchy for VM-set resolution and backend pool reconciliation."""

from __future__ import annotations


class VMSetError(Exception):
    """Base exception for all package errors."""


class ConfigError(VMSetError):
    """Invalid or missing configuration."""


class InstanceNotFound(VMSetError):
    """The node has no backing virtual machine (the node is gone)."""

    def __init__(self, name: str = ""):
        super().__init__(f"instance not found: {name}" if name else "instance not found")
        self.name = name


class NotInRequestedGroup(VMSetError):
    """The node is not a member of the VM set the operation targets."""

    def __init__(self, node_name: str, vm_set_name: str):
        super().__init__(f"node {node_name} is not in the vm set {vm_set_name}")
        self.node_name = node_name
        self.vm_set_name = vm_set_name


class IdentifierParseError(VMSetError, ValueError):
    """A resource path does not have the expected shape."""


class ConflictingLoadBalancerMembership(VMSetError):
    """The IP configuration already references pools of a different load balancer."""

    def __init__(self, backend_pool_id: str, existing_load_balancer: str):
        super().__init__(
            f"backend pool {backend_pool_id} conflicts with existing load balancer {existing_load_balancer}"
        )
        self.backend_pool_id = backend_pool_id
        self.existing_load_balancer = existing_load_balancer


class CloudAPIError(VMSetError):
    """An Azure Resource Manager call failed."""

    def __init__(
        self,
        message: str,
        operation: str = "",
        resource_group: str = "",
        name: str = "",
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.resource_group = resource_group
        self.name = name
        self.status_code = status_code


class NodeOperationError(VMSetError):
    """One node failed inside a batch operation."""

    def __init__(self, node_name: str, message: str):
        super().__init__(message)
        self.node_name = node_name


class AggregateError(VMSetError):
    """Every failure collected from a batch of concurrent tasks."""

    def __init__(self, errors: list[BaseException]):
        self.errors = flatten(errors)
        if len(self.errors) == 1:
            message = str(self.errors[0])
        else:
            message = "[" + ", ".join(str(e) for e in self.errors) + "]"
        super().__init__(message)

    @property
    def node_names(self) -> list[str]:
        return [e.node_name for e in self.errors if isinstance(e, NodeOperationError)]


def flatten(errors: list[BaseException]) -> list[BaseException]:
    """Expand nested AggregateErrors into a single flat list."""
    flat: list[BaseException] = []
    for err in errors:
        if isinstance(err, AggregateError):
            flat.extend(err.errors)
        else:
            flat.append(err)
    return flat
