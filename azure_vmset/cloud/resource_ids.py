"""Parse and build Azure resource identifiers.

Every parser matches the whole identifier against one fixed shape and
raises IdentifierParseError otherwise; callers never see a partial result.
Builders are plain string templating.
"""

from __future__ import annotations

import re

from .. import consts
from ..exceptions import IdentifierParseError

_SEGMENT = r"([^/]+)"
_ANY = r"[^/]+"

PROVIDER_ID_RE = re.compile(
    rf"^(?:azure://)?/subscriptions/{_ANY}/resourceGroups/{_ANY}"
    rf"/providers/Microsoft\.Compute/virtualMachines/{_SEGMENT}$",
    re.IGNORECASE,
)
BACKEND_POOL_ID_RE = re.compile(
    rf"^/subscriptions/{_ANY}/resourceGroups/{_ANY}"
    rf"/providers/Microsoft\.Network/loadBalancers/{_SEGMENT}/backendAddressPools/{_ANY}$",
    re.IGNORECASE,
)
NIC_RESOURCE_GROUP_RE = re.compile(
    rf"^/subscriptions/{_ANY}/resourceGroups/{_SEGMENT}"
    rf"/providers/Microsoft\.Network/networkInterfaces/{_ANY}$",
    re.IGNORECASE,
)
IP_CONFIGURATION_ID_RE = re.compile(
    rf"^/subscriptions/{_ANY}/resourceGroups/{_SEGMENT}"
    rf"/providers/Microsoft\.Network/networkInterfaces/{_SEGMENT}/ipConfigurations/{_ANY}$",
    re.IGNORECASE,
)
VM_ID_RE = re.compile(
    rf"^/subscriptions/{_ANY}/resourceGroups/{_ANY}"
    rf"/providers/Microsoft\.Compute/virtualMachines/{_SEGMENT}$",
    re.IGNORECASE,
)
AVAILABILITY_SET_ID_RE = re.compile(
    rf"^/subscriptions/{_ANY}/resourceGroups/{_ANY}"
    rf"/providers/Microsoft\.Compute/availabilitySets/{_SEGMENT}$",
    re.IGNORECASE,
)
RESOURCE_GROUP_RE = re.compile(
    rf"^(?:azure://)?/subscriptions/{_ANY}/resourceGroups/{_SEGMENT}/providers/.+$",
    re.IGNORECASE,
)


def _match(pattern: re.Pattern, value: str | None, what: str) -> tuple[str, ...]:
    """Return the capture groups of a full match, or raise."""
    match = pattern.match(value or "")
    if match is None:
        raise IdentifierParseError(f"invalid {what} {value!r}")
    groups = match.groups()
    if not all(groups):
        raise IdentifierParseError(f"invalid {what} {value!r}")
    return groups


# ── Parsers ─────────────────────────────────────────────────────────


def get_last_segment(resource_id: str, separator: str = "/") -> str:
    """Return the deepest child's name from a full identifier."""
    name = (resource_id or "").split(separator)[-1]
    if not name:
        raise IdentifierParseError(f"resource name was missing from identifier {resource_id!r}")
    return name


def node_name_from_provider_id(provider_id: str) -> str:
    """Extract the VM name from a node's provider ID."""
    return _match(PROVIDER_ID_RE, provider_id, "provider ID")[0]


def parse_ip_configuration_id(ip_configuration_id: str) -> tuple[str, str]:
    """Return (nic_resource_group, nic_name) from a NIC IP configuration ID."""
    rg, nic = _match(IP_CONFIGURATION_ID_RE, ip_configuration_id, "ip configuration ID")
    return rg, nic


def nic_resource_group(nic_id: str) -> str:
    """Extract the resource group a network interface lives in."""
    return _match(NIC_RESOURCE_GROUP_RE, nic_id, "network interface ID")[0]


def vm_name_from_id(vm_id: str) -> str:
    return _match(VM_ID_RE, vm_id, "virtual machine ID")[0]


def availability_set_name_from_id(availability_set_id: str) -> str:
    """Extract the availability set name; an empty ID (standalone VM) yields ""."""
    if not availability_set_id:
        return ""
    return _match(AVAILABILITY_SET_ID_RE, availability_set_id, "availability set ID")[0]


def load_balancer_name_from_backend_pool_id(backend_pool_id: str) -> str:
    return _match(BACKEND_POOL_ID_RE, backend_pool_id, "backend pool ID")[0]


def resource_group_from_id(resource_id: str) -> str:
    return _match(RESOURCE_GROUP_RE, resource_id, "resource ID")[0]


def convert_resource_group_name_to_lower(resource_id: str) -> str:
    """Lower-case the resource group segment of a resource ID, leaving the rest intact."""
    match = RESOURCE_GROUP_RE.match(resource_id or "")
    if match is None:
        raise IdentifierParseError(f"resource group name is missing from resource ID {resource_id!r}")
    start, end = match.span(1)
    return resource_id[:start] + resource_id[start:end].lower() + resource_id[end:]


# ── Builders ────────────────────────────────────────────────────────


def _build(template: str, *parts: str) -> str:
    if not all(parts):
        raise ValueError(f"cannot build resource ID from empty component in {parts!r}")
    return template.format(*parts)


def machine_id(subscription_id: str, resource_group: str, machine_name: str) -> str:
    return _build(consts.MACHINE_ID_TEMPLATE, subscription_id, resource_group.lower(), machine_name)


def availability_set_id(subscription_id: str, resource_group: str, availability_set_name: str) -> str:
    return _build(consts.AVAILABILITY_SET_ID_TEMPLATE, subscription_id, resource_group, availability_set_name)


def frontend_ip_config_id(subscription_id: str, resource_group: str, lb_name: str, fip_config_name: str) -> str:
    return _build(consts.FRONTEND_IP_CONFIG_ID_TEMPLATE, subscription_id, resource_group, lb_name, fip_config_name)


def backend_pool_id(subscription_id: str, resource_group: str, lb_name: str, backend_pool_name: str) -> str:
    return _build(consts.BACKEND_POOL_ID_TEMPLATE, subscription_id, resource_group, lb_name, backend_pool_name)


def load_balancer_probe_id(subscription_id: str, resource_group: str, lb_name: str, probe_name: str) -> str:
    return _build(consts.LOAD_BALANCER_PROBE_ID_TEMPLATE, subscription_id, resource_group, lb_name, probe_name)
