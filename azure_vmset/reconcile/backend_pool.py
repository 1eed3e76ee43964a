"""Membership rules for load balancer backend pools.

These helpers operate on SDK model objects (or anything shaped like them):
NIC IP configurations carry ``load_balancer_backend_address_pools`` as a
list of ``BackendAddressPool`` and scale-set IP configurations carry the
same attribute as a list of ``SubResource``. Both only need ``.id``.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Callable, Iterable

from .. import consts
from ..cloud import resource_ids
from ..exceptions import ConflictingLoadBalancerMembership, VMSetError

logger = logging.getLogger(__name__)


class MembershipResult(enum.Enum):
    """Outcome of ensuring one node is in a backend pool."""

    ADDED = "added"
    UNCHANGED = "unchanged"
    EXCLUDED = "excluded"
    NOT_IN_VM_SET = "not_in_vm_set"
    FAILED_NIC = "failed_nic"
    CONFLICTING_LOAD_BALANCER = "conflicting_load_balancer"
    UNKNOWN_VM_SET = "unknown_vm_set"

    @property
    def skipped(self) -> bool:
        return self not in (MembershipResult.ADDED, MembershipResult.UNCHANGED)


# ── Pool membership ─────────────────────────────────────────────────


def _pool_ids(pools: Iterable[Any] | None) -> list[str]:
    return [pool.id for pool in pools or [] if pool.id]


def has_backend_pool(pools: Iterable[Any] | None, backend_pool_id: str) -> bool:
    """True if any pool reference matches ``backend_pool_id`` case-insensitively."""
    return any(pool_id.lower() == backend_pool_id.lower() for pool_id in _pool_ids(pools))


def _trim_internal_suffix(lb_name: str) -> str:
    lb_name = lb_name.lower()
    if lb_name.endswith(consts.INTERNAL_LOAD_BALANCER_NAME_SUFFIX):
        return lb_name[: -len(consts.INTERNAL_LOAD_BALANCER_NAME_SUFFIX)]
    return lb_name


def is_backend_pool_on_same_lb(new_backend_pool_id: str, existing_backend_pool_ids: list[str]) -> tuple[bool, str]:
    """Check whether ``new_backend_pool_id`` belongs to the load balancer of every existing pool.

    Returns ``(True, "")`` when all pools share the load balancer, otherwise
    ``(False, name_of_the_first_differing_lb)``. The ``-internal`` suffix is
    ignored so a cluster load balancer and its internal twin compare equal.
    """
    new_lb_name = _trim_internal_suffix(resource_ids.load_balancer_name_from_backend_pool_id(new_backend_pool_id))
    for existing_id in existing_backend_pool_ids:
        existing_lb_name = resource_ids.load_balancer_name_from_backend_pool_id(existing_id)
        if _trim_internal_suffix(existing_lb_name) != new_lb_name:
            return False, existing_lb_name
    return True, ""


def add_backend_pool(
    ip_config: Any,
    backend_pool_id: str,
    factory: Callable[..., Any],
    standard_sku: bool,
) -> bool:
    """Append a reference to ``backend_pool_id`` on ``ip_config``.

    Returns False when the pool is already referenced. With the standard SKU
    an IP configuration may only reference pools of one load balancer, so a
    pool of a different one raises ConflictingLoadBalancerMembership and the
    configuration is left untouched.
    """
    pools = list(ip_config.load_balancer_backend_address_pools or [])
    if has_backend_pool(pools, backend_pool_id):
        return False

    if standard_sku and pools:
        same_lb, old_lb_name = is_backend_pool_on_same_lb(backend_pool_id, _pool_ids(pools))
        if not same_lb:
            raise ConflictingLoadBalancerMembership(backend_pool_id, old_lb_name)

    pools.append(factory(id=backend_pool_id))
    ip_config.load_balancer_backend_address_pools = pools
    return True


def remove_backend_pool(ip_config: Any, backend_pool_id: str) -> bool:
    """Drop every reference to ``backend_pool_id``; True if anything was removed."""
    pools = ip_config.load_balancer_backend_address_pools
    if not pools:
        return False
    kept = [pool for pool in pools if (pool.id or "").lower() != backend_pool_id.lower()]
    if len(kept) == len(pools):
        return False
    ip_config.load_balancer_backend_address_pools = kept
    return True


# ── IP configuration selection ──────────────────────────────────────


def _primary(items: list[Any] | None, what: str, owner: str) -> Any:
    """The only item, or the one flagged primary."""
    if not items:
        raise VMSetError(f"{what} of {owner} is empty")
    if len(items) == 1:
        return items[0]
    for item in items:
        if item.primary:
            return item
    raise VMSetError(f"failed to determine the primary {what} of {owner}")


def primary_interface_id(vm: Any) -> str:
    """ID of the VM's primary network interface."""
    profile = vm.network_profile
    return _primary(profile.network_interfaces if profile else None, "network interface", vm.name).id


def primary_ip_config(nic: Any) -> Any:
    return _primary(nic.ip_configurations, "ip configuration", nic.name)


def _version_matches(ip_config: Any, ipv6: bool) -> bool:
    version = ip_config.private_ip_address_version or consts.IP_VERSION_IPV4
    wanted = consts.IP_VERSION_IPV6 if ipv6 else consts.IP_VERSION_IPV4
    return version.lower() == wanted.lower()


def ip_config_by_family(nic: Any, ipv6: bool) -> Any:
    """First IP configuration with a private address of the requested family."""
    if not nic.ip_configurations:
        raise VMSetError(f"ip configurations of {nic.name} are empty")
    for ip_config in nic.ip_configurations:
        if ip_config.private_ip_address and _version_matches(ip_config, ipv6):
            return ip_config
    raise VMSetError(f"failed to determine the ip configuration (ipv6={ipv6}) of {nic.name}")


def select_ip_config(nic: Any, ipv6: bool, dual_stack: bool) -> Any:
    """The IP configuration a service's backend pool attaches to."""
    if not dual_stack and not ipv6:
        return primary_ip_config(nic)
    return ip_config_by_family(nic, ipv6)


def primary_scale_set_nic_config(network_interface_configurations: list[Any], scale_set_name: str) -> Any:
    return _primary(network_interface_configurations, "network interface configuration", scale_set_name)


def select_scale_set_ip_config(nic_config: Any, ipv6: bool, dual_stack: bool) -> Any:
    """Same selection as :func:`select_ip_config` for a scale set's VM profile."""
    if not dual_stack and not ipv6:
        return _primary(nic_config.ip_configurations, "ip configuration", nic_config.name)
    for ip_config in nic_config.ip_configurations or []:
        if _version_matches(ip_config, ipv6):
            return ip_config
    raise VMSetError(f"failed to determine the ip configuration (ipv6={ipv6}) of {nic_config.name}")
