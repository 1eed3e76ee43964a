"""Tests for the flexible scale-set resolver."""

import pytest

from azure_vmset import metrics
from azure_vmset.cloud.models import Node, Service
from azure_vmset.cloud.node_inventory import NodeInventory
from azure_vmset.config import AppConfig, AzureConfig, LoadBalancerConfig
from azure_vmset.exceptions import CloudAPIError, InstanceNotFound, VMSetError
from azure_vmset.reconcile.backend_pool import MembershipResult
from azure_vmset.vmset import FlexScaleSet, VMSet

from .fakes import (
    backend_pool,
    ip_config,
    ip_configuration_id,
    make_client,
    nic,
    pool_id,
    vm,
    vm_id,
    vmss_flex,
    vmss_id,
    vmss_ip_config,
    vmss_nic_config,
)

MODE = "service.beta.kubernetes.io/azure-load-balancer-mode"
POOL = pool_id("kubernetes", "kubernetes")
SERVICE = Service("default", "web", cluster_ip="10.0.0.10")


def _config(**lb):
    return AppConfig(
        azure=AzureConfig(
            subscription_id="sub",
            resource_group="rg",
            location="eastus",
            vm_type="vmssflex",
            primary_scale_set_name="pool1",
        ),
        load_balancer=LoadBalancerConfig(**lb),
    )


def _member(vmss, index, **kwargs):
    """A scale-set VM named ``<vmss>_<index>`` whose computer name is ``<vmss>00000<index>``."""
    return vm(f"{vmss}_{index}", computer_name=f"{vmss.upper()}00000{index}", **kwargs)


def _cluster(scale_sets=None, members=None, nics=None):
    scale_sets = scale_sets if scale_sets is not None else [vmss_flex("pool1"), vmss_flex("pool2")]
    if members is None:
        members = {
            vmss_id("pool1"): [_member("pool1", 0)],
            vmss_id("pool2"): [_member("pool2", 0)],
        }
    if nics is None:
        nics = [nic(f"{m.name}-nic", vm=m.name) for ms in members.values() for m in ms]
    return make_client(scale_sets=scale_sets, vmss_members=members, nics=nics)


def _resolver(client, config=None, inventory=None):
    return FlexScaleSet(config or _config(), client, inventory or NodeInventory("rg"))


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()


class TestLookups:
    def test_satisfies_protocol(self):
        assert isinstance(_resolver(make_client()), VMSet)

    def test_node_vmss_flex_id(self):
        client = _cluster()
        resolver = _resolver(client)
        assert resolver.get_node_vmss_flex_id("POOL2000000") == vmss_id("pool2").lower()
        listed = client.list_vmss_flex_vms.call_count
        assert resolver.get_node_vmss_flex_id("pool2000000") == vmss_id("pool2").lower()
        assert client.list_vmss_flex_vms.call_count == listed

    def test_matching_prefix_is_searched_first(self):
        client = _cluster()
        _resolver(client).get_node_vmss_flex_id("pool2000000")
        assert client.list_vmss_flex_vms.call_args_list[0].args == (vmss_id("pool2").lower(),)

    def test_unknown_node_refreshes_before_giving_up(self):
        client = _cluster()
        with pytest.raises(InstanceNotFound):
            _resolver(client).get_node_vmss_flex_id("ghost")
        assert client.list_virtual_machine_scale_sets.call_count == 2

    def test_failing_scale_set_listing_is_skipped(self):
        members = {
            vmss_id("pool1"): [_member("pool1", 0)],
            vmss_id("pool2"): [vm("pool2_0", computer_name="worker000000")],
        }
        client = _cluster(members=members)
        list_members = client.list_vmss_flex_vms.side_effect

        def flaky(vmss):
            if vmss == vmss_id("pool1").lower():
                raise CloudAPIError("list scale set VMs: throttled", status_code=429)
            return list_members(vmss)

        client.list_vmss_flex_vms.side_effect = flaky
        assert _resolver(client).get_node_vmss_flex_id("worker000000") == vmss_id("pool2").lower()

    def test_uniform_scale_sets_are_ignored(self):
        client = _cluster(scale_sets=[vmss_flex("pool1", orchestration_mode="Uniform")])
        with pytest.raises(InstanceNotFound):
            _resolver(client).get_node_vmss_flex_id("pool1000000")

    def test_scale_set_by_name_and_id(self):
        resolver = _resolver(_cluster())
        assert resolver.get_vmss_flex_id_by_name("POOL1") == vmss_id("pool1").lower()
        assert resolver.get_vmss_flex_by_id(vmss_id("pool1").upper()).name == "pool1"
        with pytest.raises(InstanceNotFound):
            resolver.get_vmss_flex_id_by_name("pool9")

    def test_node_name_by_provider_id(self):
        resolver = _resolver(_cluster())
        assert resolver.get_node_name_by_provider_id("azure://" + vm_id("pool1_0")) == "pool1000000"

    def test_node_name_by_unknown_provider_id(self):
        with pytest.raises(InstanceNotFound):
            _resolver(_cluster()).get_node_name_by_provider_id("azure://" + vm_id("ghost_0"))

    def test_instance_metadata(self):
        resolver = _resolver(_cluster())
        assert resolver.get_instance_id_by_node_name("pool1000000") == vm_id("pool1_0")
        assert resolver.get_instance_type_by_node_name("pool1000000") == "Standard_D2s_v3"
        assert resolver.get_power_status_by_node_name("pool1000000") == "running"
        assert resolver.get_ip_by_node_name("pool1000000") == ("10.0.0.4", "")

    def test_node_vm_set_name(self):
        assert _resolver(_cluster()).get_node_vm_set_name(Node("pool2000000")) == "pool2"

    def test_agent_pool_names_skip_unknown_nodes(self):
        nodes = [Node("pool1000000"), Node("ghost"), Node("pool2000000")]
        assert _resolver(_cluster()).get_agent_pool_vm_set_names(nodes) == ["pool1", "pool2"]

    def test_vm_set_names_explicit(self):
        service = Service("default", "web", annotations={MODE: "Pool2"})
        resolver = _resolver(_cluster(), _config(enable_multiple_standard_load_balancers=True))
        assert resolver.get_vm_set_names(service, [Node("pool1000000"), Node("pool2000000")]) == ["pool2"]

    def test_node_name_by_ip_configuration_id(self):
        resolver = _resolver(_cluster())
        assert resolver.get_node_name_by_ip_configuration_id(ip_configuration_id("pool1_0-nic")) == (
            "pool1000000", "pool1",
        )

    def test_nic_name_containing_suffix(self):
        members = {vmss_id("pool1"): [vm("my-nic-vm", computer_name="pool1000007")]}
        client = _cluster(members=members, nics=[nic("my-nic-vm-nic", vm="my-nic-vm")])
        assert _resolver(client).get_node_name_by_ip_configuration_id(ip_configuration_id("my-nic-vm-nic")) == (
            "pool1000007", "pool1",
        )

    def test_cidr_masks_from_tags(self):
        tags = {"kubernetesNodeCIDRMaskIPV4": "26", "kubernetesNodeCIDRMaskIPV6": "120"}
        client = _cluster(scale_sets=[vmss_flex("pool1", tags=tags), vmss_flex("pool2")])
        resolver = _resolver(client)
        assert resolver.get_node_cidr_masks_by_provider_id("azure://" + vm_id("pool1_0")) == (26, 120)
        assert resolver.get_node_cidr_masks_by_provider_id("azure://" + vm_id("pool2_0")) == (0, 0)


class TestEnsureHostsInPool:
    def test_adds_nic_and_scale_set_profile(self):
        client = _cluster()
        results = _resolver(client).ensure_hosts_in_pool(SERVICE, [Node("pool1000000")], POOL, "pool1")

        assert results == {"pool1000000": MembershipResult.ADDED}
        client.create_or_update_network_interface.assert_called_once()
        client.create_or_update_virtual_machine_scale_set.assert_called_once()
        rg, name, body = client.create_or_update_virtual_machine_scale_set.call_args.args
        assert (rg, name) == ("rg", "pool1")
        assert body.location == "eastus"
        nic_config = body.virtual_machine_profile.network_profile.network_interface_configurations[0]
        assert [p.id for p in nic_config.ip_configurations[0].load_balancer_backend_address_pools] == [POOL]
        assert metrics.observed("vmssflex_ensure_hosts_in_pool", True) == 1

    def test_scale_set_cache_is_invalidated_after_update(self):
        client = _cluster()
        resolver = _resolver(client)
        resolver.ensure_hosts_in_pool(SERVICE, [Node("pool1000000")], POOL, "pool1")
        listed = client.list_virtual_machine_scale_sets.call_count
        resolver.get_vmss_flex_by_id(vmss_id("pool1"))
        assert client.list_virtual_machine_scale_sets.call_count == listed + 1

    def test_profile_already_in_pool(self):
        configs = [vmss_nic_config(ip_configs=[vmss_ip_config(pools=[POOL])])]
        client = _cluster(scale_sets=[vmss_flex("pool1", nic_configs=configs)])
        _resolver(client).ensure_hosts_in_pool(SERVICE, [Node("pool1000000")], POOL, "pool1")
        client.create_or_update_virtual_machine_scale_set.assert_not_called()

    def test_conflicting_profile_is_skipped(self):
        other = pool_id("other-lb", "pool")
        configs = [vmss_nic_config(ip_configs=[vmss_ip_config(pools=[other])])]
        client = _cluster(scale_sets=[vmss_flex("pool1", nic_configs=configs)])
        results = _resolver(client).ensure_hosts_in_pool(SERVICE, [Node("pool1000000")], POOL, "pool1")
        assert results == {"pool1000000": MembershipResult.ADDED}
        client.create_or_update_virtual_machine_scale_set.assert_not_called()

    @pytest.mark.parametrize("scale_set", [
        vmss_flex("pool1", provisioning_state="Deallocating"),
        vmss_flex("pool1", with_profile=False),
        vmss_flex("pool1", nic_configs=[]),
    ])
    def test_scale_set_without_usable_profile_is_skipped(self, scale_set):
        client = _cluster(scale_sets=[scale_set])
        _resolver(client).ensure_hosts_in_pool(SERVICE, [Node("pool1000000")], POOL, "pool1")
        client.create_or_update_virtual_machine_scale_set.assert_not_called()

    def test_unknown_scale_set(self):
        client = _cluster()
        results = _resolver(client).ensure_hosts_in_pool(SERVICE, [Node("ghost")], POOL, "pool1")
        assert results == {"ghost": MembershipResult.UNKNOWN_VM_SET}
        client.create_or_update_network_interface.assert_not_called()
        client.create_or_update_virtual_machine_scale_set.assert_not_called()

    def test_single_lb_covers_every_scale_set(self):
        client = _cluster()
        nodes = [Node("pool1000000"), Node("pool2000000")]
        _resolver(client).ensure_hosts_in_pool(SERVICE, nodes, POOL, "pool1")
        updated = sorted(c.args[1] for c in client.create_or_update_virtual_machine_scale_set.call_args_list)
        assert updated == ["pool1", "pool2"]

    def test_single_lb_skips_excluded_nodes(self):
        client = _cluster()
        inventory = NodeInventory("rg")
        excluded = Node("pool2000000", labels={"node.kubernetes.io/exclude-from-external-load-balancers": "true"})
        inventory.update(excluded)
        results = _resolver(client, inventory=inventory).ensure_hosts_in_pool(
            SERVICE, [Node("pool1000000"), excluded], POOL, "pool1",
        )
        assert results["pool2000000"] is MembershipResult.EXCLUDED
        assert [c.args[1] for c in client.create_or_update_virtual_machine_scale_set.call_args_list] == ["pool1"]

    def test_multiple_lbs_only_touch_requested_scale_set(self):
        client = _cluster()
        resolver = _resolver(client, _config(enable_multiple_standard_load_balancers=True))
        nodes = [Node("pool1000000"), Node("pool2000000")]
        results = resolver.ensure_hosts_in_pool(SERVICE, nodes, pool_id("pool2", "pool2"), "pool2")
        assert results == {
            "pool1000000": MembershipResult.NOT_IN_VM_SET,
            "pool2000000": MembershipResult.ADDED,
        }
        assert [c.args[1] for c in client.create_or_update_virtual_machine_scale_set.call_args_list] == ["pool2"]

    def test_basic_sku_is_rejected(self):
        resolver = _resolver(_cluster(), _config(sku="basic"))
        with pytest.raises(VMSetError, match="basic"):
            resolver.ensure_host_in_pool(SERVICE, "pool1000000", POOL, "pool1")


class TestEnsureBackendPoolDeleted:
    def test_removes_pool_from_scale_set_members(self):
        members = {
            vmss_id("pool1"): [_member("pool1", 0), _member("pool1", 1)],
            vmss_id("pool2"): [_member("pool2", 0)],
        }
        nics = [
            nic("pool1_0-nic", [ip_config(pools=[POOL])], vm="pool1_0"),
            nic("pool1_1-nic", [ip_config(pools=[POOL])], vm="pool1_1"),
            nic("pool2_0-nic", [ip_config(pools=[POOL])], vm="pool2_0"),
        ]
        client = _cluster(members=members, nics=nics)
        pools = [backend_pool(POOL, [ip_configuration_id(n.name) for n in nics])]

        _resolver(client).ensure_backend_pool_deleted(SERVICE, POOL, "pool1", pools)

        updated = sorted(c.args[1] for c in client.create_or_update_network_interface.call_args_list)
        assert updated == ["pool1_0-nic", "pool1_1-nic"]
        assert nics[0].ip_configurations[0].load_balancer_backend_address_pools == []
        assert [p.id for p in nics[2].ip_configurations[0].load_balancer_backend_address_pools] == [POOL]
        assert metrics.observed("vmssflex_ensure_backend_pool_deleted", True) == 1

    def test_unknown_members_are_skipped(self):
        client = _cluster()
        pools = [backend_pool(POOL, [ip_configuration_id("ghost_0-nic")])]
        _resolver(client).ensure_backend_pool_deleted(SERVICE, POOL, "pool1", pools)
        client.create_or_update_network_interface.assert_not_called()
