"""Tests for the node inventory."""

from azure_vmset.cloud.models import Node
from azure_vmset.cloud.node_inventory import NodeInventory


class TestNodeInventory:
    def test_default_resource_group(self):
        inventory = NodeInventory("rg")
        assert inventory.get_node_resource_group("worker-0") == "rg"
        assert inventory.get_resource_groups() == {"rg"}

    def test_external_resource_group(self):
        inventory = NodeInventory("rg")
        inventory.update(Node("edge-0", labels={"kubernetes.azure.com/resource-group": "Edge-RG"}))
        assert inventory.get_node_resource_group("edge-0") == "edge-rg"
        assert inventory.get_resource_groups() == {"rg", "edge-rg"}
        assert inventory.should_exclude_from_load_balancer("edge-0")

    def test_label_for_own_resource_group_is_not_excluded(self):
        inventory = NodeInventory("rg")
        inventory.update(Node("w", labels={"kubernetes.azure.com/resource-group": "RG"}))
        assert not inventory.should_exclude_from_load_balancer("w")

    def test_unmanaged_node(self):
        inventory = NodeInventory("rg")
        inventory.update(Node("onprem", labels={"kubernetes.azure.com/managed": "false"}))
        assert inventory.should_exclude_from_load_balancer("onprem")

    def test_exclude_label(self):
        inventory = NodeInventory("rg")
        inventory.update(Node("w", labels={"node.kubernetes.io/exclude-from-external-load-balancers": "true"}))
        assert inventory.should_exclude_from_load_balancer("w")

    def test_update_replaces_previous_state(self):
        inventory = NodeInventory("rg")
        inventory.update(Node("w", labels={"kubernetes.azure.com/managed": "false"}))
        inventory.update(Node("w"))
        assert not inventory.should_exclude_from_load_balancer("w")

    def test_delete_and_update_all(self):
        inventory = NodeInventory("rg")
        inventory.update_all([
            Node("a", labels={"kubernetes.azure.com/resource-group": "other"}),
            Node("b"),
        ])
        inventory.delete("a")
        assert inventory.get_node_resource_group("a") == "rg"
        assert inventory.get_resource_groups() == {"rg"}
