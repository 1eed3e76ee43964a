"""SimpleNamespace stand-ins for Azure SDK models and a MagicMock client wired to them."""

from types import SimpleNamespace
from unittest.mock import MagicMock

from azure_vmset.cloud.azure_client import AzureClient
from azure_vmset.exceptions import CloudAPIError

SUB = "sub"
RG = "rg"


def pool_id(lb="kubernetes", pool="kubernetes", rg=RG, sub=SUB):
    return (
        f"/subscriptions/{sub}/resourceGroups/{rg}/providers/Microsoft.Network"
        f"/loadBalancers/{lb}/backendAddressPools/{pool}"
    )


def nic_id(name, rg=RG, sub=SUB):
    return f"/subscriptions/{sub}/resourceGroups/{rg}/providers/Microsoft.Network/networkInterfaces/{name}"


def ip_configuration_id(nic_name, config_name="ipconfig1", rg=RG, sub=SUB):
    return f"{nic_id(nic_name, rg, sub)}/ipConfigurations/{config_name}"


def vm_id(name, rg=RG, sub=SUB):
    return f"/subscriptions/{sub}/resourceGroups/{rg}/providers/Microsoft.Compute/virtualMachines/{name}"


def availability_set_id(name, rg=RG, sub=SUB):
    return f"/subscriptions/{sub}/resourceGroups/{rg}/providers/Microsoft.Compute/availabilitySets/{name}"


def vmss_id(name, rg=RG, sub=SUB):
    return f"/subscriptions/{sub}/resourceGroups/{rg}/providers/Microsoft.Compute/virtualMachineScaleSets/{name}"


def public_ip_id(name, rg=RG, sub=SUB):
    return f"/subscriptions/{sub}/resourceGroups/{rg}/providers/Microsoft.Network/publicIPAddresses/{name}"


def ip_config(name="ipconfig1", primary=True, private_ip="10.0.0.4", version="IPv4", pools=None, public_ip=None):
    return SimpleNamespace(
        name=name,
        primary=primary,
        private_ip_address=private_ip,
        private_ip_address_version=version,
        load_balancer_backend_address_pools=[SimpleNamespace(id=p) for p in pools] if pools else None,
        public_ip_address=SimpleNamespace(id=public_ip) if public_ip else None,
    )


def nic(name, ip_configs=None, rg=RG, provisioning_state="Succeeded", vm=None):
    return SimpleNamespace(
        id=nic_id(name, rg),
        name=name,
        provisioning_state=provisioning_state,
        ip_configurations=ip_configs if ip_configs is not None else [ip_config()],
        virtual_machine=SimpleNamespace(id=vm_id(vm, rg)) if vm else None,
    )


def vm(
    name,
    rg=RG,
    location="eastus",
    zones=None,
    fault_domain=None,
    availability_set=None,
    nics=None,
    vm_size="Standard_D2s_v3",
    provisioning_state="Succeeded",
    power_state="running",
    computer_name=None,
    statuses=None,
):
    nic_names = nics if nics is not None else [f"{name}-nic"]
    if statuses is None:
        statuses = [
            SimpleNamespace(code="ProvisioningState/succeeded"),
            SimpleNamespace(code=f"PowerState/{power_state}"),
        ]
    return SimpleNamespace(
        id=vm_id(name, rg.upper()),
        name=name,
        location=location,
        zones=zones,
        provisioning_state=provisioning_state,
        hardware_profile=SimpleNamespace(vm_size=vm_size),
        availability_set=SimpleNamespace(id=availability_set_id(availability_set, rg)) if availability_set else None,
        network_profile=SimpleNamespace(network_interfaces=[
            SimpleNamespace(id=nic_id(n, rg), primary=i == 0) for i, n in enumerate(nic_names)
        ]),
        instance_view=SimpleNamespace(platform_fault_domain=fault_domain, statuses=statuses),
        os_profile=SimpleNamespace(computer_name=computer_name or name),
    )


def availability_set(name, vm_names=(), rg=RG, tags=None):
    return SimpleNamespace(
        id=availability_set_id(name, rg),
        name=name,
        tags=tags,
        virtual_machines=[SimpleNamespace(id=vm_id(v, rg)) for v in vm_names],
    )


def vmss_ip_config(name="ipconfig1", primary=True, version="IPv4", pools=None):
    return SimpleNamespace(
        name=name,
        primary=primary,
        private_ip_address_version=version,
        load_balancer_backend_address_pools=[SimpleNamespace(id=p) for p in pools] if pools else None,
    )


def vmss_nic_config(name="nic-config", primary=True, ip_configs=None):
    return SimpleNamespace(
        name=name,
        primary=primary,
        ip_configurations=ip_configs if ip_configs is not None else [vmss_ip_config()],
    )


def vmss_flex(
    name,
    rg=RG,
    location="eastus",
    tags=None,
    nic_configs=None,
    provisioning_state="Succeeded",
    computer_name_prefix=None,
    orchestration_mode="Flexible",
    with_profile=True,
):
    profile = None
    if with_profile:
        profile = SimpleNamespace(
            os_profile=SimpleNamespace(computer_name_prefix=computer_name_prefix or name),
            network_profile=SimpleNamespace(
                network_interface_configurations=nic_configs if nic_configs is not None else [vmss_nic_config()],
            ),
        )
    return SimpleNamespace(
        id=vmss_id(name, rg),
        name=name,
        location=location,
        tags=tags,
        provisioning_state=provisioning_state,
        orchestration_mode=orchestration_mode,
        virtual_machine_profile=profile,
    )


def backend_pool(pool, ip_configuration_ids):
    return SimpleNamespace(
        id=pool,
        backend_ip_configurations=[SimpleNamespace(id=i) for i in ip_configuration_ids],
    )


def make_client(vms=(), nics=(), availability_sets=(), scale_sets=(), vmss_members=None, public_ips=None):
    """A MagicMock AzureClient answering from in-memory resources.

    ``vms`` are looked up by name, ``nics`` by name, ``vmss_members`` maps a
    lower-cased scale set ID to its member VMs and ``public_ips`` maps a
    public IP name to its address.
    """
    vms_by_name = {v.name: v for v in vms}
    nics_by_name = {n.name: n for n in nics}
    vmss_members = {k.lower(): v for k, v in (vmss_members or {}).items()}
    public_ips = public_ips or {}

    client = MagicMock(spec=AzureClient)
    client.get_virtual_machine.side_effect = lambda rg, name: vms_by_name.get(name)
    client.list_virtual_machines.side_effect = lambda rg: list(vms)

    def get_nic(rg, name):
        if name not in nics_by_name:
            raise CloudAPIError(f"get network interface {rg}/{name}: not found", status_code=404)
        return nics_by_name[name]

    client.get_network_interface.side_effect = get_nic
    client.create_or_update_network_interface.side_effect = lambda rg, name, n: n
    client.list_availability_sets.side_effect = lambda rg: [a for a in availability_sets if f"/resourceGroups/{rg}/" in a.id]
    client.list_virtual_machine_scale_sets.side_effect = (
        lambda rg: [s for s in scale_sets if f"/resourceGroups/{rg}/" in s.id]
    )
    client.list_vmss_flex_vms.side_effect = lambda vmss: list(vmss_members.get(vmss.lower(), []))
    client.create_or_update_virtual_machine_scale_set.side_effect = lambda rg, name, body: body

    def get_pip(rg, name):
        if name not in public_ips:
            return None
        return SimpleNamespace(name=name, ip_address=public_ips[name])

    client.get_public_ip_address.side_effect = get_pip
    return client
