"""Identifier templates, tag keys, node labels and defaults shared across the package."""

# ── Resource ID templates ───────────────────────────────────────────

MACHINE_ID_TEMPLATE = "/subscriptions/{}/resourceGroups/{}/providers/Microsoft.Compute/virtualMachines/{}"
AVAILABILITY_SET_ID_TEMPLATE = "/subscriptions/{}/resourceGroups/{}/providers/Microsoft.Compute/availabilitySets/{}"
FRONTEND_IP_CONFIG_ID_TEMPLATE = (
    "/subscriptions/{}/resourceGroups/{}/providers/Microsoft.Network/loadBalancers/{}/frontendIPConfigurations/{}"
)
BACKEND_POOL_ID_TEMPLATE = (
    "/subscriptions/{}/resourceGroups/{}/providers/Microsoft.Network/loadBalancers/{}/backendAddressPools/{}"
)
LOAD_BALANCER_PROBE_ID_TEMPLATE = (
    "/subscriptions/{}/resourceGroups/{}/providers/Microsoft.Network/loadBalancers/{}/probes/{}"
)

INTERNAL_LOAD_BALANCER_NAME_SUFFIX = "-internal"

# ── VM types and SKUs ───────────────────────────────────────────────

VM_TYPE_STANDARD = "standard"
VM_TYPE_VMSS_FLEX = "vmssflex"

LOAD_BALANCER_SKU_BASIC = "basic"
LOAD_BALANCER_SKU_STANDARD = "standard"

# ── Resource states ─────────────────────────────────────────────────

NIC_FAILED_STATE = "Failed"
VM_PROVISIONING_STATE_DELETING = "Deleting"
VMSS_DEALLOCATING_STATE = "Deallocating"
VMSS_ORCHESTRATION_MODE_FLEXIBLE = "Flexible"

VM_POWER_STATE_PREFIX = "PowerState/"
VM_POWER_STATE_STOPPED = "stopped"

IP_VERSION_IPV4 = "IPv4"
IP_VERSION_IPV6 = "IPv6"

# ── Tags and labels ─────────────────────────────────────────────────

VMSET_CIDR_IPV4_TAG_KEY = "kubernetesNodeCIDRMaskIPV4"
VMSET_CIDR_IPV6_TAG_KEY = "kubernetesNodeCIDRMaskIPV6"

DEFAULT_NODE_MASK_CIDR_IPV4 = 24
DEFAULT_NODE_MASK_CIDR_IPV6 = 64

CONTROL_PLANE_NODE_ROLE_LABEL = "node-role.kubernetes.io/control-plane"
MASTER_NODE_ROLE_LABEL = "node-role.kubernetes.io/master"
NODE_LABEL_ROLE = "kubernetes.io/role"
NODE_LABEL_HOST_NAME = "kubernetes.io/hostname"
EXCLUDE_FROM_LB_LABEL = "node.kubernetes.io/exclude-from-external-load-balancers"
EXTERNAL_RESOURCE_GROUP_LABEL = "kubernetes.azure.com/resource-group"
MANAGED_BY_AZURE_LABEL = "kubernetes.azure.com/managed"

SERVICE_ANNOTATION_LOAD_BALANCER_MODE = "service.beta.kubernetes.io/azure-load-balancer-mode"
SERVICE_ANNOTATION_LOAD_BALANCER_AUTO_MODE_VALUE = "__auto__"

# ── Cache keys and TTLs ─────────────────────────────────────────────

VMAS_KEY = "k8svmasKey"
VMSS_FLEX_KEY = "k8svmssflexKey"
GET_NODE_VMSS_FLEX_ID_LOCK_KEY = "k8sgetnodevmssflexidKey"

VM_CACHE_TTL_DEFAULT_SECONDS = 60
VMAS_CACHE_TTL_DEFAULT_SECONDS = 600
VMSS_FLEX_CACHE_TTL_DEFAULT_SECONDS = 600
VMSS_FLEX_VM_CACHE_TTL_DEFAULT_SECONDS = 600
