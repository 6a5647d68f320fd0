"""Provisioning steps and the graph that connects them.

Each step function takes the shared StepContext plus a mapping of its
dependencies' outputs, makes exactly one remote call (create-or-update or a
read-only lookup) and returns an immutable handle. Azure SDK errors are
translated to ProviderError at this seam.

Graph (leaves first):

    resource_group
    ├── storage_account ─────────────────────────────┐
    ├── virtual_network ── subnet ──┐                │
    └── public_ip ──────────────────┴── network_interface
                                         ├── network_interface_info ──┐
                                         └── vm_image ────────────────┴── virtual_machine

network_interface_info and vm_image also wait for storage_account, so they
race only with each other. Create-or-update is idempotent on the provider
side: re-running with the same names converges instead of duplicating.
"""

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from functools import partial
from typing import Any

from azure.core.exceptions import AzureError

from azprovision.clients import AzureClients
from azprovision.errors import ProviderError
from azprovision.graph import DependencyGraph, Step
from azprovision.log_sanitizer import LogSanitizer
from azprovision.models import (
    DesiredState,
    ImageReference,
    IpConfigurationRef,
    NetworkInterfaceHandle,
    ResourceHandle,
    ResourceKind,
    ResourceNames,
    VirtualMachineHandle,
)

logger = logging.getLogger(__name__)

RESOURCE_GROUP = "resource_group"
STORAGE_ACCOUNT = "storage_account"
VIRTUAL_NETWORK = "virtual_network"
SUBNET = "subnet"
PUBLIC_IP = "public_ip"
NETWORK_INTERFACE = "network_interface"
NETWORK_INTERFACE_INFO = "network_interface_info"
VM_IMAGE = "vm_image"
VIRTUAL_MACHINE = "virtual_machine"


@dataclass(frozen=True)
class StepContext:
    """Inputs shared by every step of one run."""

    desired_state: DesiredState
    names: ResourceNames
    clients: AzureClients


@contextmanager
def provider_call(step_id: str) -> Iterator[None]:
    """Translate Azure SDK errors raised inside the block to ProviderError."""
    try:
        yield
    except AzureError as e:
        raise ProviderError.from_exception(step_id, e) from e


def _handle(kind: ResourceKind, name: str, record: Any, resource_group: str) -> ResourceHandle:
    return ResourceHandle(
        kind=kind,
        name=getattr(record, "name", None) or name,
        id=getattr(record, "id", None),
        resource_group=resource_group,
        raw=record,
    )


def _log_request(step_id: str, body: dict[str, Any]) -> None:
    logger.debug(f"{step_id} request: {LogSanitizer.sanitize_dict(body)}")


def create_resource_group(ctx: StepContext, deps: Mapping[str, Any]) -> ResourceHandle:
    rg = ctx.names.resource_group
    body = {"location": ctx.desired_state.location}
    _log_request(RESOURCE_GROUP, body)
    with provider_call(RESOURCE_GROUP):
        group = ctx.clients.resource.resource_groups.create_or_update(rg, body)
    return _handle(ResourceKind.RESOURCE_GROUP, rg, group, rg)


def create_storage_account(ctx: StepContext, deps: Mapping[str, Any]) -> ResourceHandle:
    state = ctx.desired_state
    rg = deps[RESOURCE_GROUP].name
    body = {
        "location": state.location,
        "sku": {"name": state.storage_sku},
        "kind": state.storage_kind,
    }
    _log_request(STORAGE_ACCOUNT, body)
    with provider_call(STORAGE_ACCOUNT):
        poller = ctx.clients.storage.storage_accounts.begin_create(
            rg, ctx.names.storage_account, body
        )
        account = poller.result()
    return _handle(ResourceKind.STORAGE_ACCOUNT, ctx.names.storage_account, account, rg)


def create_virtual_network(ctx: StepContext, deps: Mapping[str, Any]) -> ResourceHandle:
    state = ctx.desired_state
    rg = deps[RESOURCE_GROUP].name
    body = {
        "location": state.location,
        "address_space": {"address_prefixes": list(state.network.address_prefixes)},
        "dhcp_options": {"dns_servers": list(state.network.dns_servers)},
        "subnets": [{"name": ctx.names.subnet, "address_prefix": state.network.subnet_prefix}],
    }
    _log_request(VIRTUAL_NETWORK, body)
    with provider_call(VIRTUAL_NETWORK):
        poller = ctx.clients.network.virtual_networks.begin_create_or_update(
            rg, ctx.names.virtual_network, body
        )
        vnet = poller.result()
    return _handle(ResourceKind.VNET, ctx.names.virtual_network, vnet, rg)


def get_subnet(ctx: StepContext, deps: Mapping[str, Any]) -> ResourceHandle:
    vnet = deps[VIRTUAL_NETWORK]
    with provider_call(SUBNET):
        subnet = ctx.clients.network.subnets.get(
            vnet.resource_group, vnet.name, ctx.names.subnet
        )
    return _handle(ResourceKind.SUBNET, ctx.names.subnet, subnet, vnet.resource_group)


def create_public_ip(ctx: StepContext, deps: Mapping[str, Any]) -> ResourceHandle:
    rg = deps[RESOURCE_GROUP].name
    body = {
        "location": ctx.desired_state.location,
        "public_ip_allocation_method": "Dynamic",
        "dns_settings": {"domain_name_label": ctx.names.domain_name_label},
    }
    _log_request(PUBLIC_IP, body)
    with provider_call(PUBLIC_IP):
        poller = ctx.clients.network.public_ip_addresses.begin_create_or_update(
            rg, ctx.names.public_ip, body
        )
        public_ip = poller.result()
    return _handle(ResourceKind.PUBLIC_IP, ctx.names.public_ip, public_ip, rg)


def create_network_interface(ctx: StepContext, deps: Mapping[str, Any]) -> ResourceHandle:
    subnet = deps[SUBNET]
    public_ip = deps[PUBLIC_IP]
    rg = public_ip.resource_group
    body = {
        "location": ctx.desired_state.location,
        "ip_configurations": [
            {
                "name": ctx.names.ip_configuration,
                "private_ip_allocation_method": "Dynamic",
                "subnet": {"id": subnet.id},
                "public_ip_address": {"id": public_ip.id},
            }
        ],
    }
    _log_request(NETWORK_INTERFACE, body)
    with provider_call(NETWORK_INTERFACE):
        poller = ctx.clients.network.network_interfaces.begin_create_or_update(
            rg, ctx.names.network_interface, body
        )
        nic = poller.result()
    return _handle(ResourceKind.NIC, ctx.names.network_interface, nic, rg)


def _ip_configurations(nic: Any) -> tuple[IpConfigurationRef, ...]:
    refs = []
    for config in getattr(nic, "ip_configurations", None) or []:
        subnet = getattr(config, "subnet", None)
        public_ip = getattr(config, "public_ip_address", None)
        refs.append(
            IpConfigurationRef(
                name=config.name,
                subnet_id=getattr(subnet, "id", None),
                public_ip_id=getattr(public_ip, "id", None),
            )
        )
    return tuple(refs)


def get_network_interface(ctx: StepContext, deps: Mapping[str, Any]) -> NetworkInterfaceHandle:
    created = deps[NETWORK_INTERFACE]
    with provider_call(NETWORK_INTERFACE_INFO):
        nic = ctx.clients.network.network_interfaces.get(created.resource_group, created.name)
    return NetworkInterfaceHandle(
        name=getattr(nic, "name", None) or created.name,
        id=getattr(nic, "id", None),
        resource_group=created.resource_group,
        ip_configurations=_ip_configurations(nic),
    )


def find_vm_image(ctx: StepContext, deps: Mapping[str, Any]) -> ImageReference:
    """Resolve the image reference to a concrete version.

    "latest" is resolved by listing versions newest first and taking the top
    one; a pinned version is confirmed with a direct get.
    """
    state = ctx.desired_state
    image = state.image
    images = ctx.clients.compute.virtual_machine_images
    with provider_call(VM_IMAGE):
        if image.is_latest:
            versions = list(
                images.list(
                    state.location,
                    image.publisher,
                    image.offer,
                    image.sku,
                    top=1,
                    orderby="name desc",
                )
            )
        else:
            versions = [
                images.get(state.location, image.publisher, image.offer, image.sku, image.version)
            ]

    if not versions:
        raise ProviderError(
            VM_IMAGE,
            f"no versions of image {image.to_urn()} found in {state.location}",
            status_code=404,
            error_code="ImageNotFound",
        )

    resolved = image.with_version(versions[0].name)
    logger.debug(f"Resolved image {image.to_urn()} to {resolved.to_urn()}")
    return resolved


def _os_profile(ctx: StepContext) -> dict[str, Any]:
    admin = ctx.desired_state.admin
    profile: dict[str, Any] = {
        "computer_name": ctx.names.virtual_machine,
        "admin_username": admin.username,
    }
    if admin.password:
        profile["admin_password"] = admin.password
    if admin.uses_ssh_key:
        profile["linux_configuration"] = {
            "disable_password_authentication": not admin.password,
            "ssh": {
                "public_keys": [
                    {
                        "path": f"/home/{admin.username}/.ssh/authorized_keys",
                        "key_data": admin.ssh_public_key,
                    }
                ]
            },
        }
    return profile


def create_virtual_machine(ctx: StepContext, deps: Mapping[str, Any]) -> VirtualMachineHandle:
    state = ctx.desired_state
    nic: NetworkInterfaceHandle = deps[NETWORK_INTERFACE_INFO]
    image: ImageReference = deps[VM_IMAGE]
    storage: ResourceHandle = deps[STORAGE_ACCOUNT]
    rg = nic.resource_group

    body = {
        "location": state.location,
        "os_profile": _os_profile(ctx),
        "hardware_profile": {"vm_size": state.vm_size},
        "storage_profile": {
            "image_reference": image.to_dict(),
            "os_disk": {
                "name": ctx.names.os_disk,
                "caching": "None",
                "create_option": "FromImage",
            },
        },
        "network_profile": {"network_interfaces": [{"id": nic.id, "primary": True}]},
    }
    _log_request(VIRTUAL_MACHINE, body)
    with provider_call(VIRTUAL_MACHINE):
        poller = ctx.clients.compute.virtual_machines.begin_create_or_update(
            rg, ctx.names.virtual_machine, body
        )
        vm = poller.result()

    return VirtualMachineHandle(
        name=getattr(vm, "name", None) or ctx.names.virtual_machine,
        id=getattr(vm, "id", None),
        resource_group=rg,
        location=state.location,
        vm_size=state.vm_size,
        image=image,
        network_interface=nic,
        storage_account=storage,
        provisioning_state=getattr(vm, "provisioning_state", None),
    )


def build_provisioning_graph(ctx: StepContext) -> DependencyGraph:
    """The fixed VM provisioning graph, bound to one run's context."""
    names = ctx.names
    return DependencyGraph(
        [
            Step(
                id=RESOURCE_GROUP,
                kind=ResourceKind.RESOURCE_GROUP,
                label="Creating resource group",
                run=partial(create_resource_group, ctx),
                number=1,
                resource_name=names.resource_group,
            ),
            Step(
                id=STORAGE_ACCOUNT,
                kind=ResourceKind.STORAGE_ACCOUNT,
                label="Creating storage account",
                run=partial(create_storage_account, ctx),
                dependencies=(RESOURCE_GROUP,),
                number=2,
                resource_name=names.storage_account,
            ),
            Step(
                id=VIRTUAL_NETWORK,
                kind=ResourceKind.VNET,
                label="Creating vnet",
                run=partial(create_virtual_network, ctx),
                dependencies=(RESOURCE_GROUP,),
                number=3,
                resource_name=names.virtual_network,
            ),
            Step(
                id=SUBNET,
                kind=ResourceKind.SUBNET,
                label="Looking up subnet",
                run=partial(get_subnet, ctx),
                dependencies=(VIRTUAL_NETWORK,),
                number=4,
                resource_name=names.subnet,
            ),
            Step(
                id=PUBLIC_IP,
                kind=ResourceKind.PUBLIC_IP,
                label="Creating public IP",
                run=partial(create_public_ip, ctx),
                dependencies=(RESOURCE_GROUP,),
                number=5,
                resource_name=names.public_ip,
            ),
            Step(
                id=NETWORK_INTERFACE,
                kind=ResourceKind.NIC,
                label="Creating Network Interface",
                run=partial(create_network_interface, ctx),
                dependencies=(SUBNET, PUBLIC_IP),
                number=6,
                resource_name=names.network_interface,
            ),
            Step(
                id=NETWORK_INTERFACE_INFO,
                kind=ResourceKind.NIC,
                label="Fetching Network Interface",
                run=partial(get_network_interface, ctx),
                dependencies=(NETWORK_INTERFACE, STORAGE_ACCOUNT),
                number=7,
                resource_name=names.network_interface,
            ),
            Step(
                id=VM_IMAGE,
                kind=ResourceKind.VM,
                label="Finding VM image",
                run=partial(find_vm_image, ctx),
                dependencies=(NETWORK_INTERFACE, STORAGE_ACCOUNT),
                number=8,
                resource_name=ctx.desired_state.image.to_urn(),
            ),
            Step(
                id=VIRTUAL_MACHINE,
                kind=ResourceKind.VM,
                label="Creating Virtual Machine",
                run=partial(create_virtual_machine, ctx),
                dependencies=(NETWORK_INTERFACE_INFO, VM_IMAGE, STORAGE_ACCOUNT),
                number=9,
                resource_name=names.virtual_machine,
            ),
        ]
    )
