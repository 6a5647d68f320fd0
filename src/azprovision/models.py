"""Data models for a provisioning run.

Everything a run consumes (DesiredState, ResourceNames) and everything it
produces (ResourceHandle, VirtualMachineHandle) is a frozen dataclass: created
once per run and never mutated. Step outputs are handed to dependent steps as
these immutable records.

Security:
- AdminCredentials never renders the password (repr=False)
- No default admin password exists; one of password / SSH key is required
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

DEFAULT_LOCATION = "eastus"
DEFAULT_VM_SIZE = "Basic_A0"
LATEST_VERSION = "latest"


class ResourceKind(StrEnum):
    """Kinds of resources a run creates or looks up."""

    RESOURCE_GROUP = "ResourceGroup"
    STORAGE_ACCOUNT = "StorageAccount"
    VNET = "VNet"
    SUBNET = "Subnet"
    PUBLIC_IP = "PublicIP"
    NIC = "NIC"
    VM = "VM"


@dataclass(frozen=True)
class ResourceIdentity:
    """Name and kind of one resource in a run."""

    name: str
    kind: ResourceKind


@dataclass(frozen=True)
class ImageReference:
    """Marketplace image reference.

    ``version`` may be the literal "latest"; the image lookup step resolves it
    to a concrete version before the VM is created.
    """

    publisher: str = "Canonical"
    offer: str = "UbuntuServer"
    sku: str = "16.04.0-LTS"
    version: str = LATEST_VERSION

    def __post_init__(self):
        for field_name in ("publisher", "offer", "sku", "version"):
            value = getattr(self, field_name)
            if not isinstance(value, str):
                raise ValueError(f"image {field_name} must be a string, got {type(value).__name__}")
            if not value:
                raise ValueError(f"image {field_name} must not be empty")

    @property
    def is_latest(self) -> bool:
        return self.version.lower() == LATEST_VERSION

    @classmethod
    def from_urn(cls, urn: str) -> ImageReference:
        """Parse an ``publisher:offer:sku[:version]`` URN (az CLI format).

        Raises:
            ValueError: If the URN does not have three or four parts
        """
        parts = urn.split(":")
        if len(parts) == 3:
            parts.append(LATEST_VERSION)
        if len(parts) != 4 or not all(parts):
            raise ValueError(f"image URN must be publisher:offer:sku[:version], got: {urn!r}")
        return cls(publisher=parts[0], offer=parts[1], sku=parts[2], version=parts[3])

    def to_urn(self) -> str:
        return f"{self.publisher}:{self.offer}:{self.sku}:{self.version}"

    def with_version(self, version: str) -> ImageReference:
        return ImageReference(self.publisher, self.offer, self.sku, version)

    def to_dict(self) -> dict[str, str]:
        return {
            "publisher": self.publisher,
            "offer": self.offer,
            "sku": self.sku,
            "version": self.version,
        }


@dataclass(frozen=True)
class AdminCredentials:
    """VM administrator credentials.

    Externally supplied; at least one of password or SSH public key.
    """

    username: str
    password: str | None = field(default=None, repr=False)
    ssh_public_key: str | None = field(default=None, repr=False)

    def __post_init__(self):
        if not isinstance(self.username, str):
            raise ValueError(f"admin username must be a string, got {type(self.username).__name__}")
        if not self.username:
            raise ValueError("admin username must not be empty")
        for secret in (self.password, self.ssh_public_key):
            # type name only; the value may be a secret
            if secret is not None and not isinstance(secret, str):
                raise ValueError(f"admin credentials must be strings, got {type(secret).__name__}")
        if not self.password and not self.ssh_public_key:
            raise ValueError("admin credentials require a password or an SSH public key")

    @property
    def uses_ssh_key(self) -> bool:
        return bool(self.ssh_public_key)


@dataclass(frozen=True)
class NetworkLayout:
    """Address plan for the virtual network."""

    address_prefixes: tuple[str, ...] = ("10.0.0.0/16",)
    subnet_prefix: str = "10.0.0.0/24"
    dns_servers: tuple[str, ...] = ("10.1.1.1", "10.1.2.4")


@dataclass(frozen=True)
class DesiredState:
    """Complete, immutable input of a provisioning run."""

    admin: AdminCredentials
    location: str = DEFAULT_LOCATION
    image: ImageReference = field(default_factory=ImageReference)
    vm_size: str = DEFAULT_VM_SIZE
    os_type: str = "Linux"
    storage_sku: str = "Standard_LRS"
    storage_kind: str = "Storage"
    network: NetworkLayout = field(default_factory=NetworkLayout)

    def __post_init__(self):
        for field_name in ("location", "vm_size", "os_type", "storage_sku", "storage_kind"):
            value = getattr(self, field_name)
            if not isinstance(value, str):
                raise ValueError(f"{field_name} must be a string, got {type(value).__name__}")
            if not value:
                raise ValueError(f"{field_name} must not be empty")
        if not isinstance(self.image, ImageReference):
            raise ValueError("image must be an ImageReference")


@dataclass(frozen=True)
class ResourceNames:
    """All resource names of one run, generated once at run start."""

    resource_group: str
    virtual_machine: str
    storage_account: str
    virtual_network: str
    subnet: str
    public_ip: str
    network_interface: str
    ip_configuration: str
    domain_name_label: str
    os_disk: str

    def identities(self) -> list[ResourceIdentity]:
        """Identities of the resources that own a name in the provider."""
        return [
            ResourceIdentity(self.resource_group, ResourceKind.RESOURCE_GROUP),
            ResourceIdentity(self.storage_account, ResourceKind.STORAGE_ACCOUNT),
            ResourceIdentity(self.virtual_network, ResourceKind.VNET),
            ResourceIdentity(self.subnet, ResourceKind.SUBNET),
            ResourceIdentity(self.public_ip, ResourceKind.PUBLIC_IP),
            ResourceIdentity(self.network_interface, ResourceKind.NIC),
            ResourceIdentity(self.virtual_machine, ResourceKind.VM),
        ]


@dataclass(frozen=True)
class ResourceHandle:
    """Opaque id/name pair returned by the provider for one resource.

    ``raw`` keeps the provider record for dependent steps; it takes no part
    in equality so handles from two runs compare by identity only.
    """

    kind: ResourceKind
    name: str
    id: str | None
    resource_group: str
    raw: Any = field(default=None, repr=False, compare=False)

    @property
    def identity(self) -> ResourceIdentity:
        return ResourceIdentity(self.name, self.kind)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "name": self.name,
            "id": self.id,
            "resource_group": self.resource_group,
        }


@dataclass(frozen=True)
class IpConfigurationRef:
    """One IP configuration of a network interface."""

    name: str
    subnet_id: str | None
    public_ip_id: str | None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "subnet_id": self.subnet_id, "public_ip_id": self.public_ip_id}


@dataclass(frozen=True)
class NetworkInterfaceHandle:
    """Network interface metadata as reported by the provider."""

    name: str
    id: str | None
    resource_group: str
    ip_configurations: tuple[IpConfigurationRef, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "id": self.id,
            "resource_group": self.resource_group,
            "ip_configurations": [c.to_dict() for c in self.ip_configurations],
        }


@dataclass(frozen=True)
class VirtualMachineHandle:
    """Final product of a successful run."""

    name: str
    id: str | None
    resource_group: str
    location: str
    vm_size: str
    image: ImageReference
    network_interface: NetworkInterfaceHandle
    storage_account: ResourceHandle
    provisioning_state: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation, printed by the CLI."""
        return {
            "name": self.name,
            "id": self.id,
            "resource_group": self.resource_group,
            "location": self.location,
            "vm_size": self.vm_size,
            "provisioning_state": self.provisioning_state,
            "image": self.image.to_dict(),
            "network_interface": self.network_interface.to_dict(),
            "storage_account": self.storage_account.to_dict(),
        }


__all__ = [
    "AdminCredentials",
    "DEFAULT_LOCATION",
    "DEFAULT_VM_SIZE",
    "DesiredState",
    "ImageReference",
    "IpConfigurationRef",
    "LATEST_VERSION",
    "NetworkInterfaceHandle",
    "NetworkLayout",
    "ResourceHandle",
    "ResourceIdentity",
    "ResourceKind",
    "ResourceNames",
    "VirtualMachineHandle",
]
