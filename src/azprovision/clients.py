"""Azure management SDK clients used by a run.

A run needs four sub-APIs: resource groups, storage, network and compute.
They are bundled in AzureClients so step functions receive one object and
tests can substitute an in-memory fake with the same attribute layout.
"""

from dataclasses import dataclass
from typing import Any, Protocol

from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.network import NetworkManagementClient
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.storage import StorageManagementClient


@dataclass(frozen=True)
class AzureClients:
    """Management clients for one subscription."""

    resource: Any
    storage: Any
    network: Any
    compute: Any


class ClientsFactory(Protocol):
    """Builds AzureClients from a credential and subscription id."""

    def __call__(self, credential: Any, subscription_id: str) -> AzureClients:
        """Return clients bound to ``subscription_id``."""


def create_clients(credential: Any, subscription_id: str) -> AzureClients:
    """Create the four management clients for a subscription."""
    return AzureClients(
        resource=ResourceManagementClient(credential, subscription_id),
        storage=StorageManagementClient(credential, subscription_id),
        network=NetworkManagementClient(credential, subscription_id),
        compute=ComputeManagementClient(credential, subscription_id),
    )
