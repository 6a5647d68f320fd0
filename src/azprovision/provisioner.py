"""VM provisioner.

Ties the pieces of a run together:

1. Validate service principal settings (ConfigurationError, no remote call)
2. Authenticate (AuthenticationError)
3. Generate every resource name for the run
4. Build the dependency graph and execute it
5. Return the VirtualMachineHandle or raise the run's error

Public API:
    Provisioner: Main orchestrator
"""

import logging
from collections.abc import Callable
from typing import Any

from azprovision.clients import AzureClients, ClientsFactory, create_clients
from azprovision.config import ServicePrincipalSettings, load_service_principal
from azprovision.credential_factory import CredentialFactory
from azprovision.executor import ExecutionReport, GraphExecutor
from azprovision.models import DesiredState, ResourceNames, VirtualMachineHandle
from azprovision.naming import NameGenerator, RandomSuffixNameGenerator, generate_resource_names
from azprovision.progress import ProgressReporter
from azprovision.steps import VIRTUAL_MACHINE, StepContext, build_provisioning_graph

logger = logging.getLogger(__name__)

Authenticator = Callable[[ServicePrincipalSettings], Any]


class Provisioner:
    """Provision a VM and its network/storage dependencies.

    Example:
        provisioner = Provisioner.from_environment()
        vm = provisioner.run(desired_state)
        print(vm.to_dict())

    Runs are independent: each generates its own names unless a deterministic
    name generator is injected, in which case a second run targets the same
    resources and converges on them (create-or-update).
    """

    def __init__(
        self,
        settings: ServicePrincipalSettings,
        name_generator: NameGenerator | None = None,
        clients_factory: ClientsFactory = create_clients,
        authenticator: Authenticator | None = None,
        progress: ProgressReporter | None = None,
        max_workers: int = 4,
        timeout: float | None = None,
    ):
        """Initialize provisioner.

        Args:
            settings: Service principal settings (validated at run start)
            name_generator: Resource name generator (default: random suffix)
            clients_factory: Builds management clients from a credential
            authenticator: Returns a verified credential for the settings
            progress: Reporter for step announcements
            max_workers: Maximum concurrent remote calls
            timeout: Overall run deadline in seconds

        Raises:
            ValueError: If max_workers or timeout is not positive
        """
        self.settings = settings
        self.name_generator = name_generator or RandomSuffixNameGenerator()
        self.clients_factory = clients_factory
        self.authenticator = authenticator or CredentialFactory.authenticate
        self.progress = progress or ProgressReporter()
        self.executor = GraphExecutor(max_workers=max_workers, timeout=timeout, progress=self.progress)
        self.last_report: ExecutionReport | None = None
        self.last_names: ResourceNames | None = None

    @classmethod
    def from_environment(cls, environ=None, **kwargs) -> "Provisioner":
        """Build a provisioner from CLIENT_ID, DOMAIN, APPLICATION_SECRET, AZURE_SUBSCRIPTION_ID.

        Raises:
            ConfigurationError: If any variable is missing
        """
        return cls(load_service_principal(environ), **kwargs)

    def connect(self) -> AzureClients:
        """Validate settings, authenticate and build management clients."""
        self.settings.validate()
        logger.debug(f"Service principal settings: {self.settings.to_dict_masked()}")
        credential = self.authenticator(self.settings)
        return self.clients_factory(credential, self.settings.subscription_id)

    def run(self, desired_state: DesiredState) -> VirtualMachineHandle:
        """Execute a full provisioning run.

        Args:
            desired_state: Immutable description of the target VM

        Returns:
            VirtualMachineHandle of the created (or converged) VM

        Raises:
            ConfigurationError: Settings incomplete; nothing was called
            AuthenticationError: Credential rejected
            DependencyError: A step failed and left dependent steps unexecuted
            ProviderError: The final step failed
            ProvisioningTimeout: The run deadline passed
        """
        clients = self.connect()

        names = generate_resource_names(self.name_generator)
        self.last_names = names
        logger.info(
            f"Provisioning VM {names.virtual_machine} in resource group "
            f"{names.resource_group} ({desired_state.location})"
        )
        logger.debug(
            "Resource names: " + ", ".join(f"{i.kind}={i.name}" for i in names.identities())
        )

        context = StepContext(desired_state=desired_state, names=names, clients=clients)
        graph = build_provisioning_graph(context)

        report = self.executor.execute(graph)
        self.last_report = report
        report.raise_for_failure()

        vm: VirtualMachineHandle = report.output(VIRTUAL_MACHINE)
        logger.info(f"VM creation successful: {vm.name} ({vm.id})")
        return vm


__all__ = ["Provisioner"]
