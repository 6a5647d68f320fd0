"""azprovision command line interface.

Provisions one Azure VM with its resource group, storage account, virtual
network, public IP and network interface.

Exit codes:
    0  VM created (handle printed as JSON on stdout)
    1  Provisioning failed (authentication, provider or dependency error)
    2  Configuration missing or invalid; nothing was called
"""

import json
import logging

import click

from azprovision import __version__
from azprovision.config import ADMIN_PASSWORD_VAR, ADMIN_USERNAME_VAR, build_desired_state
from azprovision.errors import ConfigurationError, DependencyError, ProvisioningError
from azprovision.log_sanitizer import LogSanitizer
from azprovision.models import DEFAULT_LOCATION, DEFAULT_VM_SIZE
from azprovision.progress import ProgressReporter
from azprovision.provisioner import Provisioner

logger = logging.getLogger(__name__)


@click.command()
@click.option("--location", "-l", help=f"Azure region (default: {DEFAULT_LOCATION})", type=str)
@click.option("--size", "vm_size", help=f"VM size (default: {DEFAULT_VM_SIZE})", type=str)
@click.option(
    "--image",
    help="Image URN publisher:offer:sku[:version] (default: Canonical:UbuntuServer:16.04.0-LTS:latest)",
    type=str,
)
@click.option(
    "--admin-username", help=f"VM admin user name (or set {ADMIN_USERNAME_VAR})", type=str
)
@click.option(
    "--admin-password",
    help=f"VM admin password (prefer setting {ADMIN_PASSWORD_VAR})",
    type=str,
)
@click.option(
    "--ssh-key-file",
    help="SSH public key file for the admin user",
    type=click.Path(exists=True, dir_okay=False),
)
@click.option(
    "--config",
    "config_path",
    help="Desired state TOML file",
    type=click.Path(exists=True, dir_okay=False),
)
@click.option("--timeout", help="Overall deadline in seconds", type=click.FloatRange(min=1))
@click.option(
    "--max-workers", default=4, show_default=True, help="Concurrent remote calls", type=click.IntRange(min=1)
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress step progress output")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(__version__, prog_name="azprovision")
@click.pass_context
def main(
    ctx: click.Context,
    location: str | None,
    vm_size: str | None,
    image: str | None,
    admin_username: str | None,
    admin_password: str | None,
    ssh_key_file: str | None,
    config_path: str | None,
    timeout: float | None,
    max_workers: int,
    quiet: bool,
    verbose: bool,
) -> None:
    """Provision an Azure VM and everything it depends on.

    Service principal credentials are read from the environment:
    CLIENT_ID, DOMAIN, APPLICATION_SECRET and AZURE_SUBSCRIPTION_ID.

    \b
    Examples:
        azprovision --admin-username notadmin --ssh-key-file ~/.ssh/id_rsa.pub
        azprovision --config desired.toml --timeout 1800
        azprovision --image Canonical:UbuntuServer:16.04.0-LTS:latest --size Basic_A0
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s" if verbose else "%(message)s",
    )

    try:
        provisioner = Provisioner.from_environment(
            progress=ProgressReporter(quiet=quiet),
            max_workers=max_workers,
            timeout=timeout,
        )
        desired_state = build_desired_state(
            location=location,
            vm_size=vm_size,
            image=image,
            admin_username=admin_username,
            admin_password=admin_password,
            ssh_public_key_file=ssh_key_file,
            config_path=config_path,
        )
    except ConfigurationError as e:
        click.echo(f"Configuration error: {LogSanitizer.sanitize_exception(e)}", err=True)
        ctx.exit(2)

    try:
        vm = provisioner.run(desired_state)
    except DependencyError as e:
        click.echo(f"error creating VM: {LogSanitizer.sanitize_exception(e)}", err=True)
        click.echo(f"  failed step: {e.failed_step}", err=True)
        ctx.exit(1)
    except ConfigurationError as e:
        click.echo(f"Configuration error: {LogSanitizer.sanitize_exception(e)}", err=True)
        ctx.exit(2)
    except ProvisioningError as e:
        click.echo(f"error creating VM: {LogSanitizer.sanitize_exception(e)}", err=True)
        ctx.exit(1)

    click.echo(json.dumps(vm.to_dict(), indent=2))


if __name__ == "__main__":
    main()
