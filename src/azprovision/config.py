"""Configuration loading.

Two inputs are assembled once at startup and passed into the Provisioner;
nothing reads the process environment mid-run.

ServicePrincipalSettings
    From environment variables only: CLIENT_ID, DOMAIN, APPLICATION_SECRET,
    AZURE_SUBSCRIPTION_ID. Secrets are never read from files.

DesiredState
    From explicit values (CLI options), an optional TOML file, then
    environment (VM_ADMIN_USERNAME, VM_ADMIN_PASSWORD), then defaults.
    The admin password comes from the environment or an explicit value only.

Example TOML file:

    location = "eastus"
    vm_size = "Basic_A0"
    image = "Canonical:UbuntuServer:16.04.0-LTS:latest"

    [admin]
    username = "notadmin"
    ssh_public_key_file = "~/.ssh/id_rsa.pub"
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomli

from azprovision.errors import ConfigurationError
from azprovision.models import (
    DEFAULT_LOCATION,
    DEFAULT_VM_SIZE,
    AdminCredentials,
    DesiredState,
    ImageReference,
)

logger = logging.getLogger(__name__)

CLIENT_ID_VAR = "CLIENT_ID"
DOMAIN_VAR = "DOMAIN"
SECRET_VAR = "APPLICATION_SECRET"  # noqa: S105 - variable name, not a secret
SUBSCRIPTION_VAR = "AZURE_SUBSCRIPTION_ID"
REQUIRED_IDENTITY_VARS = (CLIENT_ID_VAR, DOMAIN_VAR, SECRET_VAR, SUBSCRIPTION_VAR)

ADMIN_USERNAME_VAR = "VM_ADMIN_USERNAME"
ADMIN_PASSWORD_VAR = "VM_ADMIN_PASSWORD"  # noqa: S105 - variable name, not a secret


@dataclass(frozen=True)
class ServicePrincipalSettings:
    """Service principal identity for a run.

    Security:
    - client_secret is excluded from repr
    - Frozen to prevent mutation
    """

    client_id: str
    tenant: str
    client_secret: str = field(repr=False)
    subscription_id: str

    def missing_fields(self) -> list[str]:
        """Environment variable names whose values are empty."""
        values = (self.client_id, self.tenant, self.client_secret, self.subscription_id)
        return [name for name, value in zip(REQUIRED_IDENTITY_VARS, values) if not value]

    def validate(self) -> None:
        """Raise ConfigurationError if any identity value is empty."""
        missing = self.missing_fields()
        if missing:
            raise ConfigurationError(
                f"please set/export the following environment variables: {', '.join(missing)}",
                missing=missing,
            )

    def to_dict_masked(self) -> dict[str, Any]:
        """Settings safe for logging."""
        return {
            "client_id": self.client_id,
            "tenant": self.tenant,
            "client_secret": "****" if self.client_secret else "",
            "subscription_id": self.subscription_id,
        }


def load_service_principal(environ: Mapping[str, str] | None = None) -> ServicePrincipalSettings:
    """Read and validate service principal settings from the environment.

    Args:
        environ: Mapping to read from (default: os.environ)

    Raises:
        ConfigurationError: Listing every missing variable
    """
    env = os.environ if environ is None else environ
    settings = ServicePrincipalSettings(
        client_id=env.get(CLIENT_ID_VAR, "").strip(),
        tenant=env.get(DOMAIN_VAR, "").strip(),
        client_secret=env.get(SECRET_VAR, ""),
        subscription_id=env.get(SUBSCRIPTION_VAR, "").strip(),
    )
    settings.validate()
    return settings


def load_desired_state_file(path: str | Path) -> dict[str, Any]:
    """Load a desired-state TOML file.

    Raises:
        ConfigurationError: If the file is missing, unreadable or holds a secret
    """
    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise ConfigurationError(f"desired state file not found: {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomli.load(f)
    except (OSError, tomli.TOMLDecodeError) as e:
        raise ConfigurationError(f"Failed to load desired state file: {e}") from e

    admin = data.get("admin", {})
    if not isinstance(admin, Mapping):
        raise ConfigurationError(f"[admin] must be a table in {config_path}")
    if "password" in admin:
        raise ConfigurationError(
            f"admin password must not be stored in {config_path}; set {ADMIN_PASSWORD_VAR}"
        )

    logger.debug(f"Loaded desired state from: {config_path}")
    return data


def _read_ssh_key(path: str | Path) -> str:
    if not isinstance(path, (str, Path)):
        raise ConfigurationError(f"ssh_public_key_file must be a path, got {type(path).__name__}")
    key_path = Path(path).expanduser()
    try:
        return key_path.read_text().strip()
    except OSError as e:
        raise ConfigurationError(f"cannot read SSH public key {key_path}: {e}") from e


def _image_from_config(value: Any) -> ImageReference:
    if isinstance(value, str):
        return ImageReference.from_urn(value)
    if isinstance(value, Mapping):
        return ImageReference(**value)
    raise ValueError(f"unsupported image value: {value!r}")


def build_desired_state(
    *,
    location: str | None = None,
    vm_size: str | None = None,
    image: str | ImageReference | None = None,
    admin_username: str | None = None,
    admin_password: str | None = None,
    ssh_public_key: str | None = None,
    ssh_public_key_file: str | Path | None = None,
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> DesiredState:
    """Assemble the DesiredState for a run.

    Precedence: explicit arguments, then the TOML file, then the
    environment, then defaults.

    Raises:
        ConfigurationError: If a required value is missing or invalid
    """
    env = os.environ if environ is None else environ
    data = load_desired_state_file(config_path) if config_path else {}
    admin_data = data.get("admin", {})

    username = admin_username or admin_data.get("username") or env.get(ADMIN_USERNAME_VAR)
    password = admin_password or env.get(ADMIN_PASSWORD_VAR) or None

    key_file = ssh_public_key_file or admin_data.get("ssh_public_key_file")
    if ssh_public_key is None and key_file:
        ssh_public_key = _read_ssh_key(key_file)

    missing = []
    if not username:
        missing.append(ADMIN_USERNAME_VAR)
    if not password and not ssh_public_key:
        missing.append(f"{ADMIN_PASSWORD_VAR} or an SSH public key")
    if missing:
        raise ConfigurationError(
            f"missing VM admin credentials: {', '.join(missing)}", missing=missing
        )

    try:
        image_ref = image if isinstance(image, ImageReference) else None
        if image_ref is None:
            image_value = image or data.get("image")
            image_ref = _image_from_config(image_value) if image_value else ImageReference()

        return DesiredState(
            admin=AdminCredentials(
                username=username, password=password, ssh_public_key=ssh_public_key
            ),
            location=location or data.get("location") or DEFAULT_LOCATION,
            image=image_ref,
            vm_size=vm_size or data.get("vm_size") or DEFAULT_VM_SIZE,
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"invalid desired state: {e}") from e


__all__ = [
    "ADMIN_PASSWORD_VAR",
    "ADMIN_USERNAME_VAR",
    "REQUIRED_IDENTITY_VARS",
    "ServicePrincipalSettings",
    "build_desired_state",
    "load_desired_state_file",
    "load_service_principal",
]
