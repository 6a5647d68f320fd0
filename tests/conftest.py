"""
Shared test fixtures for azprovision tests.

This module provides common fixtures used across all test types:
- Service principal settings and identity environment
- An in-memory Azure subscription (FakeAzure)
- Desired state for the reference Ubuntu VM
- A provisioner factory wired to the fake with deterministic names
"""

from unittest.mock import Mock

import pytest
from mocks.azure_mock import FakeAzure

from azprovision.config import ServicePrincipalSettings
from azprovision.models import AdminCredentials, DesiredState, ImageReference
from azprovision.naming import FixedSuffixNameGenerator
from azprovision.progress import ProgressReporter
from azprovision.provisioner import Provisioner

# ============================================================================
# IDENTITY FIXTURES
# ============================================================================


@pytest.fixture
def identity_env():
    """Complete service principal environment."""
    return {
        "CLIENT_ID": "12345678-1234-1234-1234-123456789012",
        "DOMAIN": "contoso.onmicrosoft.com",
        "APPLICATION_SECRET": "fake-secret-value",  # noqa: S105 - test fixture
        "AZURE_SUBSCRIPTION_ID": "87654321-4321-4321-4321-210987654321",
    }


@pytest.fixture
def sp_settings(identity_env):
    """Valid ServicePrincipalSettings."""
    return ServicePrincipalSettings(
        client_id=identity_env["CLIENT_ID"],
        tenant=identity_env["DOMAIN"],
        client_secret=identity_env["APPLICATION_SECRET"],
        subscription_id=identity_env["AZURE_SUBSCRIPTION_ID"],
    )


# ============================================================================
# AZURE FIXTURES
# ============================================================================


@pytest.fixture
def fake_azure():
    """Empty in-memory subscription."""
    return FakeAzure()


@pytest.fixture
def authenticator():
    """Authenticator that returns a fake credential without calling Azure AD."""
    return Mock(return_value=Mock(name="credential"))


# ============================================================================
# DESIRED STATE FIXTURES
# ============================================================================


@pytest.fixture
def desired_state():
    """Reference Ubuntu VM: eastus, Canonical UbuntuServer 16.04.0-LTS latest, Basic_A0."""
    return DesiredState(
        admin=AdminCredentials(username="notadmin", ssh_public_key="ssh-rsa AAAAB3NzaC1yc2E test"),
        location="eastus",
        image=ImageReference("Canonical", "UbuntuServer", "16.04.0-LTS", "latest"),
        vm_size="Basic_A0",
    )


# ============================================================================
# PROVISIONER FIXTURES
# ============================================================================


@pytest.fixture
def make_provisioner(sp_settings, fake_azure, authenticator):
    """Factory for provisioners wired to the fake subscription.

    Names are deterministic (suffix "1") unless a name_generator is passed.
    """

    def factory(**kwargs):
        kwargs.setdefault("name_generator", FixedSuffixNameGenerator("1"))
        kwargs.setdefault("clients_factory", lambda credential, subscription_id: fake_azure.clients())
        kwargs.setdefault("authenticator", authenticator)
        kwargs.setdefault("progress", ProgressReporter(quiet=True))
        settings = kwargs.pop("settings", sp_settings)
        return Provisioner(settings, **kwargs)

    return factory
