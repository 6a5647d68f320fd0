"""Credential factory for Azure authentication.

Creates an Azure Identity SDK credential from ServicePrincipalSettings and,
by default, proves it works by requesting a management-plane token before any
resource call is made. A bad secret therefore surfaces as an
AuthenticationError at login, not as a 401 halfway through the graph.

Security:
- No token storage - delegates to Azure Identity SDK
- Client secret only from ServicePrincipalSettings (environment-sourced)
- Error messages sanitized before they are raised or logged
"""

import logging
from typing import Any

from azure.core.exceptions import AzureError, ClientAuthenticationError
from azure.identity import ClientSecretCredential

from azprovision.config import ServicePrincipalSettings
from azprovision.errors import AuthenticationError, ConfigurationError
from azprovision.log_sanitizer import LogSanitizer

logger = logging.getLogger(__name__)

MANAGEMENT_SCOPE = "https://management.azure.com/.default"


class CredentialFactory:
    """Factory for service principal credentials.

    Philosophy:
    - Delegate to the Azure SDK, don't reinvent
    - Fail fast on bad settings or rejected secrets
    """

    @staticmethod
    def create_credential(settings: ServicePrincipalSettings) -> ClientSecretCredential:
        """Create a ClientSecretCredential.

        Args:
            settings: Service principal settings

        Returns:
            ClientSecretCredential (not yet exchanged for a token)

        Raises:
            ConfigurationError: If settings are incomplete or malformed
        """
        settings.validate()
        try:
            return ClientSecretCredential(
                tenant_id=settings.tenant,
                client_id=settings.client_id,
                client_secret=settings.client_secret,
            )
        except ValueError as e:
            # azure-identity rejects malformed tenant ids at construction
            safe_error = LogSanitizer.sanitize_exception(e)
            raise ConfigurationError(f"Invalid service principal settings: {safe_error}") from e

    @staticmethod
    def verify(credential: Any) -> None:
        """Exchange the credential for a management token.

        Raises:
            AuthenticationError: If Azure AD rejects the credential
        """
        try:
            credential.get_token(MANAGEMENT_SCOPE)
        except ClientAuthenticationError as e:
            safe_error = LogSanitizer.create_safe_error_message(e, "Authentication failed")
            raise AuthenticationError(safe_error) from e
        except AzureError as e:
            safe_error = LogSanitizer.create_safe_error_message(e, "Token request failed")
            raise AuthenticationError(safe_error) from e

    @classmethod
    def authenticate(cls, settings: ServicePrincipalSettings, verify: bool = True) -> Any:
        """Create and optionally verify a credential.

        Args:
            settings: Service principal settings
            verify: Request a token now to prove the credential works

        Returns:
            Azure Identity credential object (TokenCredential)
        """
        credential = cls.create_credential(settings)
        if verify:
            cls.verify(credential)
            logger.info(f"Authenticated service principal {settings.client_id}")
        return credential
