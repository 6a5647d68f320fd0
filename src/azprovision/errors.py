"""Error taxonomy for provisioning runs.

Callers react to each type differently:
- ConfigurationError: fix the environment or desired state, nothing was called
- AuthenticationError: the service principal was rejected
- ProviderError: one step's remote call failed
- DependencyError: steps were skipped because an upstream step failed
- ProvisioningTimeout: the run exceeded its deadline

Nothing here is retried. Retry, if wanted, belongs to the caller.
"""

from __future__ import annotations

from azprovision.log_sanitizer import LogSanitizer


class ProvisioningError(Exception):
    """Base class for all provisioning failures."""


class ConfigurationError(ProvisioningError):
    """Raised when required settings are missing or invalid.

    Always raised before any remote call is attempted.
    """

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = list(missing or [])


class AuthenticationError(ProvisioningError):
    """Raised when the credential exchange with Azure AD fails."""


class GraphError(ProvisioningError):
    """Raised when a dependency graph is malformed (cycle, unknown step)."""


class ProviderError(ProvisioningError):
    """A single step's remote call failed.

    Attributes:
        step: Id of the step that failed
        status_code: HTTP status returned by the provider, if any
        error_code: Provider error code (e.g. "StorageAccountAlreadyTaken")
        provider_message: Sanitized provider message
    """

    def __init__(
        self,
        step: str,
        provider_message: str,
        status_code: int | None = None,
        error_code: str | None = None,
    ):
        self.step = step
        self.status_code = status_code
        self.error_code = error_code
        self.provider_message = LogSanitizer.sanitize(provider_message)
        super().__init__(self._format())

    def _format(self) -> str:
        details = []
        if self.status_code is not None:
            details.append(f"status={self.status_code}")
        if self.error_code:
            details.append(f"code={self.error_code}")
        suffix = f" ({', '.join(details)})" if details else ""
        return f"step '{self.step}' failed{suffix}: {self.provider_message}"

    @classmethod
    def from_exception(cls, step: str, exc: BaseException) -> ProviderError:
        """Build a ProviderError from an Azure SDK (or any other) exception.

        Reads ``status_code`` and ``error.code`` the way
        ``azure.core.exceptions.HttpResponseError`` exposes them.
        """
        status_code = getattr(exc, "status_code", None)
        error = getattr(exc, "error", None)
        error_code = getattr(error, "code", None) if error is not None else None
        message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
        return cls(
            step,
            message,
            status_code=status_code if isinstance(status_code, int) else None,
            error_code=error_code if isinstance(error_code, str) else None,
        )


class DependencyError(ProvisioningError):
    """Steps could not run because a dependency failed.

    Attributes:
        failed_step: Id of the first step that failed
        blocked_steps: Ids of steps that never ran because of it
        cause: The originating ProviderError
    """

    def __init__(self, cause: ProviderError, blocked_steps: list[str]):
        self.cause = cause
        self.failed_step = cause.step
        self.blocked_steps = list(blocked_steps)
        blocked = ", ".join(self.blocked_steps)
        super().__init__(f"{cause} (not executed: {blocked})")


class ProvisioningTimeout(ProvisioningError):
    """Raised when a run exceeds its overall deadline.

    Calls still running are left to finish in the background; their results
    are ignored and nothing is deleted.
    """

    def __init__(self, timeout: float, running_steps: list[str]):
        self.timeout = timeout
        self.running_steps = list(running_steps)
        running = ", ".join(self.running_steps) or "none"
        super().__init__(f"provisioning timed out after {timeout:.1f}s (in flight: {running})")


__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "DependencyError",
    "GraphError",
    "ProviderError",
    "ProvisioningError",
    "ProvisioningTimeout",
]
