"""Exception types for argo-ephemeral.

Exception Hierarchy:
    EphemeralError (base)
    ├── ProvisioningError - a secret/configmap reference could not be applied
    ├── InvalidQueryError - request rejected before any network call
    └── ArgoCDError - Argo CD API failures
        ├── ArgoCDUnauthorizedError - session token rejected (401)
        ├── ArgoCDAuthenticationError - login against /api/v1/session failed
        └── ApplicationNotFoundError - application does not exist (404)

Kubernetes API failures are not wrapped: they surface as
``kubernetes.client.exceptions.ApiException``.
"""

from typing import Optional


class EphemeralError(Exception):
    """Base exception for all argo-ephemeral errors."""


class ProvisioningError(EphemeralError):
    """A secret or configmap reference could not be provisioned.

    Attributes:
        kind: Resource kind ("Secret" or "ConfigMap").
        reference: Name of the failing reference.
        reason: Why it failed.
    """

    def __init__(self, kind: str, reference: str, reason: str) -> None:
        self.kind = kind
        self.reference = reference
        self.reason = reason
        super().__init__(f"failed to provision {kind} {reference}: {reason}")


class InvalidQueryError(EphemeralError, ValueError):
    """Request parameters are incomplete; nothing was sent."""


class ArgoCDError(EphemeralError):
    """Argo CD API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ArgoCDUnauthorizedError(ArgoCDError):
    """Argo CD rejected the session token."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=401)


class ArgoCDAuthenticationError(ArgoCDError):
    """Login against the Argo CD session endpoint failed."""


class ApplicationNotFoundError(ArgoCDError):
    """The requested Argo CD application does not exist."""

    def __init__(self, name: Optional[str], detail: str = "") -> None:
        self.name = name
        message = f"application {name} not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, status_code=404)
