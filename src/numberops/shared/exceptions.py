"""
Shared exception definitions.

Every error a caller can observe derives from ``AppException``. Besides the
message and a stable ``code``, each error records the lifecycle ``step`` that
failed and whether local or provider state was mutated before the failure, so
callers can decide whether a retry is safe.
"""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    code: str = "APP_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        step: str | None = None,
        state_mutated: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        self.step = step
        self.state_mutated = state_mutated

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "step": self.step,
            "state_mutated": self.state_mutated,
            "details": self.details,
        }


class NotFoundError(AppException):
    """Resource not found error."""

    code = "NOT_FOUND"
    status_code = 404


class ValidationError(AppException):
    """Validation error."""

    code = "VALIDATION_ERROR"
    status_code = 400


# ---------------------------------------------------------------------------
# Provider errors (raised by adapters, never carry raw provider exceptions)
# ---------------------------------------------------------------------------


class ProviderError(AppException):
    """Base class for errors reported by an external provider."""

    code = "PROVIDER_ERROR"
    status_code = 502


class CredentialsMissingError(ProviderError):
    code = "CREDENTIALS_MISSING"
    status_code = 400


class CredentialsInvalidError(ProviderError):
    code = "CREDENTIALS_INVALID"
    status_code = 400


class ProviderConnectionError(ProviderError):
    code = "CONNECTION_ERROR"
    status_code = 502


class ProviderTimeoutError(ProviderError):
    code = "PROVIDER_TIMEOUT"
    status_code = 504


class CountryUnsupportedError(ProviderError):
    """The country needs a manual (exclusive number) request."""

    code = "COUNTRY_UNSUPPORTED"
    status_code = 422


class NumberUnavailableError(ProviderError):
    code = "NUMBER_UNAVAILABLE"
    status_code = 409


class NumberInvalidError(ProviderError):
    code = "NUMBER_INVALID"
    status_code = 422


class RoutingUnsupportedError(ProviderError):
    code = "ROUTING_UNSUPPORTED"
    status_code = 422


class InternationalPermissionDeniedError(ProviderError):
    code = "INTERNATIONAL_PERMISSION_DENIED"
    status_code = 403


class NumberBlockedError(ProviderError):
    code = "NUMBER_BLOCKED"
    status_code = 403


class ProviderRequestError(ProviderError):
    """Provider rejected a request with a code that has no dedicated kind."""

    code = "PROVIDER_REQUEST_FAILED"
    status_code = 502


class RegistrationFailedError(ProviderError):
    """Voice-AI registration failed. Non-fatal during purchase."""

    code = "REGISTRATION_FAILED"
    status_code = 502


class DeregistrationFailedError(ProviderError):
    """Voice-AI deregistration failed. Non-fatal during release."""

    code = "DEREGISTRATION_FAILED"
    status_code = 502


# ---------------------------------------------------------------------------
# Lifecycle errors
# ---------------------------------------------------------------------------


class PurchaseInProgressError(AppException):
    code = "PURCHASE_IN_PROGRESS"
    status_code = 409


class ConfirmationMismatchError(ValidationError):
    code = "CONFIRMATION_MISMATCH"


class NumberAssignedError(AppException):
    code = "NUMBER_ASSIGNED"
    status_code = 409


class NumberAlreadyOwnedError(AppException):
    code = "NUMBER_ALREADY_OWNED"
    status_code = 409


class OwnedNumberNotFoundError(NotFoundError):
    code = "OWNED_NUMBER_NOT_FOUND"


class InvalidStatusTransitionError(AppException):
    code = "INVALID_STATUS_TRANSITION"
    status_code = 409


class PersistenceError(AppException):
    code = "PERSISTENCE_ERROR"
    status_code = 500


__all__ = [
    "AppException",
    "ConfirmationMismatchError",
    "CountryUnsupportedError",
    "CredentialsInvalidError",
    "CredentialsMissingError",
    "DeregistrationFailedError",
    "InternationalPermissionDeniedError",
    "InvalidStatusTransitionError",
    "NotFoundError",
    "NumberAlreadyOwnedError",
    "NumberAssignedError",
    "NumberBlockedError",
    "NumberInvalidError",
    "NumberUnavailableError",
    "OwnedNumberNotFoundError",
    "PersistenceError",
    "ProviderConnectionError",
    "ProviderError",
    "ProviderRequestError",
    "ProviderTimeoutError",
    "PurchaseInProgressError",
    "RegistrationFailedError",
    "RoutingUnsupportedError",
    "ValidationError",
]
