"""Key Manager error types.

Error codes are stable strings for programmatic handling. The category
base classes (ValidationError, UnauthorizedError, ...) describe how a caller
should react; the concrete classes pin the code and HTTP status.
"""

from __future__ import annotations

from typing import Any


class KeyManagerError(Exception):
    """Base error for all Key Manager exceptions."""

    code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.__class__.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Render the error as an API response body."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "request_id": request_id,
                "details": self.details,
            }
        }


# Categories


class ValidationError(KeyManagerError):
    """Request validation error (400). Raised before any store I/O."""

    code = "VALIDATION_ERROR"
    message = "Validation error"
    status_code = 400


class UnauthorizedError(KeyManagerError):
    """Authentication failed (401)."""

    code = "UNAUTHORIZED"
    message = "Authentication required"
    status_code = 401


class ForbiddenError(KeyManagerError):
    """Credential exists but may not be used (403)."""

    code = "FORBIDDEN"
    message = "Permission denied"
    status_code = 403


class NotFoundError(KeyManagerError):
    """Resource not found (404)."""

    code = "NOT_FOUND"
    message = "Resource not found"
    status_code = 404


class ConflictError(KeyManagerError):
    """Operation conflicts with the current state of the resource (409)."""

    code = "CONFLICT"
    message = "Conflict"
    status_code = 409


class InternalError(KeyManagerError):
    """Unexpected failure; detail suppressed outside development (500)."""


# Validation


class MissingOwnerIdError(ValidationError):
    code = "MISSING_OWNER_ID"
    message = "owner_id is required and must be non-empty"


class MissingNameError(ValidationError):
    code = "MISSING_NAME"
    message = "name is required and must be non-empty"


class MissingKeyIdError(ValidationError):
    code = "MISSING_KEY_ID"
    message = "Key ID is required"


class MissingUpdateFieldsError(ValidationError):
    code = "MISSING_UPDATE_FIELDS"
    message = (
        "At least one field (name, description, expires_at, or is_active) "
        "must be provided"
    )


class InvalidExpiryDateError(ValidationError):
    code = "INVALID_EXPIRY_DATE"
    message = "expires_at must be a valid ISO date string"


class ExpiryDatePastError(ValidationError):
    code = "EXPIRY_DATE_PAST"
    message = "expires_at must be in the future"


class InvalidClientReferenceError(ValidationError):
    code = "INVALID_CLIENT_REFERENCE"
    message = "Client ID is required and must be a non-empty string"


class InvalidKeyFormatError(ValidationError):
    code = "INVALID_FORMAT"
    message = "API key cannot be empty"


# Authentication / authorization


class InvalidClientIdError(UnauthorizedError):
    code = "INVALID_CLIENT_ID"
    message = "Invalid client credentials"


class InvalidClientSecretError(UnauthorizedError):
    code = "INVALID_CLIENT_SECRET"
    message = "Invalid client credentials"


class KeyExpiredError(UnauthorizedError):
    code = "KEY_EXPIRED"
    message = "API key has expired"


class KeyInactiveError(ForbiddenError):
    code = "KEY_INACTIVE"
    message = "API key is not active"


class ServiceAccountDeletedError(ForbiddenError):
    """The owner's service account was soft-deleted; it is never revived."""

    code = "SERVICE_ACCOUNT_DELETED"
    message = "Service account has been deleted"
    status_code = 400


# Not found / conflict


class KeyNotFoundError(NotFoundError):
    code = "KEY_NOT_FOUND"
    message = "API key not found"


class KeyAlreadyDeletedError(ConflictError):
    code = "KEY_ALREADY_DELETED"
    message = "API key already deleted"
    status_code = 400


# Generation


class KeyGenerationError(InternalError):
    """Store failure while persisting a new key."""

    code = "KEY_GENERATION_ERROR"
    message = "Failed to create key record"


class KeyGenerationExhaustedError(InternalError):
    """Every generation attempt collided with an existing key.

    Fatal for the request and never retried; operators should be alerted.
    """

    code = "KEY_GENERATION_EXHAUSTED"
    message = "Failed to generate a unique key"


# Operation-level wrappers for unexpected failures


class KeyCreationError(InternalError):
    code = "KEY_CREATION_ERROR"
    message = "Failed to create API key"


class ValidationServiceError(InternalError):
    code = "VALIDATION_SERVICE_ERROR"
    message = "Validation service error"


class KeyUpdateError(InternalError):
    code = "KEY_UPDATE_ERROR"
    message = "Failed to update API key"


class KeyRemovalError(InternalError):
    code = "KEY_REMOVAL_ERROR"
    message = "Failed to remove API key"


class KeyListingError(InternalError):
    code = "KEY_LISTING_ERROR"
    message = "Failed to list API keys"
