"""Client authentication and API key validation.

Validation is two-factor and ordered: the service account must be proven
with ``authenticate`` before ``validate_api_key`` reveals anything about a
key. Key validation reports a ``ValidationOutcome`` rather than raising, so
the caller decides how each failure is surfaced.
"""

from __future__ import annotations

import hmac
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from key_manager.audit import AuditSink, NullAuditSink, mask_key
from key_manager.config import KeyConfig
from key_manager.errors import InvalidClientIdError, InvalidClientSecretError
from key_manager.models.api_key import ApiKey, KeyStatus
from key_manager.models.service_account import ServiceAccount
from key_manager.utils.datetime import utcnow

logger = structlog.get_logger()


class ValidationReason(str, Enum):
    """Why a key passed or failed validation."""

    NO_EXPIRY = "NO_EXPIRY"
    NOT_EXPIRED = "NOT_EXPIRED"
    INVALID_FORMAT = "INVALID_FORMAT"
    KEY_NOT_FOUND = "KEY_NOT_FOUND"
    KEY_INACTIVE = "KEY_INACTIVE"
    KEY_EXPIRED = "KEY_EXPIRED"


@dataclass(frozen=True, slots=True)
class ExpirationCheck:
    is_valid: bool
    reason: ValidationReason
    message: str


@dataclass(frozen=True, slots=True)
class ValidatedKeyInfo:
    key_id: int
    client_id: str
    expires_at: datetime | None
    status: KeyStatus


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    """Result of validating a presented key."""

    is_valid: bool
    reason: ValidationReason
    message: str
    status_code: int
    key_info: ValidatedKeyInfo | None = None


def check_expiration(expires_at: datetime | None, now: datetime) -> ExpirationCheck:
    """Classify a key's expiry. Expiry equal to ``now`` counts as expired."""
    if expires_at is None:
        return ExpirationCheck(True, ValidationReason.NO_EXPIRY, "Key has no expiration date")
    if expires_at <= now:
        return ExpirationCheck(
            False,
            ValidationReason.KEY_EXPIRED,
            f"API key expired on {expires_at.isoformat()}",
        )
    return ExpirationCheck(True, ValidationReason.NOT_EXPIRED, "Key is within expiration date")


def secrets_match(presented: str, stored: str) -> bool:
    """Constant-time comparison of two credential strings."""
    return hmac.compare_digest(presented.encode(), stored.encode())


class KeyValidationService:
    """Authenticates service accounts and validates API keys."""

    def __init__(
        self,
        db_session: AsyncSession,
        config: KeyConfig,
        audit: AuditSink | None = None,
    ) -> None:
        self._db = db_session
        self._config = config
        self._audit = audit or NullAuditSink()
        self._log = logger.bind(service="key_validation")

    def _mask(self, raw_key: str | None) -> str:
        return mask_key(raw_key, self._config.masked_prefix_length)

    async def authenticate(self, client_id: str, client_secret: str) -> ServiceAccount:
        """Prove client identity.

        Raises:
            InvalidClientIdError: No live service account with this ID
            InvalidClientSecretError: Secret does not match
        """
        if not client_id:
            raise InvalidClientIdError()

        result = await self._db.execute(
            select(ServiceAccount).where(
                ServiceAccount.id == client_id,
                ServiceAccount.deleted_at.is_(None),
            )
        )
        account = result.scalars().first()
        if account is None:
            self._log.info("auth.failure", reason="INVALID_CLIENT_ID", client_id=client_id)
            raise InvalidClientIdError()

        if not client_secret or not secrets_match(client_secret, account.client_secret):
            self._log.info("auth.failure", reason="INVALID_CLIENT_SECRET", client_id=client_id)
            raise InvalidClientSecretError()

        return account

    async def validate_api_key(
        self,
        raw_key: str,
        client_id: str | None = None,
    ) -> ValidationOutcome:
        """Validate a presented key.

        Only active, non-deleted keys are candidates; when ``client_id`` is
        given the search is scoped to that service account.
        """
        started = time.perf_counter()
        masked = self._mask(raw_key)

        if not raw_key or not raw_key.strip():
            return self._fail(
                ValidationReason.INVALID_FORMAT,
                "API key cannot be empty",
                400,
                key_id=None,
                client_id=client_id,
                masked=masked,
            )

        query = select(ApiKey).where(
            ApiKey.is_active == True,  # noqa: E712
            ApiKey.deleted_at.is_(None),
        )
        if client_id:
            query = query.where(ApiKey.client_id == client_id)

        result = await self._db.execute(query)
        record: ApiKey | None = None
        for candidate in result.scalars().all():
            if secrets_match(raw_key, candidate.api_key):
                record = candidate
                break

        if record is None:
            return self._fail(
                ValidationReason.KEY_NOT_FOUND,
                "Invalid API key or client credentials",
                404,
                key_id=None,
                client_id=client_id,
                masked=masked,
            )

        if not record.is_active:
            return self._fail(
                ValidationReason.KEY_INACTIVE,
                "API key is not active",
                403,
                key_id=record.id,
                client_id=client_id,
                masked=masked,
            )

        now = utcnow()
        expiration = check_expiration(record.expiry_date, now)
        if not expiration.is_valid:
            return self._fail(
                expiration.reason,
                expiration.message,
                401,
                key_id=record.id,
                client_id=client_id,
                masked=masked,
                expires_at=record.expiry_date.isoformat() if record.expiry_date else None,
            )

        self._audit.emit(
            "key_validation",
            key_id=record.id,
            client_id=client_id,
            result="success",
            reason=expiration.reason.value,
            key_prefix=masked,
            validation_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return ValidationOutcome(
            is_valid=True,
            reason=expiration.reason,
            message="API key validation successful",
            status_code=200,
            key_info=ValidatedKeyInfo(
                key_id=record.id,
                client_id=record.client_id,
                expires_at=record.expiry_date,
                status=record.compute_status(now=now),
            ),
        )

    def _fail(
        self,
        reason: ValidationReason,
        message: str,
        status_code: int,
        *,
        key_id: int | None,
        client_id: str | None,
        masked: str,
        **extra,
    ) -> ValidationOutcome:
        self._audit.emit(
            "key_validation",
            key_id=key_id if key_id is not None else "unknown",
            client_id=client_id,
            result="failure",
            reason=reason.value,
            key_prefix=masked,
            **extra,
        )
        return ValidationOutcome(
            is_valid=False,
            reason=reason,
            message=message,
            status_code=status_code,
        )
