"""KeyManager - orchestrates the API key lifecycle.

Composes service account provisioning, key generation, validation and
listing into the five lifecycle operations: create, validate, update,
remove and list. Each operation emits one audit event with its outcome and
duration. Domain errors pass through untouched; anything else is logged and
surfaced as an operation-specific internal error.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from key_manager.audit import AuditSink, get_audit_sink, mask_key
from key_manager.config import get_settings
from key_manager.errors import (
    ExpiryDatePastError,
    InternalError,
    InvalidExpiryDateError,
    InvalidKeyFormatError,
    KeyAlreadyDeletedError,
    KeyCreationError,
    KeyExpiredError,
    KeyInactiveError,
    KeyListingError,
    KeyManagerError,
    KeyNotFoundError,
    KeyRemovalError,
    KeyUpdateError,
    MissingKeyIdError,
    MissingNameError,
    MissingOwnerIdError,
    MissingUpdateFieldsError,
    ValidationServiceError,
)
from key_manager.managers.service_account import ServiceAccountManager
from key_manager.models.api_key import ApiKey, KeyStatus
from key_manager.services.key_generation import KeyGenerationService
from key_manager.services.key_query import KeyListQuery, KeyQueryService, Pagination
from key_manager.services.key_validation import KeyValidationService, ValidationReason
from key_manager.utils.datetime import parse_timestamp, utcnow

logger = structlog.get_logger()


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


# Marks an update field the caller did not send (distinct from None)
UNSET: Any = _Unset()


_FAILURE_ERRORS: dict[ValidationReason, type[KeyManagerError]] = {
    ValidationReason.INVALID_FORMAT: InvalidKeyFormatError,
    ValidationReason.KEY_NOT_FOUND: KeyNotFoundError,
    ValidationReason.KEY_INACTIVE: KeyInactiveError,
    ValidationReason.KEY_EXPIRED: KeyExpiredError,
}


# Projections


@dataclass(frozen=True, slots=True)
class CreatedKey:
    key_id: int
    raw_key: str
    owner_id: str
    client_id: str
    client_secret: str
    name: str
    description: str | None
    is_active: bool
    created_at: datetime
    expires_at: datetime | None
    status: KeyStatus


@dataclass(frozen=True, slots=True)
class ValidatedKey:
    key_id: int
    owner_id: str
    client_id: str
    expires_at: datetime | None
    status: KeyStatus


@dataclass(frozen=True, slots=True)
class UpdatedKey:
    key_id: int
    client_id: str
    name: str
    description: str | None
    is_active: bool
    expires_at: datetime | None
    status: KeyStatus
    updated_at: datetime


@dataclass(frozen=True, slots=True)
class RemovedKey:
    key_id: int
    client_id: str
    status: KeyStatus
    deleted_at: datetime
    deleted_by: str | None


@dataclass(frozen=True, slots=True)
class ListedKey:
    id: int
    client_id: str
    client_secret: str | None
    api_key: str
    name: str
    description: str | None
    created_at: datetime
    expires_at: datetime | None
    status: KeyStatus
    deleted_at: datetime | None
    deleted_by: str | None


@dataclass(frozen=True, slots=True)
class KeyListing:
    keys: list[ListedKey]
    pagination: Pagination


def parse_expiry(value: Any) -> datetime:
    """Parse a caller-supplied expiry and require it to be in the future.

    Raises:
        InvalidExpiryDateError: Not a datetime or ISO-8601 string
        ExpiryDatePastError: Not strictly after now
    """
    try:
        expires_at = parse_timestamp(value)
    except (TypeError, ValueError) as exc:
        raise InvalidExpiryDateError(details={"expires_at": str(value)}) from exc
    if expires_at <= utcnow():
        raise ExpiryDatePastError(details={"expires_at": expires_at.isoformat()})
    return expires_at


def parse_key_id(key_id: int | str | None) -> int:
    """Parse a key ID.

    Raises:
        MissingKeyIdError: Empty ID
        KeyNotFoundError: ID that cannot name any key
    """
    if key_id is None or (isinstance(key_id, str) and not key_id.strip()):
        raise MissingKeyIdError()
    if isinstance(key_id, bool):
        raise KeyNotFoundError(details={"key_id": key_id})
    if isinstance(key_id, int):
        return key_id
    try:
        return int(str(key_id).strip())
    except ValueError as exc:
        raise KeyNotFoundError(details={"key_id": key_id}) from exc


class KeyManager:
    """Manages the API key lifecycle."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        audit: AuditSink | None = None,
    ) -> None:
        self._db = db_session
        self._settings = get_settings()
        self._config = self._settings.keys
        self._audit = audit or get_audit_sink(self._settings.audit.enabled)
        self._log = logger.bind(manager="keys")

        # Collaborators
        self._account_mgr = ServiceAccountManager(db_session, self._config)
        self._generator = KeyGenerationService(db_session, self._config, self._audit)
        self._validator = KeyValidationService(db_session, self._config, self._audit)
        self._query = KeyQueryService(db_session, self._config)

    @contextmanager
    def _operation(
        self,
        name: str,
        wrap_error: type[InternalError],
        **context: Any,
    ) -> Iterator[dict[str, Any]]:
        """Time an operation, emit its audit event and map unexpected errors.

        The yielded dict collects extra fields for the success event.
        """
        started = time.perf_counter()
        fields: dict[str, Any] = {}

        def duration_ms() -> float:
            return round((time.perf_counter() - started) * 1000, 2)

        try:
            yield fields
        except KeyManagerError as exc:
            self._audit.emit(
                name,
                success=False,
                code=exc.code,
                duration_ms=duration_ms(),
                **context,
            )
            raise
        except Exception as exc:
            self._log.exception(
                f"{name}.failed",
                duration_ms=duration_ms(),
                error=str(exc),
                **context,
            )
            self._audit.emit(
                name,
                success=False,
                code=wrap_error.code,
                duration_ms=duration_ms(),
                error=str(exc),
                **context,
            )
            details = {"error": str(exc)} if self._settings.expose_error_details else None
            raise wrap_error(details=details) from exc

        self._audit.emit(name, success=True, duration_ms=duration_ms(), **context, **fields)

    async def create_api_key(
        self,
        owner_id: int | str,
        name: str,
        *,
        description: str | None = None,
        is_active: bool = True,
        expires_at: datetime | str | None = None,
    ) -> CreatedKey:
        """Create an API key, provisioning the owner's service account on first use.

        Args:
            owner_id: External owner reference
            name: Key display label
            description: Optional description
            is_active: Initial active flag
            expires_at: Expiry (datetime or ISO string); None uses the default

        Returns:
            The created key with raw_key and the account credentials

        Raises:
            ValidationError: Bad owner, name or expiry (before any I/O)
            ServiceAccountDeletedError: Owner's account was soft-deleted
            KeyGenerationExhaustedError: Unique key could not be generated
        """
        with self._operation(
            "api_key_create",
            KeyCreationError,
            owner_id=str(owner_id),
            key_name=name,
            has_expiry=expires_at is not None,
            is_active=is_active,
        ) as audit:
            if owner_id is None or not str(owner_id).strip():
                raise MissingOwnerIdError()
            if not isinstance(name, str) or not name.strip():
                raise MissingNameError()
            expiry = parse_expiry(expires_at) if expires_at is not None else None
            owner = str(owner_id).strip()

            account = await self._account_mgr.provision_or_reuse(owner, description)
            # Read before generation: a rollback there expires loaded rows
            client_id = account.client_id
            client_secret = account.client_secret

            result = await self._generator.generate_api_key(
                client_id,
                name,
                description=description,
                is_active=is_active,
                expires_at=expiry,
            )
            audit.update(client_id=client_id, key_id=result.key_id)

        return CreatedKey(
            key_id=result.key_id,
            raw_key=result.raw_key,
            owner_id=owner,
            client_id=client_id,
            client_secret=client_secret,
            name=name,
            description=result.description,
            is_active=is_active,
            created_at=result.created_at,
            expires_at=result.expires_at,
            status=result.status,
        )

    async def validate_key(
        self,
        client_id: str,
        client_secret: str,
        api_key: str,
    ) -> ValidatedKey:
        """Validate client credentials, then the API key.

        Raises:
            InvalidClientIdError / InvalidClientSecretError: Client not proven
            InvalidKeyFormatError: Empty key
            KeyNotFoundError: No active key matches
            KeyExpiredError: Key matched but has expired
        """
        with self._operation(
            "api_key_validate",
            ValidationServiceError,
            client_id=client_id,
            key_prefix=mask_key(api_key, self._config.masked_prefix_length),
        ) as audit:
            account = await self._validator.authenticate(client_id, client_secret)
            owner_id = account.owner_id

            outcome = await self._validator.validate_api_key(api_key, client_id=account.id)
            if not outcome.is_valid:
                error_cls = _FAILURE_ERRORS.get(outcome.reason, KeyNotFoundError)
                raise error_cls(
                    outcome.message,
                    details={
                        "api_key": "***masked***",
                        "validation_failed_reason": outcome.reason.value,
                    },
                )

            info = outcome.key_info
            audit.update(key_id=info.key_id, owner_id=owner_id)

        return ValidatedKey(
            key_id=info.key_id,
            owner_id=owner_id,
            client_id=info.client_id,
            expires_at=info.expires_at,
            status=info.status,
        )

    async def update_api_key(
        self,
        key_id: int | str,
        *,
        name: Any = UNSET,
        description: Any = UNSET,
        expires_at: Any = UNSET,
        is_active: Any = UNSET,
    ) -> UpdatedKey:
        """Update the mutable fields of a key.

        Only fields that are passed are changed. ``expires_at`` must be in the
        future when given; passing None explicitly is rejected.

        Raises:
            MissingKeyIdError: Empty key ID
            MissingUpdateFieldsError: No field passed
            InvalidExpiryDateError / ExpiryDatePastError: Bad expiry
            KeyNotFoundError: No such key
        """
        with self._operation("api_key_update", KeyUpdateError, key_id=key_id) as audit:
            parsed_id = parse_key_id(key_id)

            changes: dict[str, Any] = {}
            if name is not UNSET:
                if not name or not str(name).strip():
                    raise MissingNameError()
                changes["name"] = name
            if description is not UNSET:
                changes["description"] = description
            if expires_at is not UNSET:
                changes["expiry_date"] = parse_expiry(expires_at)
            if is_active is not UNSET and is_active is not None:
                changes["is_active"] = bool(is_active)
            if not changes:
                raise MissingUpdateFieldsError()

            key = await self._get_key(parsed_id)
            for field, value in changes.items():
                setattr(key, field, value)
            key.updated_by = self._config.service_actor
            key.updated_at = utcnow()

            await self._db.commit()
            await self._db.refresh(key)
            audit.update(client_id=key.client_id, updated_fields=sorted(changes))

        return UpdatedKey(
            key_id=key.id,
            client_id=key.client_id,
            name=key.name,
            description=key.description,
            is_active=key.is_active,
            expires_at=key.expiry_date,
            status=key.compute_status(),
            updated_at=key.updated_at,
        )

    async def remove_api_key(
        self,
        key_id: int | str,
        deleted_by: str | None = None,
    ) -> RemovedKey:
        """Soft-delete a key.

        Raises:
            MissingKeyIdError: Empty key ID
            KeyNotFoundError: No such key
            KeyAlreadyDeletedError: Key was already removed
        """
        actor = deleted_by or self._config.service_actor
        with self._operation(
            "api_key_remove",
            KeyRemovalError,
            key_id=key_id,
            deleted_by=actor,
        ) as audit:
            parsed_id = parse_key_id(key_id)
            key = await self._get_key(parsed_id)
            if key.is_deleted:
                raise KeyAlreadyDeletedError(
                    details={"key_id": key.id, "deleted_at": key.deleted_at.isoformat()}
                )

            now = utcnow()
            key.deleted_at = now
            key.deleted_by = actor
            key.updated_by = actor
            key.updated_at = now

            await self._db.commit()
            await self._db.refresh(key)
            audit.update(client_id=key.client_id)

        return RemovedKey(
            key_id=key.id,
            client_id=key.client_id,
            status=KeyStatus.DELETED,
            deleted_at=key.deleted_at,
            deleted_by=key.deleted_by,
        )

    async def list_api_keys(self, query: KeyListQuery | None = None) -> KeyListing:
        """List keys with filters, sorting and pagination.

        Each item carries the owning account's client_secret.
        """
        query = query or KeyListQuery()
        with self._operation(
            "api_key_list",
            KeyListingError,
            page=query.page,
            limit=query.limit,
            status=query.status,
            search=query.search,
        ) as audit:
            page = await self._query.list_keys(query)
            audit.update(
                total_keys=page.pagination.total,
                returned_keys=len(page.items),
            )

        keys = [
            ListedKey(
                id=item.key.id,
                client_id=item.key.client_id,
                client_secret=item.client_secret,
                api_key=item.key.api_key,
                name=item.key.name,
                description=item.key.description,
                created_at=item.key.created_at,
                expires_at=item.key.expiry_date,
                status=item.status,
                deleted_at=item.key.deleted_at,
                deleted_by=item.key.deleted_by,
            )
            for item in page.items
        ]
        return KeyListing(keys=keys, pagination=page.pagination)

    async def _get_key(self, key_id: int) -> ApiKey:
        result = await self._db.execute(select(ApiKey).where(ApiKey.id == key_id))
        key = result.scalars().first()
        if key is None:
            raise KeyNotFoundError(details={"key_id": key_id})
        return key
