"""API key generation.

Mints base64 tokens from ``secrets`` and guarantees uniqueness with a
bounded collision-checked retry. The pre-insert lookup is backed by the
unique constraint on ``api_keys.api_key``: a constraint violation on insert
is treated as one more collision, which closes the check-then-insert race
between concurrent requests.
"""

from __future__ import annotations

import base64
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from key_manager.audit import AuditSink, NullAuditSink
from key_manager.config import KeyConfig
from key_manager.errors import (
    ExpiryDatePastError,
    InvalidClientReferenceError,
    KeyGenerationError,
    KeyGenerationExhaustedError,
)
from key_manager.models.api_key import ApiKey, KeyStatus
from key_manager.utils.datetime import to_naive_utc, utcnow

logger = structlog.get_logger()

GENERATOR_ACTOR = "key-generation-service"


@dataclass(frozen=True, slots=True)
class KeyGenerationResult:
    """A freshly minted key. ``raw_key`` is handed out exactly once."""

    key_id: int
    raw_key: str
    client_id: str
    description: str | None
    created_at: datetime
    expires_at: datetime | None
    status: KeyStatus


def generate_token(entropy_bytes: int = 32) -> str:
    """Draw ``entropy_bytes`` secure random bytes and base64 encode them."""
    return base64.b64encode(secrets.token_bytes(entropy_bytes)).decode("ascii")


class KeyGenerationService:
    """Generates unique API keys and persists them."""

    def __init__(
        self,
        db_session: AsyncSession,
        config: KeyConfig,
        audit: AuditSink | None = None,
    ) -> None:
        self._db = db_session
        self._config = config
        self._audit = audit or NullAuditSink()
        self._log = logger.bind(service="key_generation")

    def generate_raw_key(self) -> str:
        return generate_token(self._config.entropy_bytes)

    async def key_exists(self, raw_key: str) -> bool:
        """Check whether any row, soft-deleted or not, holds this token."""
        try:
            result = await self._db.execute(
                select(ApiKey.id).where(ApiKey.api_key == raw_key).limit(1)
            )
        except SQLAlchemyError as exc:
            self._log.warning("key_generation.collision_check_failed", error=str(exc))
            raise KeyGenerationError("Collision check failed") from exc
        return result.first() is not None

    def validate_generation_input(
        self,
        client_id: str,
        expires_at: datetime | None,
    ) -> datetime | None:
        """Validate inputs before any I/O.

        Returns:
            ``expires_at`` normalized to naive UTC (or None)

        Raises:
            InvalidClientReferenceError: If client_id is empty or blank
            ExpiryDatePastError: If expires_at is not strictly in the future
        """
        if not isinstance(client_id, str) or not client_id.strip():
            raise InvalidClientReferenceError()

        if expires_at is None:
            return None

        expires_at = to_naive_utc(expires_at)
        if expires_at <= utcnow():
            raise ExpiryDatePastError(details={"expires_at": expires_at.isoformat()})
        return expires_at

    async def generate_api_key(
        self,
        client_id: str,
        name: str,
        *,
        description: str | None = None,
        is_active: bool = True,
        expires_at: datetime | None = None,
    ) -> KeyGenerationResult:
        """Generate and persist a unique API key.

        Args:
            client_id: Owning service account ID
            name: Display label
            description: Optional description (defaulted when empty)
            is_active: Initial active flag
            expires_at: Expiry; None applies the configured default

        Returns:
            The generated key, including the raw token

        Raises:
            InvalidClientReferenceError: Blank client_id
            ExpiryDatePastError: expires_at not in the future
            KeyGenerationExhaustedError: Every attempt collided
            KeyGenerationError: Store failure
        """
        started = time.perf_counter()
        expires_at = self.validate_generation_input(client_id, expires_at)
        max_attempts = self._config.max_generation_attempts

        for attempt in range(1, max_attempts + 1):
            raw_key = self.generate_raw_key()

            if await self.key_exists(raw_key):
                self._record_collision(client_id, attempt, detected_by="lookup")
                continue

            try:
                record = await self._insert(
                    raw_key=raw_key,
                    client_id=client_id,
                    name=name,
                    description=description,
                    is_active=is_active,
                    expires_at=expires_at,
                )
            except KeyGenerationError as exc:
                self._audit.emit(
                    "key_generation.attempt",
                    operation_type="create",
                    client_id=client_id,
                    attempt=attempt,
                    outcome="error",
                    error=exc.message,
                )
                raise

            if record is None:
                # A concurrent insert claimed the token after our lookup
                self._record_collision(client_id, attempt, detected_by="constraint")
                continue

            self._audit.emit(
                "key_generation.attempt",
                operation_type="create",
                key_id=record.id,
                client_id=client_id,
                attempt=attempt,
                outcome="success",
            )
            self._log.info(
                "key_generation.success",
                key_id=record.id,
                client_id=client_id,
                attempt=attempt,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            return KeyGenerationResult(
                key_id=record.id,
                raw_key=raw_key,
                client_id=record.client_id,
                description=record.description,
                created_at=record.created_at,
                expires_at=record.expiry_date,
                status=record.compute_status(),
            )

        self._audit.emit(
            "key_generation.exhausted",
            operation_type="create",
            client_id=client_id,
            attempt=max_attempts,
            outcome="exhausted",
        )
        self._log.error(
            "key_generation.exhausted",
            client_id=client_id,
            attempts=max_attempts,
        )
        raise KeyGenerationExhaustedError(
            f"Failed to generate unique key after {max_attempts} attempts",
            details={"attempts": max_attempts},
        )

    def _record_collision(self, client_id: str, attempt: int, *, detected_by: str) -> None:
        self._audit.emit(
            "key_generation.attempt",
            operation_type="create",
            client_id=client_id,
            attempt=attempt,
            outcome="collision",
            detected_by=detected_by,
        )
        self._log.info(
            "key_generation.collision",
            client_id=client_id,
            attempt=attempt,
            detected_by=detected_by,
        )

    async def _insert(
        self,
        *,
        raw_key: str,
        client_id: str,
        name: str,
        description: str | None,
        is_active: bool,
        expires_at: datetime | None,
    ) -> ApiKey | None:
        """Insert the key row.

        Returns:
            The stored row, or None if the token was taken concurrently
        """
        now = utcnow()
        record = ApiKey(
            client_id=client_id,
            api_key=raw_key,
            name=name,
            description=description or f"Generated API key for client {client_id}",
            is_active=is_active,
            expiry_date=expires_at or now + timedelta(days=self._config.default_expiry_days),
            created_at=now,
            created_by=GENERATOR_ACTOR,
            updated_at=now,
        )
        self._db.add(record)
        try:
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            if await self.key_exists(raw_key):
                return None
            self._log.warning("key_generation.insert_failed", error=str(exc.orig))
            raise KeyGenerationError() from exc
        except SQLAlchemyError as exc:
            await self._db.rollback()
            self._log.warning("key_generation.insert_failed", error=str(exc))
            raise KeyGenerationError() from exc

        await self._db.refresh(record)
        return record
