"""ServiceAccountManager - provisions and looks up service accounts.

An owner gets exactly one live service account, created on first use. A
soft-deleted account blocks its owner for good: it is never revived and
never replaced.
"""

from __future__ import annotations

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from key_manager.config import KeyConfig
from key_manager.errors import ServiceAccountDeletedError
from key_manager.models.service_account import ServiceAccount
from key_manager.services.key_generation import generate_token
from key_manager.utils.datetime import utcnow

logger = structlog.get_logger()


class ServiceAccountManager:
    """Manages service account provisioning."""

    def __init__(self, db_session: AsyncSession, config: KeyConfig) -> None:
        self._db = db_session
        self._config = config
        self._log = logger.bind(manager="service_account")

    async def get_live_by_owner(self, owner_id: str) -> ServiceAccount | None:
        result = await self._db.execute(
            select(ServiceAccount).where(
                ServiceAccount.owner_id == owner_id,
                ServiceAccount.deleted_at.is_(None),
            )
        )
        return result.scalars().first()

    async def has_deleted_account(self, owner_id: str) -> bool:
        result = await self._db.execute(
            select(ServiceAccount.id)
            .where(
                ServiceAccount.owner_id == owner_id,
                ServiceAccount.deleted_at.is_not(None),
            )
            .limit(1)
        )
        return result.first() is not None

    async def provision_or_reuse(
        self,
        owner_id: str,
        description: str | None = None,
    ) -> ServiceAccount:
        """Return the owner's live service account, creating it on first use.

        Args:
            owner_id: External owner reference
            description: Stored on the account only when it is created

        Returns:
            The service account, client_secret included

        Raises:
            ServiceAccountDeletedError: The owner's account was soft-deleted
        """
        account = await self.get_live_by_owner(owner_id)
        if account is not None:
            self._log.info("service_account.reuse", client_id=account.id, owner_id=owner_id)
            return account

        if await self.has_deleted_account(owner_id):
            self._log.info("service_account.deleted", owner_id=owner_id)
            raise ServiceAccountDeletedError(details={"owner_id": owner_id})

        now = utcnow()
        account = ServiceAccount(
            owner_id=owner_id,
            client_secret=generate_token(self._config.entropy_bytes),
            description=description,
            created_at=now,
            created_by=self._config.service_actor,
            updated_at=now,
        )
        self._db.add(account)
        try:
            await self._db.commit()
        except IntegrityError:
            # Another request provisioned this owner first; use its account
            await self._db.rollback()
            winner = await self.get_live_by_owner(owner_id)
            if winner is None:
                raise
            self._log.info("service_account.reuse", client_id=winner.id, owner_id=owner_id)
            return winner

        await self._db.refresh(account)
        self._log.info("service_account.created", client_id=account.id, owner_id=owner_id)
        return account
