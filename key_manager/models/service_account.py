"""Service account data model.

A service account is the middle tier of the trust model: one per owner,
holding the long-lived client_id / client_secret pair that every API key
validation must present first.
"""

import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from key_manager.utils.datetime import utcnow


class ServiceAccount(SQLModel, table=True):
    """Service account - owns zero or more API keys."""

    __tablename__ = "service_accounts"
    __table_args__ = (
        # One live account per owner; soft-deleted rows are free to repeat.
        sa.Index(
            "uq_service_accounts_owner_live",
            "owner_id",
            unique=True,
            sqlite_where=sa.text("deleted_at IS NULL"),
            postgresql_where=sa.text("deleted_at IS NULL"),
        ),
    )

    # Doubles as client_id
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    owner_id: str = Field(index=True)

    # Base64 random bytes; shown on creation and echoed on reuse
    client_secret: str = Field(unique=True)
    description: Optional[str] = Field(default=None)

    # Audit
    created_at: datetime = Field(default_factory=utcnow)
    created_by: Optional[str] = Field(default=None)
    updated_at: datetime = Field(default_factory=utcnow)
    updated_by: Optional[str] = Field(default=None)

    # Soft delete (tombstone)
    deleted_at: Optional[datetime] = Field(default=None, index=True)
    deleted_by: Optional[str] = Field(default=None)

    @property
    def client_id(self) -> str:
        return self.id

    @property
    def is_deleted(self) -> bool:
        """Check if the account is soft-deleted."""
        return self.deleted_at is not None
