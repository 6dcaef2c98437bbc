"""API key data model and lifecycle status.

Keys are stored by value: the ``api_key`` column is the only copy of the
token and validation looks it up by exact match. Status is never stored;
``classify_key_status`` derives it at read time.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from key_manager.utils.datetime import utcnow


class KeyStatus(str, Enum):
    """Derived API key status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    DELETED = "deleted"


def classify_key_status(
    *,
    deleted_at: datetime | None,
    is_active: bool,
    expiry_date: datetime | None,
    now: datetime,
) -> KeyStatus:
    """Derive a key's status from its stored flags.

    Precedence: deleted > inactive > expired > active. A key whose expiry
    equals ``now`` is already expired.
    """
    if deleted_at is not None:
        return KeyStatus.DELETED
    if not is_active:
        return KeyStatus.INACTIVE
    if expiry_date is not None and expiry_date <= now:
        return KeyStatus.EXPIRED
    return KeyStatus.ACTIVE


class ApiKey(SQLModel, table=True):
    """API key minted under a service account."""

    __tablename__ = "api_keys"

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: str = Field(foreign_key="service_accounts.id", index=True)

    # Unique across every row, soft-deleted ones included
    api_key: str = Field(unique=True, index=True)

    name: str
    description: Optional[str] = Field(default=None)
    is_active: bool = Field(default=True)
    expiry_date: Optional[datetime] = Field(default=None, index=True)

    # Audit
    created_at: datetime = Field(default_factory=utcnow)
    created_by: Optional[str] = Field(default=None)
    updated_at: datetime = Field(default_factory=utcnow)
    updated_by: Optional[str] = Field(default=None)

    # Soft delete (tombstone)
    deleted_at: Optional[datetime] = Field(default=None, index=True)
    deleted_by: Optional[str] = Field(default=None)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def compute_status(self, *, now: datetime | None = None) -> KeyStatus:
        """Compute status for external projections.

        Args:
            now: Fixed time reference for deterministic computation
        """
        return classify_key_status(
            deleted_at=self.deleted_at,
            is_active=self.is_active,
            expiry_date=self.expiry_date,
            now=now if now is not None else utcnow(),
        )
