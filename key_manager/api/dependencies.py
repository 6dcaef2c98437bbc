"""FastAPI dependencies for the Key Manager API.

Provides dependency injection for:
- Database sessions
- KeyManager
- Audit sink
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from key_manager.audit import AuditSink, get_audit_sink
from key_manager.config import get_settings
from key_manager.db.session import get_session_dependency
from key_manager.managers.keys import KeyManager


@lru_cache
def get_audit() -> AuditSink:
    """Get the process audit sink.

    Uses lru_cache to share one sink across requests.
    """
    return get_audit_sink(get_settings().audit.enabled)


async def get_key_manager(
    session: Annotated[AsyncSession, Depends(get_session_dependency)],
    audit: Annotated[AuditSink, Depends(get_audit)],
) -> KeyManager:
    """Get KeyManager with injected dependencies."""
    return KeyManager(db_session=session, audit=audit)


# Type aliases for cleaner dependency injection
KeyManagerDep = Annotated[KeyManager, Depends(get_key_manager)]
