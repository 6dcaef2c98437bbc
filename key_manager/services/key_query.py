"""API key listing: filters, sorting and offset pagination."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from key_manager.config import KeyConfig
from key_manager.models.api_key import ApiKey, KeyStatus
from key_manager.models.service_account import ServiceAccount
from key_manager.utils.datetime import utcnow

SORTABLE_COLUMNS = ("created_at", "updated_at", "expiry_date", "name", "is_active")
DEFAULT_SORT_COLUMN = "created_at"


@dataclass(slots=True)
class KeyListQuery:
    """Listing parameters as received from the caller (unclamped)."""

    page: int = 1
    limit: int | None = None
    sort_by: str = DEFAULT_SORT_COLUMN
    sort_order: str = "DESC"
    client_id: str | None = None
    status: str | None = None
    search: str | None = None
    include_deleted: bool = False


@dataclass(frozen=True, slots=True)
class KeyListItem:
    key: ApiKey
    client_secret: str | None
    status: KeyStatus


@dataclass(frozen=True, slots=True)
class Pagination:
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_previous: bool


@dataclass(frozen=True, slots=True)
class KeyListPage:
    items: list[KeyListItem]
    pagination: Pagination


def clamp_page(page: int | None) -> int:
    if page is None or page < 1:
        return 1
    return page


def clamp_limit(limit: int | None, *, default: int, maximum: int) -> int:
    if limit is None:
        limit = default
    return min(maximum, max(1, limit))


def resolve_sort(sort_by: str | None, sort_order: str | None) -> tuple[str, bool]:
    """Return (column, descending). Unknown columns fall back to created_at."""
    column = sort_by if sort_by in SORTABLE_COLUMNS else DEFAULT_SORT_COLUMN
    descending = (sort_order or "DESC").upper() != "ASC"
    return column, descending


def build_pagination(page: int, limit: int, total: int) -> Pagination:
    total_pages = math.ceil(total / limit)
    return Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_previous=page > 1,
    )


class KeyQueryService:
    """Translates listing parameters into a bounded result set."""

    def __init__(self, db_session: AsyncSession, config: KeyConfig) -> None:
        self._db = db_session
        self._config = config

    def _status_predicates(self, status: str, now: datetime) -> list:
        if status == KeyStatus.ACTIVE.value:
            expiry = ApiKey.expiry_date > now
            if self._config.active_filter_includes_no_expiry:
                expiry = or_(expiry, ApiKey.expiry_date.is_(None))
            return [ApiKey.is_active == True, expiry]  # noqa: E712
        if status in (KeyStatus.INACTIVE.value, "revoked"):
            return [ApiKey.is_active == False]  # noqa: E712
        if status == KeyStatus.EXPIRED.value:
            return [ApiKey.expiry_date <= now]
        # Unknown status values do not filter
        return []

    def _predicates(self, query: KeyListQuery, now: datetime) -> list:
        predicates = []
        if not query.include_deleted:
            predicates.append(ApiKey.deleted_at.is_(None))
        if query.client_id:
            predicates.append(ApiKey.client_id == query.client_id)
        if query.status:
            predicates.extend(self._status_predicates(query.status.lower(), now))
        if query.search:
            pattern = f"%{query.search}%"
            predicates.append(
                or_(ApiKey.name.ilike(pattern), ApiKey.description.ilike(pattern))
            )
        return predicates

    async def list_keys(self, query: KeyListQuery) -> KeyListPage:
        """List keys matching ``query``.

        The total is counted after filtering and before pagination.
        """
        now = utcnow()
        page = clamp_page(query.page)
        limit = clamp_limit(
            query.limit,
            default=self._config.default_page_size,
            maximum=self._config.max_page_size,
        )
        column, descending = resolve_sort(query.sort_by, query.sort_order)
        predicates = self._predicates(query, now)

        count_result = await self._db.execute(
            select(func.count()).select_from(ApiKey).where(*predicates)
        )
        total = count_result.scalar_one()

        order_column = getattr(ApiKey, column)
        stmt = (
            select(ApiKey, ServiceAccount.client_secret)
            .outerjoin(ServiceAccount, ServiceAccount.id == ApiKey.client_id)
            .where(*predicates)
            .order_by(order_column.desc() if descending else order_column.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await self._db.execute(stmt)

        items = [
            KeyListItem(key=key, client_secret=client_secret, status=key.compute_status(now=now))
            for key, client_secret in result.all()
        ]
        return KeyListPage(items=items, pagination=build_pagination(page, limit, total))
