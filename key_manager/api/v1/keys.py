"""API key endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Header, Query
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from key_manager.api.dependencies import KeyManagerDep
from key_manager.models.api_key import KeyStatus
from key_manager.services.key_query import KeyListQuery

router = APIRouter()


# Request/Response Models


class CreateKeyRequest(BaseModel):
    """Request to create an API key."""

    owner_id: int | str = Field(validation_alias=AliasChoices("owner_id", "user_id"))
    name: str
    description: str | None = None
    is_active: bool = True
    # Kept as a string so unparsable values surface as INVALID_EXPIRY_DATE
    expires_at: str | None = Field(
        default=None,
        description="ISO-8601 expiry; must be in the future. Defaults to one year.",
    )


class ValidateKeyRequest(BaseModel):
    """Client credentials plus the key to validate."""

    client_id: str
    client_secret: str
    api_key: str


class UpdateKeyRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    name: str | None = None
    description: str | None = None
    expires_at: str | None = None
    is_active: bool | None = None


class _Projection(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class CreateKeyResponse(_Projection):
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


class ValidateKeyResponse(_Projection):
    key_id: int
    owner_id: str
    client_id: str
    expires_at: datetime | None
    status: KeyStatus


class UpdateKeyResponse(_Projection):
    key_id: int
    client_id: str
    name: str
    description: str | None
    is_active: bool
    expires_at: datetime | None
    status: KeyStatus
    updated_at: datetime


class RemoveKeyResponse(_Projection):
    key_id: int
    client_id: str
    status: KeyStatus
    deleted_at: datetime
    deleted_by: str | None


class KeyItemResponse(_Projection):
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


class PaginationResponse(_Projection):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_previous: bool


class KeyListResponse(_Projection):
    keys: list[KeyItemResponse]
    pagination: PaginationResponse


# Endpoints


@router.post("", response_model=CreateKeyResponse, status_code=201)
async def create_key(
    request: CreateKeyRequest,
    key_mgr: KeyManagerDep,
) -> CreateKeyResponse:
    """Create an API key.

    The owner's service account is created on first use. raw_key is only
    ever returned by this call.
    """
    created = await key_mgr.create_api_key(
        request.owner_id,
        request.name,
        description=request.description,
        is_active=request.is_active,
        expires_at=request.expires_at,
    )
    return CreateKeyResponse.model_validate(created)


@router.post("/validate", response_model=ValidateKeyResponse)
async def validate_key(
    request: ValidateKeyRequest,
    key_mgr: KeyManagerDep,
) -> ValidateKeyResponse:
    """Validate client credentials and an API key."""
    validated = await key_mgr.validate_key(
        request.client_id,
        request.client_secret,
        request.api_key,
    )
    return ValidateKeyResponse.model_validate(validated)


@router.put("/{key_id}", response_model=UpdateKeyResponse)
async def update_key(
    key_id: str,
    request: UpdateKeyRequest,
    key_mgr: KeyManagerDep,
) -> UpdateKeyResponse:
    """Update name, description, expiry or active flag."""
    updated = await key_mgr.update_api_key(key_id, **request.model_dump(exclude_unset=True))
    return UpdateKeyResponse.model_validate(updated)


@router.delete("/{key_id}", response_model=RemoveKeyResponse)
async def remove_key(
    key_id: str,
    key_mgr: KeyManagerDep,
    deleted_by: str | None = Header(None, alias="X-Deleted-By"),
) -> RemoveKeyResponse:
    """Soft-delete an API key."""
    removed = await key_mgr.remove_api_key(key_id, deleted_by=deleted_by)
    return RemoveKeyResponse.model_validate(removed)


@router.get("", response_model=KeyListResponse)
async def list_keys(
    key_mgr: KeyManagerDep,
    page: int = Query(1),
    limit: int | None = Query(None),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("DESC"),
    client_id: str | None = Query(None),
    status: str | None = Query(None),
    search: str | None = Query(None),
    include_deleted: bool = Query(False),
) -> KeyListResponse:
    """List API keys.

    page below 1 is treated as 1, limit is clamped to [1, 100] and unknown
    sort columns fall back to created_at.
    """
    listing = await key_mgr.list_api_keys(
        KeyListQuery(
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
            client_id=client_id,
            status=status,
            search=search,
            include_deleted=include_deleted,
        )
    )
    return KeyListResponse.model_validate(listing)
