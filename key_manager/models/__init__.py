"""SQLModel data models."""

from key_manager.models.api_key import ApiKey, KeyStatus, classify_key_status
from key_manager.models.service_account import ServiceAccount

__all__ = [
    "ApiKey",
    "KeyStatus",
    "ServiceAccount",
    "classify_key_status",
]
