"""Managers - lifecycle orchestration over the credential store."""

from key_manager.managers.keys import KeyManager
from key_manager.managers.service_account import ServiceAccountManager

__all__ = [
    "KeyManager",
    "ServiceAccountManager",
]
