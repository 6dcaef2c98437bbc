"""Service account manager."""

from key_manager.managers.service_account.service_account import ServiceAccountManager

__all__ = ["ServiceAccountManager"]
