"""API key lifecycle manager."""

from key_manager.managers.keys.keys import UNSET, KeyManager

__all__ = ["KeyManager", "UNSET"]
