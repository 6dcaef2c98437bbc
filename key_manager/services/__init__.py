"""Credential lifecycle services."""

from key_manager.services.key_generation import KeyGenerationResult, KeyGenerationService
from key_manager.services.key_query import KeyListPage, KeyListQuery, KeyQueryService
from key_manager.services.key_validation import (
    KeyValidationService,
    ValidationOutcome,
    ValidationReason,
)

__all__ = [
    "KeyGenerationResult",
    "KeyGenerationService",
    "KeyListPage",
    "KeyListQuery",
    "KeyQueryService",
    "KeyValidationService",
    "ValidationOutcome",
    "ValidationReason",
]
