"""Audit event sink.

Lifecycle operations report what happened through an injected ``AuditSink``
instead of a process-wide logger, so tests can record events and deployments
can route them elsewhere. Emitting is fire-and-forget: a sink never raises
into the caller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import structlog

from key_manager.utils.datetime import utcnow

logger = structlog.get_logger()

MASK_MARKER = "***"


def mask_key(raw_key: str | None, prefix_length: int = 8) -> str:
    """Return the first ``prefix_length`` characters of a key plus a mask marker."""
    if not raw_key:
        return MASK_MARKER
    return f"{raw_key[:prefix_length]}{MASK_MARKER}"


class AuditSink(ABC):
    """Accepts structured key-value audit events."""

    @abstractmethod
    def emit(self, event: str, **fields: Any) -> None:
        """Record an event. Must not raise."""


class NullAuditSink(AuditSink):
    """Discards every event."""

    def emit(self, event: str, **fields: Any) -> None:
        return None


class StructlogAuditSink(AuditSink):
    """Writes audit events through structlog with ``audit=True``."""

    def __init__(self) -> None:
        self._log = logger.bind(audit=True)

    def emit(self, event: str, **fields: Any) -> None:
        try:
            self._log.info(event, timestamp=utcnow().isoformat(), **fields)
        except Exception as exc:  # noqa: BLE001
            # Audit failures never reach the caller
            logger.warning("audit.emit_failed", audit_event=event, error=str(exc))


def get_audit_sink(enabled: bool = True) -> AuditSink:
    """Build the sink for the configured audit mode."""
    if enabled:
        return StructlogAuditSink()
    return NullAuditSink()
