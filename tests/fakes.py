"""Fake implementations for testing.

These fakes let unit tests observe side channels (audit events) without a
real log pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from key_manager.audit import AuditSink


@dataclass
class RecordedEvent:
    """One audit event as emitted."""

    event: str
    fields: dict[str, Any] = field(default_factory=dict)


class RecordingAuditSink(AuditSink):
    """Audit sink that keeps every event in memory for assertions."""

    def __init__(self) -> None:
        self.events: list[RecordedEvent] = []

    def emit(self, event: str, **fields: Any) -> None:
        self.events.append(RecordedEvent(event=event, fields=fields))

    def named(self, event: str) -> list[RecordedEvent]:
        return [e for e in self.events if e.event == event]

    def outcomes(self, event: str, key: str = "outcome") -> list[Any]:
        return [e.fields.get(key) for e in self.named(event)]
