"""
Store interfaces used by the signup workflow.

Every operation is independent: no backend offers multi-row transactions,
so the workflow's invariants come from its own read-then-write ordering.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from models.records import ApplicationRecord, AuditEntry, OtpRecord, most_recent


class RecordStore(ABC):
    """Key-value-ish table keyed by email."""

    @abstractmethod
    def list_all(self) -> list:
        ...

    @abstractmethod
    def insert(self, record):
        ...

    @abstractmethod
    def update(self, record):
        ...

    @abstractmethod
    def delete(self, record) -> None:
        ...

    def find_all(self, email: str) -> list:
        return [r for r in self.list_all() if r.email == email]

    def find(self, email: str):
        """Most recently created record for *email*, or None."""
        return most_recent(self.find_all(email))


class ApplicationStore(RecordStore):

    def find(self, email: str) -> Optional[ApplicationRecord]:
        return super().find(email)


class OtpStore(RecordStore):

    def find(self, email: str) -> Optional[OtpRecord]:
        return super().find(email)

    def delete_many(self, records: List[OtpRecord]) -> int:
        # Highest row first so positional backends keep the remaining ids valid
        ordered = sorted(records, key=lambda r: r.id or 0, reverse=True)
        for record in ordered:
            self.delete(record)
        return len(ordered)


class AuditTrail(ABC):
    """Append-only audit log; the workflow never reads it back."""

    @abstractmethod
    def append(self, entry: AuditEntry) -> None:
        ...
