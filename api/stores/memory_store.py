import logging
from dataclasses import replace
from itertools import count
from threading import Lock
from typing import List

from models.records import ApplicationRecord, AuditEntry, OtpRecord
from stores.base import ApplicationStore, AuditTrail, OtpStore

logger = logging.getLogger(__name__)


class _MemoryTable:
    """Rows kept in insertion order; copies go in and out so callers never share state."""

    def __init__(self):
        self._rows = {}
        self._ids = count(1)
        self._lock = Lock()

    def list_all(self) -> list:
        with self._lock:
            return [replace(row) for row in self._rows.values()]

    def insert(self, record):
        with self._lock:
            record.id = next(self._ids)
            self._rows[record.id] = replace(record)
        return record

    def update(self, record):
        with self._lock:
            if record.id not in self._rows:
                raise KeyError(f"No row with id {record.id}")
            self._rows[record.id] = replace(record)
        return record

    def delete(self, record) -> None:
        with self._lock:
            self._rows.pop(record.id, None)


class MemoryApplicationStore(ApplicationStore):

    def __init__(self):
        self._table = _MemoryTable()

    def list_all(self) -> List[ApplicationRecord]:
        return self._table.list_all()

    def insert(self, record: ApplicationRecord) -> ApplicationRecord:
        return self._table.insert(record)

    def update(self, record: ApplicationRecord) -> ApplicationRecord:
        return self._table.update(record)

    def delete(self, record: ApplicationRecord) -> None:
        self._table.delete(record)


class MemoryOtpStore(OtpStore):

    def __init__(self):
        self._table = _MemoryTable()

    def list_all(self) -> List[OtpRecord]:
        return self._table.list_all()

    def insert(self, record: OtpRecord) -> OtpRecord:
        return self._table.insert(record)

    def update(self, record: OtpRecord) -> OtpRecord:
        return self._table.update(record)

    def delete(self, record: OtpRecord) -> None:
        self._table.delete(record)


class MemoryAuditTrail(AuditTrail):

    def __init__(self):
        self.entries: List[AuditEntry] = []
        self._lock = Lock()

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self.entries.append(entry)

    def actions_for(self, email: str) -> List[str]:
        with self._lock:
            return [e.action.value for e in self.entries if e.email == email]
