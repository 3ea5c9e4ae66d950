"""
Google Sheets backend: one tab per table, columns addressed by header name.

Reads download the tab; writes fetch only the header row. A record's id is
its sheet row number, taken from the read or from the append response, so
deletes must run bottom-up (OtpStore.delete_many does this). Sheets cannot
enforce unique emails; duplicate rows are resolved by `find` picking the
most recent one.
"""
import json
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from clients.sheets_client import SheetsClient
from models.records import ApplicationRecord, ApplicationStatus, AuditEntry, OtpRecord
from stores.base import ApplicationStore, AuditTrail, OtpStore
from utils.clock import as_utc, from_epoch_ms, to_epoch_ms, utcnow
from utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

APPLICATIONS_TAB = "ApplicationsData"
OTP_TAB = "OtpStore"
AUDIT_TAB = "AuditLog"

APPLICATION_HEADERS = [
    "Timestamp", "First Name", "Last Name", "Email", "Referral Code",
    "VerifiedStatus", "VerifiedTimestamp", "CreatedAt", "Note",
]
OTP_HEADERS = ["Email", "OTP", "ExpiresAt", "CreatedAt"]
AUDIT_HEADERS = ["Timestamp", "Email", "Action", "Action Details"]


def _format_time(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return as_utc(value).isoformat().replace("+00:00", "Z")


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return as_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    except ValueError:
        logger.warning(f"Unparseable sheet timestamp: {value!r}")
        return None


class SheetTable:
    """A tab viewed as a list of dict rows keyed by the header row."""

    def __init__(self, client: SheetsClient, tab: str, default_headers: List[str]):
        self.client = client
        self.tab = tab
        self.default_headers = default_headers

    def _ensure_tab(self):
        if self.tab not in self.client.tab_titles():
            raise ConfigurationError(f"Sheet tabs ({self.tab}) not found.")

    def _load(self):
        self._ensure_tab()
        rows = self.client.read_rows(self.tab)
        if not rows:
            return list(self.default_headers), []
        return rows[0], rows[1:]

    def rows(self) -> List[Dict[str, str]]:
        """Data rows with a `_row` key holding the sheet row number."""
        headers, data = self._load()
        result = []
        for offset, values in enumerate(data):
            if not any(values):
                continue
            row = {header: (values[i] if i < len(values) else "") for i, header in enumerate(headers)}
            row["_row"] = offset + 2  # header is row 1
            result.append(row)
        return result

    def _values(self, headers: List[str], row: Dict[str, str]) -> List[str]:
        return [row.get(header, "") for header in headers]

    def _headers(self) -> List[str]:
        """Header row only."""
        self._ensure_tab()
        return self.client.read_header(self.tab)

    def append(self, row: Dict[str, str]) -> int:
        """Append *row* and return the row number the sheet reports for it."""
        headers = self._headers()
        if not headers:
            headers = list(self.default_headers)
            self.client.append_row(self.tab, headers)
        return self.client.append_row(self.tab, self._values(headers, row))

    def update(self, row_number: int, row: Dict[str, str]) -> None:
        headers = self._headers() or self.default_headers
        self.client.update_row(self.tab, row_number, self._values(headers, row))

    def delete(self, row_number: int) -> None:
        self._ensure_tab()
        self.client.delete_row(self.tab, row_number)


class SheetsApplicationStore(ApplicationStore):

    def __init__(self, client: SheetsClient):
        self.table = SheetTable(client, APPLICATIONS_TAB, APPLICATION_HEADERS)

    @staticmethod
    def _to_record(row: Dict[str, str]) -> ApplicationRecord:
        status, stray = ApplicationStatus.parse(row.get("VerifiedStatus"))
        updated_at = _parse_time(row.get("Timestamp"))
        return ApplicationRecord(
            id=row["_row"],
            email=row.get("Email", "").strip(),
            first_name=row.get("First Name", ""),
            last_name=row.get("Last Name", ""),
            referral_code=row.get("Referral Code") or None,
            status=status,
            note=row.get("Note") or stray,
            created_at=_parse_time(row.get("CreatedAt")) or updated_at,
            updated_at=updated_at,
            verified_at=_parse_time(row.get("VerifiedTimestamp")),
        )

    @staticmethod
    def _to_row(record: ApplicationRecord) -> Dict[str, str]:
        return {
            "Timestamp": _format_time(record.updated_at),
            "First Name": record.first_name,
            "Last Name": record.last_name or "",
            "Email": record.email,
            "Referral Code": record.referral_code or "",
            "VerifiedStatus": record.status.value,
            "VerifiedTimestamp": _format_time(record.verified_at),
            "CreatedAt": _format_time(record.created_at),
            "Note": record.note or "",
        }

    def list_all(self) -> List[ApplicationRecord]:
        return [self._to_record(row) for row in self.table.rows()]

    def insert(self, record: ApplicationRecord) -> ApplicationRecord:
        now = utcnow()
        record.created_at = record.created_at or now
        record.updated_at = record.updated_at or now
        record.id = self.table.append(self._to_row(record))
        return record

    def update(self, record: ApplicationRecord) -> ApplicationRecord:
        record.updated_at = record.updated_at or utcnow()
        self.table.update(record.id, self._to_row(record))
        return record

    def delete(self, record: ApplicationRecord) -> None:
        self.table.delete(record.id)


class SheetsOtpStore(OtpStore):

    def __init__(self, client: SheetsClient):
        self.table = SheetTable(client, OTP_TAB, OTP_HEADERS)

    @staticmethod
    def _to_record(row: Dict[str, str]) -> Optional[OtpRecord]:
        try:
            expires_at = from_epoch_ms(row.get("ExpiresAt"))
        except (TypeError, ValueError):
            logger.warning(f"Skipping OTP row {row['_row']} with bad ExpiresAt {row.get('ExpiresAt')!r}")
            return None
        return OtpRecord(
            id=row["_row"],
            email=row.get("Email", "").strip(),
            code=str(row.get("OTP", "")).strip(),
            expires_at=expires_at,
            created_at=_parse_time(row.get("CreatedAt")),
        )

    def list_all(self) -> List[OtpRecord]:
        records = (self._to_record(row) for row in self.table.rows())
        return [r for r in records if r is not None]

    def _to_row(self, record: OtpRecord) -> Dict[str, str]:
        return {
            "Email": record.email,
            "OTP": record.code,
            "ExpiresAt": str(to_epoch_ms(record.expires_at)),
            "CreatedAt": _format_time(record.created_at),
        }

    def insert(self, record: OtpRecord) -> OtpRecord:
        record.created_at = record.created_at or utcnow()
        record.id = self.table.append(self._to_row(record))
        return record

    def update(self, record: OtpRecord) -> OtpRecord:
        self.table.update(record.id, self._to_row(record))
        return record

    def delete(self, record: OtpRecord) -> None:
        self.table.delete(record.id)


class SheetsAuditTrail(AuditTrail):

    def __init__(self, client: SheetsClient, clock: Callable[[], datetime] = utcnow):
        self.table = SheetTable(client, AUDIT_TAB, AUDIT_HEADERS)
        self.clock = clock

    def append(self, entry: AuditEntry) -> None:
        self.table.append({
            "Timestamp": _format_time(entry.timestamp or self.clock()),
            "Email": entry.email or "unknown_email",
            "Action": entry.action.value,
            "Action Details": json.dumps(entry.details, default=str),
        })
