import logging
import re
import time
from threading import Lock
from typing import Dict, List, Optional
from urllib.parse import quote

import requests
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from utils.errors import ConfigurationError, ExternalTimeout, StoreUnavailable

logger = logging.getLogger(__name__)

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
# "'OtpStore'!A7:D7" -> 7
UPDATED_ROW_PATTERN = re.compile(r"![A-Z]+(\d+)")


class SheetsClient:
    """
    Minimal Google Sheets v4 client for tab-as-table access.

    The authorized session and the tab metadata are memoized and re-acquired
    once they are older than `reauth_seconds` (service account JWTs last an
    hour).
    """

    def __init__(self, sheet_id, service_account_email, private_key,
                 reauth_seconds=50 * 60, timeout=10, monotonic=time.monotonic):
        self.sheet_id = sheet_id
        self.service_account_email = service_account_email
        self.private_key = private_key
        self.reauth_seconds = reauth_seconds
        self.timeout = timeout
        self._monotonic = monotonic

        self._session: Optional[AuthorizedSession] = None
        self._sheet_ids: Dict[str, int] = {}
        self._authed_at: Optional[float] = None
        self._lock = Lock()

    def __repr__(self):
        return f"<SheetsClient sheet_id={self.sheet_id}>"

    def _build_session(self) -> AuthorizedSession:
        if not self.service_account_email or not self.private_key:
            raise ConfigurationError("Missing Google Service Account credentials in environment variables.")
        if not self.sheet_id:
            raise ConfigurationError("Google Sheet ID is required to initialize the document.")

        info = {
            "type": "service_account",
            "client_email": self.service_account_email,
            # keys pasted into env files usually carry escaped newlines
            "private_key": self.private_key.replace("\\n", "\n"),
            "token_uri": "https://oauth2.googleapis.com/token",
        }
        try:
            credentials = service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
        except ValueError as e:
            raise ConfigurationError(f"Invalid Google Service Account key: {e}") from e
        return AuthorizedSession(credentials)

    def _get_session(self) -> AuthorizedSession:
        with self._lock:
            now = self._monotonic()
            if self._session is not None and self._authed_at is not None \
                    and now - self._authed_at < self.reauth_seconds:
                return self._session

            logger.debug(f"Initializing Google Sheets session for {self.sheet_id}")
            session = self._build_session()
            metadata = self._request(session, "GET", f"{SHEETS_API}/{self.sheet_id}",
                                     params={"fields": "sheets.properties(sheetId,title)"})
            self._sheet_ids = {
                sheet["properties"]["title"]: sheet["properties"]["sheetId"]
                for sheet in metadata.get("sheets", [])
            }
            self._session = session
            self._authed_at = now
            logger.info(f"Google Sheet loaded: {self.sheet_id} tabs={sorted(self._sheet_ids)}")
            return session

    def _request(self, session, method, url, **kwargs) -> dict:
        try:
            response = session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            logger.error(f"Google Sheets {method} timed out: {url}")
            raise ExternalTimeout("Timed out talking to Google Sheets.") from e
        except requests.RequestException as e:
            logger.error(f"Google Sheets {method} failed: {e}")
            raise StoreUnavailable(details={"error": str(e)[:300]}) from e

        if not response.ok:
            logger.error(f"Google Sheets error: {response.status_code} - {response.text[:300]}")
            raise StoreUnavailable(details={"status": response.status_code, "error": response.text[:300]})
        return response.json() if response.content else {}

    def _call(self, method, url, **kwargs) -> dict:
        return self._request(self._get_session(), method, url, **kwargs)

    @staticmethod
    def _range(tab: str, cells: str = "") -> str:
        a1 = f"'{tab}'" + (f"!{cells}" if cells else "")
        return quote(a1, safe="")

    def invalidate(self):
        with self._lock:
            self._session = None
            self._authed_at = None

    def tab_titles(self) -> List[str]:
        self._get_session()
        return list(self._sheet_ids)

    def read_rows(self, tab: str) -> List[List[str]]:
        """All rows of *tab*, header first."""
        data = self._call("GET", f"{SHEETS_API}/{self.sheet_id}/values/{self._range(tab)}")
        return data.get("values", [])

    def read_header(self, tab: str) -> List[str]:
        """First row of *tab* only; empty list for an empty tab."""
        data = self._call("GET", f"{SHEETS_API}/{self.sheet_id}/values/{self._range(tab, '1:1')}")
        rows = data.get("values", [])
        return rows[0] if rows else []

    def append_row(self, tab: str, values: List[str]) -> int:
        """Append one row and return the sheet row number it landed on."""
        data = self._call(
            "POST",
            f"{SHEETS_API}/{self.sheet_id}/values/{self._range(tab)}:append",
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": [values]},
        )
        updated_range = data.get("updates", {}).get("updatedRange", "")
        match = UPDATED_ROW_PATTERN.search(updated_range)
        if match is None:
            logger.error(f"Append to {tab} returned no updatedRange: {data}")
            raise StoreUnavailable(details={"error": f"append to {tab} returned no row number"})
        return int(match.group(1))

    def update_row(self, tab: str, row_number: int, values: List[str]) -> None:
        self._call(
            "PUT",
            f"{SHEETS_API}/{self.sheet_id}/values/{self._range(tab, f'A{row_number}')}",
            params={"valueInputOption": "RAW"},
            json={"values": [values]},
        )

    def delete_row(self, tab: str, row_number: int) -> None:
        self._get_session()
        sheet_id = self._sheet_ids.get(tab)
        if sheet_id is None:
            raise ConfigurationError(f"Sheet tabs ({tab}) not found.")
        self._call(
            "POST",
            f"{SHEETS_API}/{self.sheet_id}:batchUpdate",
            json={"requests": [{
                "deleteDimension": {
                    "range": {
                        "sheetId": sheet_id,
                        "dimension": "ROWS",
                        "startIndex": row_number - 1,
                        "endIndex": row_number,
                    }
                }
            }]},
        )
