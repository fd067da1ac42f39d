"""
Claims Intel - Claims Sheet Source
Reads daily claim counts per insurer from the "Raw Data" tab of a Google Sheet.

Sheet layout (first row is a header):
    A: unique_key   B: date (YYYY-MM-DD)   C: insurer   D: claims_count
"""

import asyncio
import base64
import binascii
import json
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import aiohttp
import google.auth.transport.requests
from google.auth import exceptions as google_auth_exceptions
from google.oauth2 import service_account

import config
from query_cache import ResponseCache, get_response_cache

logger = logging.getLogger(__name__)

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]
SHEETS_API_URL = "https://sheets.googleapis.com/v4/spreadsheets/{sheet_id}/values/{range}"

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


class ClaimsSourceError(RuntimeError):
    """Credentials could not be read or the Sheets API call failed."""


@dataclass
class ClaimRecord:
    unique_key: str
    date: str
    insurer: str
    claims_count: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_count(value: Any) -> int:
    """Leading integer of a cell ("12", "12 claims"); anything else is 0. Never negative."""
    match = _LEADING_INT_RE.match(str(value or ""))
    if not match:
        return 0
    return max(int(match.group(1)), 0)


def rows_to_records(rows: Optional[Sequence[Sequence[Any]]]) -> List[ClaimRecord]:
    """Convert raw sheet values (header row included) to ClaimRecords."""
    if not rows or len(rows) < 2:
        return []
    records = []
    for row in rows[1:]:
        cells = list(row) + [""] * (4 - len(row))
        records.append(ClaimRecord(
            unique_key=str(cells[0] or ""),
            date=str(cells[1] or ""),
            insurer=str(cells[2] or ""),
            claims_count=parse_count(cells[3]),
        ))
    return records


def load_credentials(encoded: str) -> service_account.Credentials:
    """Build read-only Sheets credentials from base64-encoded service account JSON."""
    try:
        info = json.loads(base64.b64decode(encoded).decode("utf-8"))
        return service_account.Credentials.from_service_account_info(info, scopes=SHEETS_SCOPES)
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise ClaimsSourceError(f"Invalid GOOGLE_SERVICE_ACCOUNT_JSON_BASE64: {e}") from e


def _access_token(credentials: service_account.Credentials) -> str:
    request = google.auth.transport.requests.Request()
    credentials.refresh(request)
    return credentials.token


class ClaimsSheetSource:
    """Fetches claim records from the Sheets v4 REST API with a TTL cache."""

    def __init__(
        self,
        credentials_b64: Optional[str] = None,
        sheet_id: Optional[str] = None,
        sheet_range: Optional[str] = None,
        cache: Optional[ResponseCache] = None,
        cache_ttl: Optional[int] = None,
    ):
        self.credentials_b64 = credentials_b64 if credentials_b64 is not None else config.GOOGLE_SERVICE_ACCOUNT_JSON_BASE64
        self.sheet_id = sheet_id if sheet_id is not None else config.GOOGLE_SHEET_ID
        self.sheet_range = sheet_range or config.CLAIMS_SHEET_RANGE
        self.cache = cache or get_response_cache()
        self.cache_ttl = cache_ttl if cache_ttl is not None else config.CLAIMS_CACHE_TTL
        self._credentials: Optional[service_account.Credentials] = None

    @property
    def configured(self) -> bool:
        return bool(self.credentials_b64 and self.sheet_id)

    async def _token(self) -> str:
        if self._credentials is None:
            self._credentials = load_credentials(self.credentials_b64)
        if self._credentials.valid:
            return self._credentials.token
        try:
            # google-auth refresh is blocking
            return await asyncio.to_thread(_access_token, self._credentials)
        except (google_auth_exceptions.RefreshError, google_auth_exceptions.TransportError) as e:
            logger.error(f"[CLAIMS] Service account token refresh failed: {e}")
            raise ClaimsSourceError(f"Google auth failed: {e}") from e

    async def fetch_rows(self) -> List[List[Any]]:
        """Raw cell values of the configured range."""
        token = await self._token()
        url = SHEETS_API_URL.format(sheet_id=self.sheet_id, range=quote(self.sheet_range, safe=""))
        timeout = aiohttp.ClientTimeout(total=30)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, headers={"Authorization": f"Bearer {token}"}) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise ClaimsSourceError(f"Sheets API error {response.status}: {body[:200]}")
                    payload = await response.json()
        except aiohttp.ClientError as e:
            logger.error(f"[CLAIMS] HTTP error calling Sheets API: {e}")
            raise ClaimsSourceError(f"Sheets API error: {e}") from e
        return payload.get("values") or []

    async def get_claims(self, use_cache: bool = True) -> List[ClaimRecord]:
        """All claim records; empty when the sheet is not configured."""
        if not self.configured:
            logger.warning("[CLAIMS] Google Sheet not configured, returning no data")
            return []

        key = ResponseCache.make_key("claims_rows", self.sheet_id, self.sheet_range)
        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        records = rows_to_records(await self.fetch_rows())
        self.cache.set(key, records, ttl=self.cache_ttl, entry_type="claims_rows")
        logger.info(f"[CLAIMS] Loaded {len(records)} claim rows from sheet")
        return records


_claims_source: Optional[ClaimsSheetSource] = None


def get_claims_source() -> ClaimsSheetSource:
    """Get singleton claims source configured from the environment"""
    global _claims_source
    if _claims_source is None:
        _claims_source = ClaimsSheetSource()
    return _claims_source
