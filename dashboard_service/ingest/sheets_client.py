"""Google Sheets fetchers.

Two transports, matching how the sheets are shared:
- Sheets v4 values API (httpx, needs GOOGLE_API_KEY) for ranged reads.
- Published CSV export links (aiohttp + pandas) for P&L tabs, which also
  sidesteps the API's response caching.

Failures are raised, never retried: a sync is re-run by the operator.
"""

from __future__ import annotations

import logging
from io import StringIO
from typing import Any, List
from urllib.parse import quote

import aiohttp
import httpx
import pandas as pd

from dashboard_service.config import get_google_api_key
from dashboard_service.errors import ConfigurationError, UpstreamFetchError

logger = logging.getLogger(__name__)

_BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets"
_DEFAULT_TIMEOUT = 30.0
_ERROR_BODY_LIMIT = 500


class SheetsClient:
    """Async reader for spreadsheet ranges and CSV exports."""

    def __init__(self, api_key: str | None = None, timeout: float = _DEFAULT_TIMEOUT):
        self._api_key = api_key if api_key is not None else get_google_api_key()
        self._timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def values_url(self, sheet_id: str, cell_range: str) -> str:
        return f"{_BASE_URL}/{sheet_id}/values/{quote(cell_range, safe='')}"

    async def fetch_values(self, sheet_id: str, cell_range: str) -> List[List[Any]]:
        """Return the rows of *cell_range* ("Tab!A16:AF386") as lists of cells.

        Raises:
            ConfigurationError: GOOGLE_API_KEY is not set.
            UpstreamFetchError: network failure or non-2xx response.
        """
        if not self.is_configured:
            raise ConfigurationError("GOOGLE_API_KEY not configured. Set it in the service environment.")

        url = self.values_url(sheet_id, cell_range)
        logger.info("[sync] Fetching sheet range %s (sheet=%s)", cell_range, sheet_id)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(url, params={"key": self._api_key})
        except httpx.HTTPError as exc:
            raise UpstreamFetchError(f"Sheets API request failed: {exc}") from exc

        if resp.status_code != 200:
            body = resp.text[:_ERROR_BODY_LIMIT]
            raise UpstreamFetchError(
                f"Sheets API error: {body}", status=resp.status_code, body=body
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            body = resp.text[:_ERROR_BODY_LIMIT]
            raise UpstreamFetchError(
                f"Sheets API returned a non-JSON response: {body}", status=resp.status_code, body=body
            ) from exc
        if not isinstance(payload, dict):
            raise UpstreamFetchError("Sheets API returned an unexpected payload", status=resp.status_code)

        rows = payload.get("values") or []
        logger.info("[sync] Fetched %d rows from %s", len(rows), cell_range)
        return rows

    async def fetch_csv_rows(self, csv_url: str) -> List[List[Any]]:
        """Download a CSV export and return it as positional rows (no header inference)."""
        logger.info("[sync] Fetching CSV export %s", csv_url)
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    csv_url, timeout=aiohttp.ClientTimeout(total=self._timeout)
                ) as resp:
                    content = await resp.text()
                    if resp.status != 200:
                        body = content[:_ERROR_BODY_LIMIT]
                        raise UpstreamFetchError(
                            f"CSV export returned HTTP {resp.status}: {body}",
                            status=resp.status,
                            body=body,
                        )
        except aiohttp.ClientError as exc:
            raise UpstreamFetchError(f"CSV export request failed: {exc}") from exc

        return csv_to_rows(content)


def csv_to_rows(content: str) -> List[List[Any]]:
    """Parse CSV text into rows of strings; blank cells become ''."""
    if not content.strip():
        return []
    try:
        df = pd.read_csv(
            StringIO(content),
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=False,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise UpstreamFetchError(f"Could not parse CSV export: {exc}") from exc
    logger.info("[sync] Parsed CSV: %d rows, %d columns", len(df), len(df.columns))
    return df.values.tolist()
