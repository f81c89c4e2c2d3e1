"""HTTP client for the dashboard summary endpoint, as used by the dashboard front end."""
import logging
from typing import Any, Dict, Optional

import httpx

from dashboard_service.config import SUMMARY_CLIENT_TIMEOUT_SECONDS
from dashboard_service.errors import (
    AuthenticationError,
    SummaryRequestError,
    SummaryTimeoutError,
)

logger = logging.getLogger(__name__)

SUMMARY_PATH = "/dashboard/summary"


class DashboardSummaryClient:
    """Fetches the assembled summary with a hard timeout.

    A timed-out load raises SummaryTimeoutError so the caller can show the
    refresh hint instead of a generic failure.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = SUMMARY_CLIENT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport

    def _headers(self, view_as: Optional[str]) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if view_as:
            headers["X-View-As"] = view_as
        return headers

    async def fetch_summary(self, view_as: Optional[str] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{SUMMARY_PATH}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url, headers=self._headers(view_as))
        except httpx.TimeoutException as exc:
            logger.warning("Dashboard summary timed out after %.1fs", self.timeout)
            raise SummaryTimeoutError() from exc

        if response.status_code in (401, 403):
            raise AuthenticationError(f"dashboard-summary error {response.status_code}: {response.text}")
        if response.status_code >= 400:
            raise SummaryRequestError(response.status_code, response.text)
        return response.json()
