"""
PowerSchool named-query client.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from sis_sync.core.config import settings
from sis_sync.integrations.sis.error_handler import UpstreamApiError
from sis_sync.integrations.sis.oauth_service import USER_AGENT


logger = logging.getLogger(__name__)


@dataclass
class QueryPage:
    """Outcome of one query call: a page of records, or the failing status and body."""
    status: int
    records: List[Dict[str, Any]] = field(default_factory=list)
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def unauthorized(self) -> bool:
        return self.status == 401


class PowerSchoolClient:
    """Posts to PowerSchool ``/ws/schema/query/{name}`` endpoints."""

    def __init__(self, timeout: Optional[int] = None):
        self.timeout = timeout or settings.PS_HTTP_TIMEOUT_SECONDS
        self._http_session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry."""
        self._http_session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={
                'User-Agent': USER_AGENT,
                'Accept': 'application/json',
                'Content-Type': 'application/json'
            }
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self._http_session:
            await self._http_session.close()
            self._http_session = None

    async def post_query(self, url: str, access_token: str, body: Dict[str, Any]) -> QueryPage:
        """
        Run a named query once.

        Error responses are returned as a page with ``ok`` False so the caller can
        decide whether to refresh the token and retry.

        Raises:
            UpstreamApiError: Transport failure, or a successful response that is not JSON
        """
        if not self._http_session:
            raise RuntimeError("HTTP session not initialized")

        headers = {'Authorization': f"Bearer {access_token}"}

        try:
            async with self._http_session.post(url, json=body, headers=headers) as response:
                text = await response.text()
                if not 200 <= response.status < 300:
                    return QueryPage(status=response.status, body=text)
                status = response.status

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"HTTP error calling {url}: {e}")
            raise UpstreamApiError(None, str(e) or type(e).__name__, original_exception=e)

        try:
            payload = json.loads(text) if text else {}
        except ValueError as e:
            raise UpstreamApiError(
                status,
                text[:500],
                message=f"PowerSchool returned a non-JSON response ({status})",
                original_exception=e
            )

        return QueryPage(status=status, records=self._extract_records(payload))

    @staticmethod
    def _extract_records(payload: Any) -> List[Dict[str, Any]]:
        if not isinstance(payload, dict):
            return []
        records = payload.get('record') or []
        if not isinstance(records, list):
            records = [records]
        return records
