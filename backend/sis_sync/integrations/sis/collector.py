"""
Drives PowerSchool query calls to completion, paging and refreshing the token as needed.
"""

import logging
from typing import Any, Dict, List, Optional

from sis_sync.integrations.sis.error_handler import UpstreamApiError
from sis_sync.integrations.sis.providers.powerschool import PowerSchoolClient, QueryPage
from sis_sync.integrations.sis.token_manager import TokenManager


logger = logging.getLogger(__name__)

MAX_RETRIES_PER_CALL = 1


class PaginatedCollector:
    """
    Retrieves every record of a named query.

    A 401 triggers one token refresh and one retry of the same call. The refreshed
    token is kept in ``access_token`` and used for every later call.
    """

    def __init__(self, client: PowerSchoolClient, token_manager: TokenManager, access_token: Optional[str] = None):
        self.client = client
        self.token_manager = token_manager
        self.access_token = access_token
        self.calls = 0
        self.refreshes = 0

    async def _fetch(self, query_url: str, body: Dict[str, Any]) -> QueryPage:
        retries = 0
        while True:
            self.calls += 1
            page = await self.client.post_query(query_url, self.access_token, body)
            if page.ok:
                return page

            if page.unauthorized and retries < MAX_RETRIES_PER_CALL:
                retries += 1
                self.refreshes += 1
                logger.info(f"PowerSchool returned 401 for {query_url}, refreshing token and retrying")
                token = await self.token_manager.fetch_new_token()
                self.access_token = token.access_token
                continue

            logger.error(f"PowerSchool query {query_url} failed with status {page.status}")
            raise UpstreamApiError(page.status, page.body)

    async def fetch_all(
        self,
        query_url: str,
        access_token: Optional[str] = None,
        body: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Single call for queries that return their whole result at once."""
        if access_token is not None:
            self.access_token = access_token
        page = await self._fetch(query_url, body or {})
        logger.info(f"Fetched {len(page.records)} records from {query_url}")
        return page.records

    async def collect(self, query_url: str, access_token: Optional[str], page_size: int) -> List[Dict[str, Any]]:
        """
        Walk ``startrow``/``endrow`` windows until a short or empty page.

        A result that is an exact multiple of ``page_size`` costs one extra call
        that returns no records. On failure nothing collected so far is returned.
        """
        if page_size < 1:
            raise ValueError("page_size must be a positive integer")
        if access_token is not None:
            self.access_token = access_token

        records: List[Dict[str, Any]] = []
        start_row = 1
        while True:
            end_row = start_row + page_size - 1
            page = await self._fetch(query_url, {'startrow': start_row, 'endrow': end_row})
            count = len(page.records)
            logger.debug(f"Fetched rows {start_row}-{end_row} from {query_url}: {count} records")

            records.extend(page.records)
            if count == 0 or count < page_size:
                break
            start_row += page_size

        logger.info(f"Collected {len(records)} records from {query_url} in {self.calls} calls")
        return records
