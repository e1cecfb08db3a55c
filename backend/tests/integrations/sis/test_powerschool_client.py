"""
Tests for the PowerSchool named-query client.
"""

import asyncio

import pytest
from aioresponses import aioresponses

from sis_sync.integrations.sis.error_handler import UpstreamApiError
from sis_sync.integrations.sis.providers.powerschool import PowerSchoolClient


QUERY_URL = "https://ps.example.edu/ws/schema/query/org.infocare.sync.schools"


class TestPowerSchoolClient:

    @pytest.mark.asyncio
    async def test_returns_records(self):
        payload = {
            "name": "schools",
            "record": [
                {"id": 1, "name": "schools", "tables": {"schools": {"id": "1"}}},
                {"id": 2, "name": "schools", "tables": {"schools": {"id": "2"}}},
            ],
            "@extensions": "schools",
        }
        with aioresponses() as m:
            m.post(QUERY_URL, payload=payload)

            async with PowerSchoolClient() as client:
                page = await client.post_query(QUERY_URL, "tok", {})

            request = list(m.requests.values())[0][0]
            assert request.kwargs['headers']['Authorization'] == "Bearer tok"
            assert request.kwargs['json'] == {}

        assert page.ok
        assert [r['id'] for r in page.records] == [1, 2]

    @pytest.mark.asyncio
    async def test_missing_record_means_empty(self):
        with aioresponses() as m:
            m.post(QUERY_URL, payload={"name": "schools"})

            async with PowerSchoolClient() as client:
                page = await client.post_query(QUERY_URL, "tok", {})

        assert page.ok
        assert page.records == []

    @pytest.mark.asyncio
    async def test_unauthorized_is_returned_not_raised(self):
        with aioresponses() as m:
            m.post(QUERY_URL, status=401, body="token expired")

            async with PowerSchoolClient() as client:
                page = await client.post_query(QUERY_URL, "tok", {})

        assert not page.ok
        assert page.unauthorized
        assert page.body == "token expired"

    @pytest.mark.asyncio
    async def test_server_error_is_returned_with_body(self):
        with aioresponses() as m:
            m.post(QUERY_URL, status=500, body="internal")

            async with PowerSchoolClient() as client:
                page = await client.post_query(QUERY_URL, "tok", {})

        assert page.status == 500
        assert not page.unauthorized

    @pytest.mark.asyncio
    async def test_non_json_success_raises(self):
        with aioresponses() as m:
            m.post(QUERY_URL, status=200, body="<html>maintenance</html>", content_type="text/html")

            async with PowerSchoolClient() as client:
                with pytest.raises(UpstreamApiError) as exc_info:
                    await client.post_query(QUERY_URL, "tok", {})

        assert exc_info.value.status == 200

    @pytest.mark.asyncio
    async def test_timeout_raises_upstream_error(self):
        with aioresponses() as m:
            m.post(QUERY_URL, exception=asyncio.TimeoutError())

            async with PowerSchoolClient() as client:
                with pytest.raises(UpstreamApiError) as exc_info:
                    await client.post_query(QUERY_URL, "tok", {})

        assert exc_info.value.status is None
        assert exc_info.value.retryable is True
