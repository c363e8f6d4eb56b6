"""
Tests for services/returns_client.py against an httpx MockTransport.
"""
import json

import httpx
import pytest

from returnsdesk.config import Settings
from returnsdesk.core.exceptions import ReturnsServiceError
from returnsdesk.schemas.returns import AccountSelection, FilterCriteria, QueryState
from returnsdesk.services.returns_client import HttpReturnsClient

URL = "https://returns.example.test/functions/v1/ml-returns"


def _client(handler, token=None):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpReturnsClient(URL, token=token, client=http)


def _query():
    return QueryState(
        selection=AccountSelection.from_ids(["acc-2", "acc-1"]),
        filters=FilterCriteria(status=["closed"]),
        page=2,
        page_size=25,
    )


class TestRequest:
    @pytest.mark.asyncio
    async def test_posts_query_body_with_bearer_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"returns": [], "total": 0})

        await _client(handler, token="secret").fetch_returns(_query())

        assert seen["method"] == "POST"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"] == {
            "accountIds": ["acc-1", "acc-2"],
            "filters": {"status": ["closed"]},
            "pagination": {"offset": 25, "limit": 25},
        }

    @pytest.mark.asyncio
    async def test_no_token_no_auth_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"returns": [], "total": 0})

        await _client(handler).fetch_returns(_query())
        assert seen["auth"] is None


class TestResponse:
    @pytest.mark.asyncio
    async def test_parses_records(self):
        payload = {
            "returns": [
                {
                    "id": 123,
                    "claim_id": 987,
                    "status": {"id": "closed", "description": "Closed"},
                    "product_info": {"sku": "ABC-P", "price": 59.9},
                    "unexpected_field": "ignored",
                },
            ],
            "total": 40,
        }
        page = await _client(lambda r: httpx.Response(200, json=payload)).fetch_returns(_query())

        assert page.total == 40
        record = page.returns[0]
        assert record.id == "123"
        assert record.claim_id == "987"
        assert record.status_code == "closed"
        assert record.product_info.sku == "ABC-P"

    @pytest.mark.asyncio
    async def test_missing_total_defaults_to_zero(self):
        page = await _client(lambda r: httpx.Response(200, json={"returns": []})).fetch_returns(_query())
        assert page.total == 0


class TestErrors:
    @pytest.mark.asyncio
    async def test_http_error_status(self):
        client = _client(lambda r: httpx.Response(502, text="bad gateway"))
        with pytest.raises(ReturnsServiceError) as exc_info:
            await client.fetch_returns(_query())
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ReturnsServiceError) as exc_info:
            await _client(handler).fetch_returns(_query())
        assert exc_info.value.details["error_type"] == "ConnectError"

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        client = _client(lambda r: httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(ReturnsServiceError):
            await client.fetch_returns(_query())

    @pytest.mark.asyncio
    async def test_non_object_body(self):
        client = _client(lambda r: httpx.Response(200, json=[1, 2, 3]))
        with pytest.raises(ReturnsServiceError):
            await client.fetch_returns(_query())

    @pytest.mark.asyncio
    async def test_invalid_records(self):
        client = _client(lambda r: httpx.Response(200, json={"returns": [{"claim_id": 1}], "total": 1}))
        with pytest.raises(ReturnsServiceError):
            await client.fetch_returns(_query())


class TestFromSettings:
    def test_uses_configured_service(self):
        config = Settings(RETURNS_SERVICE_URL=URL, RETURNS_SERVICE_TOKEN="t", RETURNS_SERVICE_TIMEOUT=5)
        client = HttpReturnsClient.from_settings(config)
        assert client.base_url == URL
        assert client.token == "t"
        assert client.timeout == 5
