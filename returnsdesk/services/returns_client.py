"""
Returns Service Client

Fetches marketplace return records from the upstream returns service.

Request body:
    {"accountIds": [...],
     "filters": {"search"?, "status"?, "dateFrom"?, "dateTo"?},
     "pagination": {"offset": int, "limit": int}}

Response body:
    {"returns": [ReturnRecord, ...], "total": int}

Every transport failure (connection errors, timeouts, non-2xx responses,
malformed bodies) is raised as ReturnsServiceError so the fetch
orchestrator only has to handle one error type.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from returnsdesk.config import Settings, settings as default_settings
from returnsdesk.core.exceptions import ReturnsServiceError
from returnsdesk.schemas.returns import QueryState, ReturnsPage

logger = logging.getLogger(__name__)


class ReturnsTransport(ABC):
    """Abstract source of returns pages."""

    @abstractmethod
    async def fetch_returns(self, query: QueryState) -> ReturnsPage:
        """
        Fetch one page of returns.

        Raises:
            ReturnsServiceError: on any transport or payload failure
        """
        pass


class HttpReturnsClient(ReturnsTransport):
    """HTTP client for the returns service."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url
        self.token = token
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "HttpReturnsClient":
        config = config or default_settings
        return cls(
            base_url=config.RETURNS_SERVICE_URL,
            token=config.RETURNS_SERVICE_TOKEN,
            timeout=config.RETURNS_SERVICE_TIMEOUT,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _post(self, client: httpx.AsyncClient, body: Dict[str, Any]) -> httpx.Response:
        return await client.post(self.base_url, json=body, headers=self._headers())

    async def fetch_returns(self, query: QueryState) -> ReturnsPage:
        body = query.to_request()
        logger.debug(
            f"[ReturnsClient] Fetching returns for {len(body['accountIds'])} account(s): "
            f"offset={body['pagination']['offset']} limit={body['pagination']['limit']}"
        )

        try:
            if self._client is not None:
                response = await self._post(self._client, body)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._post(client, body)
        except httpx.HTTPError as e:
            raise ReturnsServiceError(
                message=f"Returns service unreachable: {e}",
                details={"error_type": type(e).__name__},
            ) from e

        if response.status_code >= 400:
            raise ReturnsServiceError(
                message=f"Returns service error: {response.text}",
                status_code=response.status_code,
                details={"response": response.text},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ReturnsServiceError(
                message="Returns service sent a non-JSON response",
                status_code=response.status_code,
            ) from e

        if not isinstance(data, dict):
            raise ReturnsServiceError(
                message="Returns service sent an unexpected payload",
                status_code=response.status_code,
            )

        try:
            page = ReturnsPage.model_validate({
                "returns": data.get("returns") or [],
                "total": data.get("total") or 0,
            })
        except ValidationError as e:
            raise ReturnsServiceError(
                message=f"Returns service sent invalid records: {e.error_count()} error(s)",
                status_code=response.status_code,
            ) from e

        logger.debug(f"[ReturnsClient] Received {len(page.returns)} of {page.total} returns")
        return page
