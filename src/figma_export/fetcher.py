"""Authenticated access to the Figma REST API."""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .errors import RequestError, TransportError


logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Figma-Token"


class RemoteFetcher:
    """
    Issues single GET requests against the API and the image CDN.

    Every call makes exactly one attempt. Retries and timeouts are left to
    the caller: pass `timeout` to bound each request, or inject a
    preconfigured `httpx.AsyncClient`.

    Usage:
        async with RemoteFetcher() as fetcher:
            body = await fetcher.fetch_json(url, token)
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self._client = client

    async def __aenter__(self) -> "RemoteFetcher":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_json(self, url: str, token: str) -> Any:
        """
        GET `url` and decode the JSON body.

        Raises:
            RequestError: If the response status is not a success
                or the body is not JSON
            TransportError: If the request could not be completed
        """
        response = await self._get(url, token, accept="application/json")
        try:
            return response.json()
        except ValueError as e:
            # A success status with a non-JSON body, e.g. a proxy error page
            raise RequestError(url, response.status_code, response.text) from e

    async def fetch_bytes(self, url: str, token: str) -> bytes:
        """
        GET `url` and return the raw body.

        The token header is always sent, also to the image CDN.

        Raises:
            RequestError: If the response status is not a success
            TransportError: If the request could not be completed
        """
        response = await self._get(url, token, accept="*/*")
        return response.content

    async def _get(self, url: str, token: str, accept: str) -> httpx.Response:
        headers = {"Accept": accept, TOKEN_HEADER: token}
        logger.debug("GET %s", url)
        try:
            response = await self._client.get(url, headers=headers)
        except httpx.TransportError as e:
            raise TransportError(url, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise RequestError(url, response.status_code, _response_body(response))
        logger.debug("GET %s -> %d (%d bytes)", url, response.status_code, len(response.content))
        return response


def _response_body(response: httpx.Response) -> Any:
    """Decoded error body: JSON when possible, text otherwise."""
    try:
        return response.json()
    except ValueError:
        return response.text
