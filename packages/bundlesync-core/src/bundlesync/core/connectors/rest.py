from __future__ import annotations

import logging
from typing import Any, Dict
from urllib.parse import quote

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from bundlesync.core.exception import ConnectorError
from bundlesync.core.runtime.settings import SyncSettings

log = logging.getLogger("bundlesync.core.connectors.rest")

# Relationships embedded in the metadata document.
METADATA_INCLUDE = "owner,group_permissions,host_worksheets"


class HttpxBundleSource:
    """
    Bundle REST source backed by httpx.

    Endpoints (relative to settings.base_url):
      - GET /bundles/{id}?include_display_metadata=1&include=owner,group_permissions,host_worksheets
      - GET /bundles/{id}/contents/info/?depth=1
      - GET /bundles/{id}/contents/blob{path}?head=..&tail=..&truncation_text=..

    Timeouts, TLS verification, headers and retries come from SyncSettings. Pass an
    existing AsyncClient (e.g. one with a MockTransport) to reuse its transport; the
    source then leaves closing it to the caller.
    """

    def __init__(self, settings: SyncSettings, *, client: httpx.AsyncClient | None = None):
        self.settings = settings
        self._async = client
        self._owns_client = client is None

    def base_url(self) -> str:
        return (self.settings.base_url or "").rstrip("/")

    def headers(self) -> dict:
        h = dict(self.settings.headers or {})
        token = self.settings.bearer_token
        if token:
            h.setdefault("Authorization", f"Bearer {token}")
        return h

    def async_client(self) -> httpx.AsyncClient:
        if self._async is None:
            self._async = httpx.AsyncClient(
                headers=self.headers(),
                timeout=self.settings.timeout,
                verify=self.settings.verify_ssl,
            )
        return self._async

    async def aclose(self) -> None:
        try:
            if self._async is not None and self._owns_client:
                await self._async.aclose()
        finally:
            if self._owns_client:
                self._async = None

    async def __aenter__(self) -> "HttpxBundleSource":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def request(self, method: str, path: str, *, params: dict | None = None) -> httpx.Response:
        """Async request primitive; retries transport errors, rejects non-2xx responses."""
        url = f"{self.base_url()}{path}"
        attempts = max(1, 1 + int(self.settings.retries))

        async def _do_request() -> httpx.Response:
            return await self.async_client().request(method, url, params=params)

        try:
            if attempts > 1:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(attempts),
                    wait=wait_exponential(multiplier=self.settings.retry_backoff, max=5),
                    retry=retry_if_exception_type(httpx.TransportError),
                    reraise=True,
                ):
                    with attempt:
                        response = await _do_request()
            else:
                response = await _do_request()
        except httpx.HTTPError as e:
            raise ConnectorError(f"REST request failed after {attempts} attempt(s): {method} {url}: {e}") from e

        if response.is_error:
            raise ConnectorError(f"REST request returned HTTP {response.status_code}: {method} {url}")
        return response

    async def _get_json(self, path: str, *, params: dict | None = None) -> Dict[str, Any]:
        response = await self.request("GET", path, params=params)
        try:
            payload = response.json()
        except ValueError as e:
            raise ConnectorError(f"REST response is not valid JSON: GET {path}") from e
        if not isinstance(payload, dict):
            raise ConnectorError(f"REST response must be a JSON object: GET {path}")
        return payload

    async def get_bundle(self, identity: str) -> Dict[str, Any]:
        return await self._get_json(
            f"/bundles/{quote(identity, safe='')}",
            params={"include_display_metadata": 1, "include": METADATA_INCLUDE},
        )

    async def get_contents_info(self, identity: str, *, depth: int = 1) -> Dict[str, Any]:
        return await self._get_json(
            f"/bundles/{quote(identity, safe='')}/contents/info/",
            params={"depth": depth},
        )

    async def fetch_summary(self, identity: str, path: str) -> str:
        """Head and tail of one file in the bundle, joined by the truncation text."""
        if not path.startswith("/"):
            path = "/" + path
        response = await self.request(
            "GET",
            f"/bundles/{quote(identity, safe='')}/contents/blob{quote(path, safe='/')}",
            params={
                "head": self.settings.summary_head,
                "tail": self.settings.summary_tail,
                "truncation_text": self.settings.truncation_text,
            },
        )
        return response.text
