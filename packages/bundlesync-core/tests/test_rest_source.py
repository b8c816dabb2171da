from __future__ import annotations

from typing import List

import httpx
import pytest

from bundlesync.core.connectors.rest import METADATA_INCLUDE, HttpxBundleSource
from bundlesync.core.exception import ConnectorError


def _source(settings, handler) -> HttpxBundleSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpxBundleSource(settings, client=client)


@pytest.mark.anyio
async def test_get_bundle_requests_display_metadata(settings):
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": {"type": "bundles", "id": "0x1"}})

    src = _source(settings, handler)
    payload = await src.get_bundle("0x1")

    assert payload["data"]["id"] == "0x1"
    req = seen[0]
    assert req.method == "GET"
    assert req.url.path == "/rest/bundles/0x1"
    assert req.url.params["include_display_metadata"] == "1"
    assert req.url.params["include"] == METADATA_INCLUDE


@pytest.mark.anyio
async def test_get_contents_info_passes_depth(settings):
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": {"type": "file", "name": "0x1"}})

    src = _source(settings, handler)
    await src.get_contents_info("0x1", depth=1)

    assert seen[0].url.path == "/rest/bundles/0x1/contents/info/"
    assert seen[0].url.params["depth"] == "1"


@pytest.mark.anyio
async def test_fetch_summary_requests_head_and_tail(settings):
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="line 1\nline 2\n")

    src = _source(settings, handler)
    text = await src.fetch_summary("0x1", "stdout")

    assert text == "line 1\nline 2\n"
    req = seen[0]
    assert req.url.path == "/rest/bundles/0x1/contents/blob/stdout"
    assert req.url.params["head"] == "50"
    assert req.url.params["tail"] == "50"
    assert req.url.params["truncation_text"] == settings.truncation_text


@pytest.mark.anyio
async def test_http_error_status_raises_connector_error(settings):
    src = _source(settings, lambda request: httpx.Response(500, text="oops"))
    with pytest.raises(ConnectorError, match="HTTP 500"):
        await src.get_bundle("0x1")


@pytest.mark.anyio
@pytest.mark.parametrize("body", ["not json", "[1, 2]"])
async def test_non_object_json_raises_connector_error(settings, body):
    src = _source(settings, lambda request: httpx.Response(200, text=body))
    with pytest.raises(ConnectorError):
        await src.get_contents_info("0x1")


@pytest.mark.anyio
async def test_transport_errors_are_retried(settings):
    attempts: List[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"data": None})

    src = _source(settings.model_copy(update={"retries": 1, "retry_backoff": 0.0}), handler)
    assert await src.get_bundle("0x1") == {"data": None}
    assert len(attempts) == 2


@pytest.mark.anyio
async def test_transport_errors_without_retries(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    src = _source(settings, handler)
    with pytest.raises(ConnectorError, match="after 1 attempt"):
        await src.get_bundle("0x1")


def test_headers_include_bearer_token(settings):
    s = settings.model_copy(update={"bearer_token": "t0k", "headers": {"X-Client": "tests"}})
    src = HttpxBundleSource(s)
    assert src.headers() == {"X-Client": "tests", "Authorization": "Bearer t0k"}
    assert src.base_url() == "http://codalab.test/rest"


@pytest.mark.anyio
async def test_injected_client_is_left_open(settings):
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
    async with HttpxBundleSource(settings, client=client) as src:
        await src.get_bundle("0x1")
    assert not client.is_closed
    await client.aclose()


@pytest.mark.anyio
async def test_owned_client_is_closed(settings):
    src = HttpxBundleSource(settings)
    client = src.async_client()
    await src.aclose()
    assert client.is_closed
