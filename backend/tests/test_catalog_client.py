from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from datasoup.catalog_client import CatalogClient
from datasoup.errors import CatalogError

URL = "https://catalog.test/api/3/action/package_search"
BODY = b'{"success": true, "result": {"count": 1, "results": [{"id": "ds-1", "title": "T"}]}}'


def _fetch(handler):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await CatalogClient(client, URL, rows=99999).fetch()

    return asyncio.run(go())


def test_fetch_posts_row_limit_and_returns_raw_body() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, content=BODY)

    raw, catalog = _fetch(handler)

    assert requests[0].method == "POST"
    assert json.loads(requests[0].content) == {"rows": 99999}
    assert raw == BODY
    assert [d.id for d in catalog.datasets] == ["ds-1"]


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="oops"),
        httpx.Response(200, content=b'{"success": false, "error": {"message": "boom"}}'),
        httpx.Response(200, content=b"<html>maintenance</html>"),
    ],
)
def test_unusable_catalog_is_fatal(response: httpx.Response) -> None:
    with pytest.raises(CatalogError):
        _fetch(lambda request: response)


def test_transport_failure_is_fatal() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(CatalogError):
        _fetch(handler)
