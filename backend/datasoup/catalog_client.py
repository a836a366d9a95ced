"""CKAN ``package_search`` client."""
from __future__ import annotations

import logging
from typing import Tuple

import httpx

from datasoup.errors import CatalogError
from datasoup.metrics import CATALOG_FETCHES_TOTAL
from datasoup.schemas.catalog import CatalogResponse

logger = logging.getLogger(__name__)


class CatalogClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        rows: int = 99999,
        timeout: float = 120.0,
        tz_name: str = "UTC",
    ) -> None:
        self.client = client
        self.url = url
        self.rows = rows
        self.timeout = timeout
        self.tz_name = tz_name

    async def fetch(self) -> Tuple[bytes, CatalogResponse]:
        """Return the raw response body and its parsed form.

        The raw body is what gets persisted as the next baseline snapshot.
        """
        try:
            resp = await self.client.post(self.url, json={"rows": self.rows}, timeout=self.timeout)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            CATALOG_FETCHES_TOTAL.labels(outcome="http_error").inc()
            raise CatalogError(f"catalog query returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            CATALOG_FETCHES_TOTAL.labels(outcome="transport_error").inc()
            raise CatalogError(f"catalog query failed: {type(exc).__name__}: {exc}") from exc

        raw = resp.content
        try:
            catalog = CatalogResponse.parse(raw, self.tz_name)
        except ValueError as exc:
            CATALOG_FETCHES_TOTAL.labels(outcome="invalid").inc()
            raise CatalogError(f"catalog response is not a valid package listing: {exc}") from exc
        if not catalog.success:
            CATALOG_FETCHES_TOTAL.labels(outcome="unsuccessful").inc()
            raise CatalogError("catalog query reported success=false")

        CATALOG_FETCHES_TOTAL.labels(outcome="ok").inc()
        logger.info(
            "Fetched catalog with %d datasets", len(catalog.datasets),
            extra={"datasets": len(catalog.datasets), "bytes": len(raw)},
        )
        return raw, catalog
