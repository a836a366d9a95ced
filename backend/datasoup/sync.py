"""Synchronization passes — bootstrap seed and incremental update.

Update pass, per eligible CSV resource (strictly sequential, paced for the
Telegram flood limit)::

    fetch -> normalize -> diff vs stored copy -> format -> deliver -> store

Bootstrap pass: fetch and store every recently modified CSV concurrently,
without notifications. Both passes share one HTTP client whose connection
pool bounds the fan-out.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Optional

import httpx

from datasoup.catalog_client import CatalogClient
from datasoup.config import Settings
from datasoup.delivery import TelegramTransport, resolve_token
from datasoup.differ import diff_lines
from datasoup.encoding import normalize
from datasoup.errors import EncodingError, FetchError, InvalidResourcePath, SnapshotError
from datasoup.fetcher import RetryPolicy, fetch_with_retry
from datasoup.metrics import (
    DIFF_LINES_OBS,
    NOTIFICATIONS_TOTAL,
    RESOURCE_DECISIONS_TOTAL,
    RESOURCE_FAILURES_TOTAL,
)
from datasoup.notifications import ChangeKind, NotificationFormatter
from datasoup.observability import resource_span
from datasoup.schemas.catalog import Dataset, ResourceRef
from datasoup.store import ResourceStore, SnapshotStore

logger = logging.getLogger(__name__)

_RESOURCE_LOCAL_ERRORS = (FetchError, EncodingError, InvalidResourcePath)


class ResourceState(str, enum.Enum):
    SKIPPED = "skipped"        # not a CSV
    EXEMPT = "exempt"
    OVERSIZED = "oversized"
    UNCHANGED = "unchanged"    # not newer than the baseline, or already refreshed
    NEW = "new"
    UPDATED = "updated"

    @property
    def eligible(self) -> bool:
        return self in (ResourceState.NEW, ResourceState.UPDATED)


def classify_resource(
    resource: ResourceRef,
    reference_time: datetime,
    stored_mtime: Optional[datetime],
    settings: Settings,
) -> ResourceState:
    """Decide what the update pass does with ``resource``.

    ``stored_mtime`` is the modification time of the stored copy, ``None`` when
    there is none. A stored copy written after ``reference_time`` was already
    refreshed in this epoch and is left alone.
    """
    if not resource.is_csv:
        return ResourceState.SKIPPED
    if resource.id in settings.EXEMPT_RESOURCE_IDS:
        return ResourceState.EXEMPT
    if (resource.size or 0) >= settings.MAX_RESOURCE_BYTES:
        return ResourceState.OVERSIZED
    if resource.metadata_modified is None or resource.metadata_modified <= reference_time:
        return ResourceState.UNCHANGED
    if stored_mtime is None:
        return ResourceState.NEW
    if stored_mtime < reference_time:
        return ResourceState.UPDATED
    return ResourceState.UNCHANGED


def is_bootstrap_candidate(resource: ResourceRef, cutoff: datetime) -> bool:
    return (
        resource.is_csv
        and resource.metadata_modified is not None
        and resource.metadata_modified > cutoff
    )


@dataclass
class RunReport:
    mode: str
    states: dict[str, int] = field(default_factory=dict)
    stored: int = 0
    failures: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    notifications_suppressed: int = 0

    def count(self, state: ResourceState) -> None:
        self.states[state.value] = self.states.get(state.value, 0) + 1
        RESOURCE_DECISIONS_TOTAL.labels(mode=self.mode, state=state.value).inc()

    def fail(self, exc: Exception) -> None:
        self.failures += 1
        RESOURCE_FAILURES_TOTAL.labels(mode=self.mode, error_class=type(exc).__name__).inc()

    def as_dict(self) -> dict:
        return {
            "mode": self.mode,
            "states": dict(self.states),
            "stored": self.stored,
            "failures": self.failures,
            "notifications_sent": self.notifications_sent,
            "notifications_failed": self.notifications_failed,
            "notifications_suppressed": self.notifications_suppressed,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunContext:
    """Everything one run needs; nothing is shared across runs."""

    settings: Settings
    client: httpx.AsyncClient
    catalog: CatalogClient
    resources: ResourceStore
    snapshots: SnapshotStore
    formatter: NotificationFormatter
    transport: Optional[TelegramTransport] = None
    rng: random.Random = field(default_factory=random.Random)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    now: Callable[[], datetime] = _utcnow

    def retry_policy(self, mode: str) -> RetryPolicy:
        attempts = (
            self.settings.BOOTSTRAP_MAX_ATTEMPTS if mode == "bootstrap" else self.settings.UPDATE_MAX_ATTEMPTS
        )
        return RetryPolicy(max_attempts=attempts, initial_backoff=self.settings.BACKOFF_INITIAL_S)


def build_http_client(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        headers={"User-Agent": settings.USER_AGENT},
        timeout=httpx.Timeout(settings.FETCH_TIMEOUT_S),
        limits=httpx.Limits(max_connections=settings.FETCH_MAX_CONNECTIONS),
        transport=transport,
    )


@asynccontextmanager
async def open_run_context(
    settings: Settings,
    *,
    with_transport: bool,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[RunContext]:
    data_dir = Path(settings.DATA_DIR)
    token = resolve_token(settings) if with_transport else None
    async with build_http_client(settings, http_transport) as client:
        yield RunContext(
            settings=settings,
            client=client,
            catalog=CatalogClient(
                client,
                settings.CATALOG_SEARCH_URL,
                rows=settings.CATALOG_ROWS,
                timeout=settings.CATALOG_TIMEOUT_S,
                tz_name=settings.CATALOG_TIMEZONE,
            ),
            resources=ResourceStore(data_dir),
            snapshots=SnapshotStore(data_dir / settings.SNAPSHOT_FILENAME, tz_name=settings.CATALOG_TIMEZONE),
            formatter=NotificationFormatter.from_settings(settings),
            transport=(
                TelegramTransport(
                    client,
                    token=token,
                    api_base=settings.TELEGRAM_API_BASE,
                    timeout=settings.TELEGRAM_TIMEOUT_S,
                )
                if token
                else None
            ),
        )


# ── Update pass ──


async def _process_update(
    ctx: RunContext,
    report: RunReport,
    dataset: Dataset,
    resource: ResourceRef,
    state: ResourceState,
    path: Path,
) -> None:
    settings = ctx.settings
    await ctx.sleep(settings.UPDATE_PAUSE_S)
    logger.info(
        "Fetching %s resource %s", state.value, resource.name or resource.id,
        extra={"resource_id": resource.id, "dataset_id": dataset.id, "url": resource.url},
    )
    raw = await fetch_with_retry(
        ctx.client,
        resource.url,
        settings.USER_AGENT,
        ctx.retry_policy("update"),
        rng=ctx.rng,
        sleep=ctx.sleep,
        mode="update",
    )
    content = normalize(raw)
    if content.converted:
        logger.info("Converted %s from %s", resource.id, content.charset)

    if state == ResourceState.NEW:
        kind = ChangeKind.NEW
        old_text = None
    else:
        kind = ChangeKind.UPDATE
        old_text = ctx.resources.read(path).decode("utf-8", errors="replace")
    lines = diff_lines(old_text, content.text())
    DIFF_LINES_OBS.observe(len(lines))
    logger.info(
        "Diffed %s: %d changed line(s)", resource.id, len(lines),
        extra={"resource_id": resource.id, "changed_lines": len(lines), "kind": kind.value},
    )

    if not lines and not settings.NOTIFY_EMPTY_DIFFS:
        report.notifications_suppressed += 1
        NOTIFICATIONS_TOTAL.labels(kind=kind.value, status="suppressed").inc()
    elif ctx.transport is not None:
        message = ctx.formatter.format(kind, lines, dataset, resource)
        result = await ctx.transport.send(message)
        if result.ok:
            report.notifications_sent += 1
        else:
            report.notifications_failed += 1
        NOTIFICATIONS_TOTAL.labels(kind=kind.value, status="sent" if result.ok else "failed").inc()

    ctx.resources.write(path, content.data)
    report.stored += 1


async def run_update(ctx: RunContext) -> RunReport:
    """Diff every changed CSV against its stored copy and notify.

    The fresh catalog replaces the baseline at the end even if individual
    resources failed; those are not retried once the baseline moves past them.
    """
    report = RunReport(mode="update")
    prior = ctx.snapshots.load()
    reference_time = prior.reference_time()
    if reference_time is None:
        raise SnapshotError(f"snapshot {ctx.snapshots.path} has no dataset modification times")
    logger.info("Reference time %s", reference_time.isoformat())

    if ctx.transport is not None:
        await ctx.transport.check()

    raw_catalog, catalog = await ctx.catalog.fetch()

    for dataset in catalog.datasets:
        for resource in dataset.resources:
            try:
                path = ctx.resources.path_for(dataset.organization.name, dataset.id, resource.id)
            except InvalidResourcePath as exc:
                if resource.is_csv:
                    logger.warning("Skipping %s: %s", resource.id, exc)
                    report.fail(exc)
                continue
            state = classify_resource(resource, reference_time, ctx.resources.modified_at(path), ctx.settings)
            report.count(state)
            if not state.eligible:
                continue
            try:
                with resource_span(
                    "update_resource", resource_id=resource.id, dataset_id=dataset.id, state=state.value
                ):
                    await _process_update(ctx, report, dataset, resource, state, path)
            except _RESOURCE_LOCAL_ERRORS as exc:
                report.fail(exc)
                logger.error(
                    "Skipping resource %s this run: %s", resource.id, exc,
                    extra={"resource_id": resource.id, "error_class": type(exc).__name__},
                )

    ctx.snapshots.save(raw_catalog)
    logger.info("Update pass finished", extra=report.as_dict())
    return report


# ── Bootstrap pass ──


async def _seed_resource(ctx: RunContext, report: RunReport, dataset: Dataset, resource: ResourceRef) -> None:
    with resource_span("seed_resource", resource_id=resource.id, dataset_id=dataset.id):
        await _download_and_store(ctx, report, dataset, resource)


async def _download_and_store(ctx: RunContext, report: RunReport, dataset: Dataset, resource: ResourceRef) -> None:
    try:
        path = ctx.resources.path_for(dataset.organization.name, dataset.id, resource.id)
        raw = await fetch_with_retry(
            ctx.client,
            resource.url,
            ctx.settings.USER_AGENT,
            ctx.retry_policy("bootstrap"),
            rng=ctx.rng,
            sleep=ctx.sleep,
            mode="bootstrap",
        )
        content = normalize(raw)
    except _RESOURCE_LOCAL_ERRORS as exc:
        report.fail(exc)
        logger.error(
            "Could not seed %s: %s", resource.name or resource.id, exc,
            extra={"resource_id": resource.id, "error_class": type(exc).__name__},
        )
        return
    ctx.resources.write(path, content.data)
    report.stored += 1
    logger.info("Downloaded %s", resource.name or resource.id, extra={"resource_id": resource.id})


async def run_bootstrap(ctx: RunContext) -> RunReport:
    """Seed the store with every CSV modified within the lookback window."""
    report = RunReport(mode="bootstrap")
    raw_catalog, catalog = await ctx.catalog.fetch()
    ctx.snapshots.save(raw_catalog)

    cutoff = ctx.now() - timedelta(days=ctx.settings.BOOTSTRAP_LOOKBACK_DAYS)
    tasks = []
    for dataset in catalog.datasets:
        for resource in dataset.resources:
            if is_bootstrap_candidate(resource, cutoff):
                report.count(ResourceState.NEW)
                tasks.append(_seed_resource(ctx, report, dataset, resource))
            else:
                report.count(ResourceState.UNCHANGED if resource.is_csv else ResourceState.SKIPPED)

    logger.info("Downloading %d resources", len(tasks))
    results = await asyncio.gather(*tasks, return_exceptions=True)
    for result in results:
        # Resource-local errors are handled per task; anything left is fatal.
        if isinstance(result, BaseException):
            raise result
    logger.info("Bootstrap pass finished", extra=report.as_dict())
    return report
