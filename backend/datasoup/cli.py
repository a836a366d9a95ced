"""DataSoup sync entrypoint.

    datasoup               # incremental pass: diff, notify, store
    datasoup --bootstrap   # seed the store with recently modified CSVs
"""
from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Sequence

from prometheus_client import REGISTRY, write_to_textfile

from datasoup.config import Settings, settings as default_settings
from datasoup.errors import DataSoupError
from datasoup.logging_config import setup_logging
from datasoup.observability import setup_opentelemetry
from datasoup.sync import RunReport, open_run_context, run_bootstrap, run_update

logger = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="datasoup", description=__doc__.splitlines()[0])
    parser.add_argument("--bootstrap", action="store_true", help="Bootstrap the data files")
    return parser.parse_args(argv)


async def _run(settings: Settings, bootstrap: bool) -> RunReport:
    async with open_run_context(settings, with_transport=not bootstrap) as ctx:
        if bootstrap:
            return await run_bootstrap(ctx)
        return await run_update(ctx)


def main(argv: Sequence[str] | None = None, settings: Settings | None = None) -> int:
    args = _parse_args(argv)
    settings = settings or default_settings
    setup_logging(settings)
    setup_opentelemetry("sync", settings=settings)

    mode = "bootstrap" if args.bootstrap else "update"
    logger.info("Starting %s pass", mode, extra={"data_dir": settings.DATA_DIR})
    try:
        report = asyncio.run(_run(settings, args.bootstrap))
    except DataSoupError as exc:
        logger.critical("%s pass aborted: %s", mode, exc, extra={"error_class": type(exc).__name__})
        return 1
    finally:
        if settings.METRICS_TEXTFILE:
            write_to_textfile(settings.METRICS_TEXTFILE, REGISTRY)

    logger.info("Done", extra=report.as_dict())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
