"""Exception taxonomy.

Fatal errors invalidate the premises of a run (no catalog, no baseline, no
writable store) and terminate it. Resource-local errors skip one resource and
let the run continue with the next one.
"""
from __future__ import annotations


class DataSoupError(Exception):
    """Base class for every error raised by datasoup."""

    fatal = True


# ── Fatal ──


class ConfigError(DataSoupError):
    """Missing or unusable configuration (e.g. no Telegram token)."""


class CatalogError(DataSoupError):
    """Catalog query failed or returned an unusable document."""


class SnapshotError(DataSoupError):
    """Baseline snapshot missing, unreadable or without a reference time."""


class StorageError(DataSoupError):
    """Filesystem failure on a required path."""


class DeliveryError(DataSoupError):
    """Notification transport is unreachable or rejects the bot credentials."""


# ── Resource-local ──


class FetchError(DataSoupError):
    """Non-transient download failure (bad request, 4xx, malformed URL)."""

    fatal = False

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{reason} ({url})")
        self.url = url
        self.reason = reason


class TransientFetchError(FetchError):
    """Connection drop, timeout or server-side failure; worth retrying."""


class EncodingError(DataSoupError):
    """Charset detection or conversion failed, or produced implausible text."""

    fatal = False


class InvalidResourcePath(DataSoupError):
    """Catalog identifiers cannot be mapped to a safe storage path."""

    fatal = False
