"""On-disk persistence: stored resource files and the baseline snapshot.

Layout under ``DATA_DIR``::

    packagedata.json                       # baseline snapshot
    <organization>/<dataset id>/<resource id>.csv

Writes go to a temporary sibling, are fsynced and then renamed into place, so
a crash leaves either the old or the new file, never a truncated one.
"""
from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from datasoup.errors import InvalidResourcePath, SnapshotError, StorageError
from datasoup.schemas.catalog import CatalogResponse, CatalogSnapshot

logger = logging.getLogger(__name__)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="wb",
        delete=False,
        dir=str(path.parent),
        prefix=path.name,
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        try:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        except BaseException:
            tmp.close()
            tmp_path.unlink(missing_ok=True)
            raise
    try:
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def _safe_component(value: str, what: str) -> str:
    text = (value or "").strip()
    if not text or text in {".", ".."} or "/" in text or "\\" in text or "\x00" in text:
        raise InvalidResourcePath(f"unusable {what} for storage path: {value!r}")
    return text


class ResourceStore:
    """Raw resource bytes keyed by (organization, dataset id, resource id)."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def path_for(self, organization: str, dataset_id: str, resource_id: str) -> Path:
        return (
            self.root
            / _safe_component(organization, "organization")
            / _safe_component(dataset_id, "dataset id")
            / f"{_safe_component(resource_id, 'resource id')}.csv"
        )

    def exists(self, path: Path) -> bool:
        return path.is_file()

    def modified_at(self, path: Path) -> datetime | None:
        try:
            return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"cannot stat {path}: {exc}") from exc

    def read(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError(f"cannot read {path}: {exc}") from exc

    def write(self, path: Path, data: bytes) -> None:
        try:
            atomic_write_bytes(path, data)
        except OSError as exc:
            raise StorageError(f"cannot write {path}: {exc}") from exc
        logger.debug("Stored %d bytes at %s", len(data), path)


class SnapshotStore:
    """The last successfully fetched catalog listing, kept verbatim."""

    def __init__(self, path: Path | str, *, tz_name: str = "UTC") -> None:
        self.path = Path(path)
        self.tz_name = tz_name

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> CatalogSnapshot:
        try:
            raw = self.path.read_bytes()
            captured_at = datetime.fromtimestamp(self.path.stat().st_mtime, tz=timezone.utc)
        except FileNotFoundError as exc:
            raise SnapshotError(f"no baseline snapshot at {self.path}; run with --bootstrap first") from exc
        except OSError as exc:
            raise SnapshotError(f"cannot read snapshot {self.path}: {exc}") from exc
        try:
            response = CatalogResponse.parse(raw, self.tz_name)
        except ValueError as exc:
            raise SnapshotError(f"snapshot {self.path} is not a catalog document: {exc}") from exc
        return CatalogSnapshot(response=response, raw=raw, captured_at=captured_at)

    def save(self, raw: bytes) -> None:
        try:
            atomic_write_bytes(self.path, raw)
        except OSError as exc:
            raise StorageError(f"cannot write snapshot {self.path}: {exc}") from exc
        logger.info("Baseline snapshot written", extra={"path": str(self.path), "bytes": len(raw)})
