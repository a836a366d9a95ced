"""CKAN package_search document — datasets, resources, tags.

Only the fields DataSoup reads are modelled; everything else in the catalog
response is ignored on parse and preserved verbatim in the persisted snapshot.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

logger = logging.getLogger(__name__)

CATALOG_TIME_FORMATS = ("%Y-%m-%dT%H:%M:%S.%f", "%Y-%m-%dT%H:%M:%S")


def parse_catalog_time(value: Any, tz_name: str = "UTC") -> datetime | None:
    """Parse a CKAN timestamp into an aware UTC datetime.

    CKAN emits naive ISO timestamps (``2024-05-01T09:30:00.123456``); they are
    interpreted in ``tz_name``. Unparseable values yield ``None``.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        parsed = None
        for fmt in CATALOG_TIME_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            logger.warning("Unparseable catalog timestamp %r", text)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=ZoneInfo(tz_name))
    return parsed.astimezone(timezone.utc)


def _context_tz(info: ValidationInfo) -> str:
    ctx = info.context if isinstance(info.context, dict) else {}
    return str(ctx.get("tz") or "UTC")


class _CatalogModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _null_as_empty_text(cls, v: Any, info: ValidationInfo) -> Any:
        # CKAN sends null for unset text fields.
        if v is None and cls.model_fields[info.field_name].annotation is str:
            return ""
        return v


class Tag(_CatalogModel):
    id: str = ""
    name: str = ""
    display_name: str = ""


class Organization(_CatalogModel):
    id: str = ""
    name: str = ""
    title: str = ""


class ResourceRef(_CatalogModel):
    id: str
    package_id: str = ""
    name: str = ""
    format: str = ""
    size: Optional[int] = None
    metadata_modified: Optional[datetime] = None
    url: str = ""

    @field_validator("metadata_modified", mode="before")
    @classmethod
    def _parse_modified(cls, v: Any, info: ValidationInfo) -> datetime | None:
        return parse_catalog_time(v, _context_tz(info))

    @field_validator("size", mode="before")
    @classmethod
    def _coerce_size(cls, v: Any) -> int | None:
        if v in (None, ""):
            return None
        try:
            return int(v)
        except (TypeError, ValueError):
            return None

    @property
    def is_csv(self) -> bool:
        return self.format.strip().upper() == "CSV"


class Dataset(_CatalogModel):
    id: str
    name: str = ""
    title: str = ""
    organization: Organization = Field(default_factory=Organization)
    tags: list[Tag] = Field(default_factory=list)
    metadata_modified: Optional[datetime] = None
    num_resources: int = 0
    resources: list[ResourceRef] = Field(default_factory=list)

    @field_validator("metadata_modified", mode="before")
    @classmethod
    def _parse_modified(cls, v: Any, info: ValidationInfo) -> datetime | None:
        return parse_catalog_time(v, _context_tz(info))

    @field_validator("organization", mode="before")
    @classmethod
    def _null_organization(cls, v: Any) -> Any:
        return v if v is not None else {}

    @field_validator("tags", "resources", mode="before")
    @classmethod
    def _null_list(cls, v: Any) -> Any:
        return v if v is not None else []


class CatalogResult(_CatalogModel):
    count: int = 0
    results: list[Dataset] = Field(default_factory=list)


class CatalogResponse(_CatalogModel):
    success: bool = False
    result: CatalogResult = Field(default_factory=CatalogResult)

    @classmethod
    def parse(cls, raw: bytes | str, tz_name: str = "UTC") -> "CatalogResponse":
        return cls.model_validate_json(raw, context={"tz": tz_name})

    @property
    def datasets(self) -> list[Dataset]:
        return self.result.results


@dataclass(frozen=True)
class CatalogSnapshot:
    """The catalog as of one successful synchronization pass."""

    response: CatalogResponse
    raw: bytes
    captured_at: datetime

    @property
    def datasets(self) -> list[Dataset]:
        return self.response.datasets

    def reference_time(self) -> datetime | None:
        """Most recent dataset modification recorded in the snapshot."""
        times = [d.metadata_modified for d in self.datasets if d.metadata_modified is not None]
        return max(times) if times else None
