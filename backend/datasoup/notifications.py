"""Telegram message formatting for resource changes.

Telegram indexes message entities in UTF-16 code units, so every offset and
length here is computed with :func:`utf16_len` on the individual segments and
then summed; nothing is measured on the assembled text.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from datasoup.flights import aggregate_flights, render_flight_summary
from datasoup.schemas.catalog import Dataset, ResourceRef

LINK = "text_link"
BLOCKQUOTE = "expandable_blockquote"

NEW_PREFIX = "📗 New Resource: "
UPDATE_PREFIX = "📘 Update: "
FLIGHTS_PREFIX = "✈ Flights Update: "


class ChangeKind(str, enum.Enum):
    NEW = "new"
    UPDATE = "update"


def utf16_len(text: str) -> int:
    """Length of ``text`` in UTF-16 code units (astral characters count 2)."""
    return len(text.encode("utf-16-le", errors="surrogatepass")) // 2


@dataclass(frozen=True)
class Annotation:
    type: str
    offset: int
    length: int
    url: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type, "offset": self.offset, "length": self.length}
        if self.url is not None:
            payload["url"] = self.url
        return payload


@dataclass(frozen=True)
class NotificationMessage:
    chat_id: str
    text: str
    entities: List[Annotation] = field(default_factory=list)

    def entity(self, kind: str) -> Annotation | None:
        return next((e for e in self.entities if e.type == kind), None)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "chat_id": self.chat_id,
            "text": self.text,
            "entities": [e.to_payload() for e in self.entities],
        }


def fit_lines(lines: Sequence[str], ceiling: int, seed: int = 0) -> Tuple[List[str], int]:
    """Take lines in order while the running UTF-16 total stays under ``ceiling``.

    The total starts at ``seed`` and counts the newline joining each line to
    the previous one. Returns the kept lines and how many were left out.
    """
    kept: List[str] = []
    total = seed
    for line in lines:
        cost = utf16_len(line) + (1 if kept else 0)
        if total + cost >= ceiling:
            break
        kept.append(line)
        total += cost
    return kept, len(lines) - len(kept)


def render_diff_body(lines: Sequence[str], ceiling: int, title: str) -> str:
    kept, excluded = fit_lines(lines, ceiling, seed=utf16_len(title))
    body = "\n".join(kept)
    if excluded:
        more = f"... and {excluded} more"
        body = f"{body}\n{more}" if kept else more
    return body


def format_tags(dataset: Dataset) -> str:
    return " ".join(
        "#" + tag.display_name.replace(" ", "_") for tag in dataset.tags if tag.display_name
    )


class FormatStrategy(Protocol):
    def prefix(self, kind: ChangeKind) -> str: ...

    def body(self, lines: Sequence[str], title: str) -> str: ...


@dataclass(frozen=True)
class LineDiffStrategy:
    """Changed lines verbatim, truncated to the message ceiling."""

    ceiling: int = 3800

    def prefix(self, kind: ChangeKind) -> str:
        return NEW_PREFIX if kind == ChangeKind.NEW else UPDATE_PREFIX

    def body(self, lines: Sequence[str], title: str) -> str:
        return render_diff_body(lines, self.ceiling, title)


@dataclass(frozen=True)
class FlightsStrategy:
    """Per-country counts of departed, landed and cancelled flights."""

    def prefix(self, kind: ChangeKind) -> str:
        return FLIGHTS_PREFIX

    def body(self, lines: Sequence[str], title: str) -> str:
        return render_flight_summary(aggregate_flights(lines))


class FormatterRegistry:
    """Resource id -> strategy, with a fallback for every other resource."""

    def __init__(self, default: FormatStrategy) -> None:
        self.default = default
        self._by_resource: Dict[str, FormatStrategy] = {}

    def register(self, resource_id: str, strategy: FormatStrategy) -> None:
        self._by_resource[resource_id] = strategy

    def for_resource(self, resource_id: str) -> FormatStrategy:
        return self._by_resource.get(resource_id, self.default)


class NotificationFormatter:
    def __init__(self, registry: FormatterRegistry, *, chat_id: str, dataset_url_base: str) -> None:
        self.registry = registry
        self.chat_id = chat_id
        self.dataset_url_base = dataset_url_base.rstrip("/")

    @classmethod
    def from_settings(cls, settings) -> "NotificationFormatter":
        registry = FormatterRegistry(LineDiffStrategy(ceiling=settings.MESSAGE_MAX_UTF16))
        if settings.FLIGHTS_RESOURCE_ID:
            registry.register(settings.FLIGHTS_RESOURCE_ID, FlightsStrategy())
        return cls(registry, chat_id=settings.TELEGRAM_CHAT_ID, dataset_url_base=settings.DATASET_URL_BASE)

    def resource_url(self, dataset: Dataset, resource: ResourceRef) -> str:
        return f"{self.dataset_url_base}/{dataset.id}/resource/{resource.id}"

    def format(
        self,
        kind: ChangeKind,
        lines: Sequence[str],
        dataset: Dataset,
        resource: ResourceRef,
    ) -> NotificationMessage:
        strategy = self.registry.for_resource(resource.id)
        prefix = strategy.prefix(kind)
        title = resource.name or dataset.title
        body = strategy.body(lines, title)

        prefix_len = utf16_len(prefix)
        title_len = utf16_len(title)

        parts = [prefix, title, body]
        tags = format_tags(dataset)
        if tags:
            parts.append(tags)

        return NotificationMessage(
            chat_id=self.chat_id,
            text="\n".join(parts),
            entities=[
                Annotation(
                    type=LINK,
                    offset=prefix_len + 1,
                    length=title_len,
                    url=self.resource_url(dataset, resource),
                ),
                Annotation(
                    type=BLOCKQUOTE,
                    offset=prefix_len + title_len + 2,
                    length=utf16_len(body),
                ),
            ],
        )
