"""Flight-board aggregation for the Ben Gurion arrivals/departures feed.

The feed rewrites most of its rows every few minutes, so a line diff is
unreadable. Changed rows are instead counted per country and status.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

COUNTRY_FIELD = 11
STATUS_FIELD = 15

DEPARTED = "DEPARTED"
LANDED = "LANDED"
CANCELED = "CANCELED"

DEPARTED_HEADER = "🛫 Departures To:"
LANDED_HEADER = "🛬 Arrived From:"
CANCELLED_HEADER = "❌ Cancelled Flights:"


@dataclass
class FlightSummary:
    departed: Counter[str] = field(default_factory=Counter)
    landed: Counter[str] = field(default_factory=Counter)
    cancelled: Counter[str] = field(default_factory=Counter)

    def bucket(self, status: str) -> Counter[str] | None:
        return {
            DEPARTED: self.departed,
            LANDED: self.landed,
            CANCELED: self.cancelled,
        }.get(status)


def aggregate_flights(lines: Iterable[str]) -> FlightSummary:
    """Count changed rows per country for each terminal status.

    Rows with an unknown status or too few fields are ignored.
    """
    summary = FlightSummary()
    for line in lines:
        fields = line.split(",")
        if len(fields) <= STATUS_FIELD:
            continue
        bucket = summary.bucket(fields[STATUS_FIELD].strip())
        if bucket is None:
            continue
        bucket[fields[COUNTRY_FIELD].strip()] += 1
    return summary


def render_flight_summary(summary: FlightSummary) -> str:
    out: list[str] = []
    for header, counts in (
        (DEPARTED_HEADER, summary.departed),
        (LANDED_HEADER, summary.landed),
        (CANCELLED_HEADER, summary.cancelled),
    ):
        out.append(header)
        out.extend(f"{country}: {count}" for country, count in counts.items())
    return "\n".join(out)
