"""Read-only catalog dashboard built from the baseline snapshot."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from html import escape
from zoneinfo import ZoneInfo

from datasoup.schemas.catalog import CatalogSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatasetRow:
    title: str
    id: str
    organization: str
    last_modified: str
    modified_at: datetime
    num_resources: int
    tags: list[str] = field(default_factory=list)

    def to_json(self) -> dict:
        row = asdict(self)
        row["modified_at"] = self.modified_at.isoformat()
        return row


@dataclass(frozen=True)
class DashboardData:
    last_update: str
    datasets: list[DatasetRow]


def build_dashboard(snapshot: CatalogSnapshot, tz_name: str = "UTC") -> DashboardData:
    """Project the snapshot into display rows, most recently modified first.

    Modification times are shown as catalog wall-clock time in ``tz_name``.
    """
    zone = ZoneInfo(tz_name)
    rows: list[DatasetRow] = []
    for dataset in snapshot.datasets:
        if dataset.metadata_modified is None:
            logger.warning("Dataset %s has no parseable modification time; not shown", dataset.id)
            continue
        rows.append(
            DatasetRow(
                title=dataset.title,
                id=dataset.id,
                organization=dataset.organization.title,
                last_modified=dataset.metadata_modified.astimezone(zone).strftime("%Y-%m-%d %H:%M"),
                modified_at=dataset.metadata_modified,
                num_resources=dataset.num_resources or len(dataset.resources),
                tags=[t.display_name for t in dataset.tags],
            )
        )
    rows.sort(key=lambda r: r.modified_at, reverse=True)
    return DashboardData(
        last_update=snapshot.captured_at.strftime("%Y-%m-%d %H:%M:%S"),
        datasets=rows,
    )


PAGE_STYLE = """
<style>
body{font-family:Arial,sans-serif;margin:20px}
.header{background-color:#f0f0f0;padding:20px;border-radius:5px;margin-bottom:20px}
table{border-collapse:collapse;width:100%}
th,td{border:1px solid #ddd;padding:8px;text-align:left}
th{background-color:#f2f2f2}
tr:nth-child(even){background-color:#f9f9f9}
.dataset-link{color:#0066cc;text-decoration:none}
.dataset-link:hover{text-decoration:underline}
.tags{font-size:.9em;color:#666}
</style>
"""


def _render_row(row: DatasetRow, dataset_url_base: str) -> str:
    href = escape(f"{dataset_url_base.rstrip('/')}/{row.id}", quote=True)
    return f"""
            <tr>
                <td><a href="{href}" class="dataset-link" target="_blank" rel="noreferrer">{escape(row.title)}</a></td>
                <td>{escape(row.organization)}</td>
                <td>{escape(row.last_modified)}</td>
                <td>{row.num_resources}</td>
                <td class="tags">{escape(", ".join(row.tags))}</td>
            </tr>"""


def render_dashboard(data: DashboardData, dataset_url_base: str) -> str:
    rows_html = "".join(_render_row(row, dataset_url_base) for row in data.datasets)
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>DataSoup Monitoring</title>{PAGE_STYLE}</head>
<body>
    <div class="header">
        <h1>🍲 DataSoup Monitoring</h1>
        <p><strong>Last Update:</strong> {escape(data.last_update)}</p>
        <p><strong>Total Datasets:</strong> {len(data.datasets)}</p>
    </div>
    <table>
        <thead>
            <tr>
                <th>Dataset Name</th>
                <th>Organization</th>
                <th>Last Modified</th>
                <th>Resources</th>
                <th>Tags</th>
            </tr>
        </thead>
        <tbody>{rows_html}
        </tbody>
    </table>
</body>
</html>
"""
