from __future__ import annotations

import json
from datetime import datetime, timezone

from fastapi.testclient import TestClient

from datasoup.config import Settings
from datasoup.dashboard import build_dashboard, render_dashboard
from datasoup import metrics  # noqa: F401  registers collectors
from datasoup.main import app, get_settings
from datasoup.schemas.catalog import CatalogResponse, CatalogSnapshot


def _raw() -> bytes:
    return json.dumps(
        {
            "success": True,
            "result": {
                "count": 3,
                "results": [
                    {
                        "id": "older",
                        "title": "Older",
                        "metadata_modified": "2024-01-01T08:00:00.000000",
                        "num_resources": 2,
                        "organization": {"title": "CBS"},
                        "tags": [{"display_name": "a"}, {"display_name": "b"}],
                    },
                    {"id": "undated", "title": "Undated", "metadata_modified": "not a date"},
                    {
                        "id": "newer",
                        "title": "<script>alert(1)</script>",
                        "metadata_modified": "2024-03-01T17:45:10.000000",
                        "organization": {"title": "Health & Welfare"},
                    },
                ],
            },
        }
    ).encode()


def _snapshot() -> CatalogSnapshot:
    raw = _raw()
    return CatalogSnapshot(
        response=CatalogResponse.parse(raw),
        raw=raw,
        captured_at=datetime(2024, 3, 2, 6, 0, 5, tzinfo=timezone.utc),
    )


def test_rows_sorted_newest_first_and_undated_skipped() -> None:
    data = build_dashboard(_snapshot())
    assert [r.id for r in data.datasets] == ["newer", "older"]
    assert data.datasets[0].last_modified == "2024-03-01 17:45"
    assert data.datasets[1].tags == ["a", "b"]
    assert data.datasets[1].num_resources == 2
    assert data.last_update == "2024-03-02 06:00:05"


def test_render_escapes_catalog_text() -> None:
    html = render_dashboard(build_dashboard(_snapshot()), "https://data.gov.il/dataset")
    assert "<title>DataSoup Monitoring</title>" in html
    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert "Health &amp; Welfare" in html
    assert 'href="https://data.gov.il/dataset/older"' in html
    assert html.index("newer") < html.index("older")


def _client(tmp_path, with_snapshot: bool) -> TestClient:
    if with_snapshot:
        (tmp_path / "packagedata.json").write_bytes(_raw())
    app.dependency_overrides[get_settings] = lambda: Settings(DATA_DIR=str(tmp_path))
    return TestClient(app)


def test_dashboard_page_and_api(tmp_path) -> None:
    try:
        client = _client(tmp_path, with_snapshot=True)
        page = client.get("/")
        assert page.status_code == 200
        assert "Total Datasets:</strong> 2" in page.text

        api = client.get("/api/datasets", params={"limit": 1}).json()
        assert api["total"] == 2
        assert [item["id"] for item in api["items"]] == ["newer"]
    finally:
        app.dependency_overrides.clear()


def test_dashboard_without_snapshot_reports_error(tmp_path) -> None:
    try:
        client = _client(tmp_path, with_snapshot=False)
        page = client.get("/")
        assert page.status_code == 500
        assert page.text.startswith("Error loading data:")
        assert client.get("/api/datasets").status_code == 503
    finally:
        app.dependency_overrides.clear()


def test_health_and_metrics() -> None:
    client = TestClient(app)
    assert client.get("/health").json() == {"status": "ok", "service": "datasoup"}
    scrape = client.get("/metrics")
    assert scrape.status_code == 200
    assert "datasoup_catalog_fetches_total" in scrape.text


def test_times_shown_in_catalog_timezone() -> None:
    raw = _raw()
    snapshot = CatalogSnapshot(
        response=CatalogResponse.parse(raw, "Asia/Jerusalem"),
        raw=raw,
        captured_at=datetime(2024, 3, 2, 6, 0, 5, tzinfo=timezone.utc),
    )
    assert snapshot.datasets[2].metadata_modified.hour == 15

    data = build_dashboard(snapshot, "Asia/Jerusalem")

    assert [r.last_modified for r in data.datasets] == ["2024-03-01 17:45", "2024-01-01 08:00"]
