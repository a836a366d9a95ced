from __future__ import annotations

import json
from datetime import datetime, timezone

from datasoup.schemas.catalog import CatalogResponse, CatalogSnapshot, parse_catalog_time


def _doc() -> dict:
    return {
        "help": "https://data.gov.il/api/3/action/help_show?name=package_search",
        "success": True,
        "result": {
            "count": 2,
            "results": [
                {
                    "id": "ds-old",
                    "title": "Old",
                    "metadata_modified": "2024-01-01T10:00:00.000000",
                    "organization": {"id": "o1", "name": "cbs", "title": "CBS", "extra": "ignored"},
                    "tags": [{"display_name": "b"}, {"display_name": "a"}],
                    "resources": [
                        {
                            "id": "r1",
                            "format": "csv",
                            "size": None,
                            "metadata_modified": "2024-01-01T09:00:00",
                            "url": "https://example.org/r1.csv",
                        }
                    ],
                },
                {
                    "id": "ds-new",
                    "title": "New",
                    "metadata_modified": "2024-03-05T12:30:15.123456",
                    "organization": None,
                    "tags": None,
                    "resources": [],
                },
            ],
        },
    }


def test_parse_catalog_time_variants() -> None:
    assert parse_catalog_time("2024-03-05T12:30:15.123456") == datetime(
        2024, 3, 5, 12, 30, 15, 123456, tzinfo=timezone.utc
    )
    assert parse_catalog_time("2024-03-05T12:30:15") == datetime(2024, 3, 5, 12, 30, 15, tzinfo=timezone.utc)
    assert parse_catalog_time("") is None
    assert parse_catalog_time("yesterday") is None


def test_parse_catalog_time_applies_catalog_zone() -> None:
    parsed = parse_catalog_time("2024-07-01T12:00:00", "Asia/Jerusalem")
    assert parsed == datetime(2024, 7, 1, 9, 0, tzinfo=timezone.utc)


def test_catalog_response_tolerates_nulls_and_extra_fields() -> None:
    catalog = CatalogResponse.parse(json.dumps(_doc()).encode())
    assert catalog.success is True
    old, new = catalog.datasets
    assert old.organization.name == "cbs"
    assert [t.display_name for t in old.tags] == ["b", "a"]
    assert old.resources[0].is_csv
    assert old.resources[0].size is None
    assert new.organization.name == ""
    assert new.tags == []


def test_reference_time_is_latest_dataset_modification() -> None:
    raw = json.dumps(_doc()).encode()
    snapshot = CatalogSnapshot(
        response=CatalogResponse.parse(raw),
        raw=raw,
        captured_at=datetime(2024, 3, 6, tzinfo=timezone.utc),
    )
    assert snapshot.reference_time() == datetime(2024, 3, 5, 12, 30, 15, 123456, tzinfo=timezone.utc)


def test_reference_time_missing_when_no_timestamps() -> None:
    raw = b'{"success": true, "result": {"count": 1, "results": [{"id": "x"}]}}'
    snapshot = CatalogSnapshot(
        response=CatalogResponse.parse(raw), raw=raw, captured_at=datetime.now(timezone.utc)
    )
    assert snapshot.reference_time() is None


def test_null_text_fields_read_as_empty() -> None:
    doc = _doc()
    old = doc["result"]["results"][0]
    old["title"] = None
    old["name"] = None
    old["organization"]["title"] = None
    old["tags"].append({"display_name": None})
    old["resources"][0].update({"name": None, "format": None, "url": None})

    catalog = CatalogResponse.parse(json.dumps(doc).encode())

    dataset = catalog.datasets[0]
    assert dataset.title == ""
    assert dataset.name == ""
    assert dataset.organization.title == ""
    assert dataset.organization.name == "cbs"
    assert dataset.tags[-1].display_name == ""
    resource = dataset.resources[0]
    assert (resource.name, resource.format, resource.url) == ("", "", "")
    assert not resource.is_csv
    assert resource.size is None
