from __future__ import annotations

import pytest

from datasoup.observability import resource_span


def test_resource_span_wraps_work() -> None:
    with resource_span("update_resource", resource_id="res-1", dataset_id=None) as span:
        result = "done"
    assert result == "done"
    assert span is None or hasattr(span, "set_attribute")


def test_resource_span_propagates_errors() -> None:
    with pytest.raises(ValueError):
        with resource_span("seed_resource", resource_id="res-1"):
            raise ValueError("boom")
