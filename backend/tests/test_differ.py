from __future__ import annotations

from datasoup.differ import diff_lines, split_lines


def test_split_lines_drops_only_the_terminator_tail() -> None:
    assert split_lines("a\nb\n") == ["a", "b"]
    assert split_lines("a\n\nb") == ["a", "", "b"]
    assert split_lines("") == []


def test_diff_reports_appended_line() -> None:
    assert diff_lines("a\nb\nc", "a\nb\nc\nd") == ["d"]


def test_diff_of_identical_content_is_empty() -> None:
    text = "id,name\n1,אבג\n2,def\n"
    assert diff_lines(text, text) == []


def test_new_resource_yields_every_line() -> None:
    assert diff_lines(None, "a\nb") == ["a", "b"]


def test_empty_old_content_yields_every_line() -> None:
    assert diff_lines("", "x\ny") == ["x", "y"]


def test_moved_lines_are_not_changes() -> None:
    assert diff_lines("a\nb\nc", "c\na\nb") == []


def test_preserves_new_order_and_duplicates() -> None:
    old = "h\n1"
    new = "h\n3\n2\n3\n1"
    assert diff_lines(old, new) == ["3", "2", "3"]


def test_only_absent_values_are_reported() -> None:
    old = "h\nx\ny"
    new = "y\nz\nh\nw"
    result = diff_lines(old, new)
    assert result == ["z", "w"]
    assert not set(result) & set(split_lines(old))
