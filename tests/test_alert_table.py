"""IDS/IPS alert table: filter, sort, counters, sort toggling."""

import pytest

from alert_table import (
    AlertView,
    TableQuery,
    apply_query,
    build_view,
    matches_search,
    severity_counts,
    toggle_sort,
)
from core.models import IdsAlert


def _alert(id, severity="info", timestamp="2024-01-01T00:00:00.000Z", **kw):
    return IdsAlert(id=id, timestamp=timestamp, severity=severity, **kw)


@pytest.fixture
def loaded():
    return [
        _alert("1", "low", "2024-01-01T00:00:00.000Z", signature="ET POLICY curl", src_ip="10.0.0.5"),
        _alert("2", "high", "2024-01-02T00:00:00.000Z", signature="ET SCAN nmap", category="scan",
               dst_ip="8.8.8.8"),
    ]


def test_severity_sort_ascending_puts_high_first(loaded):
    rows = apply_query(loaded, TableQuery(sort_field="severity", sort_dir="asc"))
    assert [a.id for a in rows] == ["2", "1"]


def test_timestamp_sort_descending_puts_newest_first(loaded):
    rows = apply_query(loaded, TableQuery(sort_field="timestamp", sort_dir="desc"))
    assert rows[0].timestamp.startswith("2024-01-02")


def test_non_matching_search_keeps_counters(loaded):
    view = build_view(loaded, TableQuery(search="zzz-nothing"))
    assert view.rows == []
    assert view.counts == {"high": 1, "medium": 0, "low": 1, "info": 0}
    assert view.total == 2


def test_unknown_severity_sorts_after_info():
    alerts = [_alert(s, s) for s in ("bogus", "info", "low", "medium", "high")]
    rows = apply_query(alerts, TableQuery(sort_field="severity", sort_dir="asc"))
    assert [a.severity for a in rows] == ["high", "medium", "low", "info", "bogus"]


def test_search_is_case_insensitive_over_four_fields(loaded):
    assert [a.id for a in apply_query(loaded, TableQuery(search="NMAP"))] == ["2"]
    assert [a.id for a in apply_query(loaded, TableQuery(search="scan"))] == ["2"]
    assert [a.id for a in apply_query(loaded, TableQuery(search="10.0.0"))] == ["1"]
    assert [a.id for a in apply_query(loaded, TableQuery(search="8.8.8.8"))] == ["2"]
    assert matches_search(loaded[0], "")


def test_severity_filter_combines_with_search(loaded):
    rows = apply_query(loaded, TableQuery(search="ET", severity="low"))
    assert [a.id for a in rows] == ["1"]
    assert apply_query(loaded, TableQuery(severity="medium")) == []


def test_counts_ignore_filters(loaded):
    view = build_view(loaded, TableQuery(severity="high"))
    assert [a.id for a in view.rows] == ["2"]
    assert view.counts["low"] == 1


def test_ties_keep_load_order():
    alerts = [_alert("a", "high"), _alert("b", "high"), _alert("c", "low")]
    asc = apply_query(alerts, TableQuery(sort_field="severity", sort_dir="asc"))
    desc = apply_query(alerts, TableQuery(sort_field="severity", sort_dir="desc"))
    assert [a.id for a in asc] == ["a", "b", "c"]
    assert [a.id for a in desc] == ["c", "a", "b"]


def test_numeric_and_text_sort_keys():
    alerts = [
        _alert("a", dst_port=443, category="scan", src_ip="2.2.2.2"),
        _alert("b", dst_port=22, category="policy", src_ip="1.1.1.1"),
    ]
    assert [a.id for a in apply_query(alerts, TableQuery(sort_field="dstPort", sort_dir="asc"))] == ["b", "a"]
    assert [a.id for a in apply_query(alerts, TableQuery(sort_field="category", sort_dir="asc"))] == ["b", "a"]
    assert [a.id for a in apply_query(alerts, TableQuery(sort_field="srcIp", sort_dir="desc"))] == ["a", "b"]


def test_loaded_set_is_not_mutated(loaded):
    snapshot = list(loaded)
    apply_query(loaded, TableQuery(sort_field="severity", sort_dir="asc"))
    assert loaded == snapshot


def test_toggle_sort():
    q = TableQuery()
    assert (q.sort_field, q.sort_dir) == ("timestamp", "desc")
    q = toggle_sort(q, "timestamp")
    assert q.sort_dir == "asc"
    q = toggle_sort(q, "timestamp")
    assert q.sort_dir == "desc"
    q = toggle_sort(toggle_sort(q, "timestamp"), "severity")
    assert (q.sort_field, q.sort_dir) == ("severity", "desc")


def test_invalid_query_values():
    with pytest.raises(ValueError):
        TableQuery(severity="critical")
    with pytest.raises(ValueError):
        TableQuery(sort_field="signature")
    with pytest.raises(ValueError):
        TableQuery(sort_dir="up")
    with pytest.raises(ValueError):
        toggle_sort(TableQuery(), "nope")


def test_view_to_dict(loaded):
    data = build_view(loaded, TableQuery(), total=57).to_dict()
    assert data["total"] == 57
    assert data["shown"] == 2
    assert data["alerts"][0]["id"] == "2"
    assert "country" not in data["alerts"][0]
    assert isinstance(build_view([], TableQuery()), AlertView)
    assert severity_counts([]) == {"high": 0, "medium": 0, "low": 0, "info": 0}
