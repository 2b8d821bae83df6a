"""Feed fetch + per-feed mapping into canonical Events."""

import asyncio
import itertools

import pytest

from feed_normalizer import (
    MESSAGE_PLACEHOLDER,
    FeedSpec,
    classify_event_level,
    collect_events,
    default_feeds,
    event_source,
    fetch_ids_alerts,
    map_controller_event,
    map_feed_records,
    map_ids_alert_event,
    map_legacy_ips_event,
    parse_ids_alert,
)

EVENTS_PATH = "/api/unifi/events"
IDS_PATH = "/api/unifi/ids-alerts"
LEGACY_PATH = "/api/unifi/alerts"


def _events_body(n=2):
    return {"events": [
        {"id": f"evt-{i}", "timestamp": f"2024-01-0{1 + i % 9}T00:00:00Z",
         "key": "EVT_SW_Connected", "msg": f"switch {i} connected"}
        for i in range(n)
    ]}


def _ids_body(n=2):
    return {"alerts": [
        {"id": f"ids-{i}", "timestamp": "2024-01-02T10:00:00.000Z", "severity": "high",
         "category": "scan", "signature": f"ET SCAN {i}", "srcIp": "8.8.8.8", "dstIp": "192.168.1.5"}
        for i in range(n)
    ], "total": n}


def _legacy_body(n=2):
    return {"data": [
        {"_id": f"legacy-{i}", "datetime": "2024-01-03T08:00:00Z", "msg": f"blocked {i}"}
        for i in range(n)
    ]}


def _serve(upstream, path, body, ok, mode):
    if ok:
        upstream.json("GET", path, body)
    elif mode == "network":
        upstream.fail("GET", path)
    elif mode == "status":
        upstream.json("GET", path, {"error": "unauthorized"}, status=401)
    else:
        upstream.raw("GET", path, b"<html>not json</html>")


@pytest.mark.parametrize("events_ok,ids_ok,legacy_ok", list(itertools.product([True, False], repeat=3)))
@pytest.mark.parametrize("mode", ["network", "status", "malformed"])
def test_collect_events_is_union_of_successful_feeds(upstream, feed_config, events_ok, ids_ok, legacy_ok, mode):
    _serve(upstream, EVENTS_PATH, _events_body(3), events_ok, mode)
    _serve(upstream, IDS_PATH, _ids_body(2), ids_ok, mode)
    _serve(upstream, LEGACY_PATH, _legacy_body(4), legacy_ok, mode)

    async def run_test():
        async with upstream.client() as client:
            return await collect_events(client, default_feeds(feed_config))

    events = asyncio.run(run_test())

    expected = []
    if events_ok:
        expected += [f"evt-{i}" for i in range(3)]
    if ids_ok:
        expected += [f"ids-{i}" for i in range(2)]
    if legacy_ok:
        expected += [f"legacy-{i}" for i in range(4)]
    assert [e.id for e in events] == expected
    # Every feed is attempted, whatever the others do
    assert len(upstream.requests) == 3


def test_collect_events_applies_per_feed_caps(upstream, feed_config):
    upstream.json("GET", EVENTS_PATH, _events_body(250))
    upstream.json("GET", IDS_PATH, _ids_body(60))
    upstream.json("GET", LEGACY_PATH, _legacy_body(70))

    async def run_test():
        async with upstream.client() as client:
            return await collect_events(client, default_feeds(feed_config))

    events = asyncio.run(run_test())
    sources = [e.source for e in events]
    assert sum(1 for s in sources if s.startswith("UniFi")) == 200
    assert sources.count("IDS/IPS") == 50
    assert sources.count("IPS Alert") == 50


def test_missing_payload_list_counts_as_failure(upstream, feed_config):
    upstream.json("GET", EVENTS_PATH, {"evts": []})
    upstream.json("GET", IDS_PATH, _ids_body(1))
    upstream.json("GET", LEGACY_PATH, {"data": "nope"})

    async def run_test():
        async with upstream.client() as client:
            return await collect_events(client, default_feeds(feed_config))

    assert [e.id for e in asyncio.run(run_test())] == ["ids-0"]


def test_collect_events_with_no_feeds():
    async def run_test():
        return await collect_events(None, feeds=[])

    assert asyncio.run(run_test()) == []


def test_non_dict_records_are_skipped():
    spec = FeedSpec("legacy-ips", "http://x", "data", 50)
    events = map_feed_records(spec, [None, "junk", {"_id": "l1", "msg": "blocked"}])
    assert [e.id for e in events] == ["l1"]


@pytest.mark.parametrize("raw,level", [
    ({"type": "ids", "key": "EVT_SW_Connected"}, "error"),
    ({"type": "firewall"}, "error"),
    ({"type": "system", "key": "EVT_AP_Lost_Contact"}, "warning"),
    ({"key": "EVT_SW_Disconnected"}, "warning"),
    ({"key": "EVT_SW_Connected"}, "success"),
    ({"key": "EVT_AP_Upgraded"}, "success"),
    ({"key": "EVT_AP_Restarted"}, "info"),
    ({}, "info"),
])
def test_classify_event_level(raw, level):
    assert classify_event_level(raw) == level


def test_event_source():
    assert event_source({"type": "ids"}) == "IDS/IPS"
    assert event_source({"type": "firewall"}) == "Firewall"
    assert event_source({"deviceName": "USW-24"}) == "UniFi (USW-24)"
    assert event_source({}) == "UniFi"


def test_map_controller_event_message_fallbacks():
    ev = map_controller_event({"id": "e1", "timestamp": "2024-01-01T00:00:00Z", "key": "EVT_GW_WANTransition"})
    assert ev.message == "EVT_GW_WANTransition"
    assert ev.timestamp == "2024-01-01T00:00:00.000Z"

    ev = map_controller_event({"id": "e2", "timestamp": "2024-01-01T00:00:00Z"})
    assert ev.message == MESSAGE_PLACEHOLDER


def test_map_controller_event_accepts_raw_controller_records():
    raw = {"_id": "abc", "datetime": "2024-03-01T12:00:00Z", "key": "EVT_IPS_IpsAlert",
           "msg": "IPS alert", "subsystem": "www"}
    ev = map_controller_event(raw)
    assert ev.id == "abc"
    assert ev.level == "error"
    assert ev.source == "IDS/IPS"
    assert ev.message == "IPS alert"


def test_map_controller_event_epoch_millis():
    ev = map_controller_event({"id": "e1", "time": 1704067200000, "msg": "x"})
    assert ev.timestamp == "2024-01-01T00:00:00.000Z"


@pytest.mark.parametrize("severity,level", [
    ("high", "error"), ("medium", "warning"), ("low", "info"), ("info", "info"), ("weird", "info"),
    (" HIGH ", "error"), (1, "info"), ("1", "info"), ("critical", "info"), (None, "info"),
])
def test_map_ids_alert_event_levels(severity, level):
    ev = map_ids_alert_event({"id": "a", "timestamp": "2024-01-01T00:00:00Z", "severity": severity,
                              "signature": "ET SCAN"})
    assert ev.level == level
    assert ev.source == "IDS/IPS"
    assert ev.message == "ET SCAN"


def test_map_ids_alert_event_message_falls_back_to_category():
    ev = map_ids_alert_event({"id": "a", "timestamp": "2024-01-01T00:00:00Z", "category": "policy"})
    assert ev.message == "policy"


def test_map_legacy_ips_event():
    ev = map_legacy_ips_event({"_id": "l1", "datetime": "2024-01-01T00:00:00Z",
                               "inner_alert_signature": "ET POLICY"})
    assert ev.level == "error"
    assert ev.source == "IPS Alert"
    assert ev.message == "ET POLICY"
    assert map_legacy_ips_event({"_id": "l2", "catname": "attack"}).message == "attack"


def test_generated_ids_are_stable():
    raw = {"timestamp": "2024-01-01T00:00:00Z", "msg": "no id"}
    first = map_legacy_ips_event(raw)
    second = map_legacy_ips_event(dict(raw))
    assert first.id == second.id
    assert first.id.startswith("legacy-ips-")


def test_parse_ids_alert_camel_case_and_raw():
    alert = parse_ids_alert({"id": "a1", "timestamp": "t", "severity": "critical", "signature": "ET",
                             "srcIp": "1.2.3.4", "srcPort": "443", "dstPort": None})
    assert alert.severity == "high"
    assert alert.src_port == 443
    assert alert.dst_port == 0

    raw = parse_ids_alert({"_id": "r1", "inner_alert_severity": 2, "src_ip": "1.1.1.1",
                           "dst_port": 22, "msg": "SSH brute"})
    assert raw.id == "r1"
    assert raw.severity == "medium"
    assert raw.signature == "SSH brute"
    assert raw.category == "unknown"
    assert raw.action == "alert"


def test_fetch_ids_alerts(upstream, feed_config):
    upstream.json("GET", IDS_PATH, {"alerts": _ids_body(3)["alerts"], "total": 120})

    async def run_test():
        async with upstream.client() as client:
            return await fetch_ids_alerts(client, feed_config.ids_alerts_url)

    alerts, total = asyncio.run(run_test())
    assert [a.id for a in alerts] == ["ids-0", "ids-1", "ids-2"]
    assert total == 120


def test_fetch_ids_alerts_unavailable(upstream, feed_config):
    upstream.json("GET", IDS_PATH, {"error": "Unauthorized"}, status=401)

    async def run_test():
        async with upstream.client() as client:
            return await fetch_ids_alerts(client, feed_config.ids_alerts_url)

    assert asyncio.run(run_test()) == ([], 0)


def test_fetch_ids_alerts_from_raw_controller_events_keeps_security_records(upstream, feed_config):
    upstream.json("GET", IDS_PATH, {"alerts": [
        {"_id": "r1", "key": "EVT_IPS_IpsAlert", "inner_alert_severity": 1, "src_ip": "45.33.32.156",
         "msg": "ET SCAN nmap"},
        {"_id": "r2", "key": "EVT_WU_Roam", "msg": "client roamed"},
        {"_id": "r3", "key": "EVT_LU_Connected", "msg": "client connected"},
        {"_id": "r4", "key": "EVT_FW_Blocked", "msg": "blocked inbound"},
        {"_id": "r5", "catname": "Attempted Intrusion", "msg": "exploit attempt"},
    ], "total": 5})

    async def run_test():
        async with upstream.client() as client:
            return await fetch_ids_alerts(client, feed_config.ids_alerts_url)

    alerts, total = asyncio.run(run_test())
    assert [a.id for a in alerts] == ["r1", "r4", "r5"]
    assert total == 3
    assert alerts[0].severity == "high"
    assert alerts[0].src_ip == "45.33.32.156"
