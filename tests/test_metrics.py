import math

import pytest

from relaycore.metrics import (
    Counter,
    CounterVec,
    Gauge,
    Histogram,
    Registry,
    create_metrics,
)


def test_counter_inc_amount():
    c = Counter("things_total", "Things")
    c.inc(7)
    assert c.value == 7


def test_counter_default_inc_adds_one():
    c = Counter("things_total", "Things")
    before = c.value
    c.inc()
    assert c.value == before + 1


def test_counter_rejects_negative():
    c = Counter("things_total", "Things")
    with pytest.raises(ValueError):
        c.inc(-1)


def test_invalid_name_and_empty_help():
    with pytest.raises(ValueError):
        Counter("bad name", "Things")
    with pytest.raises(ValueError):
        Counter("good_name", "")


def test_counter_vec_children():
    vec = CounterVec("events_total", "Events", ["source"])
    assert vec.labels("db") is vec.labels("db")
    assert vec.labels("db") is not vec.labels("realtime")
    with pytest.raises(ValueError):
        vec.labels("db", "extra")


def test_gauge_set_inc_dec():
    g = Gauge("open_things", "Open things")
    g.set(10)
    g.inc(4)
    g.dec(4)
    assert g.value == 10


def test_histogram_buckets_are_cumulative():
    h = Histogram("latency_seconds", "Latency")
    for v in (0.001, 0.3, 4.0, 50.0):
        h.observe(v)
    counts = h.bucket_counts()
    hits = [n for _, n in counts]
    assert hits == sorted(hits)
    assert counts[-1] == (math.inf, h.count)
    assert h.count == 4
    assert h.sum == pytest.approx(0.001 + 0.3 + 4.0 + 50.0)


def test_histogram_rejects_unsorted_buckets():
    with pytest.raises(ValueError):
        Histogram("latency_seconds", "Latency", buckets=[1.0, 0.5])


def test_registry_duplicate_refused():
    reg = Registry()
    reg.register(Counter("dup_total", "Dup"))
    with pytest.raises(ValueError):
        reg.register(Counter("dup_total", "Other"))


def test_create_metrics_render_headers():
    registry, _ = create_metrics()
    text = registry.render()
    assert "# HELP nostr_connections_total New connections\n" in text
    assert "# TYPE nostr_query_seconds histogram\n" in text
    assert "# TYPE nostr_db_connections gauge\n" in text
    assert 'nostr_query_seconds_bucket{le="+Inf"} 0\n' in text


def test_empty_counter_vec_not_rendered_until_used():
    registry, metrics = create_metrics()
    assert "nostr_disconnects_total" not in registry.render()
    metrics.disconnects.labels("normal").inc(3)
    text = registry.render()
    assert 'nostr_disconnects_total{reason="normal"} 3\n' in text


def test_render_sorted_by_name():
    registry, metrics = create_metrics()
    metrics.sent_events.labels("db").inc()
    names = [
        line.split()[2]
        for line in registry.render().splitlines()
        if line.startswith("# TYPE")
    ]
    assert names == sorted(names)
    assert "nostr_events_sent_total" in names


def test_counter_value_reflected_in_render():
    registry, metrics = create_metrics()
    metrics.cmd_req.inc(5)
    assert "nostr_cmd_req_total 5\n" in registry.render()


def test_label_values_escaped():
    reg = Registry()
    vec = CounterVec("esc_total", "Escapes", ["reason"])
    reg.register(vec)
    vec.labels('a"b').inc()
    assert 'esc_total{reason="a\\"b"}' in reg.render()