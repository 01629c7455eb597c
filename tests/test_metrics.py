import time
import urllib.error
import urllib.request

import pytest

from schedcore import metrics
from schedcore.metrics import (
    Counter,
    CounterVec,
    Gauge,
    Histogram,
    QueueMetrics,
    Registry,
    SchedulerMetrics,
    exponential_buckets,
    since_in_microseconds,
    since_in_seconds,
)


def test_counter_inc_accumulates_amount():
    c = Counter("things", "help")
    c.inc(4)
    assert c.value == 4


def test_counter_rejects_negative():
    c = Counter("things", "help")
    with pytest.raises(ValueError):
        c.inc(-1)


def test_gauge_inc_dec_set():
    g = Gauge("level", "help")
    g.set(5)
    assert g.value == 5
    g.inc(3)
    g.dec(3)
    assert g.value == 5
    g.dec()
    g.inc()
    assert g.value == 5


def test_invalid_metric_name():
    with pytest.raises(ValueError):
        Gauge("bad name", "help")


def test_counter_vec_labels_same_child():
    vec = CounterVec("attempts", "help", ["result"])
    a = vec.labels(result="ok")
    b = vec.labels(result="ok")
    assert a is b
    a.inc(2)
    assert vec.labels(result="ok").value == 2
    assert vec.labels(result="other").value == 0


def test_counter_vec_wrong_labels():
    vec = CounterVec("attempts", "help", ["result"])
    with pytest.raises(ValueError):
        vec.labels(wrong="x")
    with pytest.raises(ValueError):
        vec.labels()


def test_histogram_counts_are_cumulative():
    h = Histogram("lat", "help", buckets=[1.0, 2.0])
    observations = [0.5, 1.5, 10.0]
    for value in observations:
        h.observe(value)
    assert h.count == len(observations)
    assert h.sum == sum(observations)
    counts = h.bucket_counts
    assert counts == sorted(counts)
    assert counts[-1] == len(observations)


def test_exponential_buckets_scheduler_setup():
    buckets = exponential_buckets(0.001, 2, 15)
    assert len(buckets) == 15
    assert buckets[0] == 0.001
    for low, high in zip(buckets, buckets[1:]):
        assert high == pytest.approx(low * 2)


@pytest.mark.parametrize("args", [(0.001, 2, 0), (0, 2, 3), (1, 1, 3)])
def test_exponential_buckets_invalid(args):
    with pytest.raises(ValueError):
        exponential_buckets(*args)


def test_since_functions():
    start = time.monotonic() - 0.01
    assert since_in_seconds(start) >= 0.01
    micros = since_in_microseconds(start)
    assert micros >= 10000
    assert micros == int(micros)


def test_registry_duplicate_rejected():
    registry = Registry()
    registry.register(Gauge("dup", "help"))
    with pytest.raises(ValueError):
        registry.register(Gauge("dup", "other"))


def test_registry_render_format():
    registry = Registry()
    g = registry.register(Gauge("level", "the level", subsystem="sub"))
    g.set(7)
    text = registry.render()
    assert "# HELP sub_level the level\n" in text
    assert "# TYPE sub_level gauge\n" in text
    assert "sub_level 7\n" in text


def test_render_skips_empty_vec():
    registry = Registry()
    registry.register(CounterVec("attempts", "help", ["result"]))
    assert registry.render() == ""


def test_queue_metrics_registration():
    registry = Registry()
    q = QueueMetrics("root.a", registry)
    q.applications_added.inc()
    q.pending_resource.set(3)
    text = registry.render()
    assert q.name == "root.a"
    assert 'queues_metrics_queue_metrics_for_apps{result="added"} 1' in text
    assert "queues_metrics_queue_pending_resource_metrics 3" in text
    # running and completed gauges are not registered
    assert "queues_metrics_queue_running_apps" not in text


def test_scheduler_metrics_render():
    registry = Registry()
    m = SchedulerMetrics(registry)
    m.allocation_schedule_successes.inc()
    m.active_nodes.set(2)
    m.observe_scheduling_latency(time.monotonic())
    text = registry.render()
    assert 'yunikorn_scheduler_metrics_schedule_attempts_total{result="scheduled"} 1' in text
    assert "yunikorn_scheduler_metrics_active_nodes 2" in text
    assert 'yunikorn_scheduler_metrics_scheduling_latency_seconds_bucket{le="+Inf"} 1' in text
    assert m.scheduling_latency.count == 1


def test_init_queue_metrics_name():
    q = metrics.init_queue_metrics("root")
    assert q.name == "root"
    assert "queues_metrics_queue_used_resource_metrics" in metrics.REGISTRY.render()


def test_metrics_server_serves_registry():
    registry = Registry()
    registry.register(Gauge("served", "help")).set(9)
    server = metrics.start_metrics_server(0, registry)
    try:
        port = server.server_address[1]
        with urllib.request.urlopen(f"http://127.0.0.1:{port}/metrics", timeout=5) as resp:
            body = resp.read().decode("utf-8")
            assert resp.status == 200
        assert "served 9" in body
        with pytest.raises(urllib.error.HTTPError) as info:
            urllib.request.urlopen(f"http://127.0.0.1:{port}/other", timeout=5)
        assert info.value.code == 404
    finally:
        server.shutdown()
        server.server_close()


def test_scheduler_metrics_singleton_and_reset():
    first = metrics.get_scheduler_metrics()
    second = metrics.get_scheduler_metrics()
    assert first is second
    first.observe_scheduling_latency(time.monotonic())
    assert first.scheduling_latency.count >= 1
    metrics.reset()
    assert first.scheduling_latency.count == 0
    assert first.scheduling_latency.sum == 0