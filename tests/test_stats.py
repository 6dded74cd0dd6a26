from relaylb.backend import Backend, Target
from relaylb.counters import ReadWriteCount
from relaylb.metrics import Metrics
from relaylb.stats import Handler, Stats, StatsStore


def test_new_handler_is_registered_with_empty_stats():
    store = StatsStore()
    Handler("web", store=store)
    assert store.get_stats("web") == Stats()


def test_unknown_server_has_no_stats():
    store = StatsStore()
    assert store.get_stats("missing") is None


def test_stop_removes_handler():
    store = StatsStore()
    handler = Handler("web", store=store)
    handler.start()
    handler.stop()
    assert store.get_stats("web") is None


def test_traffic_updates_totals_after_tick():
    store = StatsStore()
    handler = Handler("web", store=store)
    handler.add_traffic(ReadWriteCount(count_read=100, count_write=40))
    handler.server_counter.tick()
    stats = store.get_stats("web")
    assert stats.rx_total == 100
    assert stats.tx_total == 40
    assert stats.rx_second == 50
    assert stats.tx_second == 20


def test_traffic_reported_to_metrics():
    metrics = Metrics()
    handler = Handler("web", store=StatsStore(), metrics=metrics)
    handler.add_traffic(ReadWriteCount(count_read=100, count_write=40))
    handler.server_counter.tick()
    assert metrics.server_rx_total.samples()[("web",)] == 100
    assert metrics.server_tx_total.samples()[("web",)] == 40


def test_set_connections_updates_stats_and_metrics():
    metrics = Metrics()
    store = StatsStore()
    handler = Handler("web", store=store, metrics=metrics)
    handler.set_connections(5)
    assert store.get_stats("web").active_connections == 5
    assert metrics.server_active_connections.samples()[("web",)] == 5


def test_set_backends_and_copy_isolation():
    store = StatsStore()
    handler = Handler("web", store=store)
    backend = Backend(target=Target("10.0.0.1", "80"))
    handler.set_backends([backend])
    stats = store.get_stats("web")
    assert stats.backends == [backend]
    stats.backends.clear()
    assert store.get_stats("web").backends == [backend]


def test_backend_traffic_goes_to_listener():
    handler = Handler("web", store=StatsStore())
    received = []
    handler.backend_stats_listener = received.append
    target = Target("10.0.0.1", "80")
    handler.backends_counter.update_counters([target])
    handler.add_traffic(ReadWriteCount(count_read=10, count_write=6, target=target))
    handler.backends_counter.counters[target].tick()
    assert len(received) == 1
    assert received[0].target == target
    assert received[0].rx_total == 10
    assert received[0].tx_total == 6


def test_backend_traffic_for_unknown_target_ignored():
    handler = Handler("web", store=StatsStore())
    received = []
    handler.backend_stats_listener = received.append
    known = Target("10.0.0.1", "80")
    handler.backends_counter.update_counters([known])
    handler.add_traffic(ReadWriteCount(count_read=10, target=Target("10.0.0.2", "80")))
    handler.backends_counter.counters[known].tick()
    assert received[0].rx_total == 0


def test_without_new_traffic_rates_drop_to_zero():
    store = StatsStore()
    handler = Handler("web", store=store)
    handler.add_traffic(ReadWriteCount(count_read=100, count_write=40))
    handler.server_counter.tick()
    handler.server_counter.tick()
    stats = store.get_stats("web")
    assert (stats.rx_second, stats.tx_second) == (0, 0)
    assert stats.rx_total == 100