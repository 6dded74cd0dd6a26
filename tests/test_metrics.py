import urllib.request

import pytest

from relaylb.backend import Backend, BackendStats, Target
from relaylb.counters import BandwidthStats
from relaylb.metrics import GaugeVec, Metrics


def _backends():
    target = Target("10.0.0.1", "80")
    backend = Backend(
        target=target,
        stats=BackendStats(
            active_connections=2,
            refused_connections=1,
            total_connections=7,
            rx_bytes=300,
            tx_bytes=400,
            rx_second=30,
            tx_second=40,
        ),
    )
    return target, {target: backend}


def test_gauge_set_and_samples_round_trip():
    gauge = GaugeVec("g", "help", ("a", "b"))
    gauge.set(("x", "y"), 5)
    assert gauge.samples() == {("x", "y"): 5.0}


def test_gauge_wrong_label_count():
    gauge = GaugeVec("g", "help", ("a", "b"))
    with pytest.raises(ValueError):
        gauge.set(("x",), 1)


def test_gauge_delete():
    gauge = GaugeVec("g", "help", ("a",))
    gauge.set(("x",), 1)
    assert gauge.delete(("x",)) is True
    assert gauge.delete(("x",)) is False
    assert gauge.samples() == {}


def test_render_has_help_type_and_sample():
    metrics = Metrics()
    metrics.report_connections_change("web", 3)
    text = metrics.render()
    assert "# TYPE relaylb_server_active_connections gauge" in text
    assert 'relaylb_server_active_connections{server="web"} 3' in text.splitlines()


def test_render_escapes_label_values():
    metrics = Metrics()
    metrics.report_connections_change('a"b', 1)
    assert 'relaylb_server_active_connections{server="a\\"b"} 1' in metrics.render()


def test_disabled_metrics_ignore_reports():
    metrics = Metrics(enabled=False)
    metrics.report_connections_change("web", 3)
    metrics.report_stats_change("web", BandwidthStats(rx_total=10))
    assert metrics.server_active_connections.samples() == {}
    assert metrics.server_rx_total.samples() == {}


def test_report_stats_change():
    metrics = Metrics()
    metrics.report_stats_change("web", BandwidthStats(rx_total=10, tx_total=20, rx_second=1, tx_second=2))
    assert metrics.server_rx_total.samples()[("web",)] == 10
    assert metrics.server_tx_total.samples()[("web",)] == 20
    assert metrics.server_rx_second.samples()[("web",)] == 1
    assert metrics.server_tx_second.samples()[("web",)] == 2


def test_report_op_uses_backend_stats():
    metrics = Metrics()
    target, backends = _backends()
    metrics.report_op("web", target, backends)
    labels = ("web", "10.0.0.1", "80")
    assert metrics.backend_active_connections.samples()[labels] == 2
    assert metrics.backend_refused_connections.samples()[labels] == 1
    assert metrics.backend_total_connections.samples()[labels] == 7


def test_report_backend_stats_change():
    metrics = Metrics()
    target, backends = _backends()
    metrics.report_backend_stats_change("web", target, backends)
    labels = ("web", "10.0.0.1", "80")
    assert metrics.server_count.samples()[("web",)] == len(backends)
    assert metrics.backend_rx_bytes.samples()[labels] == 300
    assert metrics.backend_tx_bytes.samples()[labels] == 400
    assert metrics.backend_rx_second.samples()[labels] == 30
    assert metrics.backend_tx_second.samples()[labels] == 40


def test_report_backend_live_change():
    metrics = Metrics()
    target = Target("h", "1")
    metrics.report_backend_live_change("web", target, True)
    assert metrics.backend_live.samples()[("web", "h", "1")] == 1
    metrics.report_backend_live_change("web", target, False)
    assert metrics.backend_live.samples()[("web", "h", "1")] == 0


def test_remove_server_removes_backends_too():
    metrics = Metrics()
    target, backends = _backends()
    metrics.report_connections_change("web", 3)
    metrics.report_op("web", target, backends)
    metrics.report_backend_live_change("web", target, True)
    metrics.report_connections_change("other", 1)
    metrics.remove_server("web", backends)
    assert metrics.server_active_connections.samples() == {("other",): 1.0}
    assert metrics.backend_active_connections.samples() == {}
    assert metrics.backend_live.samples() == {}


def test_http_endpoint_serves_metrics():
    metrics = Metrics(version="1.0")
    metrics.start("127.0.0.1:0")
    try:
        host, port = metrics.address
        metrics.report_connections_change("web", 4)
        with urllib.request.urlopen(f"http://{host}:{port}/metrics", timeout=5) as resp:
            body = resp.read().decode()
        assert resp.status == 200
        assert 'relaylb_server_active_connections{server="web"} 4' in body
        assert any(
            line.startswith('relaylb_build_info{version="1.0"') and line.endswith(" 1")
            for line in body.splitlines()
        )
    finally:
        metrics.stop()
    assert metrics.address is None


def test_start_disabled_does_not_listen():
    metrics = Metrics(enabled=False)
    metrics.start("127.0.0.1:0")
    assert metrics.address is None