import pytest

from relaylb import service


@pytest.fixture(autouse=True)
def empty_registry(monkeypatch):
    monkeypatch.setattr(service, "_registry", {})


class Marker:
    def __init__(self, cfg):
        self.cfg = cfg


def test_all_services_builds_registered_services():
    service.register("marker", Marker)
    cfg = {"acme": None}
    built = service.all_services(cfg)
    assert len(built) == 1
    assert built[0].cfg is cfg


def test_unconfigured_services_are_skipped():
    service.register("absent", lambda cfg: None)
    service.register("marker", Marker)
    built = service.all_services(object())
    assert [type(s) for s in built] == [Marker]


def test_registration_order_is_kept_and_names_replace():
    calls = []
    service.register("a", lambda cfg: calls.append("a") or "a")
    service.register("b", lambda cfg: calls.append("b") or "b")
    service.register("a", lambda cfg: calls.append("a2") or "a2")
    assert service.all_services(None) == ["a2", "b"]
    assert calls == ["a2", "b"]


def test_empty_registry_gives_no_services():
    assert service.all_services(None) == []