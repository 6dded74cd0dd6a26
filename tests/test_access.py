import ipaddress

import pytest

from relaylb.access import Access, AccessRule, new_access, parse_access_rule
from relaylb.config import AccessConfig


def test_parse_ip_rule():
    rule = parse_access_rule("allow 192.168.1.1")
    assert rule.allows() is True
    assert rule.is_network is False
    assert rule.matches("192.168.1.1")
    assert not rule.matches("192.168.1.2")


def test_parse_network_rule():
    rule = parse_access_rule("deny 10.0.0.0/8")
    assert rule.allows() is False
    assert rule.is_network is True
    assert rule.matches("10.20.30.40")
    assert not rule.matches("11.0.0.1")


def test_network_host_bits_are_masked():
    rule = parse_access_rule("allow 10.1.2.3/8")
    assert rule.network == ipaddress.ip_network("10.0.0.0/8")


def test_ipv4_mapped_matches_ipv4():
    rule = parse_access_rule("allow 1.2.3.4")
    assert rule.matches("::ffff:1.2.3.4")


def test_ipv6_does_not_match_ipv4_network():
    rule = parse_access_rule("allow 10.0.0.0/8")
    assert not rule.matches("2001:db8::1")


@pytest.mark.parametrize(
    "text",
    ["allow", "allow 1.2.3.4 extra", "allow  1.2.3.4", "permit 1.2.3.4", "allow nonsense", "deny 1.2.3.4/99"],
)
def test_bad_rules(text):
    with pytest.raises(ValueError):
        parse_access_rule(text)


def test_first_matching_rule_wins():
    access = Access(
        allow_default=True,
        rules=[parse_access_rule("allow 10.0.0.1"), parse_access_rule("deny 10.0.0.0/8")],
    )
    assert access.allows("10.0.0.1") is True
    assert access.allows("10.0.0.2") is False
    assert access.allows("8.8.8.8") is True


def test_new_access_default_allow():
    cfg = AccessConfig(rules=["deny 1.1.1.1"])
    access = new_access(cfg)
    assert access.allow_default is True
    assert cfg.default == "allow"
    assert access.allows("1.1.1.1") is False


def test_new_access_default_deny():
    access = new_access(AccessConfig(default="deny", rules=["allow 1.1.1.1"]))
    assert access.allows("1.1.1.1") is True
    assert access.allows("2.2.2.2") is False


def test_new_access_errors():
    with pytest.raises(ValueError):
        new_access(None)
    with pytest.raises(ValueError):
        new_access(AccessConfig(default="maybe"))
    with pytest.raises(ValueError):
        new_access(AccessConfig(rules=["bad"]))


def test_rule_accepts_address_objects():
    rule = AccessRule(allow=True, ip=ipaddress.ip_address("5.6.7.8"))
    assert rule.matches(ipaddress.ip_address("5.6.7.8"))