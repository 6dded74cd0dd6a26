import pytest

from relaylb.codec import decode, encode

DOC = {
    "defaults": {"max_connections": 10},
    "servers": {"sample": {"bind": "localhost:3000", "protocol": "tcp"}},
}


@pytest.mark.parametrize("fmt", ["toml", "json"])
def test_round_trip(fmt):
    assert decode(encode(DOC, fmt), fmt) == DOC


def test_json_uses_four_space_indent():
    assert encode({"a": 1}, "json") == '{\n    "a": 1\n}'


def test_toml_drops_none_values():
    assert decode(encode({"a": None, "b": 1}, "toml"), "toml") == {"b": 1}


def test_decode_toml_text():
    assert decode('bind = "localhost:3000"\n', "toml") == {"bind": "localhost:3000"}


@pytest.mark.parametrize("fmt", ["yaml", ""])
def test_unknown_format(fmt):
    with pytest.raises(ValueError, match="Unknown format"):
        encode(DOC, fmt)
    with pytest.raises(ValueError, match="Unknown format"):
        decode("{}", fmt)


def test_invalid_json_raises():
    with pytest.raises(ValueError):
        decode("{not json", "json")