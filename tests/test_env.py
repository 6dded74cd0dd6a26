from relaylb.env import substitute_env_vars


def test_substitutes_set_variable(monkeypatch):
    monkeypatch.setenv("RELAYLB_TEST_HOST", "backend.example.com")
    assert substitute_env_vars("bind=${RELAYLB_TEST_HOST}:80") == "bind=backend.example.com:80"


def test_unset_variable_becomes_empty(monkeypatch):
    monkeypatch.delenv("RELAYLB_TEST_MISSING", raising=False)
    assert substitute_env_vars("a${RELAYLB_TEST_MISSING}b") == "ab"


def test_adjacent_placeholders_are_non_greedy(monkeypatch):
    monkeypatch.setenv("RELAYLB_A", "1")
    monkeypatch.setenv("RELAYLB_B", "2")
    assert substitute_env_vars("${RELAYLB_A}${RELAYLB_B}") == "12"


def test_text_without_placeholders_unchanged():
    assert substitute_env_vars("plain $HOME text") == "plain $HOME text"