import logging

from emfgen.constants import parse_bool, parse_float, parse_int, parse_runtime_ms


def test_parse_int_defaults_when_unset():
    assert parse_int("BATCH_SIZE", None, 1000) == 1000
    assert parse_int("BATCH_SIZE", "  ", 1000) == 1000


def test_parse_int_reads_value():
    assert parse_int("BATCH_SIZE", " 250 ", 1000) == 250


def test_parse_int_malformed_falls_back(caplog):
    with caplog.at_level(logging.WARNING):
        assert parse_int("INTERVAL_MS", "fast", 1000) == 1000
    assert "INTERVAL_MS" in caplog.text


def test_parse_float():
    assert parse_float("EMF_SEND_TIMEOUT_SEC", "2.5", 5.0) == 2.5
    assert parse_float("EMF_SEND_TIMEOUT_SEC", "soon", 5.0) == 5.0


def test_parse_bool():
    assert parse_bool("ALLOW_OVERLAP", "false", True) is False
    assert parse_bool("ALLOW_OVERLAP", "YES", False) is True
    assert parse_bool("ALLOW_OVERLAP", "maybe", True) is True
    assert parse_bool("ALLOW_OVERLAP", None, False) is False


def test_runtime_zero_means_unbounded():
    assert parse_runtime_ms("0", 60000) is None
    assert parse_runtime_ms("-1", 60000) is None
    assert parse_runtime_ms(None, 60000) == 60000
    assert parse_runtime_ms("1500", 60000) == 1500
    assert parse_runtime_ms("later", 60000) == 60000
