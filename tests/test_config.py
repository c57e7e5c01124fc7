import importlib

import pytest

import config as config_module
from config import DEFAULT_MAX_RUNS, _env_int, _env_log_level


@pytest.mark.parametrize("raw", ["", "  ", "abc", "0", "-5"])
def test_env_int_falls_back_for_unusable_values(monkeypatch, raw):
    monkeypatch.setenv("RECONCILIATION_TEST_INT", raw)
    assert _env_int("RECONCILIATION_TEST_INT", 17) == 17


def test_env_int_reads_positive_values(monkeypatch):
    monkeypatch.setenv("RECONCILIATION_TEST_INT", " 42 ")
    assert _env_int("RECONCILIATION_TEST_INT", 17) == 42


def test_env_log_level_ignores_unknown_levels(monkeypatch):
    monkeypatch.setenv("RECONCILIATION_TEST_LEVEL", "chatty")
    assert _env_log_level("RECONCILIATION_TEST_LEVEL") == "INFO"

    monkeypatch.setenv("RECONCILIATION_TEST_LEVEL", "debug")
    assert _env_log_level("RECONCILIATION_TEST_LEVEL") == "DEBUG"


def test_max_runs_defaults(monkeypatch):
    monkeypatch.delenv("RECONCILIATION_MAX_RUNS", raising=False)
    importlib.reload(config_module)
    assert config_module.Config.RECONCILIATION_MAX_RUNS == DEFAULT_MAX_RUNS


def test_max_runs_from_environment(monkeypatch):
    monkeypatch.setenv("RECONCILIATION_MAX_RUNS", "250")
    importlib.reload(config_module)
    try:
        assert config_module.Config.RECONCILIATION_MAX_RUNS == 250
    finally:
        monkeypatch.delenv("RECONCILIATION_MAX_RUNS", raising=False)
        importlib.reload(config_module)
