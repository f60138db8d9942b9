"""Tests for configuration loading and the operator log."""

import re

import pytest

from worker_gateway.config import DEFAULT_PORT, Config
from worker_gateway.errors import InvalidConfiguration
from worker_gateway.logstore import LogStore


class TestConfig:
    def test_env_defaults(self, monkeypatch):
        for name in ("GATEWAY_PORT", "GATEWAY_MEMORY_MODE", "GATEWAY_CONTEXT_LIMIT", "GATEWAY_RESPONSE_RESERVE"):
            monkeypatch.delenv(name, raising=False)
        config = Config()
        assert config.port == DEFAULT_PORT
        assert config.memory_mode is False
        assert config.prompt_budget().prompt_limit == 2560

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("GATEWAY_PORT", "9090")
        monkeypatch.setenv("GATEWAY_MEMORY_MODE", "true")
        monkeypatch.setenv("GATEWAY_CONTEXT_LIMIT", "8192")
        monkeypatch.setenv("GATEWAY_RESPONSE_RESERVE", "1024")
        config = Config()
        assert config.resolved_port() == 9090
        assert config.memory_mode is True
        assert config.prompt_budget().prompt_limit == 7168

    def test_unparsable_port_falls_back(self, monkeypatch):
        monkeypatch.setenv("GATEWAY_PORT", "not-a-port")
        assert Config().resolved_port() == DEFAULT_PORT

    @pytest.mark.parametrize("port", [0, 80, 1024])
    def test_low_ports_substituted(self, port):
        assert Config(port=port).resolved_port() == DEFAULT_PORT

    def test_reserve_must_fit_context(self):
        with pytest.raises(InvalidConfiguration):
            Config(context_limit=1000, response_reserve=1000).prompt_budget()

    def test_negative_values_rejected(self):
        with pytest.raises(InvalidConfiguration):
            Config(context_limit=1000, response_reserve=-1).prompt_budget()


class TestLogStore:
    def test_timestamps_entries(self):
        log = LogStore()
        entry = log.add("hello")
        assert re.match(r"^\[\d{2}:\d{2}:\d{2}\.\d{3}\] hello$", entry.message)

    def test_bounded(self):
        log = LogStore(max_entries=3)
        for i in range(5):
            log.add(f"m{i}")
        assert len(log) == 3
        assert [e.message.split(" ", 1)[1] for e in log.entries()] == ["m2", "m3", "m4"]

    def test_limit(self):
        log = LogStore()
        for i in range(5):
            log.add(f"m{i}")
        assert [e.message.split(" ", 1)[1] for e in log.entries(2)] == ["m3", "m4"]
        assert log.entries(0) == []

    def test_forwards_to_logging(self, caplog):
        with caplog.at_level("INFO", logger="worker_gateway"):
            LogStore().add("visible")
        assert "visible" in caplog.text
