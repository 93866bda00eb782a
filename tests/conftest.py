import logging
import os
import sys
from types import SimpleNamespace

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from core.autotrade import AutotradeController
from core.config import load_settings
from core.config_store import ConfigStore
from core.credentials import CredentialManager
from core.log_sink import LogSink, install_sink, remove_sink

NOW = 1000.0


class FakeClock:
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeRunner:
    """Records invocations instead of spawning."""

    def __init__(self):
        self.calls = []

    async def run(self, command, args=(), on_exit=None):
        self.calls.append((command, list(args)))
        return SimpleNamespace(pid=4242, record=SimpleNamespace(command=command, args=tuple(args)))


@pytest.fixture
def sink():
    """Capture everything logged during the test."""
    root = logging.getLogger()
    old_level = root.level
    captured = install_sink(LogSink(max_lines=1000))
    root.setLevel(logging.INFO)
    yield captured
    remove_sink(captured)
    root.setLevel(old_level)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / ".bitvision.json"


@pytest.fixture
def store(config_path, clock):
    return ConfigStore(config_path, clock=clock)


@pytest.fixture
def credentials(store):
    return CredentialManager(store)


@pytest.fixture
def autotrade(store, clock):
    return AutotradeController(store, clock=clock)


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def settings(config_path, tmp_path):
    return load_settings(
        config_path=config_path,
        cache_dir=tmp_path / "cache",
        login_command="",
        buy_command="trader -b",
        sell_command="trader -s",
        refresh_command="controller REFRESH",
        retrain_command="controller RETRAIN",
    )


@pytest.fixture
def write_counter(store, monkeypatch):
    """Count disk writes performed by ``store``."""
    counter = {"writes": 0}
    original = store._write_sync

    def _counting(doc):
        counter["writes"] += 1
        return original(doc)

    monkeypatch.setattr(store, "_write_sync", _counting)
    return counter
