import os

import pytest

from core.config import EngineSettings


@pytest.fixture(autouse=True)
def clean_engine_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("PERPS_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(tick_interval_sec=0.01, venue_env="devnet")


@pytest.fixture
def now_ms() -> int:
    return 1_700_000_000_000
