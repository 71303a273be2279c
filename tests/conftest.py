from datetime import date
from typing import Optional

import pytest

from netmeter.config import NetmeterConfig
from netmeter.engine import SamplingEngine
from netmeter.models import InterfaceSample
from netmeter.stats_store import DailyStatsStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeReader:
    """Stands in for InterfaceReader with scripted counters."""

    def __init__(self, name: str = "en0", sent: int = 0, recv: int = 0):
        self.name = name
        self.sent = sent
        self.recv = recv
        self.error: Optional[Exception] = None
        self.calls = 0

    def set(self, sent: int, recv: int, name: Optional[str] = None) -> None:
        self.sent = sent
        self.recv = recv
        if name is not None:
            self.name = name

    def add(self, sent: int, recv: int) -> None:
        self.sent += sent
        self.recv += recv

    def primary_interface(self) -> InterfaceSample:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return InterfaceSample(
            name=self.name,
            input_bytes=self.recv,
            output_bytes=self.sent,
            ip_address="192.168.1.20",
            is_up=True,
            is_active=True,
            description="Wi-Fi",
        )


class FakeDay:
    def __init__(self, day: date):
        self.day = day

    def __call__(self) -> date:
        return self.day


@pytest.fixture
def config(tmp_path):
    return NetmeterConfig(
        sample_interval_ms=500,
        publish_interval_ms=1000,
        paths={
            'config_dir': tmp_path,
            'data_dir': tmp_path,
            'stats_file': tmp_path / "netmeter_stats.json",
            'log_file': tmp_path / "netmeter.log",
        },
    )


@pytest.fixture
def store(config):
    return DailyStatsStore(config.stats_path)


@pytest.fixture
def reader():
    return FakeReader(sent=5_000_000_000, recv=9_000_000_000)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def today():
    return FakeDay(date(2026, 10, 16))


@pytest.fixture
def engine(monkeypatch, reader, store, config, clock, today):
    """Engine whose ticks are driven by the test instead of timer threads."""
    monkeypatch.setattr(SamplingEngine, "_start_timers", lambda self, stop_event: None)
    eng = SamplingEngine(reader, store, config=config, clock=clock, today=today)
    yield eng
    eng.shutdown()
