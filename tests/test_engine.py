import time
from datetime import date

import httpx

from netmeter.engine import EngineState, SamplingEngine
from netmeter.errors import InterfaceAccessError, NoActiveInterface
from netmeter.external_ip import UNAVAILABLE, ExternalIPResolver
from netmeter.models import ConnectionStatus, PathStatus

from conftest import FakeReader


def test_first_sample_after_start_only_seeds(engine, reader):
    engine.start()
    engine.on_sample_tick()

    assert engine.window.upload == 0
    assert engine.window.download == 0
    assert not engine.counters.awaiting_reseed
    assert engine.counters.previous_upload == reader.sent


def test_samples_accumulate_deltas(engine, reader):
    engine.start()
    engine.on_sample_tick()

    reader.add(sent=1000, recv=3000)
    engine.on_sample_tick()
    reader.add(sent=24, recv=72)
    engine.on_sample_tick()

    assert engine.window.upload == 1024
    assert engine.window.download == 3072


def test_counter_reset_counts_current_value(engine, reader):
    engine.start()
    engine.on_sample_tick()

    reader.set(sent=300, recv=700)
    engine.on_sample_tick()

    assert engine.window.upload == 300
    assert engine.window.download == 700


def test_publish_tick_derives_speed_and_totals(engine, reader, store, clock, today):
    engine.start(sample_interval_ms=250, publish_interval_ms=2000)
    engine.on_sample_tick()
    reader.add(sent=4096, recv=8192)
    engine.on_sample_tick()
    clock.advance(2.0)

    engine.on_publish_tick()
    metrics = engine.snapshot

    assert metrics.upload_speed == 2048.0
    assert metrics.download_speed == 4096.0
    assert metrics.peak_upload_speed == 2048.0
    assert metrics.total_uploaded_today == 4096
    assert metrics.total_downloaded_today == 8192
    assert metrics.network_uptime == 2.0
    assert metrics.status == ConnectionStatus.CONNECTED
    assert metrics.interface_name == "en0"
    assert metrics.ip_address == "192.168.1.20"
    assert engine.window.upload == 0

    stored = store.get(today())
    assert stored.total_uploaded == 4096
    assert stored.peak_download_speed == 4096.0


def test_totals_match_store_after_each_flush(engine, reader, store, today):
    engine.start()
    engine.on_sample_tick()
    for _ in range(3):
        reader.add(sent=100, recv=200)
        engine.on_sample_tick()
        engine.on_publish_tick()

        stored = store.get(today())
        assert engine.snapshot.total_uploaded_today == stored.total_uploaded
        assert engine.snapshot.total_downloaded_today == stored.total_downloaded

    assert store.get(today()).total_uploaded == 300


def test_peaks_never_decrease(engine, reader):
    engine.start()
    engine.on_sample_tick()

    peaks = []
    for sent in (5000, 100, 9000, 0, 20):
        reader.add(sent=sent, recv=sent * 2)
        engine.on_sample_tick()
        engine.on_publish_tick()
        peaks.append(engine.snapshot.peak_upload_speed)

    assert peaks == sorted(peaks)
    assert peaks[-1] == 9000.0
    assert engine.snapshot.upload_speed == 20.0


def test_reset_statistics_reseeds_and_clears_peaks(engine, reader, store, today):
    engine.start()
    engine.on_sample_tick()
    reader.add(sent=10_000, recv=10_000)
    engine.on_sample_tick()
    engine.on_publish_tick()

    reader.add(sent=10**9, recv=10**9)
    engine.reset_statistics()
    engine.on_sample_tick()

    assert engine.window.upload == 0
    assert engine.window.download == 0
    assert engine.snapshot.peak_upload_speed == 0.0
    assert engine.snapshot.peak_download_speed == 0.0
    assert store.get(today()).total_uploaded == 10_000


def test_reset_statistics_keeps_unflushed_traffic(engine, reader, store, today):
    engine.start()
    engine.on_sample_tick()
    reader.add(sent=7000, recv=9000)
    engine.on_sample_tick()

    engine.reset_statistics()

    stored = store.get(today())
    assert stored.total_uploaded == 7000
    assert stored.total_downloaded == 9000
    assert engine.snapshot.total_uploaded_today == 7000

    engine.on_sample_tick()
    engine.on_publish_tick()

    assert store.get(today()).total_uploaded == 7000
    assert engine.snapshot.total_downloaded_today == 9000


def test_restart_reseeds(engine, reader):
    engine.start()
    engine.on_sample_tick()
    reader.add(sent=500, recv=500)

    assert engine.restart()
    engine.on_sample_tick()

    assert engine.window.upload == 0


def test_invalid_intervals_rejected(engine):
    assert not engine.start(0, 1000)
    assert engine.state == EngineState.IDLE

    assert engine.start(500, 1000)
    assert not engine.set_intervals(-1, 1000)
    assert engine.state == EngineState.RUNNING
    assert engine.sample_interval_ms == 500


def test_set_intervals_restarts_with_reseed(engine, reader):
    engine.start()
    engine.on_sample_tick()
    reader.add(sent=500, recv=500)

    assert engine.set_intervals(100, 400)
    engine.on_sample_tick()

    assert engine.sample_interval_ms == 100
    assert engine.publish_interval_ms == 400
    assert engine.window.upload == 0


def test_ticks_do_nothing_when_idle(engine, reader):
    engine.on_sample_tick()
    engine.on_publish_tick()
    assert reader.calls == 0

    engine.start()
    engine.stop()
    engine.on_sample_tick()
    assert reader.calls == 0
    assert engine.state == EngineState.IDLE


def test_read_failure_sets_error_then_recovers(engine, reader):
    engine.start()
    engine.on_sample_tick()

    reader.error = NoActiveInterface()
    reader.add(sent=100, recv=100)
    engine.on_sample_tick()

    assert engine.snapshot.status == ConnectionStatus.ERROR
    assert engine.snapshot.last_error.code == "no_active_interface"

    reader.error = None
    reader.add(sent=100, recv=100)
    engine.on_sample_tick()

    assert engine.snapshot.status == ConnectionStatus.CONNECTED
    assert engine.snapshot.last_error is None
    assert engine.window.upload == 0


def test_interface_access_error_is_reported(engine, reader):
    engine.start()
    reader.error = InterfaceAccessError()
    engine.on_sample_tick()

    assert engine.snapshot.last_error.code == "interface_access"


def test_path_updates_map_to_status(engine, reader):
    engine.start()
    engine.on_sample_tick()

    engine.on_path_update(PathStatus.UNSATISFIED)
    assert engine.snapshot.status == ConnectionStatus.DISCONNECTED
    calls = reader.calls
    engine.on_sample_tick()
    assert reader.calls == calls

    engine.on_path_update(PathStatus.REQUIRES_CONNECTION)
    assert engine.snapshot.status == ConnectionStatus.CONNECTING

    engine.on_path_update(PathStatus.UNKNOWN)
    assert engine.snapshot.status == ConnectionStatus.ERROR

    engine.on_path_update(PathStatus.SATISFIED)
    assert engine.snapshot.status == ConnectionStatus.CONNECTED
    reader.add(sent=10**6, recv=10**6)
    engine.on_sample_tick()
    assert engine.window.upload == 0


def test_interface_switch_reseeds(engine, reader):
    engine.start()
    engine.on_sample_tick()

    reader.set(sent=10, recv=10, name="en1")
    engine.on_sample_tick()
    assert engine.window.upload == 0

    reader.add(sent=5, recv=6)
    engine.on_sample_tick()
    assert engine.window.upload == 5
    assert engine.window.download == 6


def test_window_split_across_midnight(engine, reader, store, today):
    engine.start()
    engine.on_sample_tick()

    reader.add(sent=100, recv=100)
    engine.on_sample_tick()
    today.day = date(2026, 10, 17)
    reader.add(sent=40, recv=60)
    engine.on_sample_tick()
    engine.on_publish_tick()

    assert store.get(date(2026, 10, 16)).total_uploaded == 100
    assert store.get(date(2026, 10, 17)).total_downloaded == 60
    assert engine.snapshot.total_uploaded_today == 40


def test_snapshots_are_versioned(engine):
    seen = []
    unsubscribe = engine.subscribe(seen.append)
    engine.start()
    engine.on_publish_tick()
    unsubscribe()
    engine.on_publish_tick()

    assert len(seen) == 2
    assert seen[1].version == seen[0].version + 1


def test_external_ip_failure_published(reader, store, config):
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    resolver = ExternalIPResolver(
        config.external_ip_services, transport=httpx.MockTransport(handler)
    )
    engine = SamplingEngine(reader, store, resolver=resolver, config=config)

    assert engine.resolve_external_ip().result(timeout=5) == UNAVAILABLE
    assert engine.snapshot.external_ip_address == UNAVAILABLE
    assert engine.snapshot.last_error.code == "external_ip_fetch_failed"
    engine.shutdown()


def test_external_ip_success_published(reader, store, config):
    def handler(request):
        return httpx.Response(200, json={"ip": "203.0.113.50"})

    resolver = ExternalIPResolver(
        config.external_ip_services, transport=httpx.MockTransport(handler)
    )
    engine = SamplingEngine(reader, store, resolver=resolver, config=config)

    assert engine.resolve_external_ip().result(timeout=5) == "203.0.113.50"
    assert engine.snapshot.external_ip_address == "203.0.113.50"
    engine.shutdown()


def test_timers_stop_firing_after_stop(store, config):
    reader = FakeReader(sent=1, recv=1)
    engine = SamplingEngine(reader, store, config=config)

    assert engine.start(sample_interval_ms=10, publish_interval_ms=20)
    deadline = time.monotonic() + 5
    while reader.calls < 3 and time.monotonic() < deadline:
        time.sleep(0.01)
    engine.stop()
    calls = reader.calls
    time.sleep(0.1)

    assert calls >= 3
    assert reader.calls == calls
    engine.shutdown()
