import threading
from unittest.mock import MagicMock

from tutor_repl.sandbox.scheduler import CleanupScheduler


def test_scheduler_runs_cleanup_periodically():
    registry = MagicMock()
    swept = threading.Event()
    calls = []

    def cleanup():
        calls.append(1)
        if len(calls) >= 2:
            swept.set()
        return 0

    registry.cleanup_expired_sessions.side_effect = cleanup

    with CleanupScheduler(registry, interval=0.01) as scheduler:
        assert swept.wait(2)
        assert scheduler.running

    assert not scheduler.running
    assert len(calls) >= 2


def test_scheduler_survives_failing_sweep():
    registry = MagicMock()
    swept = threading.Event()
    results = [RuntimeError("docker down"), 3]

    def cleanup():
        result = results.pop(0) if results else 0
        if isinstance(result, Exception):
            raise result
        swept.set()
        return result

    registry.cleanup_expired_sessions.side_effect = cleanup
    scheduler = CleanupScheduler(registry, interval=0.01)
    scheduler.start()
    try:
        assert swept.wait(2)
    finally:
        scheduler.stop(timeout=2)


def test_run_once_returns_evicted_count(registry, runtime, clock):
    registry.create_session("python")
    clock.advance(3601)

    assert CleanupScheduler(registry).run_once() == 1
    assert registry.list_sessions() == []
    assert runtime.containers == {}


def test_start_is_idempotent_and_stop_without_start_is_safe():
    registry = MagicMock()
    registry.cleanup_expired_sessions.return_value = 0
    scheduler = CleanupScheduler(registry, interval=60)

    scheduler.stop()
    scheduler.start()
    first = scheduler._thread
    scheduler.start()

    assert scheduler._thread is first
    scheduler.stop(timeout=2)
    assert not scheduler.running
    registry.cleanup_expired_sessions.assert_not_called()
