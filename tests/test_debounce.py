import logging

from timetable.debounce import WriteCoalescer
from timetable.errors import CredentialRequired


def test_burst_of_requests_writes_once_with_latest_state(scheduler):
    written = []
    coalescer = WriteCoalescer(written.append, delay=0.9, timer_factory=scheduler)
    coalescer.request({"n": 1})
    scheduler.advance(0.1)
    coalescer.request({"n": 2})
    scheduler.advance(0.1)
    coalescer.request({"n": 3})
    scheduler.advance(0.5)
    assert written == []
    assert coalescer.pending
    scheduler.advance(0.5)
    assert written == [{"n": 3}]
    assert not coalescer.pending


def test_separate_quiet_periods_write_separately(scheduler):
    written = []
    coalescer = WriteCoalescer(written.append, delay=0.9, timer_factory=scheduler)
    coalescer.request({"n": 1})
    scheduler.advance(1.0)
    coalescer.request({"n": 2})
    scheduler.advance(1.0)
    assert written == [{"n": 1}, {"n": 2}]


def test_stale_timer_that_fires_anyway_does_nothing(scheduler):
    written = []
    coalescer = WriteCoalescer(written.append, delay=0.9, timer_factory=scheduler)
    coalescer.request({"n": 1})
    coalescer.request({"n": 2})
    first, second = scheduler.timers
    assert first.cancelled
    first.fire()
    assert written == []
    second.fire()
    assert written == [{"n": 2}]


def test_flush_writes_pending_state_immediately(scheduler):
    written = []
    coalescer = WriteCoalescer(written.append, delay=0.9, timer_factory=scheduler)
    coalescer.flush()
    assert written == []
    coalescer.request({"n": 1})
    coalescer.flush()
    assert written == [{"n": 1}]
    scheduler.advance(2.0)
    assert written == [{"n": 1}]


def test_write_errors_are_logged_not_raised(scheduler, caplog):
    def failing(state):
        raise RuntimeError("network down")

    coalescer = WriteCoalescer(failing, delay=0.9, timer_factory=scheduler)
    with caplog.at_level(logging.WARNING):
        coalescer.request({"n": 1})
        scheduler.advance(1.0)
    assert "save failed" in caplog.text


def test_missing_credential_is_logged_as_warning(scheduler, caplog):
    def needs_consent(state):
        raise CredentialRequired("https://consent.example")

    coalescer = WriteCoalescer(needs_consent, delay=0.9, timer_factory=scheduler)
    with caplog.at_level(logging.WARNING):
        coalescer.request({"n": 1})
        scheduler.advance(1.0)
    assert "save skipped" in caplog.text
    assert "https://consent.example" in caplog.text
