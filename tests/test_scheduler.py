import threading

import pytest

from theme_api.services import scheduler
from theme_api.services.scheduler import ScheduledProcessor, TaskRegistry


@pytest.fixture
def registry():
    reg = TaskRegistry(join_timeout=2.0)
    yield reg
    reg.stop()


def test_start_is_idempotent_per_name(registry):
    assert registry.start("job", 60, lambda: None) is True
    assert registry.start("job", 60, lambda: None) is False
    assert registry.is_running("job")
    assert registry.running() == ["job"]


def test_stop_one_or_all(registry):
    registry.start("a", 60, lambda: None)
    registry.start("b", 60, lambda: None)
    assert registry.stop("a") == ["a"]
    assert not registry.is_running("a")
    assert registry.stop("missing") == []
    assert registry.stop() == ["b"]
    assert registry.running() == []


def test_invalid_interval(registry):
    with pytest.raises(ValueError):
        registry.start("bad", 0, lambda: None)


def test_failing_run_is_logged_and_loop_continues(registry, caplog):
    done = threading.Event()
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first run fails")
        done.set()

    registry.start("flaky", 0.01, flaky, run_immediately=True)
    assert done.wait(2.0)
    stats = registry.stats("flaky")
    assert stats["failures"] == 1
    assert stats["runs"] >= 2
    assert "[scheduler] flaky run failed" in caplog.text


def test_processor_registers_all_jobs(monkeypatch, registry):
    monkeypatch.setattr(scheduler.settings, "BATCH_INTERVAL_MINUTES", 30)
    monkeypatch.setattr(scheduler.settings, "REALTIME_SYNC_INTERVAL_MINUTES", 5)
    processor = ScheduledProcessor(registry)
    processor.start()
    assert registry.running() == sorted([
        scheduler.BATCH_PROCESSING, scheduler.REALTIME_SYNC, scheduler.SCORE_HISTORY_CLEANUP,
    ])
    assert registry.stats(scheduler.BATCH_PROCESSING)["interval_seconds"] == 1800
    assert registry.stats(scheduler.REALTIME_SYNC)["interval_seconds"] == 300
    assert processor.start_batch_processing() is False
    assert set(processor.stop()) == {
        scheduler.BATCH_PROCESSING, scheduler.REALTIME_SYNC, scheduler.SCORE_HISTORY_CLEANUP,
    }


def test_batch_job_uses_scheduled_batch_size(monkeypatch):
    captured = {}

    def fake_run(operation, options):
        captured["operation"] = operation
        captured["options"] = options

    monkeypatch.setattr(scheduler, "_run_operation", fake_run)
    monkeypatch.setattr(scheduler.settings, "SCHEDULED_BATCH_SIZE", 50)
    ScheduledProcessor(TaskRegistry()).run_batch_processing()
    assert captured["operation"] == "batch_update"
    assert captured["options"]["batchSize"] == 50


def test_scheduled_jobs_are_recorded(db_engine, requests_mocker):
    from sqlmodel import Session, select
    from theme_api.models.processing import ProcessingJob

    requests_mocker.post("https://edge.test/functions/v1/process-trend-data", json={"synced": 2})
    ScheduledProcessor(TaskRegistry()).run_realtime_sync()

    with Session(db_engine) as s:
        job = s.exec(select(ProcessingJob)).one()
    assert job.job_type == "realtime_sync"
    assert job.status == "completed"


def test_cleanup_job_applies_retention(db_engine, make_theme, session, monkeypatch):
    from datetime import datetime, timedelta
    from sqlmodel import select
    from theme_api.models.score_history import ScoreHistory

    theme = make_theme()
    session.add(ScoreHistory(theme_id=theme.id, score=50, factors={}, created_at=datetime.utcnow() - timedelta(days=40)))
    session.add(ScoreHistory(theme_id=theme.id, score=55, factors={}))
    session.commit()

    monkeypatch.setattr(scheduler.settings, "SCORE_HISTORY_RETENTION_DAYS", 30)
    assert ScheduledProcessor(TaskRegistry()).run_score_history_cleanup() == 1

    session.expire_all()
    assert [row.score for row in session.exec(select(ScoreHistory)).all()] == [55]
