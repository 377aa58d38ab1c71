"""
Tests for persistence with retries.

Verifies:
- Transient errors are retried with 2 ** attempt second delays
- Non-transient errors propagate immediately
- Exhausted attempts propagate the last error
- The canonical record is always reloaded from the store
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only")

import pytest

from app.services.retryable_persister import RetryablePersister, is_transient_error
from app.services.timeline_schema import TimelineDraft
from app.utils.observability import RecordingEventSink


class SavedRecord:
    def __init__(self, record_id):
        self.id = record_id


class FlakyStore:
    """Store fake: raises the queued errors, then saves."""

    def __init__(self, errors=()):
        self.errors = list(errors)
        self.upsert_calls = 0
        self.reloaded = []

    def upsert(self, key, draft, snapshot=None):
        self.upsert_calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return SavedRecord("timeline-1")

    def reload(self, timeline_id):
        self.reloaded.append(timeline_id)
        return {"id": timeline_id, "canonical": True}


class TestTransientClassification:
    """Test is_transient_error()."""

    @pytest.mark.parametrize("message", [
        "connect ECONNREFUSED 127.0.0.1:5432",
        "Connection refused",
        "query timeout",
        "operation timed out",
        "server closed the connection unexpectedly",
    ])
    def test_transient(self, message):
        assert is_transient_error(Exception(message))

    @pytest.mark.parametrize("message", [
        "duplicate key value violates unique constraint",
        "null value in column \"title\"",
    ])
    def test_not_transient(self, message):
        assert not is_transient_error(Exception(message))


class TestPersist:
    """Test RetryablePersister.persist()."""

    def test_two_timeouts_then_success(self, sleep_recorder):
        store = FlakyStore([TimeoutError("timeout"), TimeoutError("timeout")])
        events = RecordingEventSink()
        persister = RetryablePersister(store, max_attempts=3, sleep=sleep_recorder, events=events)

        result = persister.persist("key", TimelineDraft())

        assert store.upsert_calls == 3
        assert result.attempts == 3
        assert result.delays == [2, 4]
        assert sleep_recorder.delays == [2, 4]
        assert store.reloaded == ["timeline-1"]
        assert result.record == {"id": "timeline-1", "canonical": True}
        assert events.names() == ["persistence.retry", "persistence.retry"]
        print("✅ VERIFIED: two backoff delays before success")

    def test_non_transient_error_raises_immediately(self, sleep_recorder):
        store = FlakyStore([ValueError("duplicate key value")])
        persister = RetryablePersister(store, sleep=sleep_recorder)

        with pytest.raises(ValueError):
            persister.persist("key", TimelineDraft())

        assert store.upsert_calls == 1
        assert sleep_recorder.delays == []
        assert store.reloaded == []

    def test_exhausted_attempts_raise_last_error(self, sleep_recorder):
        store = FlakyStore([ConnectionError("connection reset")] * 3)
        persister = RetryablePersister(store, max_attempts=3, sleep=sleep_recorder)

        with pytest.raises(ConnectionError):
            persister.persist("key", TimelineDraft())

        assert store.upsert_calls == 3
        assert sleep_recorder.delays == [2, 4]

    def test_reload_uses_returned_id(self, sleep_recorder):
        class IdStore(FlakyStore):
            def upsert(self, key, draft, snapshot=None):
                self.upsert_calls += 1
                return "raw-id"

        store = IdStore()
        result = RetryablePersister(store, sleep=sleep_recorder).persist("key", TimelineDraft())

        assert store.reloaded == ["raw-id"]
        assert result.attempts == 1
        assert result.delays == []
