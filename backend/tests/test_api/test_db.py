"""
Tests for imageflow.db module (in-memory SQLite).
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from imageflow import db
from imageflow.conversion.models import ConversionItem, ItemStatus
from imageflow.statistics import compute_statistics

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def ready_db():
    db.init_db()


@pytest.fixture
def session_id():
    return f"test-{uuid.uuid4()}"


def _finished_items():
    return [
        ConversionItem("i1", "a.png", b"a" * 1000, status=ItemStatus.COMPLETED, converted_bytes=b"x" * 400, output_format="jpeg"),
        ConversionItem("i2", "b.png", b"b" * 1000, status=ItemStatus.ERROR, error="cannot identify image file"),
    ]


@pytest.mark.integration
class TestRunHistory:
    def test_empty_session_stats(self, session_id):
        stats = db.get_session_stats(session_id)

        assert stats["runs"] == 0
        assert stats["compression_percent"] == 0.0
        assert db.get_session_runs(session_id) == []

    def test_record_and_aggregate(self, session_id):
        items = _finished_items()
        stats = compute_statistics(items, T0, T0 + timedelta(seconds=3))

        db.record_run(session_id, stats, items)
        db.record_run(session_id, stats, items)

        totals = db.get_session_stats(session_id)
        assert totals["runs"] == 2
        assert totals["files_processed"] == 4
        assert totals["files_converted"] == 2
        assert totals["files_failed"] == 2
        assert totals["total_input_bytes"] == 4000
        assert totals["total_output_bytes"] == 800
        assert totals["compression_percent"] == 80.0
        assert totals["time_spent_seconds"] == pytest.approx(6.0)

    def test_runs_and_items(self, session_id):
        items = _finished_items()
        stats = compute_statistics(items, T0, T0 + timedelta(seconds=1))

        run_id = db.record_run(session_id, stats, items)

        runs = db.get_session_runs(session_id)
        assert [r["run_id"] for r in runs] == [run_id]
        assert runs[0]["cancelled"] is False
        rows = db.get_run_items(session_id, run_id)
        assert [(r["filename"], r["status"]) for r in rows] == [("a.png", "completed"), ("b.png", "error")]
        assert rows[0]["output_bytes"] == 400
        assert rows[1]["error"] == "cannot identify image file"

    def test_run_items_scoped_to_session(self, session_id):
        items = _finished_items()
        run_id = db.record_run(session_id, compute_statistics(items, T0, T0), items)

        assert db.get_run_items("someone-else", run_id) == []

    def test_delete_session_data(self, session_id):
        items = _finished_items()
        db.record_run(session_id, compute_statistics(items, T0, T0), items)
        other = f"other-{uuid.uuid4()}"
        db.record_run(other, compute_statistics(items, T0, T0), items)

        assert db.delete_session_data(session_id) == 1
        assert db.get_session_stats(session_id)["runs"] == 0
        assert db.get_session_stats(other)["runs"] == 1
