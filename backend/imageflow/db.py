"""Run history. SQLite by default; set DATABASE_URL (or MYSQL_*) for MySQL.
Only run metadata is stored (counts, sizes, timings), never image bytes.
Startup ensures required tables exist; on connection failure logs verbosely and falls back to SQLite or in-memory so the app can start."""
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

from imageflow import config as app_config
from imageflow.conversion.models import ConversionItem
from imageflow.statistics import BatchStatistics

logger = logging.getLogger("imageflow.db")

_engine: Optional[Engine] = None

# Tables required for the app (created at startup if missing)
REQUIRED_TABLES = ("batch_runs", "item_results")


def _is_sqlite() -> bool:
    return "sqlite" in app_config.DATABASE_URL


def _db_kind() -> str:
    return "SQLite" if _is_sqlite() else "MySQL"


def _build_engine(url: str) -> Engine:
    kwargs = {}
    if "sqlite" in url:
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url:
            # One shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = _build_engine(app_config.DATABASE_URL)
        logger.info("Database engine created (%s)", _db_kind())
    return _engine


def _create_sqlite_tables(conn) -> None:
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS batch_runs (
            run_id TEXT PRIMARY KEY,
            session_id TEXT NOT NULL,
            total_files INTEGER NOT NULL,
            completed_files INTEGER NOT NULL DEFAULT 0,
            failed_files INTEGER NOT NULL DEFAULT 0,
            original_bytes INTEGER NOT NULL DEFAULT 0,
            converted_bytes INTEGER NOT NULL DEFAULT 0,
            cancelled INTEGER NOT NULL DEFAULT 0,
            started_at TEXT NOT NULL,
            finished_at TEXT NOT NULL,
            duration_seconds REAL
        )
    """))
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS item_results (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            run_id TEXT NOT NULL,
            session_id TEXT NOT NULL,
            item_id TEXT NOT NULL,
            filename TEXT,
            status TEXT NOT NULL,
            output_format TEXT,
            input_bytes INTEGER,
            output_bytes INTEGER,
            error TEXT,
            created_at TEXT NOT NULL
        )
    """))
    conn.commit()


def _create_mysql_tables(conn) -> None:
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS batch_runs (
            run_id VARCHAR(64) PRIMARY KEY,
            session_id VARCHAR(255) NOT NULL,
            total_files INT NOT NULL,
            completed_files INT NOT NULL DEFAULT 0,
            failed_files INT NOT NULL DEFAULT 0,
            original_bytes BIGINT NOT NULL DEFAULT 0,
            converted_bytes BIGINT NOT NULL DEFAULT 0,
            cancelled TINYINT NOT NULL DEFAULT 0,
            started_at VARCHAR(50) NOT NULL,
            finished_at VARCHAR(50) NOT NULL,
            duration_seconds DOUBLE
        )
    """))
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS item_results (
            id BIGINT AUTO_INCREMENT PRIMARY KEY,
            run_id VARCHAR(64) NOT NULL,
            session_id VARCHAR(255) NOT NULL,
            item_id VARCHAR(64) NOT NULL,
            filename VARCHAR(512),
            status VARCHAR(50) NOT NULL,
            output_format VARCHAR(16),
            input_bytes BIGINT,
            output_bytes BIGINT,
            error TEXT,
            created_at VARCHAR(50) NOT NULL
        )
    """))
    conn.commit()


def _ensure_tables(engine: Engine) -> None:
    """Create required tables if they do not exist."""
    with engine.connect() as conn:
        if _is_sqlite():
            _create_sqlite_tables(conn)
        else:
            _create_mysql_tables(conn)
    logger.info("Required tables ensured: %s", ", ".join(REQUIRED_TABLES))


def init_db() -> None:
    """Prepare database at startup: ensure required tables exist. On failure, fall back to SQLite file or in-memory so the app can start."""
    global _engine
    kind = _db_kind()
    logger.info("Database init: preparing %s (tables: %s)", kind, ", ".join(REQUIRED_TABLES))

    try:
        engine = get_engine()
        _ensure_tables(engine)
        logger.info("Database ready: %s", kind)
        return
    except OperationalError as e:
        logger.warning(
            "Database connection failed (%s): %s. Will try fallback.",
            kind,
            e.orig,
            exc_info=True,
        )
        if not _is_sqlite():
            try:
                sqlite_path = app_config.BASE_DIR / "data" / "imageflow.db"
                sqlite_path.parent.mkdir(parents=True, exist_ok=True)
                app_config.DATABASE_URL = f"sqlite:///{sqlite_path}"
                _engine = None
                engine = get_engine()
                _ensure_tables(engine)
                logger.warning(
                    "MySQL unavailable. Using SQLite at %s. Fix MYSQL_* in .env to use MySQL.",
                    sqlite_path,
                )
                return
            except Exception as fallback_err:
                logger.exception(
                    "SQLite file fallback failed: %s. Trying in-memory SQLite.",
                    fallback_err,
                )
    except Exception as e:
        logger.exception("Database init failed: %s. Trying in-memory SQLite.", e)

    # Last resort: in-memory SQLite so the app can run (history will not persist across restarts)
    app_config.DATABASE_URL = "sqlite:///:memory:"
    _engine = _build_engine(app_config.DATABASE_URL)
    _ensure_tables(_engine)
    logger.warning("Database unavailable. Using in-memory SQLite. Run history will not persist across restarts.")


@contextmanager
def session():
    with get_engine().connect() as conn:
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def record_run(session_id: str, stats: BatchStatistics, items: Sequence[ConversionItem]) -> str:
    """Store one run and its item outcomes. Returns the run id."""
    run_id = uuid.uuid4().hex
    now = _now_iso()
    with session() as conn:
        conn.execute(
            text("""
                INSERT INTO batch_runs (run_id, session_id, total_files, completed_files, failed_files, original_bytes, converted_bytes, cancelled, started_at, finished_at, duration_seconds)
                VALUES (:run_id, :session_id, :total_files, :completed_files, :failed_files, :original_bytes, :converted_bytes, :cancelled, :started_at, :finished_at, :duration_seconds)
            """),
            {
                "run_id": run_id,
                "session_id": session_id,
                "total_files": stats.total_files,
                "completed_files": stats.completed_files,
                "failed_files": stats.failed_files,
                "original_bytes": stats.original_size,
                "converted_bytes": stats.compressed_size,
                "cancelled": 1 if stats.cancelled else 0,
                "started_at": stats.start_time.isoformat(),
                "finished_at": stats.end_time.isoformat(),
                "duration_seconds": stats.processing_time_seconds,
            },
        )
        for item in items:
            conn.execute(
                text("""
                    INSERT INTO item_results (run_id, session_id, item_id, filename, status, output_format, input_bytes, output_bytes, error, created_at)
                    VALUES (:run_id, :session_id, :item_id, :filename, :status, :output_format, :input_bytes, :output_bytes, :error, :created_at)
                """),
                {
                    "run_id": run_id,
                    "session_id": session_id,
                    "item_id": item.item_id,
                    "filename": item.source_name,
                    "status": item.status.value,
                    "output_format": item.output_format,
                    "input_bytes": item.source_size,
                    "output_bytes": item.converted_size,
                    "error": item.error,
                    "created_at": now,
                },
            )
    logger.debug("Recorded run %s for session %s (%s items)", run_id, session_id, len(items))
    return run_id


def get_session_stats(session_id: str) -> dict:
    """Aggregate stats for a session: runs, files_processed, files_converted, files_failed, total_input_bytes, total_output_bytes, compression_percent, time_spent_seconds."""
    with get_engine().connect() as conn:
        row = conn.execute(
            text("""
                SELECT
                    COUNT(*) AS runs,
                    COALESCE(SUM(total_files), 0) AS files_processed,
                    COALESCE(SUM(completed_files), 0) AS files_converted,
                    COALESCE(SUM(failed_files), 0) AS files_failed,
                    COALESCE(SUM(original_bytes), 0) AS total_input_bytes,
                    COALESCE(SUM(converted_bytes), 0) AS total_output_bytes,
                    COALESCE(SUM(duration_seconds), 0) AS time_spent_seconds
                FROM batch_runs WHERE session_id = :sid
            """),
            {"sid": session_id},
        ).fetchone()
    if not row or row[0] == 0:
        return {
            "runs": 0,
            "files_processed": 0,
            "files_converted": 0,
            "files_failed": 0,
            "total_input_bytes": 0,
            "total_output_bytes": 0,
            "compression_percent": 0.0,
            "time_spent_seconds": 0.0,
        }
    total_input = int(row[4])
    total_output = int(row[5])
    compression_percent = 0.0
    if total_input > 0:
        compression_percent = round((1.0 - total_output / total_input) * 100.0, 1)
    return {
        "runs": int(row[0]),
        "files_processed": int(row[1]),
        "files_converted": int(row[2]),
        "files_failed": int(row[3]),
        "total_input_bytes": total_input,
        "total_output_bytes": total_output,
        "compression_percent": compression_percent,
        "time_spent_seconds": float(row[6]),
    }


def get_session_runs(session_id: str, limit: int = 20) -> list[dict]:
    """Recent runs for the session, newest first."""
    with get_engine().connect() as conn:
        rows = conn.execute(
            text("""
                SELECT run_id, total_files, completed_files, failed_files, original_bytes, converted_bytes, cancelled, started_at, finished_at, duration_seconds
                FROM batch_runs WHERE session_id = :sid ORDER BY started_at DESC LIMIT :lim
            """),
            {"sid": session_id, "lim": limit},
        ).fetchall()
    return [
        {
            "run_id": r[0],
            "total_files": r[1],
            "completed_files": r[2],
            "failed_files": r[3],
            "original_bytes": r[4],
            "converted_bytes": r[5],
            "cancelled": bool(r[6]),
            "started_at": r[7],
            "finished_at": r[8],
            "duration_seconds": r[9],
        }
        for r in rows
    ]


def get_run_items(session_id: str, run_id: str) -> list[dict]:
    with get_engine().connect() as conn:
        rows = conn.execute(
            text("""
                SELECT item_id, filename, status, output_format, input_bytes, output_bytes, error
                FROM item_results WHERE run_id = :rid AND session_id = :sid ORDER BY id
            """),
            {"rid": run_id, "sid": session_id},
        ).fetchall()
    return [
        {
            "item_id": r[0],
            "filename": r[1],
            "status": r[2],
            "output_format": r[3],
            "input_bytes": r[4],
            "output_bytes": r[5],
            "error": r[6],
        }
        for r in rows
    ]


def delete_session_data(session_id: str) -> int:
    """Delete all runs and item results for the session. Returns the number of runs removed."""
    with session() as conn:
        removed = conn.execute(
            text("SELECT COUNT(*) FROM batch_runs WHERE session_id = :sid"), {"sid": session_id}
        ).scalar() or 0
        conn.execute(text("DELETE FROM item_results WHERE session_id = :sid"), {"sid": session_id})
        conn.execute(text("DELETE FROM batch_runs WHERE session_id = :sid"), {"sid": session_id})
    return int(removed)
