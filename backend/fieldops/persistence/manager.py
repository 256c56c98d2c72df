"""
SQLite persistence manager for field-service state.

Single-file SQLite database. Implements the JobStore conditional-write
contract and stores per-recipient notifications.

Every conditional write runs in one BEGIN IMMEDIATE transaction:
the guarded UPDATE (WHERE id = ? AND status = ?) and the history INSERT
commit together or not at all. SQLite serializes writers, so among
racing writes from the same expected status exactly one matches.

Reads that span several statements (a job row plus its history, a job
list) run in one deferred transaction. Under WAL every statement in it
sees the same snapshot, so a concurrent commit never tears a read.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..jobs.models import Job, JobStatus, TransitionRecord, utcnow
from ..jobs.store import (
    WriteOutcome,
    WriteResult,
    check_detail_write,
    check_transition_write,
)
from ..notifications.models import Notification
from .errors import PersistenceError, SchemaError

logger = logging.getLogger(__name__)


# Database schema version for migrations
SCHEMA_VERSION = 1

_JOB_COLUMNS = (
    "id",
    "title",
    "description",
    "customer_name",
    "customer_phone",
    "customer_email",
    "address",
    "scheduled_date",
    "estimated_cost",
    "actual_cost",
    "notes",
    "status",
    "assigned_technician",
    "created_by",
    "created_at",
    "updated_at",
    "completed_at",
    "billed_at",
)


def _to_db(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class PersistenceManager:
    """
    Manages SQLite persistence for jobs and notifications.

    Stores:
    - Jobs and their status history (one row per transition record)
    - Notifications, one row per recipient

    Does NOT store:
    - Actors (resolved through the actor directory)
    - Broadcast events
    """

    def __init__(self, db_path: Optional[str] = None, timeout: float = 5.0):
        """
        Initialize persistence manager.

        Args:
            db_path: Path to SQLite database file (defaults to ./fieldops.db)
            timeout: Seconds a writer waits for the database lock

        Raises:
            ValueError: If db_path is ":memory:" (each operation opens its
                own connection, so an in-memory database would be empty)
        """
        if db_path is None:
            db_path = str(Path.cwd() / "fieldops.db")
        if db_path == ":memory:":
            raise ValueError("PersistenceManager requires a database file, not :memory:")

        self.db_path = db_path
        self.timeout = timeout
        self._ensure_schema()

    @contextmanager
    def _connect(self, immediate: bool = False, snapshot: bool = False):
        """
        Context manager for database connections.

        Args:
            immediate: Take the write lock up front (BEGIN IMMEDIATE)
            snapshot: Read from one consistent snapshot (deferred BEGIN)
        """
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row  # Access columns by name
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            elif snapshot:
                conn.execute("BEGIN")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Database operation failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self):
        """Create schema if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode = WAL")

            cursor = conn.cursor()

            # Schema version tracking
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
            """)

            # Check current version
            cursor.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
            row = cursor.fetchone()
            current_version = row[0] if row else 0

            if current_version > SCHEMA_VERSION:
                raise SchemaError(
                    f"Database schema version {current_version} is newer than "
                    f"supported version {SCHEMA_VERSION}"
                )
            if current_version < SCHEMA_VERSION:
                self._migrate_schema(conn, current_version)

    def _migrate_schema(self, conn, from_version: int):
        """Apply schema migrations."""
        cursor = conn.cursor()

        if from_version < 1:
            # Initial schema
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS jobs (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    customer_name TEXT NOT NULL,
                    customer_phone TEXT,
                    customer_email TEXT,
                    address TEXT,
                    scheduled_date TEXT,
                    estimated_cost REAL,
                    actual_cost REAL,
                    notes TEXT,
                    status TEXT NOT NULL,
                    assigned_technician TEXT,
                    created_by TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    completed_at TEXT,
                    billed_at TEXT
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_jobs_status_technician
                ON jobs (status, assigned_technician)
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS job_status_history (
                    job_id TEXT NOT NULL,
                    seq INTEGER NOT NULL,
                    from_status TEXT,
                    to_status TEXT NOT NULL,
                    actor_id TEXT NOT NULL,
                    changed_at TEXT NOT NULL,
                    notes TEXT NOT NULL DEFAULT '',
                    PRIMARY KEY (job_id, seq),
                    FOREIGN KEY (job_id) REFERENCES jobs (id) ON DELETE CASCADE
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS notifications (
                    id TEXT PRIMARY KEY,
                    recipient_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    message TEXT NOT NULL,
                    job_id TEXT,
                    read INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_notifications_recipient
                ON notifications (recipient_id, read, created_at)
            """)

            # Record migration
            cursor.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (1, utcnow().isoformat())
            )
            logger.info(f"Applied schema version 1 to {self.db_path}")

    # ========================================================================
    # Job persistence (JobStore)
    # ========================================================================

    def _insert_record(self, conn, job_id: str, seq: int, record: TransitionRecord):
        conn.execute("""
            INSERT INTO job_status_history (
                job_id, seq, from_status, to_status, actor_id, changed_at, notes
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            job_id,
            seq,
            _to_db(record.from_status),
            record.to_status.value,
            record.actor_id,
            record.timestamp.isoformat(),
            record.notes,
        ))

    def _load(self, conn, job_id: str) -> Optional[Job]:
        """Load one job and its history using an open connection."""
        job_row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        if not job_row:
            return None

        history_rows = self._history_rows(conn, job_id)

        data = {column: job_row[column] for column in _JOB_COLUMNS}
        data["status_history"] = [
            {
                "from_status": row["from_status"],
                "to_status": row["to_status"],
                "actor_id": row["actor_id"],
                "timestamp": row["changed_at"],
                "notes": row["notes"],
            }
            for row in history_rows
        ]
        return Job.model_validate(data)

    def _history_rows(self, conn, job_id: str) -> List[sqlite3.Row]:
        return conn.execute(
            "SELECT * FROM job_status_history WHERE job_id = ? ORDER BY seq",
            (job_id,)
        ).fetchall()

    @staticmethod
    def _filter(
        status: Optional[JobStatus],
        assigned_technician: Optional[str],
    ) -> Tuple[str, List[Any]]:
        clauses = []
        params: List[Any] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        if assigned_technician is not None:
            clauses.append("assigned_technician = ?")
            params.append(assigned_technician)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def _miss_outcome(self, conn, job_id: str) -> WriteOutcome:
        """Classify a guarded write that matched no row."""
        row = conn.execute("SELECT 1 FROM jobs WHERE id = ?", (job_id,)).fetchone()
        return WriteOutcome.CONFLICT if row else WriteOutcome.NOT_FOUND

    def insert_job(self, job: Job) -> Job:
        """
        Insert a new job and its initial history.

        Raises:
            ValueError: If a job with the same ID already exists
        """
        values = [_to_db(getattr(job, column)) for column in _JOB_COLUMNS]
        placeholders = ", ".join("?" for _ in _JOB_COLUMNS)

        try:
            with self._connect(immediate=True) as conn:
                conn.execute(
                    f"INSERT INTO jobs ({', '.join(_JOB_COLUMNS)}) VALUES ({placeholders})",
                    values,
                )
                for seq, record in enumerate(job.status_history):
                    self._insert_record(conn, job.id, seq, record)
                return self._load(conn, job.id)
        except PersistenceError as e:
            if isinstance(e.__cause__, sqlite3.IntegrityError):
                raise ValueError(f"Job with ID '{job.id}' already exists") from e
            raise

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._connect(snapshot=True) as conn:
            return self._load(conn, job_id)

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        assigned_technician: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Job]:
        """
        List jobs, newest first, optionally filtered.

        Args:
            status: Only jobs in this status
            assigned_technician: Only jobs assigned to this actor id
            limit: Page size (None for every match)
            offset: Matches to skip before the page starts
        """
        where, params = self._filter(status, assigned_technician)
        # LIMIT -1 is SQLite for "no limit"
        params += [-1 if limit is None else limit, offset]

        with self._connect(snapshot=True) as conn:
            rows = conn.execute(
                f"SELECT id FROM jobs {where} ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
                params,
            ).fetchall()
            return [self._load(conn, row["id"]) for row in rows]

    def count_jobs(
        self,
        status: Optional[JobStatus] = None,
        assigned_technician: Optional[str] = None,
    ) -> int:
        """Number of jobs matching the same filters as list_jobs."""
        where, params = self._filter(status, assigned_technician)
        with self._connect() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM jobs {where}", params).fetchone()[0]

    def attempt_transition(
        self,
        job_id: str,
        expected_status: JobStatus,
        write_set: Dict[str, Any],
        record: TransitionRecord,
    ) -> WriteResult:
        check_transition_write(expected_status, write_set, record)

        assignments = {**write_set, "updated_at": record.timestamp}
        # Column names come from the TRANSITION_FIELDS whitelist
        set_clause = ", ".join(f"{column} = ?" for column in assignments)
        params = [_to_db(v) for v in assignments.values()] + [job_id, expected_status.value]

        with self._connect(immediate=True) as conn:
            cursor = conn.execute(
                f"UPDATE jobs SET {set_clause} WHERE id = ? AND status = ?",
                params,
            )
            if cursor.rowcount == 0:
                return WriteResult(self._miss_outcome(conn, job_id))

            row = conn.execute(
                "SELECT COALESCE(MAX(seq), -1) + 1 FROM job_status_history WHERE job_id = ?",
                (job_id,)
            ).fetchone()
            self._insert_record(conn, job_id, row[0], record)
            return WriteResult(WriteOutcome.UPDATED, self._load(conn, job_id))

    def attempt_update(
        self,
        job_id: str,
        expected_status: JobStatus,
        write_set: Dict[str, Any],
    ) -> WriteResult:
        check_detail_write(write_set)

        assignments = {**write_set, "updated_at": utcnow()}
        # Column names come from the DETAIL_FIELDS whitelist
        set_clause = ", ".join(f"{column} = ?" for column in assignments)
        params = [_to_db(v) for v in assignments.values()] + [job_id, expected_status.value]

        with self._connect(immediate=True) as conn:
            cursor = conn.execute(
                f"UPDATE jobs SET {set_clause} WHERE id = ? AND status = ?",
                params,
            )
            if cursor.rowcount == 0:
                return WriteResult(self._miss_outcome(conn, job_id))
            return WriteResult(WriteOutcome.UPDATED, self._load(conn, job_id))

    def attempt_delete(self, job_id: str, expected_status: JobStatus) -> WriteResult:
        with self._connect(immediate=True) as conn:
            snapshot = self._load(conn, job_id)
            if snapshot is None:
                return WriteResult(WriteOutcome.NOT_FOUND)

            cursor = conn.execute(
                "DELETE FROM jobs WHERE id = ? AND status = ?",
                (job_id, expected_status.value),
            )
            if cursor.rowcount == 0:
                return WriteResult(WriteOutcome.CONFLICT)
            return WriteResult(WriteOutcome.UPDATED, snapshot)

    # ========================================================================
    # Notification persistence
    # ========================================================================

    def save_notifications(self, notifications: Iterable[Notification]) -> int:
        """
        Insert notifications in one transaction.

        Returns:
            Number of rows written
        """
        rows = [
            (
                n.id,
                n.recipient_id,
                n.type.value,
                n.message,
                n.job_id,
                1 if n.read else 0,
                n.created_at.isoformat(),
            )
            for n in notifications
        ]
        if not rows:
            return 0

        with self._connect(immediate=True) as conn:
            conn.executemany("""
                INSERT INTO notifications (id, recipient_id, type, message, job_id, read, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, rows)
        return len(rows)

    def list_notifications(
        self,
        recipient_id: str,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[Notification]:
        """List a recipient's notifications, newest first."""
        query = "SELECT * FROM notifications WHERE recipient_id = ?"
        if unread_only:
            query += " AND read = 0"
        query += " ORDER BY created_at DESC LIMIT ?"

        with self._connect() as conn:
            rows = conn.execute(query, (recipient_id, limit)).fetchall()

        return [
            Notification(
                id=row["id"],
                recipient_id=row["recipient_id"],
                type=row["type"],
                message=row["message"],
                job_id=row["job_id"],
                read=bool(row["read"]),
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def mark_read(self, notification_id: str, recipient_id: str) -> bool:
        """Mark one notification read. Returns False if it is not the recipient's."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE notifications SET read = 1 WHERE id = ? AND recipient_id = ?",
                (notification_id, recipient_id),
            )
            return cursor.rowcount > 0

    def mark_all_read(self, recipient_id: str) -> int:
        """Mark every unread notification of a recipient read."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE notifications SET read = 1 WHERE recipient_id = ? AND read = 0",
                (recipient_id,),
            )
            return cursor.rowcount

    def count_unread(self, recipient_id: str) -> int:
        """Number of a recipient's unread notifications, regardless of any page size."""
        with self._connect() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM notifications WHERE recipient_id = ? AND read = 0",
                (recipient_id,),
            ).fetchone()[0]
