"""SQLiteStore — local file-based archive of finished executions.

Schema:
  executions — one row per execution, keyed by execution id. Findings and
               failed chunk ids are stored as JSON columns to keep reads a
               single-table query.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading

from prweave_store.base import BaseStore
from prweave_store.models import ExecutionRecord, FindingRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS executions (
    execution_id    TEXT PRIMARY KEY,
    repo            TEXT NOT NULL,
    pr_number       INTEGER NOT NULL,
    head_sha        TEXT,
    status          TEXT NOT NULL,
    started_at      TEXT,
    finished_at     TEXT,
    chunk_count     INTEGER DEFAULT 0,
    failed_chunks   TEXT DEFAULT '[]',
    complete        INTEGER DEFAULT 1,
    verdict         TEXT,
    review_url      TEXT,
    error_stage     TEXT,
    error_kind      TEXT,
    error_message   TEXT,
    findings_json   TEXT DEFAULT '[]'
);
CREATE INDEX IF NOT EXISTS idx_executions_repo ON executions (repo);
CREATE INDEX IF NOT EXISTS idx_executions_pr   ON executions (repo, pr_number);
"""


class SQLiteStore(BaseStore):
    """Stores finished executions in a local SQLite database file.

    The database file path defaults to `.prweave.db` in the current working
    directory. Configure via .prweave.yml: `store_path: /path/to/prweave.db`.
    The connection may be used from the worker thread that finishes an
    execution, so it is opened with check_same_thread=False.
    """

    def __init__(self, db_path: str = ".prweave.db"):
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._lock = threading.Lock()
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def save(self, record: ExecutionRecord) -> None:
        findings_json = json.dumps(
            [{"file": f.file, "line": f.line, "severity": f.severity, "message": f.message} for f in record.findings]
        )
        with self._lock:
            self._write(record, findings_json)

    def _write(self, record: ExecutionRecord, findings_json: str) -> None:
        self._conn.execute(
            """
            INSERT OR REPLACE INTO executions
              (execution_id, repo, pr_number, head_sha, status, started_at, finished_at,
               chunk_count, failed_chunks, complete, verdict, review_url,
               error_stage, error_kind, error_message, findings_json)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.execution_id,
                record.repo,
                record.pr_number,
                record.head_sha,
                record.status,
                record.started_at,
                record.finished_at,
                record.chunk_count,
                json.dumps(record.failed_chunks),
                int(record.complete),
                record.verdict,
                record.review_url,
                record.error_stage,
                record.error_kind,
                record.error_message,
                findings_json,
            ),
        )
        self._conn.commit()

    def get(self, execution_id: str) -> ExecutionRecord | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM executions WHERE execution_id=?", (execution_id,)).fetchone()
        return self._row_to_record(row) if row is not None else None

    def list_executions(self, repo: str, pr_number: int | None = None) -> list[ExecutionRecord]:
        query = "SELECT * FROM executions WHERE repo=?"
        params: tuple = (repo,)
        if pr_number is not None:
            query += " AND pr_number=?"
            params = (repo, pr_number)
        with self._lock:
            rows = self._conn.execute(query + " ORDER BY started_at", params).fetchall()

        return [self._row_to_record(r) for r in rows]

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ExecutionRecord:
        findings = [
            FindingRecord(
                file=f.get("file", ""),
                line=f.get("line", 0),
                severity=f.get("severity", "minor"),
                message=f.get("message", ""),
            )
            for f in json.loads(row["findings_json"] or "[]")
        ]
        return ExecutionRecord(
            execution_id=row["execution_id"],
            repo=row["repo"],
            pr_number=row["pr_number"],
            head_sha=row["head_sha"] or "",
            status=row["status"],
            started_at=row["started_at"] or "",
            finished_at=row["finished_at"] or "",
            chunk_count=row["chunk_count"],
            failed_chunks=json.loads(row["failed_chunks"] or "[]"),
            complete=bool(row["complete"]),
            verdict=row["verdict"] or "",
            review_url=row["review_url"],
            error_stage=row["error_stage"],
            error_kind=row["error_kind"],
            error_message=row["error_message"],
            findings=findings,
        )
