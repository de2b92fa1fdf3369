from __future__ import annotations

import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from vpsrestore.restore.report import RunReport


class RestoreState:
    """Petit helper pour stocker l'historique des restaurations dans SQLite."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS restore_runs (
                    run_id TEXT PRIMARY KEY,
                    backup_name TEXT NOT NULL,
                    status TEXT NOT NULL,
                    message TEXT,
                    snapshot_path TEXT,
                    started_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS run_steps (
                    run_id TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    ok INTEGER NOT NULL,
                    detail TEXT,
                    PRIMARY KEY (run_id, position)
                )
                """
            )

    def record_run(self, report: RunReport) -> None:
        timestamp = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        snapshot_path = str(report.snapshot.path) if report.snapshot is not None else None
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO restore_runs(run_id, backup_name, status, message, snapshot_path, started_at, updated_at)
                VALUES(?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(run_id) DO UPDATE SET
                    backup_name=excluded.backup_name,
                    status=excluded.status,
                    message=excluded.message,
                    snapshot_path=excluded.snapshot_path,
                    updated_at=excluded.updated_at
                """,
                (report.run_id, report.backup_name, report.status, report.message, snapshot_path, timestamp, timestamp),
            )
            conn.execute("DELETE FROM run_steps WHERE run_id = ?", (report.run_id,))
            conn.executemany(
                "INSERT INTO run_steps(run_id, position, name, ok, detail) VALUES(?, ?, ?, ?, ?)",
                [
                    (report.run_id, position, step.name, int(step.ok), step.detail)
                    for position, step in enumerate(report.steps)
                ],
            )

    def list_runs(self) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                """
                SELECT run_id, backup_name, status, message, snapshot_path, started_at, updated_at
                FROM restore_runs ORDER BY started_at DESC, run_id DESC
                """
            ).fetchall()
            return [dict(row) for row in rows]

    def get_run(self, run_id: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                """
                SELECT run_id, backup_name, status, message, snapshot_path, started_at, updated_at
                FROM restore_runs WHERE run_id = ?
                """,
                (run_id,),
            ).fetchone()
            if not row:
                return None
            steps = conn.execute(
                "SELECT name, ok, detail FROM run_steps WHERE run_id = ? ORDER BY position",
                (run_id,),
            ).fetchall()
            run = dict(row)
            run["steps"] = [{"name": s["name"], "ok": bool(s["ok"]), "detail": s["detail"]} for s in steps]
            return run
