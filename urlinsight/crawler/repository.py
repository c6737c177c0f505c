"""Persistence collaborator used by the crawl pool.

The pool only needs `find_by_id`, `update_status`, and one transactional
`save_results` that also marks the target done. `SQLiteRepository` is the
bundled implementation; services can inject anything that satisfies
`TargetRepository`.
"""

from __future__ import annotations

from pathlib import Path
import sqlite3
import threading
from typing import Protocol, Sequence

from .errors import TargetNotFoundError
from .types import AnalysisResult, Link, Target, TargetStatus, utc_now_iso


class TargetRepository(Protocol):
    def find_by_id(self, target_id: int) -> Target: ...

    def update_status(self, target_id: int, status: TargetStatus) -> None: ...

    def save_results(
        self,
        target_id: int,
        analysis: AnalysisResult,
        links: Sequence[Link],
    ) -> None:
        """Store snapshot + links and set status `done` in one atomic commit."""


SCHEMA = """
CREATE TABLE IF NOT EXISTS targets (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    url         TEXT    NOT NULL UNIQUE,
    status      TEXT    NOT NULL DEFAULT 'queued'
                CHECK (status IN ('queued', 'running', 'done', 'error')),
    created_at  TEXT    NOT NULL,
    updated_at  TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS analysis_results (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    target_id           INTEGER NOT NULL REFERENCES targets(id) ON DELETE CASCADE,
    html_version        TEXT    NOT NULL,
    title               TEXT    NOT NULL DEFAULT '',
    h1_count            INTEGER NOT NULL DEFAULT 0,
    h2_count            INTEGER NOT NULL DEFAULT 0,
    h3_count            INTEGER NOT NULL DEFAULT 0,
    h4_count            INTEGER NOT NULL DEFAULT 0,
    h5_count            INTEGER NOT NULL DEFAULT 0,
    h6_count            INTEGER NOT NULL DEFAULT 0,
    has_login_form      INTEGER NOT NULL DEFAULT 0,
    internal_link_count INTEGER NOT NULL DEFAULT 0,
    external_link_count INTEGER NOT NULL DEFAULT 0,
    broken_link_count   INTEGER NOT NULL DEFAULT 0,
    created_at          TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_analysis_results_target ON analysis_results(target_id);

CREATE TABLE IF NOT EXISTS links (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    analysis_result_id INTEGER NOT NULL REFERENCES analysis_results(id) ON DELETE CASCADE,
    target_id          INTEGER NOT NULL REFERENCES targets(id) ON DELETE CASCADE,
    href               TEXT    NOT NULL,
    is_external        INTEGER NOT NULL DEFAULT 0,
    status_code        INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_links_result ON links(analysis_result_id);
"""


def _row_to_target(row: sqlite3.Row) -> Target:
    return Target(id=row["id"], url=row["url"], status=TargetStatus(row["status"]))


def _row_to_analysis(row: sqlite3.Row) -> AnalysisResult:
    return AnalysisResult(
        target_id=row["target_id"],
        html_version=row["html_version"],
        title=row["title"],
        h1_count=row["h1_count"],
        h2_count=row["h2_count"],
        h3_count=row["h3_count"],
        h4_count=row["h4_count"],
        h5_count=row["h5_count"],
        h6_count=row["h6_count"],
        has_login_form=bool(row["has_login_form"]),
        internal_link_count=row["internal_link_count"],
        external_link_count=row["external_link_count"],
        broken_link_count=row["broken_link_count"],
    )


def _row_to_link(row: sqlite3.Row) -> Link:
    return Link(
        href=row["href"],
        is_external=bool(row["is_external"]),
        status_code=row["status_code"],
    )


class SQLiteRepository:
    """SQLite-backed target store with append-only analysis snapshots.

    One connection is shared by every worker thread; a lock serializes access.
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(SCHEMA)

    def create_target(self, url: str) -> Target:
        """Insert a target (or reuse the existing row for URL) with status queued."""

        now = utc_now_iso()
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO targets (url, status, created_at, updated_at)
                VALUES (?, 'queued', ?, ?)
                ON CONFLICT(url) DO UPDATE SET status = 'queued', updated_at = excluded.updated_at
                """,
                (url, now, now),
            )
            row = self._conn.execute("SELECT * FROM targets WHERE url = ?", (url,)).fetchone()
        return _row_to_target(row)

    def find_by_id(self, target_id: int) -> Target:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM targets WHERE id = ?", (target_id,)
            ).fetchone()
        if row is None:
            raise TargetNotFoundError(target_id)
        return _row_to_target(row)

    def update_status(self, target_id: int, status: TargetStatus) -> None:
        status = TargetStatus(status)
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "UPDATE targets SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, utc_now_iso(), target_id),
            )
        if cursor.rowcount == 0:
            raise TargetNotFoundError(target_id)

    def save_results(
        self,
        target_id: int,
        analysis: AnalysisResult,
        links: Sequence[Link],
    ) -> None:
        """Insert one analysis snapshot and its links and mark the target done.

        All three writes share one transaction: either the snapshot, its links
        and the `done` status are committed together, or nothing is.
        """

        analysis.target_id = target_id
        now = utc_now_iso()
        with self._lock, self._conn:
            updated = self._conn.execute(
                "UPDATE targets SET status = 'done', updated_at = ? WHERE id = ?",
                (now, target_id),
            )
            if updated.rowcount == 0:
                raise TargetNotFoundError(target_id)

            cursor = self._conn.execute(
                """
                INSERT INTO analysis_results (
                    target_id, html_version, title,
                    h1_count, h2_count, h3_count, h4_count, h5_count, h6_count,
                    has_login_form, internal_link_count, external_link_count,
                    broken_link_count, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    target_id,
                    analysis.html_version,
                    analysis.title,
                    analysis.h1_count,
                    analysis.h2_count,
                    analysis.h3_count,
                    analysis.h4_count,
                    analysis.h5_count,
                    analysis.h6_count,
                    int(analysis.has_login_form),
                    analysis.internal_link_count,
                    analysis.external_link_count,
                    analysis.broken_link_count,
                    now,
                ),
            )
            result_id = cursor.lastrowid
            self._conn.executemany(
                """
                INSERT INTO links (analysis_result_id, target_id, href, is_external, status_code)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (result_id, target_id, link.href, int(link.is_external), link.status_code)
                    for link in links
                ],
            )

    def list_results(self, target_id: int) -> list[tuple[int, AnalysisResult]]:
        """Return `(result_id, snapshot)` pairs for target, newest first."""

        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM analysis_results WHERE target_id = ? ORDER BY id DESC",
                (target_id,),
            ).fetchall()
        return [(row["id"], _row_to_analysis(row)) for row in rows]

    def latest_result(self, target_id: int) -> tuple[AnalysisResult, list[Link]] | None:
        """Return newest snapshot and its links, or None if never analyzed."""

        results = self.list_results(target_id)
        if not results:
            return None
        result_id, analysis = results[0]
        return analysis, self.list_links(result_id)

    def list_links(self, result_id: int) -> list[Link]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM links WHERE analysis_result_id = ? ORDER BY id",
                (result_id,),
            ).fetchall()
        return [_row_to_link(row) for row in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "SQLiteRepository":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = [
    "SCHEMA",
    "SQLiteRepository",
    "TargetRepository",
]
