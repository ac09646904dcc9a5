"""
Candidate Repository - CRUD operations for the browsing_history_candidates table.

Queries are synchronous and run on a worker thread via asyncio.to_thread so the
event loop never blocks on SQLite.
"""

from __future__ import annotations

import asyncio
import sqlite3
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from typing import Any, Protocol

from researchvault.config import DETECTION_LOOKBACK_DAYS
from researchvault.detection.models import Candidate, ClassificationResult, utc_now
from researchvault.infrastructure.database import (
    DatabaseConnectionPool,
    db_transaction,
    get_db_connection,
    retry_on_db_lock,
)
from researchvault.observability.logging import get_logger
from researchvault.observability.telemetry import counter

logger = get_logger(__name__)

_COLUMNS = (
    "id",
    "user_id",
    "url",
    "title",
    "favicon",
    "domain",
    "visited_at",
    "visit_count",
    "confidence_score",
    "suggested_reason",
    "category",
    "is_academic",
    "dismissed",
    "dismissed_at",
    "subject",
    "subject_confidence",
    "ai_classified",
    "classification_result",
    "classified_at",
    "created_at",
    "updated_at",
)

# Detection fields refreshed when a long-dismissed candidate is detected again
_REVIVE_COLUMNS = (
    "title",
    "favicon",
    "domain",
    "visited_at",
    "visit_count",
    "confidence_score",
    "suggested_reason",
    "category",
    "is_academic",
)


class StoreError(RuntimeError):
    """Raised when the candidate store cannot complete an operation."""


class CandidateStore(Protocol):
    """Persistence operations the detection pipeline depends on."""

    async def insert_candidates(
        self, user_id: str, candidates: Sequence[Candidate], lookback_days: int = ...
    ) -> list[str]: ...

    async def list_candidates(
        self,
        user_id: str,
        *,
        dismissed: bool | None = None,
        is_academic: bool | None = None,
        unclassified: bool | None = None,
        ids: Sequence[str] | None = None,
        limit: int = 100,
    ) -> list[Candidate]: ...

    async def get_candidate(self, user_id: str, candidate_id: str) -> Candidate | None: ...

    async def dismiss(self, user_id: str, candidate_id: str) -> bool: ...

    async def dismiss_all(self, user_id: str) -> int: ...

    async def update_classification(
        self, user_id: str, candidate_id: str, result: ClassificationResult
    ) -> bool: ...


def _row_to_candidate(row: sqlite3.Row) -> Candidate:
    return Candidate.from_db_row(dict(row))


class SqliteCandidateStore:
    """
    SQLite-backed CandidateStore.

    Identity is (user_id, url). A URL the user dismissed is not re-created
    while the dismissal is inside the lookback window; once the dismissal is
    older than the window the row is revived with the new detection data.
    """

    def __init__(
        self,
        pool: DatabaseConnectionPool | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.pool = pool
        self.clock = clock

    # ------------------------------------------------------------------
    # Async API
    # ------------------------------------------------------------------

    async def insert_candidates(
        self,
        user_id: str,
        candidates: Sequence[Candidate],
        lookback_days: int = DETECTION_LOOKBACK_DAYS,
    ) -> list[str]:
        return await self._run(self._insert_candidates, user_id, list(candidates), lookback_days)

    async def list_candidates(
        self,
        user_id: str,
        *,
        dismissed: bool | None = None,
        is_academic: bool | None = None,
        unclassified: bool | None = None,
        ids: Sequence[str] | None = None,
        limit: int = 100,
    ) -> list[Candidate]:
        return await self._run(
            self._list_candidates,
            user_id,
            dismissed,
            is_academic,
            unclassified,
            list(ids) if ids is not None else None,
            limit,
        )

    async def get_candidate(self, user_id: str, candidate_id: str) -> Candidate | None:
        return await self._run(self._get_candidate, user_id, candidate_id)

    async def dismiss(self, user_id: str, candidate_id: str) -> bool:
        return await self._run(self._dismiss, user_id, candidate_id)

    async def dismiss_all(self, user_id: str) -> int:
        return await self._run(self._dismiss_all, user_id)

    async def update_classification(
        self, user_id: str, candidate_id: str, result: ClassificationResult
    ) -> bool:
        return await self._run(self._update_classification, user_id, candidate_id, result)

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except (sqlite3.Error, RuntimeError) as e:
            if isinstance(e, StoreError):
                raise
            counter("store.errors")
            logger.error("Candidate store operation %s failed: %s", func.__name__, e)
            raise StoreError(f"{func.__name__.lstrip('_')} failed: {e}") from e

    # ------------------------------------------------------------------
    # Synchronous queries (worker thread)
    # ------------------------------------------------------------------

    @retry_on_db_lock()
    def _insert_candidates(
        self, user_id: str, candidates: list[Candidate], lookback_days: int
    ) -> list[str]:
        """
        Insert new candidates, skipping known URLs.

        Returns:
            Ids of rows inserted or revived, in input order

        Side Effects:
            - Inserts/updates rows in browsing_history_candidates
            - Commits transaction
        """
        now = self.clock()
        cutoff = now - timedelta(days=lookback_days)
        written: list[str] = []
        skipped = 0

        with db_transaction(self.pool) as conn:
            for candidate in candidates:
                existing = conn.execute(
                    "SELECT id, dismissed, dismissed_at FROM browsing_history_candidates "
                    "WHERE user_id = ? AND url = ?",
                    (user_id, candidate.url),
                ).fetchone()

                if existing is None:
                    record = candidate.model_copy(
                        update={
                            "id": str(uuid.uuid4()),
                            "user_id": user_id,
                            "dismissed": False,
                            "dismissed_at": None,
                            "created_at": now,
                            "updated_at": now,
                        }
                    )
                    db_dict = record.to_db_dict()
                    placeholders = ", ".join("?" for _ in _COLUMNS)
                    conn.execute(
                        f"INSERT INTO browsing_history_candidates ({', '.join(_COLUMNS)}) "
                        f"VALUES ({placeholders})",
                        tuple(db_dict[c] for c in _COLUMNS),
                    )
                    written.append(record.id)  # type: ignore[arg-type]
                    continue

                if not existing["dismissed"]:
                    skipped += 1
                    continue

                dismissed_at = existing["dismissed_at"]
                if dismissed_at is not None and datetime.fromisoformat(dismissed_at) > cutoff:
                    skipped += 1
                    continue

                db_dict = candidate.to_db_dict()
                assignments = ", ".join(f"{c} = ?" for c in _REVIVE_COLUMNS)
                conn.execute(
                    f"UPDATE browsing_history_candidates SET {assignments}, "
                    "dismissed = 0, dismissed_at = NULL, subject = NULL, subject_confidence = NULL, "
                    "ai_classified = 0, classification_result = NULL, classified_at = NULL, "
                    "updated_at = ? "
                    "WHERE id = ?",
                    (*(db_dict[c] for c in _REVIVE_COLUMNS), now.isoformat(), existing["id"]),
                )
                counter("store.candidates_revived")
                written.append(existing["id"])

        counter("store.candidates_inserted", len(written))
        logger.info(
            "Stored %d candidates for user %s (%d skipped as known)",
            len(written),
            user_id,
            skipped,
        )
        return written

    def _list_candidates(
        self,
        user_id: str,
        dismissed: bool | None,
        is_academic: bool | None,
        unclassified: bool | None,
        ids: list[str] | None,
        limit: int,
    ) -> list[Candidate]:
        clauses = ["user_id = ?"]
        params: list[Any] = [user_id]

        if dismissed is not None:
            clauses.append("dismissed = ?")
            params.append(int(dismissed))
        if is_academic is not None:
            clauses.append("is_academic = ?")
            params.append(int(is_academic))
        if unclassified is True:
            clauses.append("ai_classified = 0 AND subject IS NULL")
        elif unclassified is False:
            clauses.append("(ai_classified = 1 OR subject IS NOT NULL)")
        if ids is not None:
            if not ids:
                return []
            clauses.append(f"id IN ({', '.join('?' for _ in ids)})")
            params.extend(ids)

        params.append(limit)
        query = (
            "SELECT * FROM browsing_history_candidates "
            f"WHERE {' AND '.join(clauses)} "
            "ORDER BY visited_at DESC LIMIT ?"
        )

        with get_db_connection(self.pool) as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_candidate(row) for row in rows]

    def _get_candidate(self, user_id: str, candidate_id: str) -> Candidate | None:
        with get_db_connection(self.pool) as conn:
            row = conn.execute(
                "SELECT * FROM browsing_history_candidates WHERE user_id = ? AND id = ?",
                (user_id, candidate_id),
            ).fetchone()
        return _row_to_candidate(row) if row else None

    @retry_on_db_lock()
    def _dismiss(self, user_id: str, candidate_id: str) -> bool:
        """Mark one candidate dismissed. Returns False if nothing changed."""
        now = self.clock().isoformat()
        with db_transaction(self.pool) as conn:
            cursor = conn.execute(
                "UPDATE browsing_history_candidates "
                "SET dismissed = 1, dismissed_at = ?, updated_at = ? "
                "WHERE user_id = ? AND id = ? AND dismissed = 0",
                (now, now, user_id, candidate_id),
            )
            changed = cursor.rowcount > 0
        if changed:
            counter("store.candidates_dismissed")
        return changed

    @retry_on_db_lock()
    def _dismiss_all(self, user_id: str) -> int:
        now = self.clock().isoformat()
        with db_transaction(self.pool) as conn:
            cursor = conn.execute(
                "UPDATE browsing_history_candidates "
                "SET dismissed = 1, dismissed_at = ?, updated_at = ? "
                "WHERE user_id = ? AND dismissed = 0",
                (now, now, user_id),
            )
            count = cursor.rowcount
        counter("store.candidates_dismissed", count)
        logger.info("Dismissed %d candidates for user %s", count, user_id)
        return count

    @retry_on_db_lock()
    def _update_classification(
        self, user_id: str, candidate_id: str, result: ClassificationResult
    ) -> bool:
        now = self.clock().isoformat()
        with db_transaction(self.pool) as conn:
            cursor = conn.execute(
                "UPDATE browsing_history_candidates "
                "SET subject = ?, subject_confidence = ?, ai_classified = 1, "
                "classification_result = ?, classified_at = ?, updated_at = ? "
                "WHERE user_id = ? AND id = ?",
                (
                    result.subject.value,
                    result.confidence,
                    result.model_dump_json(),
                    result.timestamp.isoformat(),
                    now,
                    user_id,
                    candidate_id,
                ),
            )
            return cursor.rowcount > 0
