"""Session Store: persistence contract for review sessions and its backends."""
import copy
import dataclasses
import json
import logging
import sqlite3
import uuid
from abc import ABC, abstractmethod
from typing import Optional

from voice_review.db import get_connection, init_db
from voice_review.errors import NotFound, PersistenceFailure
from voice_review.models import (
    ReviewItem, ReviewSession, SessionSettings, UserExport, VoiceStats,
)

logger = logging.getLogger(__name__)

SESSION_FIELDS = {f.name for f in dataclasses.fields(ReviewSession)} - {"id"}


def new_session_id() -> str:
    return f"session-{uuid.uuid4().hex[:12]}"


def summarize_sessions(sessions: list[ReviewSession]) -> UserExport:
    total_correct = 0
    total_incorrect = 0
    for session in sessions:
        total_correct += sum(1 for i in session.items if i.result == "correct")
        total_incorrect += sum(1 for i in session.items if i.result == "incorrect")
    return UserExport(
        sessions=sessions,
        total_sessions=len(sessions),
        total_correct=total_correct,
        total_incorrect=total_incorrect,
    )


def _check_fields(fields: dict) -> None:
    unknown = set(fields) - SESSION_FIELDS
    if unknown:
        raise ValueError(f"Unknown session fields: {', '.join(sorted(unknown))}")


class SessionStore(ABC):
    """Key-value persistence for review sessions.

    Every method hands out copies, so mutating a returned session never
    changes stored state without an explicit ``update``.
    """

    @abstractmethod
    def create(self, session: ReviewSession) -> ReviewSession:
        """Store a session (its ``id`` is ignored) and return it with a new id."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[ReviewSession]:
        pass

    @abstractmethod
    def update(self, session_id: str, **fields) -> ReviewSession:
        """Apply ``fields`` to a stored session. Raises NotFound if absent."""

    @abstractmethod
    def delete(self, session_id: str) -> None:
        """Raises NotFound if absent."""

    @abstractmethod
    def list_by_user(self, user_id: str) -> list[ReviewSession]:
        pass

    @abstractmethod
    def delete_user_data(self, user_id: str) -> int:
        """Delete every session of a user, returning how many were removed."""

    def export_user_data(self, user_id: str) -> UserExport:
        return summarize_sessions(self.list_by_user(user_id))


class InMemorySessionStore(SessionStore):
    """Dict-backed store for tests and single-process use."""

    def __init__(self):
        self._sessions: dict[str, ReviewSession] = {}

    def create(self, session: ReviewSession) -> ReviewSession:
        stored = dataclasses.replace(copy.deepcopy(session), id=new_session_id())
        self._sessions[stored.id] = stored
        return copy.deepcopy(stored)

    def get(self, session_id: str) -> Optional[ReviewSession]:
        session = self._sessions.get(session_id)
        return copy.deepcopy(session) if session else None

    def update(self, session_id: str, **fields) -> ReviewSession:
        _check_fields(fields)
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFound(session_id)
        updated = dataclasses.replace(session, **copy.deepcopy(fields))
        self._sessions[session_id] = updated
        return copy.deepcopy(updated)

    def delete(self, session_id: str) -> None:
        if session_id not in self._sessions:
            raise NotFound(session_id)
        del self._sessions[session_id]

    def list_by_user(self, user_id: str) -> list[ReviewSession]:
        return [copy.deepcopy(s) for s in self._sessions.values() if s.user_id == user_id]

    def delete_user_data(self, user_id: str) -> int:
        ids = [sid for sid, s in self._sessions.items() if s.user_id == user_id]
        for sid in ids:
            del self._sessions[sid]
        return len(ids)


ITEM_COLUMNS = [
    "id", "source_id", "item_type", "question_type", "question", "expected_answer",
    "accepted_answers", "character", "mnemonic", "srs_stage", "user_answer", "result",
    "started_at", "answered_at", "input_method", "voice_confidence",
]


class SqliteSessionStore(SessionStore):
    """Durable store on the SQLite database managed by ``voice_review.db``."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        init_db(db_path)

    def _connect(self) -> sqlite3.Connection:
        try:
            return get_connection(self.db_path)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Could not open {self.db_path}: {e}") from e

    def _write_session(self, conn: sqlite3.Connection, session: ReviewSession, insert: bool) -> None:
        values = (
            session.user_id, session.started_at, session.ended_at, int(session.completed),
            session.correct_count, session.incorrect_count, session.score, session.source,
            json.dumps(dataclasses.asdict(session.settings)),
            json.dumps(dataclasses.asdict(session.voice_stats)),
        )
        if insert:
            conn.execute(
                """INSERT INTO review_sessions (user_id, started_at, ended_at, completed,
                correct_count, incorrect_count, score, source, settings, voice_stats, id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                values + (session.id,),
            )
        else:
            conn.execute(
                """UPDATE review_sessions SET user_id=?, started_at=?, ended_at=?, completed=?,
                correct_count=?, incorrect_count=?, score=?, source=?, settings=?, voice_stats=?
                WHERE id=?""",
                values + (session.id,),
            )
        conn.execute("DELETE FROM review_items WHERE session_id = ?", (session.id,))
        for position, item in enumerate(session.items):
            row = dataclasses.asdict(item)
            row["accepted_answers"] = json.dumps(row["accepted_answers"])
            conn.execute(
                f"""INSERT INTO review_items (session_id, position, {', '.join(ITEM_COLUMNS)})
                VALUES (?, ?, {', '.join('?' for _ in ITEM_COLUMNS)})""",
                (session.id, position, *(row[c] for c in ITEM_COLUMNS)),
            )

    def _read_session(self, conn: sqlite3.Connection, row: sqlite3.Row) -> ReviewSession:
        item_rows = conn.execute(
            "SELECT * FROM review_items WHERE session_id = ? ORDER BY position", (row["id"],)
        ).fetchall()
        items = []
        for r in item_rows:
            data = {c: r[c] for c in ITEM_COLUMNS}
            data["accepted_answers"] = json.loads(data["accepted_answers"] or "[]")
            items.append(ReviewItem(**data))
        return ReviewSession(
            id=row["id"],
            user_id=row["user_id"],
            items=items,
            started_at=row["started_at"],
            ended_at=row["ended_at"],
            completed=bool(row["completed"]),
            correct_count=row["correct_count"],
            incorrect_count=row["incorrect_count"],
            score=row["score"],
            settings=SessionSettings.from_dict(json.loads(row["settings"] or "{}")),
            voice_stats=VoiceStats(**json.loads(row["voice_stats"] or "{}")),
            source=row["source"],
        )

    def create(self, session: ReviewSession) -> ReviewSession:
        stored = dataclasses.replace(copy.deepcopy(session), id=new_session_id())
        conn = self._connect()
        try:
            self._write_session(conn, stored, insert=True)
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceFailure(f"Failed to create session: {e}") from e
        finally:
            conn.close()
        logger.debug("Stored session %s (%d items)", stored.id, len(stored.items))
        return stored

    def get(self, session_id: str) -> Optional[ReviewSession]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM review_sessions WHERE id = ?", (session_id,)).fetchone()
            return self._read_session(conn, row) if row else None
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Failed to load session {session_id}: {e}") from e
        finally:
            conn.close()

    def update(self, session_id: str, **fields) -> ReviewSession:
        _check_fields(fields)
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM review_sessions WHERE id = ?", (session_id,)).fetchone()
            if row is None:
                raise NotFound(session_id)
            updated = dataclasses.replace(self._read_session(conn, row), **copy.deepcopy(fields))
            self._write_session(conn, updated, insert=False)
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceFailure(f"Failed to update session {session_id}: {e}") from e
        finally:
            conn.close()
        return updated

    def delete(self, session_id: str) -> None:
        conn = self._connect()
        try:
            cur = conn.execute("DELETE FROM review_sessions WHERE id = ?", (session_id,))
            if cur.rowcount == 0:
                raise NotFound(session_id)
            conn.commit()
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Failed to delete session {session_id}: {e}") from e
        finally:
            conn.close()

    def list_by_user(self, user_id: str) -> list[ReviewSession]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM review_sessions WHERE user_id = ? ORDER BY started_at", (user_id,)
            ).fetchall()
            return [self._read_session(conn, r) for r in rows]
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Failed to list sessions for {user_id}: {e}") from e
        finally:
            conn.close()

    def delete_user_data(self, user_id: str) -> int:
        conn = self._connect()
        try:
            cur = conn.execute("DELETE FROM review_sessions WHERE user_id = ?", (user_id,))
            conn.commit()
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Failed to delete data for {user_id}: {e}") from e
        finally:
            conn.close()
        logger.info("Deleted %d sessions for user %s", cur.rowcount, user_id)
        return cur.rowcount
