"""Review session lifecycle: start, answer, complete."""
import copy
import logging
import math
import threading
from datetime import datetime
from typing import Callable, Optional

from voice_review.errors import (
    EmptyItemSet, ItemAlreadyAnswered, ItemNotFound, NoActiveSession, NotFound,
    SessionAlreadyCompleted, StoreError,
)
from voice_review.models import (
    INPUT_METHODS, QUESTION_TYPES, ReviewItem, ReviewSession, SessionProgress, SessionSettings, VoiceStats,
)
from voice_review.store import SessionStore

logger = logging.getLogger(__name__)


def percent(correct: int, total: int) -> int:
    """Percentage rounded half up, 0 for an empty total."""
    if total == 0:
        return 0
    return math.floor(correct * 100 / total + 0.5)


def fold_confidence(stats: VoiceStats, confidence: float) -> None:
    """Fold one confidence sample into the running mean."""
    stats.confidence_samples += 1
    n = stats.confidence_samples
    stats.average_confidence = (stats.average_confidence * (n - 1) + confidence) / n


def average_answer_time_ms(items: list[ReviewItem]) -> float:
    durations = []
    for item in items:
        if item.started_at and item.answered_at:
            delta = datetime.fromisoformat(item.answered_at) - datetime.fromisoformat(item.started_at)
            durations.append(delta.total_seconds() * 1000)
    if not durations:
        return 0.0
    return sum(durations) / len(durations)


class SessionManager:
    """Owns the current review session and keeps the store in step with it.

    Caller mistakes (empty item set, unknown session or item, a session that
    has already ended) raise ``SessionError`` subclasses. Store failures are
    logged and reported through ``error``; the operation then returns ``None``
    and the in-memory session is left as it was before the call.
    """

    def __init__(self, store: SessionStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock
        self.current_session: Optional[ReviewSession] = None
        self.error: Optional[str] = None
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _now(self) -> str:
        return self.clock().isoformat()

    def _lock_for(self, session_id: str) -> threading.Lock:
        """Lock for the current session. Only the current session holds one."""
        with self._locks_guard:
            if self.current_session is None or self.current_session.id != session_id:
                raise NoActiveSession(session_id)
            return self._locks.setdefault(session_id, threading.Lock())

    def _make_current(self, session: Optional[ReviewSession]) -> None:
        with self._locks_guard:
            previous = self.current_session
            if previous is not None and (session is None or session.id != previous.id):
                self._locks.pop(previous.id, None)
            self.current_session = session

    def _require_current(self, session_id: str) -> ReviewSession:
        if self.current_session is None or self.current_session.id != session_id:
            raise NoActiveSession(session_id)
        return self.current_session

    def _require_open(self, session_id: str) -> ReviewSession:
        session = self._require_current(session_id)
        if session.completed:
            raise SessionAlreadyCompleted(session_id)
        return session

    def _load(self, session_id: str, failure_message: str) -> Optional[ReviewSession]:
        """Read a stored session. NotFound if absent, None on a store failure."""
        try:
            session = self.store.get(session_id)
        except StoreError:
            logger.exception("%s (session %s)", failure_message, session_id)
            self.error = failure_message
            return None
        if session is None:
            raise NotFound(session_id)
        return session

    def _persist(self, session: ReviewSession, failure_message: str, **fields) -> Optional[ReviewSession]:
        try:
            updated = self.store.update(session.id, **fields)
        except StoreError:
            logger.exception("%s (session %s)", failure_message, session.id)
            self.error = failure_message
            return None
        self.current_session = updated
        self.error = None
        return updated

    def start_session(
        self,
        user_id: str,
        items: list[ReviewItem],
        settings: SessionSettings | None = None,
        source: str = "custom",
    ) -> Optional[ReviewSession]:
        self.error = None
        if not items:
            raise EmptyItemSet()
        draft = ReviewSession(
            id=None,
            user_id=user_id,
            items=copy.deepcopy(list(items)),
            started_at=self._now(),
            settings=settings or SessionSettings(),
            voice_stats=VoiceStats(),
            source=source,
        )
        try:
            session = self.store.create(draft)
        except StoreError:
            logger.exception("Failed to create review session for %s", user_id)
            self.error = "Failed to create review session"
            return None
        self._make_current(session)
        logger.info("Started session %s for %s with %d items", session.id, user_id, len(items))
        return session

    def resume_session(self, session_id: str) -> Optional[ReviewSession]:
        """Make a stored session the current one."""
        session = self._load(session_id, "Failed to resume session")
        if session is None:
            return None
        self._make_current(session)
        self.error = None
        return session

    def present_item(self, session_id: str, item_id: str) -> Optional[ReviewSession]:
        """Stamp when an item was first shown; later calls keep the first stamp."""
        with self._lock_for(session_id):
            session = self._require_open(session_id)
            if session.find_item(item_id) is None:
                raise ItemNotFound(item_id, session_id)
            items = copy.deepcopy(session.items)
            item = next(i for i in items if i.id == item_id)
            if item.started_at:
                return session
            item.started_at = self._now()
            return self._persist(session, "Failed to update session item", items=items)

    def submit_answer(
        self,
        session_id: str,
        item_id: str,
        is_correct: bool,
        question_type: str = "meaning",
        input_method: str = "text",
        voice_confidence: float | None = None,
        user_answer: str | None = None,
    ) -> Optional[ReviewSession]:
        if question_type not in QUESTION_TYPES:
            raise ValueError(f"Unknown question type: {question_type}")
        if input_method not in INPUT_METHODS:
            raise ValueError(f"Unknown input method: {input_method}")
        with self._lock_for(session_id):
            session = self._require_open(session_id)
            if session.find_item(item_id) is None:
                raise ItemNotFound(item_id, session_id)
            if session.find_item(item_id).is_answered:
                raise ItemAlreadyAnswered(item_id)

            now = self._now()
            items = copy.deepcopy(session.items)
            item = next(i for i in items if i.id == item_id)
            item.result = "correct" if is_correct else "incorrect"
            item.answered_at = now
            item.question_type = question_type
            item.input_method = input_method
            item.voice_confidence = voice_confidence
            item.user_answer = user_answer

            correct = session.correct_count + (1 if is_correct else 0)
            incorrect = session.incorrect_count + (0 if is_correct else 1)

            stats = copy.deepcopy(session.voice_stats)
            if input_method == "voice":
                stats.voice_answer_count += 1
                if voice_confidence is not None:
                    fold_confidence(stats, voice_confidence)
            else:
                stats.text_answer_count += 1

            fields = dict(
                items=items, correct_count=correct, incorrect_count=incorrect, voice_stats=stats,
            )
            answered = sum(1 for i in items if i.is_answered)
            if answered >= len(items):
                fields.update(completed=True, ended_at=now, score=percent(correct, len(items)))

            updated = self._persist(session, "Failed to submit answer", **fields)
            if updated is not None:
                logger.debug("Session %s: item %s %s (%d/%d)",
                             session_id, item_id, item.result, answered, len(items))
                if updated.completed:
                    logger.info("Session %s complete, score %s%%", session_id, updated.score)
            return updated

    def skip_item(self, session_id: str, item_id: str) -> Optional[ReviewSession]:
        """Record an item as skipped. Skips count toward completion only."""
        with self._lock_for(session_id):
            session = self._require_open(session_id)
            if session.find_item(item_id) is None:
                raise ItemNotFound(item_id, session_id)
            if session.find_item(item_id).is_answered:
                raise ItemAlreadyAnswered(item_id)
            now = self._now()
            items = copy.deepcopy(session.items)
            item = next(i for i in items if i.id == item_id)
            item.result = "skipped"
            item.answered_at = now
            fields = dict(items=items)
            if all(i.is_answered for i in items):
                fields.update(
                    completed=True, ended_at=now,
                    score=percent(session.correct_count, len(items)),
                )
            return self._persist(session, "Failed to skip item", **fields)

    def record_voice_failure(self, session_id: str) -> Optional[ReviewSession]:
        with self._lock_for(session_id):
            session = self._require_open(session_id)
            stats = copy.deepcopy(session.voice_stats)
            stats.failure_count += 1
            return self._persist(session, "Failed to record voice failure", voice_stats=stats)

    def end_session(self, session_id: str | None = None) -> Optional[ReviewSession]:
        """End the current session, answered or not. No-op without one."""
        with self._locks_guard:
            if self.current_session is None:
                return None
            session_id = session_id or self.current_session.id
        with self._lock_for(session_id):
            session = self._require_current(session_id)
            if session.completed:
                return session
            updated = self._persist(
                session, "Failed to end session",
                completed=True,
                ended_at=self._now(),
                score=percent(session.correct_count, len(session.items)),
            )
            if updated is not None:
                logger.info("Session %s ended early at %d/%d, score %s%%",
                            session_id, updated.answered_count, len(updated.items), updated.score)
            return updated

    def get_progress(self, session_id: str) -> Optional[SessionProgress]:
        session = self._load(session_id, "Failed to load session progress")
        if session is None:
            return None
        items = session.items
        return SessionProgress(
            total_items=len(items),
            completed_items=sum(1 for i in items if i.is_answered),
            correct_answers=sum(1 for i in items if i.result == "correct"),
            incorrect_answers=sum(1 for i in items if i.result == "incorrect"),
            average_time_ms=average_answer_time_ms(items),
        )

    def clear_session(self) -> None:
        self._make_current(None)
        self.error = None
