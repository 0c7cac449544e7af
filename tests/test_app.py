import pytest
from unittest.mock import patch

from conftest import ManualClock, ManualScheduler, make_items
from voice_review.app import (
    ConsoleDictation, SessionExitRequested, capture_voice_answer, run_review_session,
    session_prompt, show_summary,
)
from voice_review.errors import PersistenceFailure
from voice_review.models import VoiceConfig
from voice_review.session import SessionManager
from voice_review.store import InMemorySessionStore
from voice_review.voice import VoiceCapture


def make_capture(min_duration_ms=0):
    clock = ManualClock()
    return VoiceCapture(
        ConsoleDictation,
        config=VoiceConfig(min_duration_ms=min_duration_ms),
        scheduler=ManualScheduler(clock),
        clock=clock,
    )


@pytest.fixture
def manager():
    return SessionManager(InMemorySessionStore())


def test_session_exit_requested_is_exception():
    with pytest.raises(SessionExitRequested):
        raise SessionExitRequested()


def test_session_prompt_raises_on_q():
    with patch("voice_review.app.Prompt.ask", return_value="q"):
        with pytest.raises(SessionExitRequested):
            session_prompt("test prompt")


def test_session_prompt_raises_on_menu():
    with patch("voice_review.app.Prompt.ask", return_value="menu"):
        with pytest.raises(SessionExitRequested):
            session_prompt("test prompt")


def test_session_prompt_returns_normal_input():
    with patch("voice_review.app.Prompt.ask", return_value="hello"):
        assert session_prompt("test prompt") == "hello"


def test_capture_voice_answer_confirmed():
    capture = make_capture()
    with patch("voice_review.app.Prompt.ask", return_value="mountain"), \
            patch("voice_review.app.Confirm.ask", return_value=True):
        assert capture_voice_answer(capture) == ("mountain", 1.0)


def test_capture_voice_answer_rejected():
    capture = make_capture()
    with patch("voice_review.app.Prompt.ask", return_value="mountain"), \
            patch("voice_review.app.Confirm.ask", return_value=False):
        assert capture_voice_answer(capture) is None
    assert capture.failure is None


def test_capture_voice_answer_no_speech():
    capture = make_capture()
    with patch("voice_review.app.Prompt.ask", return_value=""):
        assert capture_voice_answer(capture) is None
    assert capture.error == "No speech detected. Please try again."


def test_capture_voice_answer_too_short():
    capture = make_capture(min_duration_ms=500)
    with patch("voice_review.app.Prompt.ask", return_value="mountain"):
        assert capture_voice_answer(capture) is None
    assert capture.error == "Recording too short. Please speak longer."


def test_run_review_session_text_and_voice(manager):
    session = manager.start_session("user-1", make_items(3))
    with patch("voice_review.app.Prompt.ask", side_effect=["one", "v", "two", "wrong"]), \
            patch("voice_review.app.Confirm.ask", return_value=True):
        final = run_review_session(manager, session, make_capture())
    assert final.completed is True
    assert final.correct_count == 2
    assert final.incorrect_count == 1
    assert final.score == 67
    assert final.voice_stats.voice_answer_count == 1
    assert final.voice_stats.text_answer_count == 2
    assert final.find_item("item-2").input_method == "voice"
    assert all(i.started_at for i in final.items)


def test_run_review_session_exits_on_q(manager):
    session = manager.start_session("user-1", make_items(3))
    with patch("voice_review.app.Prompt.ask", side_effect=["one", "q"]):
        final = run_review_session(manager, session)
    assert final.completed is True
    assert final.answered_count == 1
    assert final.score == 33


def test_run_review_session_skip(manager):
    session = manager.start_session("user-1", make_items(3))
    with patch("voice_review.app.Prompt.ask", side_effect=["s", "two", "three"]):
        final = run_review_session(manager, session)
    assert final.find_item("item-1").result == "skipped"
    assert final.correct_count == 2
    assert final.completed is True


def test_run_review_session_voice_disabled(manager):
    session = manager.start_session("user-1", make_items(3))
    with patch("voice_review.app.Prompt.ask", side_effect=["v", "one", "two", "three"]):
        final = run_review_session(manager, session, capture=None)
    assert final.correct_count == 3
    assert final.voice_stats.voice_answer_count == 0


def test_run_review_session_counts_voice_failures(manager):
    session = manager.start_session("user-1", make_items(3))
    with patch("voice_review.app.Prompt.ask", side_effect=["v", "", "one", "two", "three"]):
        final = run_review_session(manager, session, make_capture())
    assert final.voice_stats.failure_count == 1
    assert final.correct_count == 3


def test_run_review_session_resumes_unanswered(manager):
    session = manager.start_session("user-1", make_items(3))
    manager.submit_answer(session.id, "item-1", True)
    with patch("voice_review.app.Prompt.ask", side_effect=["two", "three"]) as ask:
        final = run_review_session(manager, manager.current_session)
    assert ask.call_count == 2
    assert final.completed is True


def test_show_summary_reports_store_failure(manager):
    session = manager.start_session("user-1", make_items(1))
    with patch.object(manager.store, "get", side_effect=PersistenceFailure("database is locked")), \
            patch("voice_review.app.console.print") as printed:
        show_summary(manager, session)
    printed.assert_called_once_with("[red]Failed to load session progress[/red]")
