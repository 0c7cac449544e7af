"""Interactive CLI application."""
import json
import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from voice_review.answers import check_answer
from voice_review.db import (
    default_db_path, get_setting, init_db, is_voice_enabled, load_voice_config, set_setting,
)
from voice_review.errors import ReviewError
from voice_review.importer import load_review_items
from voice_review.models import ReviewSession, SessionSettings
from voice_review.session import SessionManager
from voice_review.store import SqliteSessionStore
from voice_review.voice import RecognitionResult, Recognizer, VoiceCapture

console = Console()
logger = logging.getLogger(__name__)

DEFAULT_USER = "default-user"
EXIT_WORDS = ("q", "menu")


class SessionExitRequested(Exception):
    """Raised when the user types 'q' or 'menu' during a session."""


def session_prompt(prompt: str, **kwargs) -> str:
    answer = Prompt.ask(prompt, **kwargs)
    if answer.strip().lower() in EXIT_WORDS:
        raise SessionExitRequested()
    return answer


class ConsoleDictation(Recognizer):
    """Recognizer for terminals: the 'utterance' is a typed line."""

    def start(self) -> None:
        self.emit("start")
        text = Prompt.ask("[magenta]Speak now[/magenta] [dim](type what you say)[/dim]", default="")
        if text.strip():
            self.emit("result", RecognitionResult(text.strip(), confidence=1.0, is_final=True))
            self.emit("end")
        else:
            self.emit("error", "no-speech")

    def stop(self) -> None:
        pass

    def abort(self) -> None:
        pass


def show_welcome():
    console.print(Panel(
        "[bold]Voice Review[/bold]\n[dim]Flashcard reviews, answered by voice or keyboard[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("review", "Review a deck"),
        ("history", "Past sessions"),
        ("export", "Export my data as JSON"),
        ("delete", "Delete all my data"),
        ("settings", "Voice input settings"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def capture_voice_answer(capture: VoiceCapture) -> tuple[str, float] | None:
    """Dictate an answer and let the user confirm the transcript."""
    capture.reset_transcript()
    capture.start_recording()
    capture.stop_recording()
    if capture.error:
        console.print(f"[red]{capture.error}[/red]")
        return None
    if not capture.transcript:
        return None
    if not Confirm.ask(f"Heard [bold]{capture.transcript}[/bold]. Submit?", default=True):
        return None
    return capture.transcript, capture.confidence


def run_review_session(manager: SessionManager, session: ReviewSession,
                       capture: VoiceCapture | None = None) -> ReviewSession:
    pending = [item for item in session.items if not item.is_answered]
    total = len(session.items)
    console.print(f"\n[bold]Review Session[/bold] — {len(pending)} of {total} items left\n")
    try:
        for item in pending:
            manager.present_item(session.id, item.id)
            position = manager.current_session.answered_count + 1
            label = "Name" if item.item_type == "radical" else item.question_type.capitalize()
            console.print(Panel(
                f"[bold]{item.question}[/bold]\n[dim]{item.item_type.upper()} · {label}[/dim]",
                title=f"Item {position}/{total}", border_style="cyan",
            ))
            while True:
                answer = session_prompt("Your answer ([cyan]v[/cyan]=voice, [cyan]s[/cyan]=skip, [cyan]q[/cyan]=end)")
                if answer.strip().lower() == "s":
                    manager.skip_item(session.id, item.id)
                    console.print(f"[yellow]Skipped.[/yellow] Answer: [green]{item.expected_answer}[/green]\n")
                    break
                if answer.strip().lower() == "v":
                    if capture is None:
                        console.print("[yellow]Voice input is off. Turn it on under 'settings'.[/yellow]")
                        continue
                    heard = capture_voice_answer(capture)
                    if heard is None:
                        if capture.failure is not None:
                            manager.record_voice_failure(session.id)
                        continue
                    text, confidence = heard
                    method = "voice"
                else:
                    text, confidence, method = answer, None, "text"
                is_correct = check_answer(item, text)
                manager.submit_answer(
                    session.id, item.id, is_correct,
                    question_type=item.question_type, input_method=method,
                    voice_confidence=confidence, user_answer=text,
                )
                if is_correct:
                    console.print("[green]Correct![/green]\n")
                else:
                    console.print(f"[red]Incorrect.[/red] Answer: [green]{item.expected_answer}[/green]\n")
                break
            if manager.error:
                console.print(f"[red]{manager.error}[/red]")
                break
    except SessionExitRequested:
        manager.end_session(session.id)
    finally:
        if capture is not None:
            capture.close()
    return manager.current_session


def show_summary(manager: SessionManager, session: ReviewSession) -> None:
    progress = manager.get_progress(session.id)
    if progress is None:
        console.print(f"[red]{manager.error}[/red]")
        return
    stats = session.voice_stats
    lines = [
        f"Score: [bold]{session.score if session.score is not None else '-'}%[/bold]",
        f"{progress.correct_answers} correct, {progress.incorrect_answers} incorrect, "
        f"{progress.completed_items}/{progress.total_items} answered",
        f"Average time per item: {progress.average_time_ms / 1000:.1f}s",
    ]
    if stats.voice_answer_count or stats.failure_count:
        lines.append(
            f"Voice answers: {stats.voice_answer_count} "
            f"(avg confidence {stats.average_confidence:.2f}, {stats.failure_count} failed)"
        )
    title = "Session Complete" if session.completed else "Session Paused"
    console.print(Panel("\n".join(lines), title=title, border_style="green"))


def cmd_review(db_path: str, user_id: str):
    store = SqliteSessionStore(db_path)
    manager = SessionManager(store)
    unfinished = [s for s in store.list_by_user(user_id) if not s.completed]
    session = None
    if unfinished and Confirm.ask(
        f"Resume unfinished session from {unfinished[-1].started_at[:16]}?", default=True,
    ):
        session = manager.resume_session(unfinished[-1].id)
        if session is None:
            console.print(f"[red]{manager.error}[/red]")
            return
    if session is None:
        deck_path = Prompt.ask("Deck file (.json, .yaml)")
        if not Path(deck_path).exists():
            console.print(f"[red]File not found: {deck_path}[/red]")
            return
        settings = SessionSettings(
            voice_enabled=is_voice_enabled(db_path),
            voice_config=load_voice_config(db_path),
        )
        session = manager.start_session(user_id, load_review_items(deck_path), settings=settings)
        if session is None:
            console.print(f"[red]{manager.error}[/red]")
            return

    capture = None
    if session.settings.voice_enabled:
        capture = VoiceCapture(ConsoleDictation, config=session.settings.voice_config)
    session = run_review_session(manager, session, capture)
    show_summary(manager, session)


def cmd_history(db_path: str, user_id: str):
    sessions = SqliteSessionStore(db_path).list_by_user(user_id)
    if not sessions:
        console.print("[yellow]No sessions yet.[/yellow]")
        return
    table = Table(title="Review History")
    table.add_column("Started")
    table.add_column("Items", justify="right")
    table.add_column("Correct", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Voice", justify="right")
    table.add_column("Status")
    for s in sessions:
        table.add_row(
            s.started_at[:16].replace("T", " "),
            str(len(s.items)),
            str(s.correct_count),
            f"{s.score}%" if s.score is not None else "",
            str(s.voice_stats.voice_answer_count),
            "[green]Done[/green]" if s.completed else "[cyan]Open[/cyan]",
        )
    console.print(table)


def cmd_export(db_path: str, user_id: str):
    out = Prompt.ask("Export to", default=f"{user_id}-export.json")
    export = SqliteSessionStore(db_path).export_user_data(user_id)
    Path(out).write_text(json.dumps(export.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    console.print(f"[green]Exported {export.total_sessions} sessions → {out}[/green]")


def cmd_delete(db_path: str, user_id: str):
    if not Confirm.ask(f"[red]Delete every session for {user_id}?[/red]", default=False):
        return
    removed = SqliteSessionStore(db_path).delete_user_data(user_id)
    console.print(f"[green]Deleted {removed} sessions.[/green]")


def cmd_settings(db_path: str):
    enabled = is_voice_enabled(db_path)
    console.print(f"Voice input is [bold]{'on' if enabled else 'off'}[/bold]")
    if Confirm.ask("Turn it " + ("off?" if enabled else "on?"), default=False):
        enabled = not enabled
        set_setting(db_path, "voice_enabled", "1" if enabled else "0")
    if enabled:
        language = Prompt.ask("Recognition language", default=get_setting(db_path, "voice_language", "ja-JP"))
        set_setting(db_path, "voice_language", language)
    console.print("[green]Settings saved.[/green]")


def main():
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("VOICE_REVIEW_LOG_LEVEL", "WARNING").upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    db_path = default_db_path()
    user_id = os.getenv("VOICE_REVIEW_USER", DEFAULT_USER)
    init_db(db_path)

    show_welcome()

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="review").strip().lower()
        try:
            if choice == "review":
                cmd_review(db_path, user_id)
            elif choice == "history":
                cmd_history(db_path, user_id)
            elif choice == "export":
                cmd_export(db_path, user_id)
            elif choice == "delete":
                cmd_delete(db_path, user_id)
            elif choice == "settings":
                cmd_settings(db_path)
            elif choice in ("quit", "exit", "q"):
                console.print("[dim]Happy studying![/dim]")
                break
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except (ReviewError, ValueError, OSError) as e:
            logger.debug("Command %s failed", choice, exc_info=True)
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
