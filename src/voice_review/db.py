"""Database initialization, connection management and user settings."""
import os
import sqlite3
from pathlib import Path

from voice_review.models import VoiceConfig

DEFAULT_DB_PATH = str(Path.home() / ".voice_review" / "review.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS review_sessions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    started_at TEXT NOT NULL,
    ended_at TEXT,
    completed INTEGER DEFAULT 0,
    correct_count INTEGER DEFAULT 0,
    incorrect_count INTEGER DEFAULT 0,
    score INTEGER,
    source TEXT DEFAULT 'custom',
    settings TEXT DEFAULT '{}',
    voice_stats TEXT DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_review_sessions_user ON review_sessions(user_id);

CREATE TABLE IF NOT EXISTS review_items (
    session_id TEXT NOT NULL REFERENCES review_sessions(id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    id TEXT NOT NULL,
    source_id TEXT NOT NULL,
    item_type TEXT NOT NULL,
    question_type TEXT NOT NULL,
    question TEXT NOT NULL,
    expected_answer TEXT NOT NULL,
    accepted_answers TEXT DEFAULT '[]',
    character TEXT,
    mnemonic TEXT,
    srs_stage INTEGER DEFAULT 0,
    user_answer TEXT,
    result TEXT,
    started_at TEXT,
    answered_at TEXT,
    input_method TEXT,
    voice_confidence REAL,
    PRIMARY KEY (session_id, position)
);

CREATE TABLE IF NOT EXISTS user_settings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    key TEXT NOT NULL UNIQUE,
    value TEXT
);
"""


def default_db_path() -> str:
    """Database path from VOICE_REVIEW_DB, falling back to the home directory."""
    return os.getenv("VOICE_REVIEW_DB", DEFAULT_DB_PATH)


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory and foreign keys enabled."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()


def get_setting(db_path: str, key: str, default: str = None) -> str | None:
    conn = get_connection(db_path)
    row = conn.execute("SELECT value FROM user_settings WHERE key = ?", (key,)).fetchone()
    conn.close()
    return row["value"] if row else default


def set_setting(db_path: str, key: str, value: str) -> None:
    conn = get_connection(db_path)
    conn.execute(
        "INSERT INTO user_settings (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value=?",
        (key, value, value),
    )
    conn.commit()
    conn.close()


def is_voice_enabled(db_path: str) -> bool:
    return get_setting(db_path, "voice_enabled", "0") == "1"


def load_voice_config(db_path: str) -> VoiceConfig:
    """Build a VoiceConfig from stored preferences, defaults for anything unset."""
    defaults = VoiceConfig()
    return VoiceConfig(
        language=get_setting(db_path, "voice_language", defaults.language),
        max_duration_ms=int(get_setting(db_path, "voice_max_duration_ms", str(defaults.max_duration_ms))),
        min_duration_ms=int(get_setting(db_path, "voice_min_duration_ms", str(defaults.min_duration_ms))),
    )
