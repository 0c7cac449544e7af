"""Data classes for review sessions and their items."""
from dataclasses import dataclass, field, asdict
from typing import Optional

ITEM_TYPES = ("radical", "kanji", "vocabulary")
QUESTION_TYPES = ("meaning", "reading")
INPUT_METHODS = ("voice", "text")


@dataclass
class VoiceConfig:
    language: str = "ja-JP"
    max_duration_ms: int = 10_000
    min_duration_ms: int = 500
    continuous: bool = False
    interim_results: bool = True


@dataclass
class SessionSettings:
    voice_enabled: bool = False
    voice_config: VoiceConfig = field(default_factory=VoiceConfig)
    time_limit: Optional[int] = None  # seconds per item
    auto_advance: bool = False

    @classmethod
    def from_dict(cls, data: dict | None) -> "SessionSettings":
        data = dict(data or {})
        data["voice_config"] = VoiceConfig(**(data.get("voice_config") or {}))
        return cls(**data)


@dataclass
class VoiceStats:
    voice_answer_count: int = 0
    text_answer_count: int = 0
    average_confidence: float = 0.0
    failure_count: int = 0
    confidence_samples: int = 0


@dataclass
class ReviewItem:
    id: str
    source_id: str
    item_type: str
    question_type: str
    question: str
    expected_answer: str
    accepted_answers: list[str] = field(default_factory=list)
    character: Optional[str] = None
    mnemonic: Optional[str] = None
    srs_stage: int = 0
    user_answer: Optional[str] = None
    result: Optional[str] = None
    started_at: Optional[str] = None
    answered_at: Optional[str] = None
    input_method: Optional[str] = None
    voice_confidence: Optional[float] = None

    @property
    def is_answered(self) -> bool:
        return self.result is not None

    @classmethod
    def from_dict(cls, data: dict) -> "ReviewItem":
        data = dict(data)
        data["accepted_answers"] = list(data.get("accepted_answers") or [])
        return cls(**data)


@dataclass
class ReviewSession:
    id: Optional[str]
    user_id: str
    items: list[ReviewItem]
    started_at: str
    ended_at: Optional[str] = None
    completed: bool = False
    correct_count: int = 0
    incorrect_count: int = 0
    score: Optional[int] = None
    settings: SessionSettings = field(default_factory=SessionSettings)
    voice_stats: VoiceStats = field(default_factory=VoiceStats)
    source: str = "custom"

    def find_item(self, item_id: str) -> Optional[ReviewItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    @property
    def answered_count(self) -> int:
        return sum(1 for item in self.items if item.is_answered)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ReviewSession":
        data = dict(data)
        data["items"] = [ReviewItem.from_dict(i) for i in data.get("items", [])]
        data["settings"] = SessionSettings.from_dict(data.get("settings"))
        data["voice_stats"] = VoiceStats(**(data.get("voice_stats") or {}))
        return cls(**data)


@dataclass
class SessionProgress:
    total_items: int
    completed_items: int
    correct_answers: int
    incorrect_answers: int
    average_time_ms: float = 0.0


@dataclass
class UserExport:
    sessions: list[ReviewSession]
    total_sessions: int
    total_correct: int
    total_incorrect: int

    def to_dict(self) -> dict:
        return {
            "sessions": [s.to_dict() for s in self.sessions],
            "total_sessions": self.total_sessions,
            "total_correct": self.total_correct,
            "total_incorrect": self.total_incorrect,
        }
