import pytest

from voice_review.models import ReviewItem
from voice_review.voice import Recognizer


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_review.db")
    return db_path


def make_items(count: int = 3) -> list[ReviewItem]:
    vocab = [("一", "one"), ("二", "two"), ("三", "three"), ("山", "mountain"), ("川", "river")]
    items = []
    for n in range(count):
        char, meaning = vocab[n % len(vocab)]
        items.append(ReviewItem(
            id=f"item-{n + 1}",
            source_id=str(440 + n),
            item_type="kanji",
            question_type="meaning",
            question=char,
            expected_answer=meaning,
            character=char,
        ))
    return items


@pytest.fixture
def items():
    return make_items(3)


class FakeRecognizer(Recognizer):
    """Recognizer driven by the test through ``emit``."""

    instances = []

    def __init__(self):
        super().__init__()
        self.started = False
        self.stop_calls = 0
        self.aborted = False
        FakeRecognizer.instances.append(self)

    def start(self):
        self.started = True

    def stop(self):
        self.stop_calls += 1

    def abort(self):
        self.aborted = True


class ManualScheduler:
    """Scheduler whose timers only fire when the test advances time."""

    def __init__(self, clock):
        self.clock = clock
        self.timers = []

    def call_later(self, delay, callback):
        timer = ManualTimer(self.clock.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds):
        self.clock.now += seconds
        for timer in sorted(self.pending, key=lambda t: t.due):
            if timer.due <= self.clock.now and not timer.cancelled:
                timer.fired = True
                timer.callback()


class ManualTimer:
    def __init__(self, due, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class ManualClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def fake_recognizer():
    FakeRecognizer.instances = []
    return FakeRecognizer
