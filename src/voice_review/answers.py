"""Answer checking for review items."""
from voice_review.models import ReviewItem


def normalize_answer(text: str | None) -> str:
    if not text:
        return ""
    return " ".join(text.split()).casefold()


def acceptable_answers(item: ReviewItem) -> set[str]:
    answers = {normalize_answer(item.expected_answer)}
    answers.update(normalize_answer(a) for a in item.accepted_answers)
    answers.discard("")
    return answers


def check_answer(item: ReviewItem, answer: str | None) -> bool:
    """True when the answer matches the expected answer or an accepted alternative."""
    normalized = normalize_answer(answer)
    return bool(normalized) and normalized in acceptable_answers(item)
