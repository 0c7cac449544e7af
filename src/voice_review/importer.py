"""Load review decks from JSON or YAML files."""
import json
from pathlib import Path

from voice_review.models import ITEM_TYPES, QUESTION_TYPES, ReviewItem


def read_deck(file_path: str) -> list[dict]:
    """Read a deck file into a list of raw item dicts.

    A deck is either a list of items or a mapping with an ``items`` list.
    """
    path = Path(file_path)
    suffix = path.suffix.lower()

    if suffix == ".json":
        data = json.loads(path.read_text(encoding="utf-8"))
    elif suffix in (".yaml", ".yml"):
        import yaml
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    else:
        raise ValueError(f"Unsupported deck format: {suffix or path.name}")

    if isinstance(data, dict):
        data = data.get("items", [])
    if not isinstance(data, list):
        raise ValueError(f"{path.name}: expected a list of items")
    return data


def normalize_item(raw: dict, default_id: str) -> ReviewItem:
    item_type = raw.get("item_type") or raw.get("type", "vocabulary")
    if item_type not in ITEM_TYPES:
        raise ValueError(f"Unknown item type: {item_type}")
    question_type = raw.get("question_type", "meaning")
    if question_type not in QUESTION_TYPES:
        raise ValueError(f"Unknown question type: {question_type}")
    if not raw.get("expected_answer"):
        raise ValueError(f"Item {raw.get('id', default_id)} has no expected_answer")

    character = raw.get("character")
    return ReviewItem(
        id=str(raw.get("id", default_id)),
        source_id=str(raw.get("source_id", raw.get("id", default_id))),
        item_type=item_type,
        question_type=question_type,
        question=raw.get("question") or character or "",
        expected_answer=raw["expected_answer"],
        accepted_answers=list(raw.get("accepted_answers") or []),
        character=character,
        mnemonic=raw.get("mnemonic"),
        srs_stage=int(raw.get("srs_stage", 0)),
    )


def load_review_items(file_path: str) -> list[ReviewItem]:
    stem = Path(file_path).stem
    return [
        normalize_item(raw, default_id=f"{stem}-{n}")
        for n, raw in enumerate(read_deck(file_path), 1)
    ]
