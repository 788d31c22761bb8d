"""Story card data and date formatting."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone

from .storage import KeyValueStorage, StorageError

__all__ = ["StoryCard", "format_unix_to_date", "remember_story"]

log = logging.getLogger(__name__)

_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
_INTEGER = re.compile(r"[+-]?[0-9]+")
_I64_MIN, _I64_MAX = -(2**63), 2**63 - 1


@dataclass
class StoryCard:
    """Everything shown on a story card and kept for the article page."""

    note_id: str
    image: str
    title: str
    summary: str
    article: str
    published_at: str
    npub: str
    author_name: str
    author_image: str

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> "StoryCard":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid story JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError("story must be a JSON object")
        values = {}
        for item in fields(cls):
            value = data.get(item.name)
            if not isinstance(value, str):
                raise ValueError(f"story field {item.name!r} must be a string")
            values[item.name] = value
        return cls(**values)

    def storage_key(self) -> str:
        return f"story-teller_note_{self.note_id}"


def format_unix_to_date(unix_timestamp: str) -> str:
    """Format a Unix timestamp string as e.g. ``"July 14, 2022"``; bad input means 0."""
    timestamp = 0
    if _INTEGER.fullmatch(unix_timestamp):
        value = int(unix_timestamp)
        if _I64_MIN <= value <= _I64_MAX:
            timestamp = value
    try:
        moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OverflowError, OSError) as exc:
        raise ValueError(f"timestamp out of range: {unix_timestamp}") from exc
    return f"{_MONTHS[moment.month - 1]} {moment.day:02d}, {moment.year}"


def remember_story(storage: KeyValueStorage, card: StoryCard) -> bool:
    """Save a card under its key unless one is stored already; True when saved."""
    key = card.storage_key()
    if storage.get(key) is not None:
        log.info("Key exists: %s", key)
        return False
    try:
        storage.set(key, card.to_json())
    except StorageError as exc:
        log.info("Save error: %s", exc)
        return False
    log.info("Saved: %s", key)
    return True