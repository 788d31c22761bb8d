"""Article page: loading a single story and browser detection."""

from __future__ import annotations

import logging
import re
from typing import Awaitable, Callable

from .nip19 import id_decode
from .nostr_client import Filter, Kind, NostrClient, RelayError
from .storage import PREFIX, KeyValueStorage
from .story import StoryData, check_image, extract_tags, resolve_author
from .story_card import StoryCard

__all__ = ["detect_browser", "story_from_card", "load_article"]

log = logging.getLogger(__name__)

_HEX_ID = re.compile(r"[0-9a-fA-F]{64}")
_FETCH_TIMEOUT = 10.0

ImageChecker = Callable[[str], Awaitable[bool]]


def detect_browser(user_agent: str | None) -> str:
    """Name the browser a user-agent string belongs to."""
    if user_agent is None:
        return "Unable to detect browser"
    if "Edg" in user_agent:
        return "Microsoft Edge"
    if "Chrome" in user_agent and "Chromium" not in user_agent:
        return "Google Chrome"
    if "Firefox" in user_agent:
        return "Mozilla Firefox"
    if "Safari" in user_agent and "Chrome" not in user_agent:
        return "Safari"
    if "Opera" in user_agent or "OPR" in user_agent:
        return "Opera"
    return "Unknown Browser"


def story_from_card(card: StoryCard) -> StoryData:
    """Turn a remembered story card back into story data."""
    return StoryData(
        note_id=card.note_id,
        image=card.image,
        title=card.title,
        summary=card.summary,
        article=card.article,
        published_at=card.published_at,
        npub=card.npub,
        author_name=card.author_name,
        author_image=card.author_image,
    )


async def _fetch_article(
    client: NostrClient, note_id: str, image_checker: ImageChecker
) -> StoryData | None:
    article_filter = Filter(ids=[note_id], kinds=[Kind.LONG_FORM_TEXT_NOTE])
    try:
        events = await client.get_events_of([article_filter], _FETCH_TIMEOUT)
    except RelayError as exc:
        log.info("Failed to retrieve article: %s", exc)
        return None
    if not events:
        return None
    event = events[0]
    author_name, author_image = await resolve_author(client, event, image_checker)
    return await extract_tags(event, author_name, author_image, image_checker)


async def load_article(
    event_id: str,
    session_storage: KeyValueStorage,
    client: NostrClient | None = None,
    image_checker: ImageChecker = check_image,
) -> StoryData | None:
    """Load the story for an ``nevent`` id from the session, else from the relays.

    Returns None when nothing could be found.
    """
    note_id = id_decode(event_id)
    if not _HEX_ID.fullmatch(note_id):
        raise ValueError("Invalid note_id format")

    stored = session_storage.get(f"{PREFIX}note_{event_id}")
    if stored is not None:
        try:
            return story_from_card(StoryCard.from_json(stored))
        except ValueError as exc:
            log.info("Stored story is unreadable: %s", exc)
            return None

    if client is not None:
        return await _fetch_article(client, note_id.lower(), image_checker)
    own_client = await NostrClient.setup_and_connect()
    try:
        return await _fetch_article(own_client, note_id.lower(), image_checker)
    finally:
        await own_client.disconnect()