"""Long-form stories: fetching, tag extraction and pagination."""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx

from .nip19 import id_encode, npub_decode, npub_encode
from .nostr_client import Event, Filter, Kind, Metadata, NostrClient, RelayError
from .storage import KeyValueStorage
from .story_card import StoryCard

__all__ = [
    "CARDS_PER_PAGE",
    "DEFAULT_IMAGE",
    "UNKNOWN_AUTHOR",
    "FOLLOW_LIST_KEY",
    "StoryData",
    "PageButton",
    "check_image",
    "extract_tags",
    "resolve_author",
    "fetch_stories",
    "paginate",
    "total_pages",
    "page_buttons",
]

log = logging.getLogger(__name__)

CARDS_PER_PAGE = 20
DEFAULT_IMAGE = "/assets/Untitled.webp"
UNKNOWN_AUTHOR = "Unknown Author"
FOLLOW_LIST_KEY = "story-teller_follow_1"
_SESSION_PREFIX = "story-teller_"
_TAGS_TO_FIND = ("image", "title", "summary", "published_at")
_HEX_KEY = re.compile(r"[0-9a-fA-F]{64}")
_FETCH_TIMEOUT = 10.0

ImageChecker = Callable[[str], Awaitable[bool]]


@dataclass
class StoryData:
    """What is known about one long-form note and its author."""

    note_id: str | None = None
    image: str | None = None
    title: str | None = None
    summary: str | None = None
    article: str | None = None
    published_at: str | None = None
    npub: str | None = None
    author_name: str | None = None
    author_image: str | None = None

    def to_card(self) -> StoryCard:
        """Build the card shown in the story list, filling in defaults."""
        return StoryCard(
            note_id=id_encode(self.note_id or ""),
            image=self.image if self.image is not None else DEFAULT_IMAGE,
            title=self.title or "",
            summary=self.summary or "",
            article=self.article or "",
            published_at=self.published_at or "",
            npub=self.npub or "",
            author_name=self.author_name if self.author_name is not None else UNKNOWN_AUTHOR,
            author_image=self.author_image or "",
        )


async def check_image(url: str) -> bool:
    """True when ``url`` can be fetched and serves an image."""
    try:
        async with httpx.AsyncClient(follow_redirects=True, timeout=_FETCH_TIMEOUT) as client:
            async with client.stream("GET", url) as response:
                if not response.is_success:
                    return False
                content_type = response.headers.get("content-type", "")
                return not content_type or content_type.lower().startswith("image/")
    except (httpx.HTTPError, httpx.InvalidURL, ValueError):
        return False


async def extract_tags(
    event: Event,
    author_name: str | None = None,
    author_image: str | None = None,
    image_checker: ImageChecker = check_image,
) -> StoryData:
    """Collect image, title, summary and publication time from an event's tags."""
    found: dict[str, str] = {}
    for tag in event.tags:
        if len(tag) < 2 or tag[0] not in _TAGS_TO_FIND:
            continue
        name, value = tag[0], tag[1]
        if name == "image":
            found[name] = value if await image_checker(value) else DEFAULT_IMAGE
        else:
            found[name] = value
    return StoryData(
        note_id=event.id,
        image=found.get("image"),
        title=found.get("title"),
        summary=found.get("summary"),
        article=event.content,
        published_at=found.get("published_at"),
        npub=npub_encode(event.pubkey),
        author_name=author_name,
        author_image=author_image,
    )


def _proxy_picture(pubkey_hex: str) -> str:
    return f"https://media.nostr.band/thumbs/{pubkey_hex[60:]}/{pubkey_hex}-picture-64"


async def resolve_author(
    client: NostrClient,
    event: Event,
    image_checker: ImageChecker = check_image,
) -> tuple[str | None, str]:
    """Look up the author's name and a picture that actually loads."""
    author_name: str | None = None
    author_image: str | None = None
    metadata_filter = Filter(authors=[event.pubkey], kinds=[Kind.METADATA])
    try:
        metadata_events = await client.get_events_of([metadata_filter], _FETCH_TIMEOUT)
    except RelayError as exc:
        log.info("Failed to retrieve metadata: %s", exc)
        metadata_events = []

    last_seen = 0
    for metadata_event in metadata_events:
        metadata = Metadata.from_json(metadata_event.content)
        if not metadata_event.is_expired() and last_seen < metadata_event.created_at:
            author_name = metadata.name
            author_image = metadata.picture
        last_seen = metadata_event.created_at

    if author_image is None:
        return author_name, DEFAULT_IMAGE
    if await image_checker(author_image):
        return author_name, author_image
    proxy = _proxy_picture(event.pubkey)
    return author_name, proxy if await image_checker(proxy) else DEFAULT_IMAGE


def _followed_authors(session: KeyValueStorage | None) -> list[str]:
    if session is None or not session.has_key_starting_with(_SESSION_PREFIX):
        return []
    raw = session.get(FOLLOW_LIST_KEY)
    if raw is None:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Failed to parse follow list: {exc}") from exc
    keys = data.get("public_key") if isinstance(data, dict) else None
    if not isinstance(keys, list):
        raise ValueError("Failed to parse follow list")
    return [key.lower() for key in keys if isinstance(key, str) and _HEX_KEY.fullmatch(key)]


async def fetch_stories(
    client: NostrClient,
    npub: str | None = None,
    session: KeyValueStorage | None = None,
    image_checker: ImageChecker = check_image,
) -> list[StoryData]:
    """Fetch long-form notes by ``npub``, else by the followed authors, else by anyone."""
    story_filter = Filter(kinds=[Kind.LONG_FORM_TEXT_NOTE])
    if npub:
        story_filter.authors = [npub_decode(npub)]
    else:
        authors = _followed_authors(session)
        if authors:
            log.info("Now query follows list...")
            story_filter.authors = authors

    try:
        events = await client.get_events_of([story_filter], _FETCH_TIMEOUT)
    except RelayError as exc:
        log.info("Failed to retrieve events: %s", exc)
        return []

    stories = []
    for event in events:
        author_name, author_image = await resolve_author(client, event, image_checker)
        stories.append(await extract_tags(event, author_name, author_image, image_checker))
    await client.disconnect()
    return stories


def total_pages(count: int) -> int:
    """Number of pages needed for ``count`` stories."""
    return math.ceil(count / CARDS_PER_PAGE)


def paginate(stories: list, page: int) -> list:
    """The stories shown on the zero-based ``page``."""
    start = page * CARDS_PER_PAGE
    return list(stories[start:start + CARDS_PER_PAGE])


@dataclass(frozen=True)
class PageButton:
    """A pagination control: its label and the page it leads to, if any."""

    label: str
    target: int | None


def page_buttons(pages: int, current_page: int) -> list[PageButton]:
    """Pagination controls in display order."""
    buttons = [PageButton(str(i + 1), i) for i in range(min(pages, 3))]
    if pages > 3:
        buttons.append(PageButton("...", None))
        buttons.append(PageButton(str(pages), pages - 1))
    if current_page > 0:
        buttons.append(PageButton("Previous", current_page - 1))
    if current_page < pages - 1:
        buttons.append(PageButton("Next", current_page + 1))
    return buttons