"""Profile pages: account ownership checks and profile metadata."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from .nip19 import npub_decode
from .nostr_client import Event, Filter, Kind, Metadata, NostrClient, RelayError
from .storage import KeyValueStorage
from .story import DEFAULT_IMAGE, check_image

__all__ = [
    "DEFAULT_BANNER",
    "DEFAULT_PROFILE_IMAGE",
    "UNKNOWN_NAME",
    "Profile",
    "is_account_activated",
    "fetch_profile",
]

log = logging.getLogger(__name__)

DEFAULT_BANNER = "/assets/banner.jpg"
DEFAULT_PROFILE_IMAGE = DEFAULT_IMAGE
UNKNOWN_NAME = "Unknown"
_FETCH_TIMEOUT = 10.0

ImageChecker = Callable[[str], Awaitable[bool]]


@dataclass
class Profile:
    """What the profile page shows about a user."""

    name: str = UNKNOWN_NAME
    picture: str = DEFAULT_PROFILE_IMAGE
    banner: str = DEFAULT_BANNER
    metadata: Metadata | None = None

    @classmethod
    def from_metadata(cls, metadata: Metadata | None) -> "Profile":
        """Fill in display defaults for whatever the metadata lacks."""
        if metadata is None:
            return cls()
        return cls(
            name=metadata.display_name if metadata.display_name is not None else UNKNOWN_NAME,
            picture=metadata.picture if metadata.picture is not None else DEFAULT_PROFILE_IMAGE,
            banner=metadata.banner if metadata.banner is not None else DEFAULT_BANNER,
            metadata=metadata,
        )


def is_account_activated(npub: str, local_storage: KeyValueStorage) -> bool:
    """True when a stored signed-in account belongs to ``npub``."""
    wanted: str | None = None
    for key in local_storage.get_all_keys():
        raw = local_storage.get(key)
        if raw is None:
            log.info("No data found for key: %s", key)
            continue
        try:
            event = Event.from_json(raw)
        except ValueError:
            log.info("Failed to parse JSON for key: %s", key)
            continue
        if wanted is None:
            wanted = npub_decode(npub)
        if event.pubkey.lower() == wanted:
            return True
    return False


def _proxy_picture(pubkey_hex: str) -> str:
    return f"https://media.nostr.band/thumbs/{pubkey_hex[60:]}/{pubkey_hex}-picture-64"


async def fetch_profile(
    client: NostrClient,
    npub: str,
    image_checker: ImageChecker = check_image,
) -> Profile:
    """Fetch a user's metadata, replacing pictures and banners that do not load."""
    pubkey = npub_decode(npub)
    metadata_filter = Filter(authors=[pubkey], kinds=[Kind.METADATA])
    try:
        events = await client.get_events_of([metadata_filter], _FETCH_TIMEOUT)
    except RelayError as exc:
        log.info("Failed to retrieve profile: %s", exc)
        return Profile()

    latest: Metadata | None = None
    for event in events:
        try:
            metadata = Metadata.from_json(event.content)
        except ValueError:
            continue
        if metadata.picture is not None and not await image_checker(metadata.picture):
            proxy = _proxy_picture(event.pubkey.lower())
            metadata.picture = proxy if await image_checker(proxy) else DEFAULT_PROFILE_IMAGE
        if metadata.banner is not None and not await image_checker(metadata.banner):
            metadata.banner = DEFAULT_BANNER
        latest = metadata
    return Profile.from_metadata(latest)