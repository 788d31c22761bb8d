"""Signed-in account state, follow lists and sign-in/sign-out."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from typing import Iterable

from .nip19 import npub_encode
from .nostr_client import Event, Filter, Kind, NostrClient, RelayError
from .storage import PREFIX, KeyValueStorage, StorageError
from .story import FOLLOW_LIST_KEY

__all__ = [
    "FollowList",
    "UserMetadata",
    "AccountState",
    "process_event",
    "load_account",
    "sync_follow_list",
    "store_events",
    "sign_in",
    "sign_out",
]

log = logging.getLogger(__name__)

_FETCH_TIMEOUT = 10.0


def _account_key(public_key_hex: str) -> str:
    return f"{PREFIX}{public_key_hex}"


@dataclass
class FollowList:
    """Hex public keys the user follows."""

    public_key: list[str] = field(default_factory=list)

    def to_json(self) -> str:
        return json.dumps({"public_key": list(self.public_key)}, separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str) -> "FollowList":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid follow list JSON: {exc}") from exc
        keys = data.get("public_key") if isinstance(data, dict) else None
        if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
            raise ValueError("follow list must hold a list of strings under 'public_key'")
        return cls(list(keys))


def process_event(event: Event) -> FollowList:
    """Build a follow list from the ``p`` tags of a contact-list event."""
    return FollowList(event.tag_values("p"))


@dataclass
class UserMetadata:
    """Profile fields of the signed-in user; every field must be present."""

    name: str = ""
    nip05: str = ""
    about: str = ""
    lud16: str = ""
    display_name: str = ""
    picture: str = ""
    banner: str = ""
    website: str = ""

    @classmethod
    def from_json(cls, text: str) -> "UserMetadata":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid metadata JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError("metadata must be a JSON object")
        values = {}
        for item in fields(cls):
            if item.name not in data:
                raise ValueError(f"metadata is missing {item.name!r}")
            value = data[item.name]
            if not isinstance(value, str):
                raise ValueError(f"metadata field {item.name!r} must be a string")
            values[item.name] = value
        return cls(**values)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AccountState:
    """What the navigation bar knows about the signed-in account."""

    show_account: bool = False
    show_auth_card: bool = False
    raw_metadata: str = ""
    event: Event | None = None
    user_metadata: UserMetadata = field(default_factory=UserMetadata)

    @property
    def public_key(self) -> str:
        return self.event.pubkey if self.event is not None else ""

    @property
    def npub(self) -> str:
        return npub_encode(self.public_key)

    @property
    def profile_image(self) -> str:
        return self.user_metadata.picture


def load_account(local_storage: KeyValueStorage) -> AccountState:
    """Read the account stored under the first application key, if any."""
    keys = local_storage.get_all_keys()
    if not keys:
        return AccountState()
    state = AccountState(show_account=True)
    data = local_storage.get(keys[0])
    if data is None:
        return state
    state.raw_metadata = data
    state.event = Event.from_json(data)
    state.user_metadata = UserMetadata.from_json(state.event.content)
    return state


async def sync_follow_list(
    client: NostrClient,
    event: Event,
    session_storage: KeyValueStorage,
) -> FollowList | None:
    """Fetch the author's newest contact list and keep it for the session.

    Nothing is written when the session already holds an application key.
    Returns the follow list, or None when none could be fetched.
    """
    follow_filter = Filter(authors=[event.pubkey], kinds=[Kind.CONTACT_LIST])
    try:
        events = await client.get_events_of([follow_filter], _FETCH_TIMEOUT)
    except RelayError as exc:
        log.error("Failed to fetch follow list: %s", exc)
        return None
    if not events:
        return None
    # The last of several equally recent events wins.
    latest = max(reversed(events), key=lambda e: e.created_at)
    follow_list = process_event(latest)

    if any(key.startswith(PREFIX) for key in session_storage.get_all_keys()):
        log.info("Key '%s' exists. Skipping save.", PREFIX)
        return follow_list
    try:
        session_storage.set(FOLLOW_LIST_KEY, follow_list.to_json())
    except StorageError as exc:
        log.error("Failed to save to Session Storage: %s", exc)
    else:
        log.info("Follow List saved to Session Storage")
    return follow_list


def store_events(
    local_storage: KeyValueStorage,
    events: Iterable[Event],
    public_key_hex: str,
) -> int:
    """Store each event under the account key; returns how many were stored."""
    key = _account_key(public_key_hex)
    stored = 0
    for event in events:
        try:
            local_storage.set(key, event.to_json())
        except StorageError as exc:
            log.error("Failed to store event with key: %s. Error: %s", key, exc)
        else:
            log.info("Stored event with key: %s", key)
            stored += 1
    return stored


async def sign_in(
    client: NostrClient,
    public_key_hex: str,
    local_storage: KeyValueStorage,
) -> AccountState | None:
    """Fetch the user's metadata, store it and return the reloaded account.

    Returns None when the relays could not be queried.
    """
    npub_encode(public_key_hex)
    metadata_filter = Filter(authors=[public_key_hex], kinds=[Kind.METADATA])
    try:
        events = await client.get_events_of([metadata_filter], _FETCH_TIMEOUT)
    except RelayError as exc:
        log.error("Error setting up client: %s", exc)
        return None
    log.info("Events received: %d", len(events))
    store_events(local_storage, events, public_key_hex)
    state = load_account(local_storage)
    state.show_account = True
    state.show_auth_card = False
    return state


def sign_out(
    public_key_hex: str,
    local_storage: KeyValueStorage,
    session_storage: KeyValueStorage,
) -> AccountState:
    """Forget the account and its follow list; returns the reloaded state."""
    key = _account_key(public_key_hex)
    try:
        local_storage.remove(key)
    except StorageError as exc:
        log.error("Error removing from Local Storage: %s", exc)
    else:
        log.info("Removed key: %s", key)
    try:
        session_storage.remove(FOLLOW_LIST_KEY)
    except StorageError as exc:
        log.error("Error removing from Session Storage: %s", exc)
    else:
        log.info("Removed key: %s", FOLLOW_LIST_KEY)
    return load_account(local_storage)