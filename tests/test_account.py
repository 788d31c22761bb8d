import json

import pytest

from storyteller.account import (
    AccountState,
    FollowList,
    UserMetadata,
    load_account,
    process_event,
    sign_in,
    sign_out,
    store_events,
    sync_follow_list,
)
from storyteller.nip19 import npub_encode
from storyteller.nostr_client import Event, Kind, RelayError
from storyteller.storage import LocalStorage, SessionStorage
from storyteller.story import FOLLOW_LIST_KEY

PUBKEY = "ab" * 32
OTHER = "cd" * 32

METADATA = {
    "name": "alice",
    "nip05": "alice@example.com",
    "about": "writer",
    "lud16": "alice@example.com",
    "display_name": "Alice",
    "picture": "https://example.com/alice.png",
    "banner": "https://example.com/banner.png",
    "website": "https://example.com",
}


def make_event(kind=0, tags=None, content="", created_at=1, event_id="01" * 32):
    return Event(
        id=event_id,
        pubkey=PUBKEY,
        created_at=created_at,
        kind=kind,
        tags=tags or [],
        content=content,
        sig="00" * 64,
    )


class FakeClient:
    def __init__(self, events=(), error=None):
        self.events = list(events)
        self.error = error
        self.filters = []

    async def get_events_of(self, filters, timeout=None):
        self.filters.extend(filters)
        if self.error is not None:
            raise self.error
        return list(self.events)

    async def disconnect(self):
        pass


def test_follow_list_round_trip():
    follows = FollowList([PUBKEY, OTHER])
    assert FollowList.from_json(follows.to_json()) == follows
    assert json.loads(follows.to_json()) == {"public_key": [PUBKEY, OTHER]}


@pytest.mark.parametrize("text", ["not json", "[]", '{"public_key": [1]}', "{}"])
def test_follow_list_rejects_bad_json(text):
    with pytest.raises(ValueError):
        FollowList.from_json(text)


def test_process_event_collects_p_tags():
    event = make_event(
        kind=Kind.CONTACT_LIST,
        tags=[["p", PUBKEY], ["e", OTHER], ["p"], ["p", OTHER, "wss://relay.example.com"]],
    )
    assert process_event(event).public_key == [PUBKEY, OTHER]


def test_user_metadata_parses_all_fields():
    metadata = UserMetadata.from_json(json.dumps(METADATA))
    assert metadata.to_dict() == METADATA


def test_user_metadata_requires_every_field():
    partial = dict(METADATA)
    del partial["banner"]
    with pytest.raises(ValueError):
        UserMetadata.from_json(json.dumps(partial))


def test_user_metadata_rejects_non_string():
    with pytest.raises(ValueError):
        UserMetadata.from_json(json.dumps({**METADATA, "name": None}))


def test_load_account_without_keys():
    state = load_account(LocalStorage())
    assert state.show_account is False
    assert state.event is None
    assert state.public_key == ""


def test_load_account_reads_stored_event():
    storage = LocalStorage()
    event = make_event(content=json.dumps(METADATA))
    storage.set(f"story-teller_{PUBKEY}", event.to_json())
    state = load_account(storage)
    assert state.show_account is True
    assert state.event == event
    assert state.raw_metadata == event.to_json()
    assert state.user_metadata.display_name == "Alice"
    assert state.profile_image == METADATA["picture"]
    assert state.npub == npub_encode(PUBKEY)


def test_load_account_with_bad_content_raises():
    storage = LocalStorage()
    storage.set(f"story-teller_{PUBKEY}", make_event(content="{}").to_json())
    with pytest.raises(ValueError):
        load_account(storage)


@pytest.mark.asyncio
async def test_sync_follow_list_saves_latest():
    older = make_event(kind=3, tags=[["p", OTHER]], created_at=5, event_id="02" * 32)
    newer = make_event(kind=3, tags=[["p", PUBKEY]], created_at=9, event_id="03" * 32)
    client = FakeClient([older, newer])
    session = SessionStorage()
    result = await sync_follow_list(client, make_event(), session)
    assert result == FollowList([PUBKEY])
    assert FollowList.from_json(session.get(FOLLOW_LIST_KEY)) == result
    assert client.filters[0].authors == [PUBKEY]
    assert client.filters[0].kinds == [Kind.CONTACT_LIST]


@pytest.mark.asyncio
async def test_sync_follow_list_keeps_existing_session_data():
    session = SessionStorage({"story-teller_note_x": "{}"})
    client = FakeClient([make_event(kind=3, tags=[["p", OTHER]])])
    result = await sync_follow_list(client, make_event(), session)
    assert result == FollowList([OTHER])
    assert session.get(FOLLOW_LIST_KEY) is None


@pytest.mark.asyncio
async def test_sync_follow_list_without_events():
    session = SessionStorage()
    assert await sync_follow_list(FakeClient([]), make_event(), session) is None
    assert len(session) == 0


@pytest.mark.asyncio
async def test_sync_follow_list_relay_failure():
    client = FakeClient(error=RelayError("down"))
    assert await sync_follow_list(client, make_event(), SessionStorage()) is None


def test_store_events_uses_account_key():
    storage = LocalStorage()
    event = make_event(content=json.dumps(METADATA))
    assert store_events(storage, [event], PUBKEY) == 1
    assert Event.from_json(storage.get(f"story-teller_{PUBKEY}")) == event


@pytest.mark.asyncio
async def test_sign_in_stores_metadata_and_loads_account():
    event = make_event(content=json.dumps(METADATA))
    client = FakeClient([event])
    storage = LocalStorage()
    state = await sign_in(client, PUBKEY, storage)
    assert state.show_account is True
    assert state.show_auth_card is False
    assert state.event == event
    assert client.filters[0].kinds == [Kind.METADATA]
    assert client.filters[0].authors == [PUBKEY]


@pytest.mark.asyncio
async def test_sign_in_relay_failure_returns_none():
    storage = LocalStorage()
    assert await sign_in(FakeClient(error=RelayError("down")), PUBKEY, storage) is None
    assert storage.get_all_keys() == []


def test_sign_out_clears_account_and_follow_list():
    local = LocalStorage()
    local.set(f"story-teller_{PUBKEY}", make_event(content=json.dumps(METADATA)).to_json())
    session = SessionStorage({FOLLOW_LIST_KEY: FollowList([OTHER]).to_json()})
    state = sign_out(PUBKEY, local, session)
    assert local.get_all_keys() == []
    assert session.get(FOLLOW_LIST_KEY) is None
    assert state == AccountState()