import json

import pytest

from storyteller.nip19 import id_decode, npub_decode, npub_encode
from storyteller.nostr_client import Event, Kind, RelayError
from storyteller.storage import SessionStorage
from storyteller.story import (
    CARDS_PER_PAGE,
    DEFAULT_IMAGE,
    FOLLOW_LIST_KEY,
    UNKNOWN_AUTHOR,
    StoryData,
    check_image,
    extract_tags,
    fetch_stories,
    page_buttons,
    paginate,
    resolve_author,
    total_pages,
)

PK_A = "a" * 64
PK_B = "b" * 64
NOTE_ID = "c" * 64


def make_event(
    event_id=NOTE_ID,
    pubkey=PK_A,
    kind=Kind.LONG_FORM_TEXT_NOTE,
    tags=None,
    content="body",
    created_at=100,
):
    return Event(
        id=event_id,
        pubkey=pubkey,
        created_at=created_at,
        kind=int(kind),
        tags=tags or [],
        content=content,
        sig="0" * 128,
    )


def metadata_event(pubkey, created_at, **fields):
    return make_event(
        event_id=format(created_at, "064x"),
        pubkey=pubkey,
        kind=Kind.METADATA,
        content=json.dumps(fields),
        created_at=created_at,
    )


class FakeClient:
    def __init__(self, notes=(), metadata=(), fail=False):
        self.notes = list(notes)
        self.metadata = list(metadata)
        self.fail = fail
        self.filters = []
        self.disconnected = False

    async def get_events_of(self, filters, timeout=None):
        self.filters.extend(filters)
        if self.fail:
            raise RelayError("no relay could be reached")
        wanted = filters[0]
        if Kind.METADATA in wanted.kinds:
            return [e for e in self.metadata if e.pubkey in wanted.authors]
        return [e for e in self.notes if not wanted.authors or e.pubkey in wanted.authors]

    async def disconnect(self):
        self.disconnected = True


def checker(good):
    async def check(url):
        return url in good

    return check


@pytest.mark.asyncio
async def test_extract_tags_collects_values():
    event = make_event(
        tags=[
            ["title", "Hello"],
            ["summary", "Short"],
            ["published_at", "1657756800"],
            ["image", "img-ok"],
            ["t", "ignored"],
            ["title"],
        ]
    )
    story = await extract_tags(event, "alice", "pic", checker({"img-ok"}))
    assert story.title == "Hello"
    assert story.summary == "Short"
    assert story.published_at == "1657756800"
    assert story.image == "img-ok"
    assert story.note_id == NOTE_ID
    assert story.article == "body"
    assert npub_decode(story.npub) == PK_A
    assert (story.author_name, story.author_image) == ("alice", "pic")


@pytest.mark.asyncio
async def test_extract_tags_broken_image_uses_default():
    event = make_event(tags=[["image", "broken"]])
    story = await extract_tags(event, None, None, checker(set()))
    assert story.image == DEFAULT_IMAGE
    assert story.title is None


@pytest.mark.asyncio
async def test_resolve_author_with_working_picture():
    client = FakeClient(metadata=[metadata_event(PK_A, 5, name="alice", picture="p-ok")])
    name, image = await resolve_author(client, make_event(), checker({"p-ok"}))
    assert (name, image) == ("alice", "p-ok")


@pytest.mark.asyncio
async def test_resolve_author_falls_back_to_proxy():
    proxy = "https://media.nostr.band/thumbs/" + PK_A[60:] + "/" + PK_A + "-picture-64"
    client = FakeClient(metadata=[metadata_event(PK_A, 5, name="alice", picture="bad")])
    _, image = await resolve_author(client, make_event(), checker({proxy}))
    assert image == proxy
    _, image = await resolve_author(client, make_event(), checker(set()))
    assert image == DEFAULT_IMAGE


@pytest.mark.asyncio
async def test_resolve_author_without_metadata():
    name, image = await resolve_author(FakeClient(), make_event(), checker(set()))
    assert name is None
    assert image == DEFAULT_IMAGE


@pytest.mark.asyncio
async def test_resolve_author_skips_expired_metadata():
    expired = metadata_event(PK_A, 5, name="old")
    expired.tags = [["expiration", "1"]]
    client = FakeClient(metadata=[expired])
    name, _ = await resolve_author(client, make_event(), checker(set()))
    assert name is None


@pytest.mark.asyncio
async def test_fetch_stories_by_npub():
    notes = [make_event(pubkey=PK_A), make_event(event_id="d" * 64, pubkey=PK_B)]
    client = FakeClient(notes=notes)
    stories = await fetch_stories(client, npub_encode(PK_B), None, checker(set()))
    assert [s.note_id for s in stories] == ["d" * 64]
    assert client.filters[0].authors == [PK_B]
    assert client.disconnected


@pytest.mark.asyncio
async def test_fetch_stories_uses_follow_list():
    session = SessionStorage()
    session.set(FOLLOW_LIST_KEY, json.dumps({"public_key": [PK_B, "not-hex"]}))
    notes = [make_event(pubkey=PK_A), make_event(event_id="d" * 64, pubkey=PK_B)]
    client = FakeClient(notes=notes)
    stories = await fetch_stories(client, None, session, checker(set()))
    assert client.filters[0].authors == [PK_B]
    assert [s.note_id for s in stories] == ["d" * 64]


@pytest.mark.asyncio
async def test_fetch_stories_without_filters_gets_everyone():
    notes = [make_event(pubkey=PK_A), make_event(event_id="d" * 64, pubkey=PK_B)]
    stories = await fetch_stories(
        FakeClient(notes=notes), None, SessionStorage(), checker(set())
    )
    assert {s.npub for s in stories} == {npub_encode(PK_A), npub_encode(PK_B)}


@pytest.mark.asyncio
async def test_fetch_stories_relay_failure_returns_empty():
    client = FakeClient(fail=True)
    assert await fetch_stories(client, None, None, checker(set())) == []
    assert not client.disconnected


@pytest.mark.asyncio
async def test_fetch_stories_bad_follow_list():
    session = SessionStorage()
    session.set(FOLLOW_LIST_KEY, "{broken")
    with pytest.raises(ValueError):
        await fetch_stories(FakeClient(), None, session, checker(set()))


@pytest.mark.asyncio
async def test_check_image_unsupported_scheme():
    assert await check_image("ftp://example.com/a.png") is False


def test_to_card_defaults_and_round_trip():
    card = StoryData(note_id=NOTE_ID).to_card()
    assert card.author_name == UNKNOWN_AUTHOR
    assert card.image == DEFAULT_IMAGE
    assert card.title == ""
    assert id_decode(card.note_id) == NOTE_ID


@pytest.mark.parametrize(
    "count", [0, 1, CARDS_PER_PAGE, CARDS_PER_PAGE + 1, 3 * CARDS_PER_PAGE + 7]
)
def test_paginate_covers_everything(count):
    stories = list(range(count))
    pages = [paginate(stories, p) for p in range(total_pages(count))]
    flattened = [story for page in pages for story in page]
    assert flattened == stories
    assert all(0 < len(page) <= CARDS_PER_PAGE for page in pages)
    assert paginate(stories, total_pages(count)) == []


def test_page_buttons_many_pages():
    labels = [b.label for b in page_buttons(5, 0)]
    assert labels == ["1", "2", "3", "...", "5", "Next"]
    middle = page_buttons(5, 2)
    assert [b.label for b in middle][-2:] == ["Previous", "Next"]
    assert [b.target for b in middle][-2:] == [1, 3]


def test_page_buttons_last_page_has_no_next():
    buttons = page_buttons(2, 1)
    assert [b.label for b in buttons] == ["1", "2", "Previous"]
    assert page_buttons(1, 0)[-1].label == "1"