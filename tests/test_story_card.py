import json

import pytest

from storyteller.storage import SessionStorage
from storyteller.story_card import StoryCard, format_unix_to_date, remember_story


def _card(**overrides):
    values = dict(
        note_id="nevent1abc",
        image="img.png",
        title="Title",
        summary="Summary",
        article="Body",
        published_at="1657756800",
        npub="npub1xyz",
        author_name="Alice",
        author_image="alice.png",
    )
    values.update(overrides)
    return StoryCard(**values)


def test_format_documented_example():
    assert format_unix_to_date("1657756800") == "July 14, 2022"


def test_format_unparsable_is_epoch():
    assert format_unix_to_date("abc") == format_unix_to_date("0")
    assert format_unix_to_date("") == "January 01, 1970"


def test_format_rejects_whitespace_like_zero():
    assert format_unix_to_date(" 1657756800") == format_unix_to_date("0")


def test_json_round_trip():
    card = _card()
    assert StoryCard.from_json(card.to_json()) == card


def test_from_json_missing_field():
    data = json.loads(_card().to_json())
    del data["npub"]
    with pytest.raises(ValueError):
        StoryCard.from_json(json.dumps(data))


def test_storage_key():
    assert _card(note_id="n1").storage_key() == "story-teller_note_n1"


def test_remember_story_saves_once():
    storage = SessionStorage()
    first = _card()
    assert remember_story(storage, first) is True
    assert remember_story(storage, _card(title="Changed")) is False
    assert StoryCard.from_json(storage.get(first.storage_key())) == first