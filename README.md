# storyteller

A small web reader for long-form Nostr stories (kind 30023 articles).

It fetches articles from a set of public relays and shows them as cards, 20 to a page.
Each card shows the article's image, title, summary and date, and the author's name and
picture. Pictures that do not load are replaced, first by a thumbnail proxy address and
then by a default image. When an account is signed in, its newest contact list is fetched
and kept for the session; while it is kept, the home page shows only articles by followed
authors. An article page renders the article's Markdown, and a profile page shows one
author's details and articles.

## Install

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Run the web reader

```
storyteller
```

This serves the Flask application built by `storyteller.web.create_app`. Options:

| Option            | Meaning                                              |
|-------------------|------------------------------------------------------|
| `--host`          | address to listen on (default `127.0.0.1`)           |
| `--port`          | port to listen on (default `8080`)                   |
| `--storage FILE`  | JSON file for the signed-in account; without it the account is kept in memory only |
| `--debug`         | run Flask in debug mode                              |

Routes:

| Route                        | Page                                                   |
|------------------------------|--------------------------------------------------------|
| `GET /`                      | home page with the story list (`?page=N`, zero-based)  |
| `GET /story/select/<note_id>`| remembers a listed card for the session, then redirects to its article |
| `GET /story/id/<event_id>`   | one article; `event_id` is a `nevent` string           |
| `GET /profile/<npub>`        | an author's profile and articles                       |
| `POST /signin`               | signs in with the `npub` form field                    |
| `POST /signout`              | forgets the stored account and its follow list         |
| `GET /error`                 | the "page not found" page, also shown for any 404      |

Every page that lists stories queries the relays while the request is handled, so
requests can take several seconds.

## Use it as a library

The modules can be used without the web front end.

```python
import asyncio

from storyteller.nostr_client import NostrClient
from storyteller.story import fetch_stories, paginate, total_pages
from storyteller.storage import SessionStorage


async def latest():
    client = await NostrClient.setup_and_connect()
    try:
        stories = await fetch_stories(client, None, SessionStorage())
    finally:
        await client.disconnect()
    print(total_pages(len(stories)), "pages")
    for story in paginate(stories, 0):
        print(story.title, "by", story.author_name)


asyncio.run(latest())
```

Modules:

- `storyteller.nip19`: `bech32_encode` / `bech32_decode`; `id_encode` / `id_decode` convert
  a hex event id to and from a `nevent` string; `npub_encode` / `npub_decode` do the same
  for public keys. Bad input raises `Nip19Error`.
- `storyteller.nostr_client`: `Event`, `Metadata`, `Filter`, `Kind` and `NostrClient`, which
  queries relays over websockets (`get_events_of`) and raises `RelayError` when none can
  be reached. `NostrClient.setup_and_connect()` uses the relays in `DEFAULT_RELAYS`.
- `storyteller.storage`: `SessionStorage` is kept in memory; `LocalStorage(path)` is kept in a
  JSON file, or in memory when no path is given. `get_all_keys` lists only keys that start
  with `story-teller_`. Failed writes raise `StorageError`.
- `storyteller.markdown`: `markdown_to_html` renders an article, and `filter_text` returns its
  plain text with links replaced by line breaks.
- `storyteller.story_card`: `StoryCard` and `format_unix_to_date("1657756800")`, which gives
  `"July 14, 2022"`; `remember_story` saves a card once under its session key.
- `storyteller.story`: `StoryData`, `extract_tags`, `resolve_author`, `fetch_stories`,
  `check_image`, and the pagination helpers `paginate`, `total_pages` and `page_buttons`.
- `storyteller.account`: `load_account`, `sign_in`, `sign_out`, `sync_follow_list`, and
  `process_event`, which reads a `FollowList` out of a contact-list event.
- `storyteller.profile`: `fetch_profile` and `is_account_activated`.
- `storyteller.article`: `load_article`, which uses the session's remembered card before
  asking the relays, and `detect_browser`.
- `storyteller.web`: `create_app`, `main`, `KeywordFilter` and `dropdown_open`.

Functions that check images take an `image_checker` coroutine, so image checks can be
replaced; in the web application it is `app.config["IMAGE_CHECKER"]`.

## What it does not do

- It never signs or publishes anything. Signing in only takes an `npub`, fetches that
  account's metadata and stores it; there is no key handling or browser-extension signing.
- There is no writing of new stories. The "New Post", "Edit Profile", "More settings",
  "Share", "Marking", "Comment", "Follow" and "Play" controls are shown but do nothing.
- The search box and the keyword checkboxes only show what was entered; they do not
  filter the story list.
- There are no user sessions: the web application holds one signed-in account and one
  session storage for everyone who visits it.