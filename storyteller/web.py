"""Web front end: pages, routes and the command that serves them."""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from flask import Flask, abort, redirect, render_template_string, request, url_for

from .account import AccountState, load_account, sign_in, sign_out, sync_follow_list
from .article import detect_browser, load_article
from .markdown import markdown_to_html
from .nip19 import Nip19Error, npub_decode
from .nostr_client import NostrClient
from .profile import fetch_profile, is_account_activated
from .storage import PREFIX, KeyValueStorage, LocalStorage, SessionStorage
from .story import check_image, fetch_stories, page_buttons, paginate, total_pages
from .story_card import StoryCard, format_unix_to_date, remember_story

__all__ = [
    "KEYWORDS",
    "DROPDOWN_MIN_WIDTH",
    "KeywordFilter",
    "dropdown_open",
    "create_app",
    "main",
]

log = logging.getLogger(__name__)

KEYWORDS = ("Chill", "Dramatic", "Happy", "Sad", "Hopeful", "Fantasy", "Romantic", "Relaxing")
DROPDOWN_MIN_WIDTH = 640
_DESKTOP_WIDTH = 1024

ClientFactory = Callable[[], Awaitable[NostrClient]]


@dataclass
class KeywordFilter:
    """The keywords ticked in the filter sidebar, in the order they were ticked."""

    selected: list[str] = field(default_factory=list)

    def toggle(self, label: str) -> bool:
        """Tick or untick ``label``; True when it is ticked afterwards."""
        if label in self.selected:
            self.selected = [item for item in self.selected if item != label]
            return False
        self.selected.append(label)
        return True


def dropdown_open(width: int) -> bool:
    """The filter list starts open on screens at least 640 pixels wide."""
    return width >= DROPDOWN_MIN_WIDTH


_HEAD = """<!doctype html>
<html lang="en"><head><meta charset="utf-8"><title>Story Teller</title></head><body>
"""

_NAV = """<nav class="item-nav" id="nav">
  <a href="{{ url_for('home') }}"><img src="/assets/nav-icon.svg" alt="Story Teller"></a>
  {% if account.show_account %}
  <details class="nav-profile-round">
    <summary><img src="{{ account.profile_image }}" alt="Profile"></summary>
    <div class="account-card">
      <p class="nip05-info">{{ account.user_metadata.nip05 }}</p>
      <img class="profile-image" src="{{ account.profile_image }}" alt="user">
      <div class="user-info">
        <h3 class="user-name">{{ account.user_metadata.display_name }}</h3>
        {% if account.event %}<a id="submit-on-card" href="{{ url_for('profile', npub=account.npub) }}">Profile</a>{% endif %}
        <button type="button" id="submit-on-card">More settings</button>
        <form method="post" action="{{ url_for('signout') }}"><button type="submit" id="submit-on-card">Sign Out</button></form>
      </div>
    </div>
  </details>
  {% else %}
  <details class="nav-login">
    <summary>Login</summary>
    <div id="form-card">
      <div id="welcome-line-2">Sign in to Story Teller</div>
      <form method="post" action="{{ url_for('signin') }}">
        <input name="npub" placeholder="npub">
        <button type="submit" id="submit-button">Sign in with npub</button>
      </form>
    </div>
  </details>
  {% endif %}
</nav>
"""

_SEARCH = """<div id="search-pt"><form class="search-bar" method="get" action="{{ url_for('home') }}">
  <input class="search-box" type="text" name="q" placeholder="Search" value="{{ search_value or '' }}">
</form></div>
"""

_LOADING = (
    '<div class="lds-ellipsis-container"><div class="lds-ellipsis">'
    "<div></div><div></div><div></div><div></div></div></div>"
)

_STORY_LIST = """{% if not cards %}""" + _LOADING + """{% else %}
<div class="displayed-box"><div class="note-container">
{% for card in cards %}
  <a class="note-box note-out" href="{{ url_for('select_story', note_id=card.note_id) }}">
    <img class="note-image" src="{{ card.image }}" alt="Image">
    <div class="note-desc">
      <h2 class="note-text">{{ card.title }}</h2>
      <p class="line-clamping">{{ card.summary }}</p>
      <div id="note-author">
        <img class="note-profile-image" src="{{ card.author_image }}" alt="Profile image">
        <div class="author-info"><h3>{{ card.author_name }}</h3><p>{{ dates[loop.index0] }}</p></div>
      </div>
    </div>
  </a>
{% endfor %}
</div>
<div class="foot-pt"><ul class="btn-pagination">
{% for button in buttons %}<li class="page-item">{% if button.target is none %}{{ button.label }}{% else %}<a href="{{ page_url(button.target) }}">{{ button.label }}</a>{% endif %}</li>{% endfor %}
</ul></div></div>{% endif %}
"""

_HOME = _HEAD + _NAV + _SEARCH + """<div class="control-box">
<div class="checkbox-container"><details class="checkbox-sidebar"{% if dropdown %} open{% endif %}>
  <summary class="icon-container"><img src="/assets/filter-icon.svg" alt="Filter"></summary>
  <form method="get" action="{{ url_for('home') }}">
    <h3 class="header">General</h3>
    <ul class="detail">
    {% for label in keywords %}<li><label class="filter-label"><input class="filter-checkbox" type="checkbox" name="keyword" value="{{ label }}"{% if label in selected %} checked{% endif %}> {{ label }}</label></li>{% endfor %}
    </ul>
    <button type="submit">Apply</button>
  </form>
</details></div>
<div class="stories">""" + _STORY_LIST + """</div>
</div></body></html>
"""

_ARTICLE = _HEAD + _NAV + _SEARCH + """<div class="container"><div class="control-box">
<div class="article-box"><div class="article-field">
  <div class="markdown-field-text-title">{{ story.title or '' }}</div>
  <img class="field-title-image-box" src="{{ story.image or '' }}" alt="">
  <div class="article-field-icons">
    {% if browser == 'Microsoft Edge' %}<div class="field-icon-box"><img src="/assets/play.svg" alt="Play Icon"><span>Play</span></div>{% endif %}
    <div class="field-icon-box"><img src="/assets/date.svg" alt=""><span>{{ date }}</span></div>
  </div>
  <article class="markdown-field-body">{{ content_html|safe }}</article>
</div></div>
<div class="article-author-box">
  <div class="field-button-util">
    <button class="article-button-item" type="button">Share</button>
    <button class="article-button-item" type="button">Marking</button>
    <button class="article-button-item" type="button">Comment</button>
  </div>
  <div class="article-author-bar" id="article-author">
    {% if story.npub %}<a href="{{ url_for('profile', npub=story.npub) }}">{% endif %}
    <img class="article-profile-image" src="{{ story.author_image or '' }}" alt="Profile image">
    <h4 class="article-author-name">{{ story.author_name or '' }}</h4>
    {% if story.npub %}</a>{% endif %}
    <button class="article-button-follow" type="button">Follow</button>
  </div>
</div>
</div></div></body></html>
"""

_PROFILE = _HEAD + _NAV + """<div class="profile-box">
  <div class="banner-box col-xs-hidden"><img src="{{ profile.banner }}" alt="Banner"></div>
  <div class="profile-info"><div class="profile-bar">
    <div class="profile-field-image"><img src="{{ profile.picture }}" alt="Profile Image"><span class="profile-name">{{ profile.name }}</span></div>
    <div class="profile-field-menu">
      {% if activated %}<button class="menu-btn" type="button">New Post</button>{% endif %}
      <a class="menu-btn" href="{{ url_for('profile', npub=npub) }}">Article List</a>
    </div>
    <div class="profile-field-options-btn">
      {% if activated %}<button class="edit-btn" type="button">Edit Profile</button>{% endif %}
      <button class="more-btn" type="button"><img src="/assets/more.svg" alt="More Icon"></button>
    </div>
  </div></div>
</div>
<div class="content-box">""" + _STORY_LIST + """</div></body></html>
"""

_ERROR = _HEAD + """<div class="center">
  <div class="error">
    <div class="number">4</div>
    <div class="illustration"><div class="circle"></div><div class="clip"><div class="paper"><div class="face">
      <div class="eyes"><div class="eye eye-left"></div><div class="eye eye-right"></div></div>
      <div class="rosyCheeks rosyCheeks-left"></div><div class="rosyCheeks rosyCheeks-right"></div>
      <div class="mouth"></div>
    </div></div></div></div>
    <div class="number">4</div>
  </div>
  <div class="text">Oops. The page you're looking for doesn't exist.</div>
  <a class="button" href="{{ url_for('home') }}">Back Home</a>
</div></body></html>
"""


def _int_arg(name: str, default: int) -> int:
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def _date(timestamp: str) -> str:
    try:
        return format_unix_to_date(timestamp)
    except ValueError:
        return ""


def create_app(
    local_storage: KeyValueStorage | None = None,
    session_storage: KeyValueStorage | None = None,
    client_factory: ClientFactory | None = None,
) -> Flask:
    """Build the web application around the given storage areas and relay client."""
    local_storage = LocalStorage() if local_storage is None else local_storage
    session_storage = SessionStorage() if session_storage is None else session_storage
    client_factory = client_factory or NostrClient.setup_and_connect

    app = Flask(__name__)
    app.config["IMAGE_CHECKER"] = check_image
    cards_seen: dict[str, StoryCard] = {}

    def run_with_client(work):
        async def runner():
            client = await client_factory()
            try:
                return await work(client)
            finally:
                await client.disconnect()

        return asyncio.run(runner())

    def current_account() -> AccountState:
        try:
            return load_account(local_storage)
        except ValueError as exc:
            log.error("Stored account is unreadable: %s", exc)
            return AccountState()

    def render(template: str, **context):
        context.setdefault("account", current_account())
        return render_template_string(template, **context)

    def story_list_context(stories, page: int, page_url) -> dict:
        cards = [story.to_card() for story in stories]
        cards_seen.update((card.note_id, card) for card in cards)
        shown = paginate(cards, page)
        return {
            "cards": shown,
            "dates": [_date(card.published_at) for card in shown],
            "buttons": page_buttons(total_pages(len(cards)), page),
            "page_url": page_url,
        }

    @app.get("/")
    def home():
        account = current_account()
        checker = app.config["IMAGE_CHECKER"]
        page = max(_int_arg("page", 0), 0)

        async def work(client):
            if account.event is not None:
                await sync_follow_list(client, account.event, session_storage)
            return await fetch_stories(client, None, session_storage, checker)

        stories = run_with_client(work)
        keywords = KeywordFilter()
        for label in request.args.getlist("keyword"):
            keywords.toggle(label)
        return render(
            _HOME,
            account=account,
            search_value=request.args.get("q", ""),
            keywords=KEYWORDS,
            selected=keywords.selected,
            dropdown=dropdown_open(_int_arg("width", _DESKTOP_WIDTH)),
            **story_list_context(stories, page, lambda target: url_for("home", page=target)),
        )

    @app.get("/story/select/<note_id>")
    def select_story(note_id: str):
        card = cards_seen.get(note_id)
        if card is not None:
            remember_story(session_storage, card)
        return redirect(url_for("article", event_id=note_id))

    @app.get("/story/id/<event_id>")
    def article(event_id: str):
        checker = app.config["IMAGE_CHECKER"]
        try:
            if session_storage.get(f"{PREFIX}note_{event_id}") is not None:
                story = asyncio.run(load_article(event_id, session_storage))
            else:
                story = run_with_client(
                    lambda client: load_article(event_id, session_storage, client, checker)
                )
        except ValueError as exc:
            log.info("Unusable story id %s: %s", event_id, exc)
            abort(404)
        if story is None:
            abort(404)
        return render(
            _ARTICLE,
            story=story,
            date=_date(story.published_at or ""),
            content_html=markdown_to_html(story.article or ""),
            browser=detect_browser(request.headers.get("User-Agent")),
        )

    @app.get("/profile/<npub>")
    def profile(npub: str):
        try:
            npub_decode(npub)
        except Nip19Error:
            abort(404)
        checker = app.config["IMAGE_CHECKER"]
        page = max(_int_arg("page", 0), 0)

        async def work(client):
            details = await fetch_profile(client, npub, checker)
            stories = await fetch_stories(client, npub, session_storage, checker)
            return details, stories

        details, stories = run_with_client(work)
        return render(
            _PROFILE,
            profile=details,
            npub=npub,
            activated=is_account_activated(npub, local_storage),
            **story_list_context(
                stories, page, lambda target: url_for("profile", npub=npub, page=target)
            ),
        )

    @app.post("/signin")
    def signin():
        try:
            public_key = npub_decode(request.form.get("npub", "").strip())
        except Nip19Error:
            return redirect(url_for("error"))
        run_with_client(lambda client: sign_in(client, public_key, local_storage))
        return redirect(url_for("home"))

    @app.post("/signout")
    def signout():
        account = current_account()
        if account.event is not None:
            sign_out(account.public_key, local_storage, session_storage)
        return redirect(url_for("home"))

    @app.get("/error")
    def error():
        return render(_ERROR)

    app.register_error_handler(404, lambda exc: (render(_ERROR), 404))
    return app


def main(argv: list[str] | None = None) -> int:
    """Serve the reader over HTTP."""
    parser = argparse.ArgumentParser(prog="storyteller", description="Serve the Story Teller reader.")
    parser.add_argument("--host", default="127.0.0.1", help="address to listen on")
    parser.add_argument("--port", type=int, default=8080, help="port to listen on")
    parser.add_argument("--storage", default=None, help="JSON file for persistent storage")
    parser.add_argument("--debug", action="store_true", help="run in debug mode")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    log.info("starting app")
    app = create_app(LocalStorage(args.storage))
    app.run(host=args.host, port=args.port, debug=args.debug)
    return 0