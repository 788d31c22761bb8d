"""Nostr events, filters and a small multi-relay websocket client."""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Iterable
from urllib.parse import urlsplit

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

__all__ = [
    "DEFAULT_RELAYS",
    "Kind",
    "Event",
    "Metadata",
    "Filter",
    "RelayError",
    "NostrClient",
]

log = logging.getLogger(__name__)

DEFAULT_RELAYS = (
    "wss://nos.lol",
    "wss://relay.notoshi.win",
    "wss://nostr.mom",
    "wss://relay.snort.social",
    "wss://nostr-01.yakihonne.com",
    "wss://nostr.topeth.info",
    "wss://lightningrelay.com",
)


class Kind(IntEnum):
    """Event kinds used by the application."""

    METADATA = 0
    TEXT_NOTE = 1
    CONTACT_LIST = 3
    LONG_FORM_TEXT_NOTE = 30023


def _require(data: dict, key: str, kind: type) -> Any:
    if key not in data:
        raise ValueError(f"event is missing {key!r}")
    value = data[key]
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ValueError(f"event field {key!r} has the wrong type")
    return value


@dataclass
class Event:
    """A signed Nostr event."""

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: list[list[str]]
    content: str
    sig: str

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        if not isinstance(data, dict):
            raise ValueError("event must be a JSON object")
        tags = _require(data, "tags", list)
        if not all(isinstance(t, list) and all(isinstance(v, str) for v in t) for t in tags):
            raise ValueError("event tags must be lists of strings")
        return cls(
            id=_require(data, "id", str),
            pubkey=_require(data, "pubkey", str),
            created_at=_require(data, "created_at", int),
            kind=_require(data, "kind", int),
            tags=[list(t) for t in tags],
            content=_require(data, "content", str),
            sig=_require(data, "sig", str),
        )

    @classmethod
    def from_json(cls, text: str) -> "Event":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid event JSON: {exc}") from exc
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": int(self.kind),
            "tags": [list(t) for t in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    def tag_values(self, name: str) -> list[str]:
        """Second elements of every tag whose first element is ``name``."""
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]

    def is_expired(self, now: float | None = None) -> bool:
        """True when an ``expiration`` tag lies before ``now`` (NIP-40)."""
        now = time.time() if now is None else now
        for value in self.tag_values("expiration"):
            try:
                return int(value) < now
            except ValueError:
                return False
        return False


@dataclass
class Metadata:
    """Profile metadata carried in the content of a kind-0 event."""

    name: str | None = None
    display_name: str | None = None
    about: str | None = None
    picture: str | None = None
    banner: str | None = None
    website: str | None = None
    nip05: str | None = None
    lud06: str | None = None
    lud16: str | None = None

    @classmethod
    def from_json(cls, text: str) -> "Metadata":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid metadata JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError("metadata must be a JSON object")
        values = {}
        for name in cls.__dataclass_fields__:
            value = data.get(name)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"metadata field {name!r} must be a string")
            values[name] = value
        return cls(**values)


@dataclass
class Filter:
    """A subscription filter (NIP-01)."""

    ids: list[str] = field(default_factory=list)
    authors: list[str] = field(default_factory=list)
    kinds: list[int] = field(default_factory=list)
    limit: int | None = None

    def to_dict(self) -> dict:
        result: dict[str, Any] = {}
        if self.ids:
            result["ids"] = list(self.ids)
        if self.authors:
            result["authors"] = list(self.authors)
        if self.kinds:
            result["kinds"] = [int(k) for k in self.kinds]
        if self.limit is not None:
            result["limit"] = self.limit
        return result


class RelayError(Exception):
    """Raised for unusable relay URLs or when no relay can be reached."""


class NostrClient:
    """Queries a set of relays over websockets."""

    def __init__(self, relays: Iterable[str] = (), timeout: float = 10.0):
        self.timeout = timeout
        self._relays: list[str] = []
        self._connections: dict[str, Any] = {}
        for relay in relays:
            self._register(relay)

    @property
    def relays(self) -> tuple[str, ...]:
        return tuple(self._relays)

    @property
    def connected(self) -> tuple[str, ...]:
        return tuple(self._connections)

    def _register(self, relay: str) -> None:
        parts = urlsplit(relay)
        if parts.scheme not in ("ws", "wss") or not parts.netloc:
            raise RelayError(f"invalid relay url: {relay!r}")
        if relay not in self._relays:
            self._relays.append(relay)

    async def add_relay(self, relay: str) -> None:
        self._register(relay)

    async def _open(self, relay: str):
        try:
            return await websockets.connect(relay, open_timeout=self.timeout)
        except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
            log.warning("could not connect to %s: %s", relay, exc)
            return None

    async def connect(self) -> None:
        pending = [r for r in self._relays if r not in self._connections]
        results = await asyncio.gather(*(self._open(r) for r in pending))
        for relay, connection in zip(pending, results):
            if connection is not None:
                self._connections[relay] = connection

    async def disconnect(self) -> None:
        connections = list(self._connections.values())
        self._connections.clear()
        await asyncio.gather(*(c.close() for c in connections), return_exceptions=True)

    async def __aenter__(self) -> "NostrClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.disconnect()

    async def _query(self, connection, filters: list[Filter], timeout: float) -> list[Event]:
        subscription = secrets.token_hex(8)
        events: list[Event] = []
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        try:
            request = ["REQ", subscription, *(f.to_dict() for f in filters)]
            await connection.send(json.dumps(request))
            while (remaining := deadline - loop.time()) > 0:
                raw = await asyncio.wait_for(connection.recv(), remaining)
                try:
                    message = json.loads(raw)
                except (json.JSONDecodeError, TypeError):
                    continue
                if not isinstance(message, list) or len(message) < 2 or message[1] != subscription:
                    continue
                if message[0] == "EVENT" and len(message) > 2:
                    try:
                        events.append(Event.from_dict(message[2]))
                    except ValueError as exc:
                        log.debug("skipping malformed event: %s", exc)
                elif message[0] in ("EOSE", "CLOSED"):
                    break
        except asyncio.TimeoutError:
            pass
        except (ConnectionClosed, OSError) as exc:
            log.warning("relay connection lost: %s", exc)
            return events
        try:
            await connection.send(json.dumps(["CLOSE", subscription]))
        except (ConnectionClosed, OSError):
            pass
        return events

    async def get_events_of(self, filters: list[Filter], timeout: float | None = None) -> list[Event]:
        """Collect stored events matching ``filters`` from every connected relay."""
        if not self._relays:
            raise RelayError("no relays added")
        await self.connect()
        if not self._connections:
            raise RelayError("no relay could be reached")
        timeout = self.timeout if timeout is None else timeout
        batches = await asyncio.gather(
            *(self._query(c, list(filters), timeout) for c in self._connections.values())
        )
        seen: dict[str, Event] = {}
        for batch in batches:
            for event in batch:
                seen.setdefault(event.id, event)
        return list(seen.values())

    @classmethod
    async def setup_and_connect(cls) -> "NostrClient":
        """Create a client for the default relays and connect it."""
        client = cls(DEFAULT_RELAYS)
        await client.connect()
        return client