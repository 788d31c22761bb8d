"""Web reader for long-form Nostr stories: relay client, NIP-19 codes, storage and Flask pages."""

__version__ = "0.1.0"
__all__ = [
    "account",
    "article",
    "markdown",
    "nip19",
    "nostr_client",
    "profile",
    "storage",
    "story",
    "story_card",
    "web",
]