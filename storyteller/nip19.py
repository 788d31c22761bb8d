"""Bech32 and NIP-19 encoding of Nostr identifiers."""

from __future__ import annotations

import re

__all__ = [
    "Nip19Error",
    "bech32_encode",
    "bech32_decode",
    "id_encode",
    "id_decode",
    "npub_encode",
    "npub_decode",
]

_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_CHARSET_INDEX = {char: index for index, char in enumerate(_CHARSET)}
_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
_HEX32 = re.compile(r"[0-9a-fA-F]{64}")

_KNOWN_PREFIXES = frozenset(
    {"npub", "nsec", "note", "nprofile", "nevent", "naddr", "nrelay", "ncryptsec"}
)
_TLV_SPECIAL = 0
INVALID_TYPE = "Invalid Nip19 type"


class Nip19Error(ValueError):
    """Raised when a bech32 string or identifier cannot be handled."""


def _polymod(values) -> int:
    checksum = 1
    for value in values:
        top = checksum >> 25
        checksum = ((checksum & 0x1FFFFFF) << 5) ^ value
        for bit, generator in enumerate(_GENERATOR):
            if (top >> bit) & 1:
                checksum ^= generator
    return checksum


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _convert_bits(data, from_bits: int, to_bits: int, pad: bool) -> list[int]:
    acc = 0
    bits = 0
    out: list[int] = []
    max_value = (1 << to_bits) - 1
    acc_mask = (1 << (from_bits + to_bits - 1)) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            raise Nip19Error("invalid data value")
        acc = ((acc << from_bits) | value) & acc_mask
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & max_value)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & max_value)
    elif bits >= from_bits or (acc << (to_bits - bits)) & max_value:
        raise Nip19Error("invalid padding")
    return out


def _check_hrp(hrp: str) -> None:
    if not hrp or any(not 33 <= ord(c) <= 126 for c in hrp):
        raise Nip19Error(f"invalid human-readable part: {hrp!r}")


def bech32_encode(hrp: str, data: bytes) -> str:
    """Encode bytes as a bech32 string with the given human-readable part."""
    _check_hrp(hrp)
    hrp = hrp.lower()
    words = _convert_bits(bytes(data), 8, 5, True)
    polymod = _polymod(_hrp_expand(hrp) + words + [0] * 6) ^ 1
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(_CHARSET[w] for w in words + checksum)


def bech32_decode(text: str) -> tuple[str, bytes]:
    """Decode a bech32 string into its human-readable part and bytes."""
    if text.lower() != text and text.upper() != text:
        raise Nip19Error("mixed case in bech32 string")
    text = text.lower()
    separator = text.rfind("1")
    if separator < 1 or separator + 7 > len(text):
        raise Nip19Error("missing or misplaced separator")
    hrp = text[:separator]
    _check_hrp(hrp)
    try:
        words = [_CHARSET_INDEX[c] for c in text[separator + 1:]]
    except KeyError as exc:
        raise Nip19Error(f"invalid character {exc.args[0]!r}") from None
    if _polymod(_hrp_expand(hrp) + words) != 1:
        raise Nip19Error("invalid checksum")
    return hrp, bytes(_convert_bits(words[:-6], 5, 8, False))


def _hex32(value: str) -> bytes:
    if not isinstance(value, str) or not _HEX32.fullmatch(value):
        raise Nip19Error(f"expected 64 hex characters, got {value!r}")
    return bytes.fromhex(value)


def _iter_tlv(payload: bytes):
    offset = 0
    while offset < len(payload):
        if offset + 2 > len(payload):
            raise Nip19Error("truncated TLV entry")
        kind, length = payload[offset], payload[offset + 1]
        start = offset + 2
        end = start + length
        if end > len(payload):
            raise Nip19Error("truncated TLV value")
        yield kind, payload[start:end]
        offset = end


def id_encode(event_id_hex: str) -> str:
    """Encode a hex event id as an ``nevent`` identifier without relays."""
    event_id = _hex32(event_id_hex)
    return bech32_encode("nevent", bytes([_TLV_SPECIAL, len(event_id)]) + event_id)


def id_decode(note_id: str) -> str:
    """Decode an ``nevent`` identifier into its hex event id.

    Other valid NIP-19 kinds yield the text ``"Invalid Nip19 type"``.
    """
    hrp, payload = bech32_decode(note_id)
    if hrp not in _KNOWN_PREFIXES:
        raise Nip19Error(f"unknown NIP-19 prefix: {hrp!r}")
    if hrp != "nevent":
        return INVALID_TYPE
    for kind, value in _iter_tlv(payload):
        if kind == _TLV_SPECIAL:
            if len(value) != 32:
                raise Nip19Error("event id must be 32 bytes")
            return value.hex()
    raise Nip19Error("nevent without an event id")


def npub_encode(public_key_hex: str) -> str:
    """Encode a hex public key as an ``npub`` string."""
    return bech32_encode("npub", _hex32(public_key_hex))


def npub_decode(npub: str) -> str:
    """Decode an ``npub`` string into a hex public key."""
    hrp, payload = bech32_decode(npub)
    if hrp != "npub":
        raise Nip19Error(f"expected npub, got {hrp!r}")
    if len(payload) != 32:
        raise Nip19Error("public key must be 32 bytes")
    return payload.hex()