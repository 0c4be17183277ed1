"""
NIP-98 HTTP authentication.

Clients sign a kind-27235 Nostr event naming the request URL and method and
send it base64-encoded in ``Authorization: Nostr <token>``. The event's
BIP-340 Schnorr signature is verified with coincurve; the signing pubkey is
the caller's identity.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import time
from dataclasses import dataclass

from coincurve import PublicKeyXOnly

HTTP_AUTH_KIND = 27235
SCHEME = "Nostr"


class Nip98Error(Exception):
    """Authorization header is missing, malformed, or does not verify."""


@dataclass(frozen=True)
class NostrEvent:
    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: list[list[str]]
    content: str
    sig: str

    def tag(self, name: str) -> str | None:
        for tag in self.tags:
            if len(tag) >= 2 and tag[0] == name:
                return tag[1]
        return None


def event_id(pubkey: str, created_at: int, kind: int, tags: list[list[str]], content: str) -> str:
    """sha256 over the NIP-01 canonical serialization."""
    serialized = json.dumps(
        [0, pubkey, created_at, kind, tags, content],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(serialized.encode()).hexdigest()


def decode_header(authorization: str | None) -> NostrEvent:
    if not authorization:
        msg = "Missing Authorization header"
        raise Nip98Error(msg)
    scheme, _, token = authorization.partition(" ")
    if scheme != SCHEME or not token:
        msg = "Authorization scheme must be Nostr"
        raise Nip98Error(msg)

    try:
        raw = json.loads(base64.b64decode(token.strip(), validate=True))
        return NostrEvent(
            id=str(raw["id"]),
            pubkey=str(raw["pubkey"]),
            created_at=int(raw["created_at"]),
            kind=int(raw["kind"]),
            tags=[[str(part) for part in tag] for tag in raw["tags"]],
            content=str(raw.get("content", "")),
            sig=str(raw["sig"]),
        )
    except (binascii.Error, ValueError, KeyError, TypeError) as e:
        msg = "Malformed NIP-98 event"
        raise Nip98Error(msg) from e


def verify_signature(event: NostrEvent) -> bool:
    expected = event_id(event.pubkey, event.created_at, event.kind, event.tags, event.content)
    if expected != event.id:
        return False
    try:
        pubkey = PublicKeyXOnly(bytes.fromhex(event.pubkey))
        return pubkey.verify(bytes.fromhex(event.sig), bytes.fromhex(event.id))  # type: ignore[no-any-return]
    except ValueError:
        return False


def _normalize_url(url: str) -> str:
    return url.rstrip("/")


def verify_event(
    event: NostrEvent,
    url: str,
    method: str,
    *,
    max_skew: int = 60,
    body: bytes | None = None,
    now: float | None = None,
) -> str:
    """Check an auth event against the request; return the verified pubkey hex."""
    if event.kind != HTTP_AUTH_KIND:
        msg = f"Auth event must be kind {HTTP_AUTH_KIND}"
        raise Nip98Error(msg)

    now = time.time() if now is None else now
    if abs(now - event.created_at) > max_skew:
        msg = "Auth event timestamp outside the allowed window"
        raise Nip98Error(msg)

    if _normalize_url(event.tag("u") or "") != _normalize_url(url):
        msg = "Auth event URL does not match the request"
        raise Nip98Error(msg)
    if (event.tag("method") or "").upper() != method.upper():
        msg = "Auth event method does not match the request"
        raise Nip98Error(msg)

    payload_hash = event.tag("payload")
    if payload_hash is not None and body is not None and hashlib.sha256(body).hexdigest() != payload_hash.lower():
        msg = "Auth event payload hash does not match the request body"
        raise Nip98Error(msg)

    if len(event.pubkey) != 64 or not verify_signature(event):
        msg = "Invalid auth event signature"
        raise Nip98Error(msg)
    return event.pubkey.lower()
