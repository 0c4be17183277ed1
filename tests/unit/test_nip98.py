"""NIP-98 event decoding and verification."""

from __future__ import annotations

import base64
import json
import time

import pytest

from ibc.auth.nip98 import Nip98Error, decode_header, verify_event
from tests.conftest import ALICE, ALICE_SECRET, nip98_header

URL = "https://community.example/api/wallet/balance"


def _event(header: str):
    return decode_header(header)


class TestDecodeHeader:
    def test_missing_header(self):
        with pytest.raises(Nip98Error, match="Missing"):
            decode_header(None)

    def test_wrong_scheme(self):
        with pytest.raises(Nip98Error, match="scheme"):
            decode_header("Bearer abc")

    def test_garbage_token(self):
        with pytest.raises(Nip98Error, match="Malformed"):
            decode_header("Nostr not-base64!!")

    def test_missing_fields(self):
        token = base64.b64encode(json.dumps({"kind": 27235}).encode()).decode()
        with pytest.raises(Nip98Error, match="Malformed"):
            decode_header(f"Nostr {token}")


class TestVerifyEvent:
    def test_valid_event_returns_pubkey(self):
        event = _event(nip98_header(ALICE_SECRET, "GET", URL))
        assert verify_event(event, URL, "GET") == ALICE

    def test_trailing_slash_tolerated(self):
        event = _event(nip98_header(ALICE_SECRET, "GET", URL + "/"))
        assert verify_event(event, URL, "GET") == ALICE

    def test_wrong_kind(self):
        event = _event(nip98_header(ALICE_SECRET, "GET", URL, kind=1))
        with pytest.raises(Nip98Error, match="kind"):
            verify_event(event, URL, "GET")

    def test_stale_timestamp(self):
        event = _event(nip98_header(ALICE_SECRET, "GET", URL, created_at=int(time.time()) - 120))
        with pytest.raises(Nip98Error, match="timestamp"):
            verify_event(event, URL, "GET")

    def test_future_timestamp_within_skew(self):
        now = time.time()
        event = _event(nip98_header(ALICE_SECRET, "GET", URL, created_at=int(now) + 30))
        assert verify_event(event, URL, "GET", now=now) == ALICE

    def test_url_mismatch(self):
        event = _event(nip98_header(ALICE_SECRET, "GET", URL))
        with pytest.raises(Nip98Error, match="URL"):
            verify_event(event, "https://community.example/api/wallet/payouts", "GET")

    def test_method_mismatch(self):
        event = _event(nip98_header(ALICE_SECRET, "GET", URL))
        with pytest.raises(Nip98Error, match="method"):
            verify_event(event, URL, "POST")

    def test_tampered_tags_fail_signature(self):
        event = _event(nip98_header(ALICE_SECRET, "GET", URL))
        forged = type(event)(
            id=event.id,
            pubkey=event.pubkey,
            created_at=event.created_at,
            kind=event.kind,
            tags=[["u", URL], ["method", "POST"]],
            content=event.content,
            sig=event.sig,
        )
        with pytest.raises(Nip98Error, match="signature"):
            verify_event(forged, URL, "POST")

    def test_signature_from_other_key_rejected(self):
        event = _event(nip98_header(ALICE_SECRET, "GET", URL))
        other = _event(nip98_header(bytes.fromhex("44" * 32), "GET", URL))
        forged = type(event)(
            id=event.id,
            pubkey=event.pubkey,
            created_at=event.created_at,
            kind=event.kind,
            tags=event.tags,
            content=event.content,
            sig=other.sig,
        )
        with pytest.raises(Nip98Error, match="signature"):
            verify_event(forged, URL, "GET")
