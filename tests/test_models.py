from __future__ import annotations

import pytest

from core.models import Cursor, Hash, Mention, Username, identity_from_label, normalize_handle


def test_username_is_normalized() -> None:
    assert Username("@Alice").handle == "alice"
    assert Username("https://t.me/Bob") == Username("bob")
    assert Username("  telegram.me/CodeNight ") == Username("codenight")


def test_hash_keeps_token_case() -> None:
    assert Hash("https://t.me/+AbC123").token == "AbC123"
    assert Hash("t.me/joinchat/XyZ").token == "XyZ"
    assert Hash("AbC") != Hash("abc")


def test_mention_equality_uses_normalized_text() -> None:
    assert Mention("@Alice") == Mention("alice")
    assert Mention("@Alice").text == "@Alice"
    assert Mention("@Alice").key == ("Mention", "alice")


def test_variants_never_collide() -> None:
    assert Username("alice").key != Mention("@alice").key
    assert len({Username("alice"), Mention("@alice"), Hash("alice")}) == 3


def test_identity_from_label() -> None:
    assert identity_from_label("Username", "alice") == Username("alice")
    assert identity_from_label("Hash", "Tok") == Hash("Tok")
    assert identity_from_label("Mention", "@x") == Mention("@x")
    with pytest.raises(ValueError):
        identity_from_label("Phone", "123")


def test_cursor_encoding_and_order() -> None:
    assert Cursor.decode(Cursor(42).encode()) == Cursor(42)
    assert Cursor() < Cursor(1) < Cursor(10)


def test_normalize_handle() -> None:
    assert normalize_handle("@Team_Chat") == "team_chat"
    assert normalize_handle("https://t.me/Team_Chat") == "team_chat"
