# tests/test_credentials.py
import re
from datetime import datetime, timedelta

import pytest

from portal.services.credentials import (
    SYMBOLS,
    generate_invite_token,
    generate_temporary_password,
    hash_invite_token,
    invite_expiry,
)


def test_temporary_passwords_meet_the_policy():
    seen = set()
    for _ in range(1000):
        pw = generate_temporary_password()
        assert len(pw) == 12
        assert any(c.isupper() for c in pw)
        assert any(c.islower() for c in pw)
        assert any(c.isdigit() for c in pw)
        assert any(c in SYMBOLS for c in pw)
        assert all(c.isalnum() or c in SYMBOLS for c in pw)
        seen.add(pw)
    # collisions would point at a broken generator
    assert len(seen) == 1000


def test_password_length_must_fit_required_classes():
    with pytest.raises(ValueError):
        generate_temporary_password(3)


def test_invite_tokens_are_64_hex_and_unique():
    tokens = {generate_invite_token() for _ in range(200)}
    assert len(tokens) == 200
    for t in tokens:
        assert re.fullmatch(r"[0-9a-f]{64}", t)


def test_only_a_digest_of_the_token_is_stored():
    token = generate_invite_token()
    digest = hash_invite_token(token)
    assert digest != token
    assert digest == hash_invite_token(token)
    assert len(digest) == 64


def test_invite_expiry_uses_ttl():
    now = datetime(2024, 5, 1, 12, 0)
    assert invite_expiry(now, ttl_hours=2) == now + timedelta(hours=2)
    assert invite_expiry(now) == now + timedelta(hours=72)
