# tests/test_security.py
from drive.core.security import (
    hash_password,
    new_session_token,
    sign_token,
    unsign_token,
    verify_password,
)


def test_hash_is_salted_and_verifies():
    first = hash_password("hunter2", rounds=4)
    second = hash_password("hunter2", rounds=4)

    assert first != second
    assert first.startswith("$2b$04$")
    assert verify_password("hunter2", first)
    assert not verify_password("hunter3", first)


def test_default_cost_comes_from_settings():
    # conftest lowers the cost factor to keep the suite fast
    assert hash_password("pw").startswith("$2b$04$")


def test_long_passwords_are_truncated_consistently():
    long_password = "x" * 100
    hashed = hash_password(long_password, rounds=4)

    assert verify_password(long_password, hashed)
    assert verify_password("x" * 72, hashed)


def test_verify_rejects_non_bcrypt_hash():
    assert not verify_password("pw", "plain-text")


def test_tokens_are_unique():
    assert len({new_session_token() for _ in range(50)}) == 50


def test_signed_token_roundtrip_and_tamper():
    token = new_session_token()
    signed = sign_token(token)

    assert unsign_token(signed) == token
    tampered = ("A" if signed[0] != "A" else "B") + signed[1:]
    assert unsign_token(tampered) is None
    assert unsign_token(token) is None
    assert unsign_token(None) is None
