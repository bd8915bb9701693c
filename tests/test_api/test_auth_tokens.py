"""Tests for bearer token issue/verify."""

import time

import jwt
import pytest

from codementor.auth.tokens import (
    ALGORITHM,
    InvalidToken,
    Principal,
    TokenVerifier,
    bearer_token,
)


@pytest.fixture
def verifier() -> TokenVerifier:
    return TokenVerifier("secret", ttl_seconds=60)


def test_roundtrip(verifier: TokenVerifier) -> None:
    token = verifier.issue(Principal("u1", "u1@example.com", "admin"))
    principal = verifier.verify(token)
    assert principal == Principal("u1", "u1@example.com", "admin")
    assert principal.is_admin


def test_token_is_standard_hs256_jwt(verifier: TokenVerifier) -> None:
    issued = 1_700_000_000
    token = verifier.issue(Principal("u1", "a@b.c"), now=issued)
    assert jwt.get_unverified_header(token)["alg"] == "HS256"
    claims = jwt.decode(
        token,
        "secret",
        algorithms=[ALGORITHM],
        options={"verify_exp": False},
    )
    assert claims == {
        "sub": "u1",
        "email": "a@b.c",
        "role": "user",
        "iat": issued,
        "exp": issued + 60,
    }


def test_expired(verifier: TokenVerifier) -> None:
    token = verifier.issue(Principal("u1", ""), now=time.time() - 61)
    with pytest.raises(InvalidToken, match="expired"):
        verifier.verify(token)


def test_wrong_secret(verifier: TokenVerifier) -> None:
    token = TokenVerifier("other").issue(Principal("u1", ""))
    with pytest.raises(InvalidToken, match="bad signature"):
        verifier.verify(token)


def test_tampered_claims(verifier: TokenVerifier) -> None:
    token = verifier.issue(Principal("u1", ""))
    header, _, rest = token.partition(".")
    _, _, sig = rest.partition(".")
    forged = verifier.issue(Principal("admin", "", "admin"))
    forged_body = forged.split(".")[1]
    with pytest.raises(InvalidToken, match="bad signature"):
        verifier.verify(f"{header}.{forged_body}.{sig}")
    assert verifier.verify(token).user_id == "u1"


def test_unsigned_token_rejected(verifier: TokenVerifier) -> None:
    token = jwt.encode(
        {"sub": "u1", "exp": int(time.time()) + 60},
        key=None,
        algorithm="none",
    )
    with pytest.raises(InvalidToken):
        verifier.verify(token)


def test_token_without_subject_rejected(verifier: TokenVerifier) -> None:
    token = jwt.encode(
        {"email": "a@b.c", "exp": int(time.time()) + 60},
        "secret",
        algorithm=ALGORITHM,
    )
    with pytest.raises(InvalidToken, match="malformed"):
        verifier.verify(token)


@pytest.mark.parametrize("token", [None, "", "no-dot", "abc.def"])
def test_malformed(verifier: TokenVerifier, token: str | None) -> None:
    with pytest.raises(InvalidToken):
        verifier.verify(token)


def test_empty_secret_rejected() -> None:
    with pytest.raises(ValueError):
        TokenVerifier("")


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ("Bearer abc", "abc"),
        ("bearer  abc ", "abc"),
        ("Basic abc", None),
        ("Bearer ", None),
        (None, None),
    ],
)
def test_bearer_token(header: str | None, expected: str | None) -> None:
    assert bearer_token(header) == expected


def test_default_role_is_user() -> None:
    assert not Principal("u1", "").is_admin
