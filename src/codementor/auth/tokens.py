"""Bearer credential verification.

Tokens are HS256 JWTs signed with ``Settings.auth_secret`` carrying
``sub``, ``email``, ``role``, ``iat`` and ``exp``. Account management and
password handling live outside this service; ``issue`` exists for
operators and tests.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

import jwt

from codementor.constants import UserRole

ALGORITHM = "HS256"


class InvalidToken(Exception):
    """Credential missing, malformed, badly signed, or expired."""


@dataclass(frozen=True)
class Principal:
    """Verified caller identity handed to services."""

    user_id: str
    email: str
    role: str = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class TokenVerifier:
    def __init__(self, secret: str, ttl_seconds: int = 3600) -> None:
        if not secret:
            raise ValueError("auth secret must not be empty")
        self._secret = secret
        self._ttl = ttl_seconds

    def issue(
        self, principal: Principal, *, now: float | None = None
    ) -> str:
        issued = int(now if now is not None else time.time())
        claims = {
            "sub": principal.user_id,
            "email": principal.email,
            "role": principal.role,
            "iat": issued,
            "exp": issued + self._ttl,
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str | None) -> Principal:
        if not token:
            raise InvalidToken("missing credential")
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise InvalidToken("expired") from exc
        except jwt.InvalidSignatureError as exc:
            raise InvalidToken("bad signature") from exc
        except jwt.PyJWTError as exc:
            raise InvalidToken(f"malformed token: {exc}") from exc
        return Principal(
            user_id=str(claims["sub"]),
            email=str(claims.get("email", "")),
            role=str(claims.get("role", UserRole.USER)),
        )


def bearer_token(header: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer`` header."""
    if not header:
        return None
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()
