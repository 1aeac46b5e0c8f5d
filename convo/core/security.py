"""
Convo Backend — Password Hashing & Tokens
==========================================

What:  bcrypt password hashing and HS256 JWT issue/verify.
How:   bcrypt is CPU-bound, so hashing runs in a worker thread to keep the
       event loop free. Access and refresh tokens are signed with separate
       secrets; both carry `aud` and `iss` set to the server domain and `sub`
       set to the profile id.
Who:   ResourceService (hash on create/update), AuthService (login, refresh,
       request authentication).

Token lifetimes (defaults):
    access   15 minutes   → Authorization: JWT <access>
    refresh  7 days       → http-only `refresh` cookie
"""

import asyncio
import time
from typing import Any, Dict, Optional

import bcrypt
import jwt

from convo.config import settings

ACCESS = "access"
REFRESH = "refresh"


# ── Passwords ─────────────────────────────────────────────────────────────


def _hash_password(password: str, rounds: int) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def _verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


async def hash_password(password: str) -> str:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _hash_password, password, settings.bcrypt_rounds)


async def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _verify_password, password, password_hash)


# ── Tokens ────────────────────────────────────────────────────────────────


class TokenGenerator:
    """
    Issues and verifies access/refresh JWTs.

    Verification failures raise `jwt.InvalidTokenError` subclasses
    (`jwt.ExpiredSignatureError` for expired tokens); callers translate them.
    """

    def __init__(
        self,
        access_secret: Optional[str] = None,
        refresh_secret: Optional[str] = None,
        domain: Optional[str] = None,
        algorithm: Optional[str] = None,
    ):
        self._secrets = {
            ACCESS: access_secret if access_secret is not None else settings.jwt_access_secret_key,
            REFRESH: refresh_secret if refresh_secret is not None else settings.jwt_refresh_secret_key,
        }
        self._lifetimes = {
            ACCESS: settings.access_token_expire_seconds,
            REFRESH: settings.refresh_token_expire_seconds,
        }
        self.domain = domain or settings.server_domain
        self.algorithm = algorithm or settings.jwt_algorithm

    @property
    def expiration(self) -> Dict[str, int]:
        return dict(self._lifetimes)

    def _secret(self, kind: str) -> str:
        secret = self._secrets[kind]
        if not secret:
            raise jwt.InvalidKeyError(f"JWT {kind} key undefined")
        return secret

    def _issue(self, kind: str, subject: str, extra: Optional[Dict[str, Any]] = None) -> str:
        now = int(time.time())
        payload = {
            **(extra or {}),
            "sub": subject,
            "aud": self.domain,
            "iss": self.domain,
            "iat": now,
            "exp": now + self._lifetimes[kind],
        }
        return jwt.encode(payload, self._secret(kind), algorithm=self.algorithm)

    def _verify(self, kind: str, token: str) -> Dict[str, Any]:
        return jwt.decode(
            token,
            self._secret(kind),
            algorithms=[self.algorithm],
            audience=self.domain,
            issuer=self.domain,
            options={"require": ["exp", "sub"]},
        )

    def access_token(self, subject: str, extra: Optional[Dict[str, Any]] = None) -> str:
        return self._issue(ACCESS, subject, extra)

    def refresh_token(self, subject: str, extra: Optional[Dict[str, Any]] = None) -> str:
        return self._issue(REFRESH, subject, extra)

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        return self._verify(ACCESS, token)

    def verify_refresh_token(self, token: str) -> Dict[str, Any]:
        return self._verify(REFRESH, token)


tokens = TokenGenerator()
