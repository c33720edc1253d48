"""Password hashing and session tokens."""

from __future__ import annotations

import asyncio
import datetime
from datetime import UTC

import bcrypt
import jwt

from ..errors import Unauthorized

# bcrypt only reads this many bytes of a password and refuses longer input
MAX_PASSWORD_BYTES = 72


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


class PasswordHasher:
    """bcrypt hashing run off the event loop.

    A dummy hash is prepared up front so that a login against an unknown
    identifier costs the same as one with a wrong password.
    """

    def __init__(self, rounds: int = 10) -> None:
        self.rounds = rounds
        self._dummy = bcrypt.hashpw(b"dummy", bcrypt.gensalt(rounds=rounds))

    def _hash(self, password: str) -> str:
        return bcrypt.hashpw(
            password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)
        ).decode("ascii")

    @staticmethod
    def _check(password: str, hashed: str | bytes) -> bool:
        if password_too_long(password):
            # no stored hash can match a password register would refuse
            return False
        if isinstance(hashed, str):
            hashed = hashed.encode("ascii")
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed)
        except ValueError:
            # malformed stored hash
            return False

    async def hash(self, password: str) -> str:
        return await asyncio.to_thread(self._hash, password)

    async def verify(self, password: str, hashed: str) -> bool:
        return await asyncio.to_thread(self._check, password, hashed)

    async def verify_dummy(self, password: str) -> bool:
        await asyncio.to_thread(self._check, password, self._dummy)
        return False


class SessionTokens:
    """Signed, expiring session credentials (HS256 JWT)."""

    algorithm = "HS256"

    def __init__(self, secret: str, lifetime_days: int = 30) -> None:
        self.secret = secret
        self.lifetime = datetime.timedelta(days=lifetime_days)

    def issue(self, uid: str, email: str) -> str:
        now = datetime.datetime.now(tz=UTC)
        payload = {"uid": uid, "email": email, "iat": now, "exp": now + self.lifetime}
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str | None) -> dict:
        """Return the claims of ``token`` or raise :class:`Unauthorized`."""
        if not token:
            raise Unauthorized()
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.PyJWTError as exc:
            raise Unauthorized("Invalid token") from exc
        if not claims.get("uid"):
            raise Unauthorized("Invalid token")
        return claims
