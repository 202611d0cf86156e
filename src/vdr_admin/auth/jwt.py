"""
vdr_admin.auth.jwt

Bearer tokens for dashboard sessions.

Responsibilities:
- Sign a token naming the user and the server-side session after login.
- Verify a presented token and turn it into a `Principal`.

Note:
- The token is a pointer, not a credential store: document-server passwords
  stay inside the session's client and never appear in a claim.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
from jwt import InvalidTokenError

from vdr_admin.auth.models import Principal, RoleTier
from vdr_admin.settings import Settings

_REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud", "sub", "sid"]


class SessionTokenError(Exception):
    pass


@dataclass(frozen=True, slots=True)
class SessionTokenCodec:
    alg: str
    issuer: str
    audience: str
    secret: str
    ttl: timedelta

    @classmethod
    def from_settings(cls, settings: Settings) -> SessionTokenCodec:
        return cls(
            alg=settings.jwt_alg,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            secret=settings.jwt_secret,
            ttl=timedelta(minutes=settings.session_ttl_minutes),
        )

    def issue(self, *, subject: str, session_id: str, tier: RoleTier) -> str:
        issued_at = datetime.now(tz=UTC)
        claims = {
            "iss": self.issuer,
            "aud": self.audience,
            "sub": subject,
            "sid": session_id,
            "tier": tier.value,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.ttl).timestamp()),
        }
        return jwt.encode(claims, self.secret, algorithm=self.alg)

    def verify(self, token: str) -> Principal:
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.alg],
                issuer=self.issuer,
                audience=self.audience,
                options={"require": _REQUIRED_CLAIMS},
            )
        except InvalidTokenError as e:
            raise SessionTokenError(str(e)) from e

        subject, session_id = claims["sub"], claims["sid"]
        if not isinstance(subject, str) or not isinstance(session_id, str) or not subject or not session_id:
            raise SessionTokenError("sub and sid must be non-empty strings")
        try:
            tier = RoleTier(claims.get("tier", RoleTier.standard.value))
        except ValueError as e:
            raise SessionTokenError(f"unknown tier claim {claims.get('tier')!r}") from e
        return Principal(subject=subject, session_id=session_id, tier_at_login=tier)


# --- Module Notes -----------------------------------------------------------
# The `tier` claim is what the user held at login and is shown only; every
# authorization decision uses the live capability set of the session.
