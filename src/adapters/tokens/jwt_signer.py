"""
JWT token signer - Implements TokenSigner protocol with PyJWT.

Access and refresh credentials are signed with separate HS256 secrets
and carry a ``typ`` claim, so a refresh token can never be presented as
an access token. A random ``jti`` keeps credentials minted in the same
second for the same account distinct.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from src.domain.exceptions import TokenExpired, TokenMalformed
from src.domain.models import IssuedToken, TokenClaims

_ALGORITHM = "HS256"


class JwtTokenSigner:
    """
    Implements TokenSigner protocol via PyJWT.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(
        self,
        *,
        access_secret: str,
        refresh_secret: str,
        issuer: str,
        access_ttl_seconds: int,
        refresh_ttl_seconds: int,
    ) -> None:
        self._secrets = {"access": access_secret, "refresh": refresh_secret}
        self._ttls = {"access": access_ttl_seconds, "refresh": refresh_ttl_seconds}
        self._issuer = issuer

    def issue(self, subject: str, token_type: str, issued_at: datetime) -> IssuedToken:
        """Create a signed JWT for ``subject``; expiry is ``issued_at`` plus the type's TTL."""
        expires_at = issued_at + timedelta(seconds=self._ttls[token_type])
        payload: dict[str, Any] = {
            "iss": self._issuer,
            "sub": subject,
            "typ": token_type,
            "jti": uuid.uuid4().hex,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(payload, self._secrets[token_type], algorithm=_ALGORITHM)
        return IssuedToken(token=token, expires_at=expires_at)

    def verify(self, token: str, token_type: str) -> TokenClaims:
        """
        Decode and verify a JWT.

        Raises:
            TokenExpired: ``exp`` is in the past
            TokenMalformed: Bad signature, issuer, structure or token type
        """
        try:
            payload = jwt.decode(
                token,
                self._secrets[token_type],
                algorithms=[_ALGORITHM],
                issuer=self._issuer,
                options={"require": ["exp", "iat", "sub", "iss"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except jwt.PyJWTError as exc:
            raise TokenMalformed() from exc

        if payload.get("typ") != token_type:
            raise TokenMalformed()
        return TokenClaims(
            subject=payload["sub"],
            token_type=payload["typ"],
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
