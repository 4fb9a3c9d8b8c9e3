"""
auth/tokens.py -- JWT issuance/validation and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Two token kinds share one signing key:
       access  {sub, identity_id, role, kind="access"}   short TTL
       refresh {sub, identity_id, kind="refresh"}        long TTL
       The kind claim is checked on every decode so a refresh token can never
       be replayed as an access token and vice versa. Tokens are stateless:
       validity is signature + embedded exp, nothing is stored server-side.

  Signing key: the configured secret as UTF-8 bytes. Secrets shorter than
       32 bytes are right-padded with zero bytes up to 32 -- never truncated,
       so the HMAC key is always at least 256 bits long.

  Expiry: python-jose's own exp check reads the wall clock. It is disabled
       and exp is compared against the issuer's injected clock instead, so
       expiry boundaries are testable without sleeping.

  Passwords: bcrypt directly. _DUMMY_HASH enables timing equalization in the
       credential verifier so response time does not reveal whether a
       username exists.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import bcrypt
from jose import JWTError, jwt

from auth.models import Role, TokenClaims
from core.config import MIN_SECRET_BYTES, Settings
from core.errors import ExpiredToken, MalformedToken

logger = logging.getLogger("credgate.auth")

_ALGORITHM = "HS256"

ACCESS = "access"
REFRESH = "refresh"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("credgate_timing_dummy")


def equalize_timing(plain: str) -> None:
    """Spend one bcrypt verification on a dummy hash. Result is irrelevant."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Signing key
# ---------------------------------------------------------------------------


def signing_key(secret: str) -> bytes:
    """Return the HS256 key for secret, zero-padded to 32 bytes when shorter."""
    raw = secret.encode("utf-8")
    if len(raw) < MIN_SECRET_BYTES:
        raw = raw.ljust(MIN_SECRET_BYTES, b"\x00")
    return raw


# ---------------------------------------------------------------------------
# Issuer
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Mint and validate access/refresh tokens.

    Usage:
        issuer = TokenIssuer.from_settings(get_settings())
        token = issuer.mint_access(42, "9876543210", Role.CITIZEN)
        claims = issuer.decode_access(token)
    """

    def __init__(
        self,
        secret: str,
        access_ttl: int = 3600,
        refresh_ttl: int = 604800,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("Token signing secret must not be empty.")
        self._key = signing_key(secret)
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], float] = time.time) -> "TokenIssuer":
        return cls(
            settings.secret_key,
            access_ttl=settings.access_token_expire_seconds,
            refresh_ttl=settings.refresh_token_expire_seconds,
            clock=clock,
        )

    def _mint(self, claims: dict[str, Any], ttl: int) -> str:
        issued_at = int(self._clock())
        payload = {**claims, "iat": issued_at, "exp": issued_at + ttl}
        return jwt.encode(payload, self._key, algorithm=_ALGORITHM)

    def mint_access(self, identity_id: int, contact: str, role: Role) -> str:
        return self._mint(
            {"sub": contact, "identity_id": identity_id, "role": Role(role).value, "kind": ACCESS},
            self.access_ttl,
        )

    def mint_refresh(self, identity_id: int, contact: str) -> str:
        return self._mint({"sub": contact, "identity_id": identity_id, "kind": REFRESH}, self.refresh_ttl)

    def claims(self, token: Optional[str]) -> TokenClaims:
        """Check signature and structure only. Expiry is NOT checked here.

        Raises MalformedToken on a bad signature, a non-JWT string or missing
        or mistyped claims.
        """
        if not token:
            raise MalformedToken()
        try:
            payload = jwt.decode(
                token,
                self._key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise MalformedToken(detail=str(exc)) from exc

        identity_id = payload.get("identity_id")
        sub = payload.get("sub")
        kind = payload.get("kind")
        iat = payload.get("iat")
        exp = payload.get("exp")
        if (
            not isinstance(identity_id, int)
            or not isinstance(sub, str)
            or kind not in (ACCESS, REFRESH)
            or not isinstance(iat, int)
            or not isinstance(exp, int)
        ):
            raise MalformedToken(detail="missing or invalid claims")

        role: Optional[Role] = None
        if kind == ACCESS:
            try:
                role = Role(payload.get("role"))
            except ValueError as exc:
                raise MalformedToken(detail="invalid role claim") from exc

        return TokenClaims(
            identity_id=identity_id,
            sub=sub,
            kind=kind,
            issued_at=iat,
            expires_at=exp,
            role=role,
        )

    def _decode_kind(self, token: Optional[str], kind: str) -> TokenClaims:
        claims = self.claims(token)
        if claims.kind != kind:
            raise MalformedToken(f"Not a{'n' if kind == ACCESS else ''} {kind} token.")
        if claims.expires_at <= self._clock():
            raise ExpiredToken()
        return claims

    def decode_access(self, token: Optional[str]) -> TokenClaims:
        return self._decode_kind(token, ACCESS)

    def decode_refresh(self, token: Optional[str]) -> TokenClaims:
        return self._decode_kind(token, REFRESH)

    def verify_refresh(self, token: Optional[str]) -> bool:
        """True iff signature checks, kind is "refresh" and exp is in the future."""
        try:
            self.decode_refresh(token)
        except (MalformedToken, ExpiredToken):
            return False
        return True
