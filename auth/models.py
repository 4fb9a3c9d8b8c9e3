"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these only own the shape.

Role is the single shared enumeration for accounts, passcodes and token
claims. Nothing else in the project spells "CITIZEN" or "OPERATOR".

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    CITIZEN = "CITIZEN"
    OPERATOR = "OPERATOR"


@dataclass
class Account:
    """An identity that can log in.

    The mobile number is the primary contact address: OTPs go there and it is
    the token subject. email is optional and stored lowercase so password
    login by email is case-insensitive.

    is_active starts False for self-registered citizens and flips to True once
    the mobile number is verified with an OTP.
    """

    mobile_number: str
    role: Role
    id: Optional[int] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    hashed_password: Optional[str] = None
    is_active: bool = False
    is_mobile_verified: bool = False
    created_at: Optional[str] = None

    @property
    def contact(self) -> str:
        return self.mobile_number


@dataclass
class Challenge:
    """A typed CAPTCHA. used flips False -> True once and never back."""

    challenge_id: str
    text: str
    created_at: float
    expires_at: float
    is_used: bool = False
    origin: Optional[str] = None  # client IP, best effort
    id: Optional[int] = None


@dataclass
class Passcode:
    """A one-time numeric code bound to (contact, role)."""

    contact: str
    role: Role
    code: str
    created_at: float
    expires_at: float
    is_used: bool = False
    id: Optional[int] = None


@dataclass(frozen=True)
class TokenClaims:
    """Decoded JWT payload. role is None for refresh tokens."""

    identity_id: int
    sub: str
    kind: str  # "access" or "refresh"
    issued_at: int
    expires_at: int
    role: Optional[Role] = None


@dataclass(frozen=True)
class AuthSession:
    """What a successful login or refresh hands back to the caller."""

    access_token: str
    refresh_token: str
    identity_id: int
    role: Role
    contact: str
    expires_in: int
    email: Optional[str] = None
