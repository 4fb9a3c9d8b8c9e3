"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Access tokens arrive as "Authorization: Bearer <token>". Only tokens of kind
"access" are accepted; a refresh token presented here is MalformedToken.

get_current_account() raises: HTTP 401 when no token was sent, the typed
MalformedToken / ExpiredToken otherwise, and HTTP 401 when the account has
vanished or been deactivated since the token was minted.

Layer rule: auth/dependencies.py may import from fastapi (for
Depends/HTTPException/Request) because this module is part of the FastAPI
dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Account
from auth.store import AccountStore
from auth.tokens import TokenIssuer


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def _resolve(request: Request, token: str) -> Account | None:
    issuer: TokenIssuer = request.app.state.token_issuer
    accounts: AccountStore = request.app.state.accounts
    claims = issuer.decode_access(token)
    account = accounts.get_by_id(claims.identity_id)
    if account and account.is_active:
        return account
    return None


def get_current_account(request: Request) -> Account:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(account: Account = Depends(get_current_account)): ...
    """
    token = _bearer_token(request)
    if not token:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    account = _resolve(request, token)
    if account is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return account
