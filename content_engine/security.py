"""
Security utilities for the content engine API.

API key authentication and per-key rate limiting with a dev mode bypass,
plus the shared-secret check for provider webhooks.
"""

import hmac
import time
from collections import defaultdict
from typing import Optional

from fastapi import HTTPException, Header, Depends, Query

from content_engine.config import config


# Simple in-memory rate limiter (per API key)
_rate_limit_store: dict[str, list[float]] = defaultdict(list)


def get_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    authorization: Optional[str] = Header(None)
) -> Optional[str]:
    """
    Extract API key from headers.
    Supports both X-API-Key header and Bearer token.
    """
    if x_api_key:
        return x_api_key

    if authorization and authorization.startswith("Bearer "):
        return authorization[7:]

    return None


def _check_rate_limit(api_key: str):
    now = time.time()
    window_start = now - 60

    _rate_limit_store[api_key] = [
        t for t in _rate_limit_store[api_key] if t > window_start
    ]

    if len(_rate_limit_store[api_key]) >= config.RATE_LIMIT_PER_MINUTE:
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Max {config.RATE_LIMIT_PER_MINUTE} requests per minute."
        )

    _rate_limit_store[api_key].append(now)


async def verify_api_key(api_key: Optional[str] = Depends(get_api_key)) -> str:
    """
    Verify API key authentication.

    In dev mode with no API keys configured, authentication is bypassed.
    Returns the API key (or "dev" if bypassed).
    """
    if not config.auth_required:
        return "dev"

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="API key required. Provide X-API-Key header or Bearer token.",
            headers={"WWW-Authenticate": "Bearer"}
        )

    if api_key not in config.api_keys_list:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key"
        )

    if config.RATE_LIMIT_PER_MINUTE > 0:
        _check_rate_limit(api_key)

    return api_key


async def verify_webhook_token(token: Optional[str] = Query(None)) -> None:
    """
    Check the ?token= shared secret on provider webhooks.

    No-op when WEBHOOK_SECRET is not set.
    """
    secret = config.WEBHOOK_SECRET
    if not secret:
        return

    if not token or not hmac.compare_digest(token, secret):
        raise HTTPException(status_code=401, detail="Invalid webhook token")


def reset_rate_limits():
    """Forget all rate limit windows."""
    _rate_limit_store.clear()


# Convenience dependency for routes that require auth
require_auth = Depends(verify_api_key)
