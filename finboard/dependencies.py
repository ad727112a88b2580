"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException

from finboard.auth import AuthClient, InMemoryAuthClient, SupabaseAuthClient
from finboard.billing import BillingClient, InMemoryBillingClient, StripeBillingClient
from finboard.config import get_settings
from finboard.db import DbClient, InMemoryDbClient, PostgresDbClient

_db_client: DbClient | None = None
_billing_client: BillingClient | None = None
_auth_client: AuthClient | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_billing_client() -> BillingClient:
    global _billing_client
    if _billing_client:
        return _billing_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.stripe_secret_key:
        _billing_client = InMemoryBillingClient()
    else:
        _billing_client = StripeBillingClient(
            api_key=settings.stripe_secret_key,
            api_base=settings.stripe_api_base,
        )
    return _billing_client


def get_auth_client() -> AuthClient:
    global _auth_client
    if _auth_client:
        return _auth_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.supabase_url:
        _auth_client = InMemoryAuthClient()
    else:
        _auth_client = SupabaseAuthClient(
            url=settings.supabase_url,
            anon_key=settings.supabase_anon_key or "",
        )
    return _auth_client


def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None),
) -> str:
    """Identify the caller from the ``X-User-Id`` header set by the session layer."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="User not authenticated")
    return x_user_id
