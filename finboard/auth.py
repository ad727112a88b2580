"""
Hosted auth client used by the sign-in callback.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol
from urllib.parse import urljoin, urlsplit

import requests

REQUEST_TIMEOUT = 30  # seconds
DEFAULT_REDIRECT = "/dashboard"
SIGN_IN_ERROR_PATH = "/sign-in?error=Authentication%20failed"


class AuthExchangeError(Exception):
    """Raised when an authorization code cannot be exchanged for a session."""


class AuthClient(Protocol):
    def exchange_code_for_session(
        self, code: str, code_verifier: Optional[str] = None
    ) -> dict:
        ...


@dataclass
class InMemoryAuthClient:
    """Test double that accepts every code except those listed as rejected."""

    rejected_codes: set = field(default_factory=set)
    exchanged: list = field(default_factory=list)

    def exchange_code_for_session(
        self, code: str, code_verifier: Optional[str] = None
    ) -> dict:
        if code in self.rejected_codes:
            raise AuthExchangeError(f"Invalid code: {code}")
        self.exchanged.append((code, code_verifier))
        return {"access_token": f"token-{code}", "token_type": "bearer"}


class SupabaseAuthClient:
    """Exchanges PKCE codes against the hosted auth REST endpoint."""

    def __init__(
        self, url: str, anon_key: str, session: Optional[requests.Session] = None
    ):
        if not url:
            raise ValueError("SUPABASE_URL is required for SupabaseAuthClient")
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.session = session or requests.Session()

    def exchange_code_for_session(
        self, code: str, code_verifier: Optional[str] = None
    ) -> dict:
        try:
            response = self.session.post(
                f"{self.url}/auth/v1/token",
                params={"grant_type": "pkce"},
                headers={"apikey": self.anon_key},
                json={"auth_code": code, "code_verifier": code_verifier},
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise AuthExchangeError("Code exchange failed") from exc
        return response.json()


def resolve_redirect(origin: str, target: Optional[str]) -> str:
    """
    Resolve ``target`` against ``origin``. Malformed targets and targets that
    land on another host fall back to the dashboard.
    """
    fallback = urljoin(origin + "/", DEFAULT_REDIRECT)
    try:
        resolved = urljoin(origin + "/", target or DEFAULT_REDIRECT)
        if urlsplit(resolved).netloc != urlsplit(origin).netloc:
            return fallback
    except ValueError:
        return fallback
    return resolved
