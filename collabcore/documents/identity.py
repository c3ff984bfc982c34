"""
collabcore Identity Resolution — actor id -> display name/email.

Resolvers are display enrichment only: a failed lookup degrades to the raw
actor id and never fails a write or a history read.

    StaticIdentityResolver — dict-backed (tests, fixtures, CLI)
    HttpIdentityResolver   — GET {base_url}/users/{actor_id} via httpx
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Mapping, Optional, Protocol

import httpx
from pydantic import BaseModel

from collabcore.engine.errors import IdentityLookupError

logger = logging.getLogger("collabcore.documents.identity")


class Identity(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class IdentityResolver(Protocol):
    def resolve(self, actor_id: str) -> Identity: ...


def display_name(actor_id: str, name: Optional[str] = None, email: Optional[str] = None) -> str:
    """Display priority: name, then email, then the raw id."""
    return name or email or actor_id


class NullIdentityResolver:
    """Resolves nothing; every actor displays as its raw id."""

    def resolve(self, actor_id: str) -> Identity:
        return Identity()


class StaticIdentityResolver:
    """Resolves from a fixed mapping of actor_id -> {name, email}."""

    def __init__(self, identities: Optional[Mapping[str, Any]] = None):
        self._identities: Dict[str, Identity] = {}
        for actor_id, value in (identities or {}).items():
            self._identities[actor_id] = value if isinstance(value, Identity) else Identity(**value)

    def resolve(self, actor_id: str) -> Identity:
        return self._identities.get(actor_id, Identity())


class HttpIdentityResolver:
    """
    Identity lookups against a user-directory HTTP API.

    Expects ``GET {base_url}/users/{actor_id}`` to return JSON with optional
    ``name`` (or ``full_name``) and ``email`` keys. Results, including
    misses, are cached for the resolver's lifetime.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        api_token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self._client = client or httpx.Client(
            base_url=base_url, timeout=timeout, headers=headers, transport=transport,
        )
        self._cache: Dict[str, Identity] = {}
        self._lock = threading.Lock()

    def resolve(self, actor_id: str) -> Identity:
        with self._lock:
            cached = self._cache.get(actor_id)
        if cached is not None:
            return cached

        try:
            identity = self.fetch(actor_id)
        except IdentityLookupError as e:
            logger.warning(f"Identity lookup failed for {actor_id}: {e.message}")
            return Identity()

        with self._lock:
            self._cache[actor_id] = identity
        return identity

    def fetch(self, actor_id: str) -> Identity:
        """
        Uncached lookup.

        Raises:
            IdentityLookupError: transport failure or non-2xx/404 response.
        """
        try:
            response = self._client.get(f"/users/{actor_id}")
        except httpx.HTTPError as e:
            raise IdentityLookupError(
                f"Identity service unreachable: {e}",
                actor_id=actor_id,
                operation="identity_lookup",
            ) from e

        if response.status_code == 404:
            return Identity()
        if response.is_error:
            raise IdentityLookupError(
                f"Identity service returned {response.status_code}",
                actor_id=actor_id,
                operation="identity_lookup",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise IdentityLookupError(
                "Identity service returned invalid JSON",
                actor_id=actor_id,
                operation="identity_lookup",
            ) from e
        if not isinstance(data, dict):
            return Identity()
        return Identity(name=data.get("name") or data.get("full_name"), email=data.get("email"))

    def close(self) -> None:
        self._client.close()
