"""Process-wide store of access and refresh tokens.

Entries are keyed by ``"{client_id}-{canonical resource}"``. Resource strings
are canonicalized once here (trimmed, GUID aliases mapped to their URI), so
callers may use either form. Writes are serialized by a lock; reads work on a
snapshot of the mapping.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from entrabroker.errors import GrantError, NoCachedToken, WrongAudience
from entrabroker.interfaces import Refresher
from entrabroker.tokens import codec
from entrabroker.tokens.foci import FociRegistry
from entrabroker.tokens.resources import (
    cache_key,
    canonical_resource,
    resource_id,
    same_audience,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    client_id: str
    resource: str
    access_token: str
    refresh_token: str | None = None
    sub_scope: str | None = None

    @property
    def key(self) -> str:
        return cache_key(self.client_id, self.resource)


class TokenCache:
    """In-memory token cache with refresh-on-expiry and FOCI fallback.

    Args:
        refresher: Used to renew expired entries and for FOCI fallback.
            Without one, expired entries raise :class:`NoCachedToken`.
        foci: Family classification used by the fallback search.
        skew: Seconds subtracted from ``exp`` when checking expiry.
        clock: Returns the current unix time.
    """

    def __init__(
        self,
        refresher: Refresher | None = None,
        foci: FociRegistry | None = None,
        skew: int = 0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.refresher = refresher
        self.foci = foci or FociRegistry()
        self.skew = skew
        self.clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def entries(self) -> dict[str, CacheEntry]:
        """Return a snapshot of the cache."""
        return dict(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def put(
        self,
        client_id: str,
        resource: str,
        access_token: str,
        refresh_token: str | None = None,
        *,
        sub_scope: str | None = None,
    ) -> CacheEntry:
        """Store a token pair, replacing any entry with the same key.

        ``sub_scope`` records the login host the pair was obtained from so
        that renewals go back to the same cloud.
        """
        entry = CacheEntry(
            client_id=client_id.strip().lower(),
            resource=canonical_resource(resource),
            access_token=access_token,
            refresh_token=refresh_token,
            sub_scope=sub_scope,
        )
        with self._lock:
            self._entries[entry.key] = entry
        logger.info("Cached token under %s", entry.key)
        return entry

    def _find(self, client_id: str | None, resource: str) -> CacheEntry | None:
        snapshot = self.entries()
        if client_id:
            return snapshot.get(cache_key(client_id, resource))

        target = canonical_resource(resource)
        for entry in snapshot.values():
            if entry.resource.lower() == target.lower():
                logger.debug("Exact resource match %s", entry.key)
                return entry

        target_id = resource_id(resource)
        if target_id is not None:
            for entry in snapshot.values():
                if resource_id(entry.resource) == target_id:
                    logger.debug("Resource alias match %s", entry.key)
                    return entry
        return None

    def _renew(self, entry: CacheEntry, client_id: str, resource: str) -> CacheEntry:
        if self.refresher is None:
            raise NoCachedToken(f"Cached token {entry.key} cannot be refreshed")
        claims = codec.parse(entry.access_token)
        result = self.refresher.refresh(
            resource,
            client_id,
            entry.refresh_token,
            claims.tenant_id or "common",
            sub_scope=entry.sub_scope,
        )
        return self.put(
            client_id,
            resource,
            result.access_token,
            result.refresh_token or entry.refresh_token,
            sub_scope=entry.sub_scope,
        )

    def _foci_fallback(self, client_id: str | None, resource: str) -> CacheEntry | None:
        if self.refresher is None:
            return None
        if client_id and not self.foci.is_family(client_id):
            return None
        last_error: GrantError | None = None
        for entry in self.entries().values():
            if not entry.refresh_token or not self.foci.is_family(entry.client_id):
                continue
            target_client = client_id or entry.client_id
            logger.info(
                "Using family refresh token of %s for client %s and resource %s",
                entry.client_id,
                target_client,
                resource,
            )
            try:
                return self._renew(entry, target_client, resource)
            except GrantError as exc:
                logger.warning(
                    "Family refresh token of %s was rejected: %s", entry.client_id, exc
                )
                last_error = exc
        if last_error is not None:
            raise NoCachedToken(
                f"Every cached family refresh token was rejected for {resource}"
            ) from last_error
        return None

    def get(
        self,
        resource: str,
        client_id: str | None = None,
        *,
        access_token: str | None = None,
        allow_force_override_of_audience_check: bool = False,
    ) -> str:
        """Return a valid access token for ``resource``.

        Lookup order without ``client_id``: exact resource match, resource id
        alias match, FOCI refresh token exchange. With ``client_id`` only the
        exact key is used, then the FOCI exchange if the client is a family
        member. Expired entries are refreshed and the cache updated; an
        expired entry without a refresh token goes to the FOCI exchange.

        Args:
            resource: Resource URI or resource id.
            client_id: Restrict the lookup to this client.
            access_token: Validate and return this token instead of looking up.
            allow_force_override_of_audience_check: Accept ``access_token``
                even if it was issued for another audience.

        Raises:
            WrongAudience: ``access_token`` has a different audience.
            NoCachedToken: Nothing usable is cached.
        """
        if access_token:
            claims = codec.parse(access_token)
            if not same_audience(claims.audience, resource):
                if not allow_force_override_of_audience_check:
                    raise WrongAudience(canonical_resource(resource), claims.audience)
                logger.warning(
                    "Using token for %s although %s was requested",
                    claims.audience,
                    resource,
                )
            return access_token

        entry = self._find(client_id, resource)
        if entry is None:
            entry = self._foci_fallback(client_id, resource)
            if entry is None:
                raise NoCachedToken(
                    f"No token cached for {client_id or 'any client'} and {resource}"
                )
            return entry.access_token

        if self._is_expired(entry):
            if not entry.refresh_token:
                fallback = self._foci_fallback(client_id, resource)
                if fallback is None:
                    raise NoCachedToken(f"Cached token {entry.key} expired")
                return fallback.access_token
            logger.info("Cached token %s expired, refreshing", entry.key)
            entry = self._renew(entry, entry.client_id, entry.resource)
        return entry.access_token

    def _is_expired(self, entry: CacheEntry) -> bool:
        claims = codec.parse(entry.access_token)
        return codec.is_expired(claims, self.skew, now=self.clock())

    def get_refresh_token(
        self,
        client_id: str | None = None,
        resource: str | None = None,
        *,
        access_token: str | None = None,
    ) -> str | None:
        """Return the cached refresh token.

        Either pass ``client_id`` and ``resource``, or an ``access_token``
        whose own ``appid``/``aud`` claims select the entry.
        """
        if access_token:
            claims = codec.parse(access_token)
            client_id, resource = claims.client_id, claims.audience
        if not client_id or not resource:
            raise NoCachedToken("client_id and resource are required")
        entry = self.entries().get(cache_key(client_id, resource))
        return entry.refresh_token if entry else None
