"""Validation of GitHub Actions OIDC tokens presented by CI callers.

A token is trusted only when:

- it is signed (RS256) by a key published at the issuer's JWKS endpoint
- it is inside its validity window (``exp`` / ``nbf`` / ``iat``)
- ``iss``, ``aud``, ``repository_owner`` and ``repository`` equal the configured
  :class:`~workflow_automation.auth.credentials.TrustAnchor`

Verification keys are cached by key id with a TTL so a burst of requests does not
hit the JWKS endpoint once per request.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import jwt
import requests

from workflow_automation.auth.credentials import TrustAnchor
from workflow_automation.errors import (
    ClaimMismatch,
    KeyFetchFailed,
    SignatureInvalid,
    TokenExpired,
)

logger = logging.getLogger(__name__)

OIDC_ALGORITHMS = ["RS256"]
_REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud", "sub", "repository", "repository_owner"]


@dataclass(frozen=True, slots=True)
class CallerIdentity:
    """Verified claims of a trusted caller."""

    issuer: str
    audience: str
    repository_owner: str
    repository: str
    subject: str
    claims: Mapping[str, Any] = field(default_factory=dict, repr=False)

    @property
    def repository_name(self) -> str:
        """Repository name without the owner prefix."""

        return self.repository.split("/", 1)[-1]


class _InflightFetch:
    """A key-set fetch shared by every lookup that missed while it runs."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.error: KeyFetchFailed | None = None


class JwksCache:
    """Verification keys from a JWKS endpoint, keyed by ``kid``.

    A stale cache refetches the whole key set; keys that disappeared from the
    endpoint (rotated out) are dropped on refetch. An unknown ``kid`` on a fresh
    cache refetches at most once per ``miss_refetch_interval_seconds``; inside that
    window it is rejected without a network call.

    The lock only guards the cached state. The fetch itself runs outside it, so
    lookups of cached keys never wait on the endpoint, and concurrent misses share
    one in-flight fetch.
    """

    def __init__(
        self,
        *,
        jwks_url: str,
        ttl_seconds: float = 300.0,
        miss_refetch_interval_seconds: float = 60.0,
        timeout_seconds: float = 30.0,
        session_factory: Callable[[], requests.Session] = requests.Session,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        if miss_refetch_interval_seconds < 0:
            raise ValueError("miss_refetch_interval_seconds must be >= 0")
        self._jwks_url = jwks_url
        self._ttl_seconds = ttl_seconds
        self._miss_refetch_interval_seconds = miss_refetch_interval_seconds
        self._timeout_seconds = timeout_seconds
        self._session_factory = session_factory
        self._clock = clock

        self._lock = threading.Lock()
        self._keys: dict[str, jwt.PyJWK] = {}
        self._fetched_at: float | None = None
        self._last_miss_refetch_at: float | None = None
        self._inflight: _InflightFetch | None = None

    def _is_fresh(self) -> bool:
        if self._fetched_at is None:
            return False
        return (self._clock() - self._fetched_at) < self._ttl_seconds

    def _miss_refetch_allowed(self) -> bool:
        if self._last_miss_refetch_at is None:
            return True
        elapsed = self._clock() - self._last_miss_refetch_at
        return elapsed >= self._miss_refetch_interval_seconds

    def get_signing_key(self, kid: str) -> jwt.PyJWK:
        """Return the key for ``kid``, refetching on a stale cache or a permitted miss.

        Raises:
            KeyFetchFailed: if the key set could not be retrieved.
            SignatureInvalid: if ``kid`` is unknown after a refetch, or a refetch
                for an unknown ``kid`` is not permitted yet.
        """

        with self._lock:
            key = self._keys.get(kid)
            fresh = self._is_fresh()
            if key is not None and fresh:
                return key

            fetch = self._inflight
            leader = fetch is None
            if leader:
                if fresh and not self._miss_refetch_allowed():
                    raise SignatureInvalid(f"Token signed by unrecognised key id {kid!r}")
                if fresh:
                    self._last_miss_refetch_at = self._clock()
                fetch = self._inflight = _InflightFetch()

        if leader:
            self._run_fetch(fetch)
        else:
            fetch.done.wait()

        if fetch.error is not None:
            raise KeyFetchFailed(str(fetch.error)) from fetch.error

        with self._lock:
            key = self._keys.get(kid)
        if key is None:
            raise SignatureInvalid(f"Token signed by unrecognised key id {kid!r}")
        return key

    def _run_fetch(self, fetch: _InflightFetch) -> None:
        try:
            keys = self._fetch_keys()
        except KeyFetchFailed as e:
            fetch.error = e
        else:
            with self._lock:
                self._keys = keys
                self._fetched_at = self._clock()
        finally:
            with self._lock:
                self._inflight = None
            fetch.done.set()

    def clear(self) -> None:
        with self._lock:
            self._keys = {}
            self._fetched_at = None
            self._last_miss_refetch_at = None

    def _fetch_keys(self) -> dict[str, jwt.PyJWK]:
        session = self._session_factory()
        try:
            resp = session.get(self._jwks_url, timeout=self._timeout_seconds)
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(
                "Failed to fetch OIDC verification keys",
                extra={"jwks_url": self._jwks_url, "error": str(e)},
            )
            raise KeyFetchFailed(f"Unable to fetch verification keys: {e}") from e
        finally:
            session.close()

        if not isinstance(payload, dict):
            raise KeyFetchFailed("Unexpected JWKS response: not an object")
        try:
            key_set = jwt.PyJWKSet.from_dict(payload)
        except jwt.PyJWTError as e:
            raise KeyFetchFailed(f"Unexpected JWKS response: {e}") from e

        keys = {k.key_id: k for k in key_set.keys if k.key_id}
        logger.info(
            "Fetched OIDC verification keys",
            extra={"jwks_url": self._jwks_url, "key_count": len(keys)},
        )
        return keys


class IdentityValidator:
    """Verify inbound OIDC tokens against a fixed trust anchor."""

    def __init__(self, *, anchor: TrustAnchor, keys: JwksCache, leeway_seconds: int = 0) -> None:
        self._anchor = anchor
        self._keys = keys
        self._leeway_seconds = leeway_seconds

    @property
    def anchor(self) -> TrustAnchor:
        return self._anchor

    def validate(self, token: str) -> CallerIdentity:
        """Return the verified caller identity or raise an :class:`AuthError` subclass."""

        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as e:
            raise SignatureInvalid(f"Malformed token: {e}") from e

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise SignatureInvalid("Token header has no key id")

        signing_key = self._keys.get_signing_key(kid)

        try:
            claims: dict[str, Any] = jwt.decode(
                token,
                key=signing_key.key,
                algorithms=OIDC_ALGORITHMS,
                audience=self._anchor.audience,
                issuer=self._anchor.issuer,
                leeway=self._leeway_seconds,
                options={"require": _REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpired(f"Token expired: {e}") from e
        except jwt.ImmatureSignatureError as e:
            raise TokenExpired(f"Token not yet valid: {e}", not_yet_valid=True) from e
        except jwt.InvalidAudienceError as e:
            raise ClaimMismatch("aud", f"Audience mismatch: {e}") from e
        except jwt.InvalidIssuerError as e:
            raise ClaimMismatch("iss", f"Issuer mismatch: {e}") from e
        except jwt.MissingRequiredClaimError as e:
            raise ClaimMismatch(e.claim, f"Missing required claim: {e.claim}") from e
        except jwt.PyJWTError as e:
            raise SignatureInvalid(f"Token verification failed: {e}") from e

        self._check_repository_claims(claims)

        aud = claims.get("aud")
        identity = CallerIdentity(
            issuer=str(claims["iss"]),
            audience=self._anchor.audience if isinstance(aud, list) else str(aud),
            repository_owner=str(claims["repository_owner"]),
            repository=str(claims["repository"]),
            subject=str(claims["sub"]),
            claims=claims,
        )
        logger.info(
            "Caller identity verified",
            extra={"repository": identity.repository, "subject": identity.subject},
        )
        return identity

    def _check_repository_claims(self, claims: Mapping[str, Any]) -> None:
        if claims.get("repository_owner") != self._anchor.repository_owner:
            raise ClaimMismatch("repository_owner")
        if claims.get("repository") != self._anchor.repository:
            raise ClaimMismatch("repository")
