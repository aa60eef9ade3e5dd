"""GitHub App JWT minting.

GitHub App JWTs are valid for at most 10 minutes. We backdate ``iat`` by 60 seconds
to tolerate clock drift between this host and GitHub.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

import jwt

from workflow_automation.auth.credentials import AutomationCredentials
from workflow_automation.errors import MalformedKey

JWT_ALGORITHM = "RS256"
CLOCK_DRIFT_SECONDS = 60
VALIDITY_SECONDS = 600


@dataclass(frozen=True, slots=True)
class SignedAssertion:
    """A freshly minted app JWT. Never cached or reused across requests."""

    token: str = field(repr=False)
    issued_at: int
    expires_at: int


def build_claims(credentials: AutomationCredentials, now: int) -> dict[str, object]:
    return {
        "iat": now - CLOCK_DRIFT_SECONDS,
        "exp": now + VALIDITY_SECONDS,
        "iss": credentials.client_id,
    }


def mint(credentials: AutomationCredentials, now: int | None = None) -> SignedAssertion:
    """Sign an app assertion for ``credentials`` at instant ``now`` (epoch seconds).

    Raises:
        MalformedKey: if the private key cannot be loaded as an RSA signing key.
    """

    if now is None:
        now = int(time.time())

    claims = build_claims(credentials, now)
    try:
        token = jwt.encode(claims, credentials.private_key, algorithm=JWT_ALGORITHM)
    except (ValueError, TypeError, jwt.PyJWTError) as e:
        # Don't chain the message: key parsing errors can echo key material.
        raise MalformedKey(f"Unable to sign app assertion: {type(e).__name__}") from None

    return SignedAssertion(
        token=token,
        issued_at=now - CLOCK_DRIFT_SECONDS,
        expires_at=now + VALIDITY_SECONDS,
    )
