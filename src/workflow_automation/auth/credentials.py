"""Immutable credential and trust-anchor values.

Both are built once at startup from :class:`workflow_automation.config.AutomationSettings`
and passed by reference into the components that need them.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class AutomationCredentials:
    """Long-lived GitHub App identity used to mint app assertions."""

    client_id: str
    installation_id: str
    app_id: str
    private_key: str = field(repr=False)
    client_secret: str = field(default="", repr=False)


@dataclass(frozen=True, slots=True)
class TrustAnchor:
    """Claims an inbound OIDC token must carry to be trusted."""

    issuer: str
    audience: str
    repository_owner: str
    repository: str

    @property
    def jwks_url(self) -> str:
        return f"{self.issuer.rstrip('/')}/.well-known/jwks"
