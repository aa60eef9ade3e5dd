"""Credential exchange: caller OIDC validation, app JWT minting, installation tokens."""

from __future__ import annotations

from workflow_automation.auth.assertion import SignedAssertion, mint
from workflow_automation.auth.credentials import AutomationCredentials, TrustAnchor
from workflow_automation.auth.exchange import ScopedAccessToken, TokenExchanger
from workflow_automation.auth.oidc import CallerIdentity, IdentityValidator, JwksCache

__all__ = [
    "AutomationCredentials",
    "CallerIdentity",
    "IdentityValidator",
    "JwksCache",
    "ScopedAccessToken",
    "SignedAssertion",
    "TokenExchanger",
    "TrustAnchor",
    "mint",
]
