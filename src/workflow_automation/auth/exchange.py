"""Exchange of an app assertion for an installation access token."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import requests

from workflow_automation.auth.assertion import SignedAssertion
from workflow_automation.errors import (
    ExchangeRequestFailed,
    MalformedResponse,
    UpstreamRejected,
)

logger = logging.getLogger(__name__)

USER_AGENT = "workflow-automation"
GITHUB_API_VERSION = "2022-11-28"


def github_headers(bearer: str) -> dict[str, str]:
    """Standard headers for GitHub API calls authenticated with ``bearer``."""

    return {
        "Authorization": f"Bearer {bearer}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
        "User-Agent": USER_AGENT,
    }


@dataclass(frozen=True, slots=True)
class ScopedAccessToken:
    """Installation access token, valid for the remainder of one request."""

    token: str = field(repr=False)
    expires_at: str | None = None


class TokenExchanger:
    def __init__(
        self,
        *,
        base_url: str = "https://api.github.com",
        timeout_seconds: float = 30.0,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._session_factory = session_factory

    def _access_tokens_url(self, installation_id: str) -> str:
        installation_id = installation_id.strip()
        if not installation_id:
            raise ValueError("installation_id is required")
        return f"{self._base_url}/app/installations/{installation_id}/access_tokens"

    def exchange(self, assertion: SignedAssertion, installation_id: str) -> ScopedAccessToken:
        """Trade ``assertion`` for an installation access token.

        Raises:
            UpstreamRejected: GitHub answered with a non-2xx status.
            MalformedResponse: the body is not JSON or has no ``token``.
            ExchangeRequestFailed: the request did not complete.
        """

        url = self._access_tokens_url(installation_id)
        session = self._session_factory()
        try:
            resp = session.post(
                url, headers=github_headers(assertion.token), timeout=self._timeout_seconds
            )
        except requests.RequestException as e:
            logger.warning(
                "Installation token request failed",
                extra={"installation_id": installation_id, "error": str(e)},
            )
            raise ExchangeRequestFailed(f"Token issuance request failed: {e}") from e
        finally:
            session.close()

        if not 200 <= resp.status_code < 300:
            logger.warning(
                "Installation token request rejected",
                extra={
                    "installation_id": installation_id,
                    "status_code": resp.status_code,
                    "response_text": resp.text[:500],
                },
            )
            raise UpstreamRejected(resp.status_code)

        try:
            data: Any = resp.json()
        except ValueError as e:
            raise MalformedResponse("Token issuance response is not JSON") from e

        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token.strip():
            raise MalformedResponse("Token issuance response has no token")

        expires_at = data.get("expires_at")
        if not isinstance(expires_at, str) or not expires_at.strip():
            expires_at = None

        logger.info(
            "Installation access token issued",
            extra={"installation_id": installation_id, "expires_at": expires_at},
        )
        return ScopedAccessToken(token=token, expires_at=expires_at)
