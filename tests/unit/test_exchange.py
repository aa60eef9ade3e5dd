"""Unit tests for the installation token exchange."""

from __future__ import annotations

import pytest
import requests

from workflow_automation.auth.assertion import SignedAssertion
from workflow_automation.auth.exchange import TokenExchanger
from workflow_automation.errors import (
    ExchangeRequestFailed,
    MalformedResponse,
    UpstreamRejected,
)

TOKEN_URL = "https://api.github.com/app/installations/4242/access_tokens"

ASSERTION = SignedAssertion(token="app.jwt.value", issued_at=100, expires_at=760)


@pytest.fixture
def exchanger(fake_session) -> TokenExchanger:
    return TokenExchanger(session_factory=lambda: fake_session)


def test_exchange_returns_scoped_token(
    exchanger: TokenExchanger, fake_session, make_response
) -> None:
    fake_session.add(
        "POST",
        TOKEN_URL,
        make_response(201, {"token": "ghs_scoped", "expires_at": "2026-01-01T00:00:00Z"}),
    )

    token = exchanger.exchange(ASSERTION, "4242")

    assert token.token == "ghs_scoped"
    assert token.expires_at == "2026-01-01T00:00:00Z"
    assert "ghs_scoped" not in repr(token)

    (call,) = fake_session.calls
    assert call.method == "POST"
    assert call.url == TOKEN_URL
    headers = call.kwargs["headers"]
    assert headers["Authorization"] == "Bearer app.jwt.value"
    assert headers["Accept"] == "application/vnd.github+json"
    assert headers["X-GitHub-Api-Version"] == "2022-11-28"
    assert fake_session.closed == 1


def test_exchange_uses_configured_base_url(fake_session, make_response) -> None:
    url = "https://github.example.com/api/v3/app/installations/7/access_tokens"
    fake_session.add("POST", url, make_response(201, {"token": "ghs_x"}))
    exchanger = TokenExchanger(
        base_url="https://github.example.com/api/v3/", session_factory=lambda: fake_session
    )

    assert exchanger.exchange(ASSERTION, "7").token == "ghs_x"


@pytest.mark.parametrize("status", [401, 404, 500])
def test_exchange_non_success_is_upstream_rejected(
    exchanger: TokenExchanger, fake_session, make_response, status: int
) -> None:
    body = {"message": "A JSON web token could not be decoded"}
    fake_session.add("POST", TOKEN_URL, make_response(status, body))

    with pytest.raises(UpstreamRejected) as exc:
        exchanger.exchange(ASSERTION, "4242")

    assert exc.value.status_code == status


def test_exchange_unparsable_body_is_malformed(
    exchanger: TokenExchanger, fake_session, make_response
) -> None:
    fake_session.add("POST", TOKEN_URL, make_response(201, text="not json"))

    with pytest.raises(MalformedResponse):
        exchanger.exchange(ASSERTION, "4242")


def test_exchange_missing_token_is_malformed(
    exchanger: TokenExchanger, fake_session, make_response
) -> None:
    fake_session.add("POST", TOKEN_URL, make_response(201, {"expires_at": "2026-01-01T00:00:00Z"}))

    with pytest.raises(MalformedResponse):
        exchanger.exchange(ASSERTION, "4242")


def test_exchange_transport_failure(exchanger: TokenExchanger, fake_session) -> None:
    fake_session.add("POST", TOKEN_URL, requests.Timeout("slow"))

    with pytest.raises(ExchangeRequestFailed):
        exchanger.exchange(ASSERTION, "4242")
    assert fake_session.closed == 1


def test_exchange_requires_installation_id(exchanger: TokenExchanger) -> None:
    with pytest.raises(ValueError):
        exchanger.exchange(ASSERTION, "  ")
