"""Test configuration and fixtures."""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import jwt
import pytest
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from workflow_automation.auth.credentials import AutomationCredentials, TrustAnchor

OIDC_ISSUER = "https://token.actions.githubusercontent.com"
OIDC_AUDIENCE = "https://github.com/octo-org"
OIDC_OWNER = "octo-org"
OIDC_REPOSITORY = "octo-org/octo-repo"
OIDC_KID = "oidc-key-1"


@dataclass
class RecordedCall:
    method: str
    url: str
    kwargs: dict[str, Any]

    @property
    def json(self) -> Any:
        return self.kwargs.get("json")


@dataclass
class _Route:
    method: str
    url: str
    responses: list[requests.Response | Exception]
    when: Callable[[dict[str, Any]], bool] | None = None


@dataclass
class FakeSession:
    """Stand-in for ``requests.Session`` that records calls and replays scripted responses.

    A route's responses are consumed in order; the last one is repeated.
    """

    headers: dict[str, str] = field(default_factory=dict)
    calls: list[RecordedCall] = field(default_factory=list)
    closed: int = 0
    _routes: list[_Route] = field(default_factory=list)

    def add(
        self,
        method: str,
        url: str,
        *responses: requests.Response | Exception,
        when: Callable[[dict[str, Any]], bool] | None = None,
    ) -> None:
        self._routes.append(_Route(method, url, list(responses), when))

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append(RecordedCall(method, url, kwargs))
        for route in self._routes:
            if route.method != method or route.url != url:
                continue
            if route.when is not None and not route.when(kwargs):
                continue
            item = route.responses.pop(0) if len(route.responses) > 1 else route.responses[0]
            if isinstance(item, Exception):
                raise item
            return item
        raise AssertionError(f"Unexpected request: {method} {url}")

    def get(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("POST", url, **kwargs)

    def close(self) -> None:
        self.closed += 1

    def calls_to(self, method: str, url: str) -> list[RecordedCall]:
        return [c for c in self.calls if c.method == method and c.url == url]


def _make_response(
    status_code: int, payload: Any = None, *, text: str | None = None
) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status_code
    body = text if text is not None else json.dumps(payload)
    resp._content = body.encode("utf-8")
    resp.encoding = "utf-8"
    resp.headers["Content-Type"] = "application/json"
    return resp


@pytest.fixture
def make_response() -> Callable[..., requests.Response]:
    return _make_response


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key: rsa.RSAPrivateKey) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture(scope="session")
def jwks(rsa_private_key: rsa.RSAPrivateKey) -> dict[str, Any]:
    jwk = json.loads(RSAAlgorithm.to_jwk(rsa_private_key.public_key()))
    jwk.update({"kid": OIDC_KID, "use": "sig", "alg": "RS256"})
    return {"keys": [jwk]}


@pytest.fixture
def trust_anchor() -> TrustAnchor:
    return TrustAnchor(
        issuer=OIDC_ISSUER,
        audience=OIDC_AUDIENCE,
        repository_owner=OIDC_OWNER,
        repository=OIDC_REPOSITORY,
    )


@pytest.fixture
def credentials(private_key_pem: str) -> AutomationCredentials:
    return AutomationCredentials(
        client_id="Iv1.testclient",
        client_secret="client-secret",
        private_key=private_key_pem,
        installation_id="4242",
        app_id="1234",
    )


@pytest.fixture
def make_oidc_token(rsa_private_key: rsa.RSAPrivateKey) -> Callable[..., str]:
    """Build a GitHub Actions style OIDC token; keyword overrides replace claims."""

    def _make(
        *,
        kid: str | None = OIDC_KID,
        signing_key: rsa.RSAPrivateKey | None = None,
        drop: tuple[str, ...] = (),
        **overrides: Any,
    ) -> str:
        now = int(time.time())
        claims: dict[str, Any] = {
            "iss": OIDC_ISSUER,
            "aud": OIDC_AUDIENCE,
            "sub": f"repo:{OIDC_REPOSITORY}:ref:refs/heads/main",
            "repository": OIDC_REPOSITORY,
            "repository_owner": OIDC_OWNER,
            "iat": now - 10,
            "nbf": now - 10,
            "exp": now + 300,
        }
        claims.update(overrides)
        for name in drop:
            claims.pop(name, None)
        headers = {"kid": kid} if kid else None
        return jwt.encode(
            claims, signing_key or rsa_private_key, algorithm="RS256", headers=headers
        )

    return _make
