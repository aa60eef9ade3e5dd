"""Request pipeline: validate caller -> mint -> exchange -> run the PR saga.

The caller's identity is verified before any credential is minted or exchanged, so
an untrusted caller never causes an installation token to be issued.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from workflow_automation.auth.assertion import mint
from workflow_automation.auth.credentials import AutomationCredentials
from workflow_automation.auth.exchange import ScopedAccessToken, TokenExchanger
from workflow_automation.auth.oidc import CallerIdentity, IdentityValidator, JwksCache
from workflow_automation.config import AutomationSettings
from workflow_automation.github.client import GitHubClient
from workflow_automation.github.saga import PullRequestHandle, PullRequestSaga, PullRequestSpec

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ScopedAccessToken], GitHubClient]


class AutoMergeService:
    def __init__(
        self,
        *,
        credentials: AutomationCredentials,
        validator: IdentityValidator,
        exchanger: TokenExchanger,
        client_factory: ClientFactory,
        commit_body: str,
        adopt_existing_pull_request: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._credentials = credentials
        self._validator = validator
        self._exchanger = exchanger
        self._client_factory = client_factory
        self._commit_body = commit_body
        self._adopt_existing = adopt_existing_pull_request
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: AutomationSettings) -> AutoMergeService:
        anchor = settings.trust_anchor()
        keys = JwksCache(
            jwks_url=anchor.jwks_url,
            ttl_seconds=settings.oidc_jwks_cache_ttl_seconds,
            miss_refetch_interval_seconds=settings.oidc_jwks_miss_refetch_interval_seconds,
            timeout_seconds=settings.http_timeout_seconds,
        )

        def client_factory(token: ScopedAccessToken) -> GitHubClient:
            return GitHubClient(
                token=token.token,
                base_url=settings.github_base_url,
                timeout_seconds=settings.http_timeout_seconds,
            )

        return cls(
            credentials=settings.credentials(),
            validator=IdentityValidator(anchor=anchor, keys=keys),
            exchanger=TokenExchanger(
                base_url=settings.github_base_url,
                timeout_seconds=settings.http_timeout_seconds,
            ),
            client_factory=client_factory,
            commit_body=settings.auto_merge_commit_body,
            adopt_existing_pull_request=settings.adopt_existing_pull_request,
        )

    def authenticate(self, identity_token: str) -> CallerIdentity:
        return self._validator.validate(identity_token)

    def obtain_access_token(self) -> ScopedAccessToken:
        assertion = mint(self._credentials, int(self._clock()))
        return self._exchanger.exchange(assertion, self._credentials.installation_id)

    def create_and_merge(
        self, access_token: ScopedAccessToken, spec: PullRequestSpec
    ) -> PullRequestHandle:
        github = self._client_factory(access_token)
        try:
            saga = PullRequestSaga(
                github=github,
                commit_body=self._commit_body,
                adopt_existing_pull_request=self._adopt_existing,
            )
            return saga.run(spec)
        finally:
            github.close()

    def open_pull_request(
        self, *, identity_token: str, spec: PullRequestSpec
    ) -> PullRequestHandle:
        """Run the full flow for one request.

        Raises:
            AuthError: the caller is not trusted (nothing upstream was written).
            CredentialError / ExchangeError: no access token could be obtained.
            SagaError: a saga step failed; carries the step and PR number.
        """

        caller = self.authenticate(identity_token)
        logger.info(
            "Opening pull request",
            extra={
                "caller_repository": caller.repository,
                "repo": spec.repository,
                "head": spec.head_branch,
                "base": spec.base_branch,
            },
        )
        access_token = self.obtain_access_token()
        return self.create_and_merge(access_token, spec)
