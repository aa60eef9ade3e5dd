"""GitHub API client for the create-and-merge saga.

Wraps a ``requests`` session authenticated with an installation access token. Only
the calls the saga needs are implemented: REST PR creation (plus a lookup of an
existing open PR) and the two GraphQL operations that address a PR by node id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, NewType
from urllib.parse import urlparse, urlunparse

import requests

from workflow_automation.auth.exchange import github_headers

logger = logging.getLogger(__name__)

GraphNodeId = NewType("GraphNodeId", str)

MERGE_METHOD_SQUASH = "SQUASH"

PULL_REQUEST_ID_QUERY = """
query pullRequest($owner: String!, $repo: String!, $prNumber: Int!) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $prNumber) { id }
  }
}
"""

ENABLE_AUTO_MERGE_MUTATION = """
mutation enablePullRequestAutoMerge($input: EnablePullRequestAutoMergeInput!) {
  enablePullRequestAutoMerge(input: $input) {
    clientMutationId
  }
}
"""


class GitHubApiError(RuntimeError):
    """A GitHub call returned an error or an unusable payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PullRequestAlreadyExists(GitHubApiError):
    """GitHub refused PR creation because one already exists for the head branch."""


@dataclass(frozen=True, slots=True)
class PullRequestCreated:
    number: int
    url: str | None


@dataclass(frozen=True, slots=True)
class AutoMergeRequest:
    """Input for ``enablePullRequestAutoMerge``."""

    node_id: GraphNodeId
    commit_headline: str
    commit_body: str
    merge_method: str = MERGE_METHOD_SQUASH

    @classmethod
    def for_pull_request(
        cls, node_id: GraphNodeId, *, commit_headline: str, commit_body: str
    ) -> AutoMergeRequest:
        if not node_id.strip():
            raise ValueError("A resolved node id is required to enable auto-merge")
        return cls(node_id=node_id, commit_headline=commit_headline, commit_body=commit_body)

    def to_variables(self) -> dict[str, Any]:
        return {
            "input": {
                "pullRequestId": self.node_id,
                "mergeMethod": self.merge_method,
                "commitHeadline": self.commit_headline,
                "commitBody": self.commit_body,
            }
        }


def _error_message(resp: requests.Response) -> str:
    """Extract GitHub's error message(s) from a REST error response."""

    try:
        payload = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if not isinstance(payload, dict):
        return f"HTTP {resp.status_code}"

    parts: list[str] = []
    message = payload.get("message")
    if isinstance(message, str) and message.strip():
        parts.append(message.strip())
    errors = payload.get("errors")
    if isinstance(errors, list):
        for item in errors:
            if isinstance(item, dict):
                msg = item.get("message")
                if isinstance(msg, str) and msg.strip():
                    parts.append(msg.strip())
    return "; ".join(parts) if parts else f"HTTP {resp.status_code}"


class GitHubClient:
    """Installation-token scoped GitHub client used by one saga run."""

    def __init__(
        self,
        *,
        token: str,
        base_url: str = "https://api.github.com",
        timeout_seconds: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        if not token:
            raise ValueError("GitHub token is required")

        self._rest_base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()
        self._session.headers.update(github_headers(token))

    def _repo_url(self, *, owner: str, repo: str, path: str) -> str:
        owner = owner.strip()
        repo = repo.strip()
        if not owner or not repo:
            raise ValueError("owner and repo are required")
        path = path.lstrip("/")
        return f"{self._rest_base_url}/repos/{owner}/{repo}/{path}"

    def _graphql_url(self) -> str:
        """Derive the GraphQL endpoint from the REST base URL.

        GitHub.com:
            REST: https://api.github.com
            GQL:  https://api.github.com/graphql

        GitHub Enterprise exposes REST as ``https://host/api/v3`` and GraphQL as
        ``https://host/api/graphql``.
        """

        parsed = urlparse(self._rest_base_url)
        path = parsed.path.rstrip("/")

        if path.endswith("/api/v3"):
            path = path[: -len("/api/v3")] + "/api/graphql"
        elif path.endswith("/api"):
            path = path[: -len("/api")] + "/api/graphql"
        elif path == "":
            path = "/graphql"
        else:
            path = path + "/graphql"

        return urlunparse(parsed._replace(path=path))

    def _graphql(self, *, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        resp = self._session.post(
            self._graphql_url(),
            json={"query": query, "variables": variables},
            timeout=self._timeout_seconds,
        )
        if not resp.ok:
            raise GitHubApiError(
                f"GitHub GraphQL request failed: {_error_message(resp)}",
                status_code=resp.status_code,
            )
        try:
            payload: Any = resp.json()
        except ValueError as e:
            raise GitHubApiError("GitHub GraphQL response is not JSON") from e
        if not isinstance(payload, dict):
            raise GitHubApiError("GitHub GraphQL response is not an object")

        errors = payload.get("errors")
        if errors:
            messages = []
            if isinstance(errors, list):
                for item in errors:
                    if isinstance(item, dict):
                        msg = item.get("message")
                        if isinstance(msg, str):
                            messages.append(msg)
            message = "; ".join(messages) if messages else "Unknown GraphQL error"
            raise GitHubApiError(f"GitHub GraphQL error: {message}", status_code=resp.status_code)
        return payload

    def create_pull_request(
        self,
        *,
        owner: str,
        repo: str,
        title: str,
        body: str,
        head: str,
        base: str,
    ) -> PullRequestCreated:
        url = self._repo_url(owner=owner, repo=repo, path="pulls")
        payload = {"title": title, "body": body, "head": head, "base": base}
        resp = self._session.post(url, json=payload, timeout=self._timeout_seconds)
        if not resp.ok:
            message = _error_message(resp)
            error_cls = GitHubApiError
            if resp.status_code == 422 and "already exists" in message.lower():
                error_cls = PullRequestAlreadyExists
            raise error_cls(
                f"Create PR failed (HTTP {resp.status_code}): {message}",
                status_code=resp.status_code,
            )

        try:
            data: Any = resp.json()
        except ValueError as e:
            raise GitHubApiError("Unexpected create PR response: not JSON") from e
        number = data.get("number") if isinstance(data, dict) else None
        if not isinstance(number, int) or number <= 0:
            raise GitHubApiError("Unexpected create PR response: missing number")
        html_url = data.get("html_url")
        if not isinstance(html_url, str) or not html_url.strip():
            html_url = None

        logger.info(
            "Pull request created",
            extra={"repo": f"{owner}/{repo}", "pull_number": number, "head": head, "base": base},
        )
        return PullRequestCreated(number=number, url=html_url)

    def find_open_pull_request(
        self, *, owner: str, repo: str, head: str, base: str
    ) -> PullRequestCreated | None:
        """Return the open PR from ``owner:head`` into ``base``, if any."""

        url = self._repo_url(owner=owner, repo=repo, path="pulls")
        params = {"state": "open", "head": f"{owner}:{head}", "base": base, "per_page": 1}
        resp = self._session.get(url, params=params, timeout=self._timeout_seconds)
        if not resp.ok:
            raise GitHubApiError(
                f"List PRs failed (HTTP {resp.status_code}): {_error_message(resp)}",
                status_code=resp.status_code,
            )
        data: Any = resp.json()
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            return None
        number = data[0].get("number")
        if not isinstance(number, int) or number <= 0:
            return None
        html_url = data[0].get("html_url")
        return PullRequestCreated(
            number=number, url=html_url if isinstance(html_url, str) and html_url else None
        )

    def get_pull_request_node_id(self, *, owner: str, repo: str, pull_number: int) -> GraphNodeId:
        if pull_number <= 0:
            raise ValueError("pull_number must be a positive integer")
        payload = self._graphql(
            query=PULL_REQUEST_ID_QUERY,
            variables={"owner": owner, "repo": repo, "prNumber": pull_number},
        )
        data = payload.get("data")
        repository = data.get("repository") if isinstance(data, dict) else None
        pull_request = repository.get("pullRequest") if isinstance(repository, dict) else None
        node_id = pull_request.get("id") if isinstance(pull_request, dict) else None
        if not isinstance(node_id, str) or not node_id.strip():
            raise GitHubApiError(f"Pull request #{pull_number} has no node id in response")
        return GraphNodeId(node_id)

    def enable_pull_request_auto_merge(self, request: AutoMergeRequest) -> None:
        self._graphql(query=ENABLE_AUTO_MERGE_MUTATION, variables=request.to_variables())
        logger.info(
            "Auto-merge enabled",
            extra={"node_id": request.node_id, "merge_method": request.merge_method},
        )

    def close(self) -> None:
        self._session.close()
