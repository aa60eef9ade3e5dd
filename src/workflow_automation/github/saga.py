"""Create -> resolve -> enable-auto-merge saga.

The three GitHub calls are strictly sequential and have no compensation: a PR that
was created stays created when a later step fails. Every failure therefore reports
the furthest step reached and the PR number (when known), so an operator can finish
the job by hand instead of re-running and opening a duplicate PR.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

import requests

from workflow_automation.errors import CreateFailed, MergeEnableFailed, ResolveFailed
from workflow_automation.github.client import (
    AutoMergeRequest,
    GitHubClient,
    GraphNodeId,
    PullRequestAlreadyExists,
    PullRequestCreated,
)

logger = logging.getLogger(__name__)

DEFAULT_COMMIT_BODY = "Auto-merged by workflow-automation"

# Errors a single GitHub call can surface.
_STEP_ERRORS = (requests.RequestException, RuntimeError, ValueError)


class SagaStep(str, Enum):
    START = "start"
    TOKEN_READY = "token_ready"
    CREATED = "created"
    RESOLVED = "resolved"
    MERGE_ENABLED = "merge_enabled"


ALLOWED_TRANSITIONS: dict[SagaStep, set[SagaStep]] = {
    SagaStep.START: {SagaStep.TOKEN_READY},
    SagaStep.TOKEN_READY: {SagaStep.CREATED},
    SagaStep.CREATED: {SagaStep.RESOLVED},
    SagaStep.RESOLVED: {SagaStep.MERGE_ENABLED},
    SagaStep.MERGE_ENABLED: set(),
}


class IllegalTransitionError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class PullRequestSpec:
    """Caller-supplied description of the PR to open."""

    owner: str
    repo: str
    title: str
    body: str
    head_branch: str
    base_branch: str

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass(frozen=True, slots=True)
class PullRequestHandle:
    number: int
    url: str | None = None


@dataclass(frozen=True, slots=True)
class SagaSnapshot:
    step: SagaStep
    pr_number: int | None = None
    node_id: GraphNodeId | None = None


def transition(
    *,
    current: SagaSnapshot,
    to: SagaStep,
    pr_number: int | None = None,
    node_id: GraphNodeId | None = None,
) -> SagaSnapshot:
    allowed = ALLOWED_TRANSITIONS.get(current.step, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.step.value} -> {to.value}")
    return SagaSnapshot(
        step=to,
        pr_number=pr_number if pr_number is not None else current.pr_number,
        node_id=node_id if node_id is not None else current.node_id,
    )


class PullRequestSaga:
    """Run the saga for one request on a client holding that request's access token."""

    def __init__(
        self,
        *,
        github: GitHubClient,
        commit_body: str = DEFAULT_COMMIT_BODY,
        adopt_existing_pull_request: bool = False,
    ) -> None:
        self._github = github
        self._commit_body = commit_body
        self._adopt_existing = adopt_existing_pull_request
        # The saga is constructed around an already-exchanged token.
        self._snapshot = transition(
            current=SagaSnapshot(step=SagaStep.START), to=SagaStep.TOKEN_READY
        )

    @property
    def snapshot(self) -> SagaSnapshot:
        return self._snapshot

    def run(self, spec: PullRequestSpec) -> PullRequestHandle:
        """Create the PR, resolve its node id and enable squash auto-merge.

        Raises:
            CreateFailed, ResolveFailed, MergeEnableFailed
        """

        created = self._create(spec)
        self._snapshot = transition(
            current=self._snapshot, to=SagaStep.CREATED, pr_number=created.number
        )

        node_id = self._resolve(spec, created.number)
        self._snapshot = transition(current=self._snapshot, to=SagaStep.RESOLVED, node_id=node_id)

        self._enable_auto_merge(spec, created.number, node_id)
        self._snapshot = transition(current=self._snapshot, to=SagaStep.MERGE_ENABLED)

        logger.info(
            "Pull request opened with auto-merge enabled",
            extra={"repo": spec.repository, "pull_number": created.number},
        )
        return PullRequestHandle(number=created.number, url=created.url)

    def _create(self, spec: PullRequestSpec) -> PullRequestCreated:
        try:
            return self._github.create_pull_request(
                owner=spec.owner,
                repo=spec.repo,
                title=spec.title,
                body=spec.body,
                head=spec.head_branch,
                base=spec.base_branch,
            )
        except PullRequestAlreadyExists as e:
            if self._adopt_existing:
                existing = self._find_existing(spec)
                if existing is not None:
                    return existing
            raise self._create_failed(spec, e) from e
        except _STEP_ERRORS as e:
            raise self._create_failed(spec, e) from e

    def _find_existing(self, spec: PullRequestSpec) -> PullRequestCreated | None:
        try:
            existing = self._github.find_open_pull_request(
                owner=spec.owner, repo=spec.repo, head=spec.head_branch, base=spec.base_branch
            )
        except _STEP_ERRORS as e:
            raise self._create_failed(spec, e) from e
        if existing is not None:
            logger.info(
                "Adopting existing pull request",
                extra={"repo": spec.repository, "pull_number": existing.number},
            )
        return existing

    def _create_failed(self, spec: PullRequestSpec, error: Exception) -> CreateFailed:
        logger.warning(
            "Create PR step failed",
            extra={"repo": spec.repository, "head": spec.head_branch, "error": str(error)},
        )
        return CreateFailed(str(error), last_completed_step=self._snapshot.step.value)

    def _resolve(self, spec: PullRequestSpec, pr_number: int) -> GraphNodeId:
        try:
            return self._github.get_pull_request_node_id(
                owner=spec.owner, repo=spec.repo, pull_number=pr_number
            )
        except _STEP_ERRORS as e:
            logger.warning(
                "Resolve PR node id step failed",
                extra={"repo": spec.repository, "pull_number": pr_number, "error": str(e)},
            )
            raise ResolveFailed(
                str(e), pr_number=pr_number, last_completed_step=self._snapshot.step.value
            ) from e

    def _enable_auto_merge(
        self, spec: PullRequestSpec, pr_number: int, node_id: GraphNodeId
    ) -> None:
        try:
            request = AutoMergeRequest.for_pull_request(
                node_id, commit_headline=spec.title, commit_body=self._commit_body
            )
            self._github.enable_pull_request_auto_merge(request)
        except _STEP_ERRORS as e:
            logger.warning(
                "Enable auto-merge step failed",
                extra={"repo": spec.repository, "pull_number": pr_number, "error": str(e)},
            )
            raise MergeEnableFailed(
                str(e), pr_number=pr_number, last_completed_step=self._snapshot.step.value
            ) from e
