from __future__ import annotations

from workflow_automation.github.client import AutoMergeRequest, GitHubClient, GraphNodeId
from workflow_automation.github.saga import (
    PullRequestHandle,
    PullRequestSaga,
    PullRequestSpec,
    SagaStep,
)

__all__ = [
    "AutoMergeRequest",
    "GitHubClient",
    "GraphNodeId",
    "PullRequestHandle",
    "PullRequestSaga",
    "PullRequestSpec",
    "SagaStep",
]
