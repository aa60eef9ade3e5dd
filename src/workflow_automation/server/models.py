"""Pydantic models for the REST server."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from workflow_automation.github.saga import PullRequestSpec


class CreatePrRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    github_oidc_jwt: str = Field(alias="githubOidcJwt", min_length=1, repr=False)
    owner: str = Field(min_length=1)
    repo: str = Field(min_length=1)
    base_branch: str = Field(alias="baseBranch", min_length=1)
    head_branch: str = Field(alias="headBranch", min_length=1)
    title: str = Field(min_length=1)
    body: str

    def to_spec(self) -> PullRequestSpec:
        return PullRequestSpec(
            owner=self.owner,
            repo=self.repo,
            title=self.title,
            body=self.body,
            head_branch=self.head_branch,
            base_branch=self.base_branch,
        )


class CreatePrResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pr_number: int = Field(alias="prNumber")


class SagaErrorResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    detail: str
    step: str
    last_completed_step: str = Field(alias="lastCompletedStep")
    pr_number: int | None = Field(default=None, alias="prNumber")
