"""Exception hierarchy for the create-and-merge flow.

Every failure a request can hit maps to one of four families:

- :class:`AuthError` - the caller's OIDC token is not trusted (HTTP 401)
- :class:`CredentialError` - the app's own signing key is unusable
- :class:`ExchangeError` - GitHub refused to issue an installation token
- :class:`SagaError` - a PR create / resolve / enable-auto-merge step failed

Messages on these exceptions are meant for operator logs. The HTTP layer
decides what the caller sees.
"""

from __future__ import annotations


class WorkflowAutomationError(Exception):
    """Base class for all errors raised by this package."""


# --- identity -----------------------------------------------------------------


class AuthError(WorkflowAutomationError):
    """The caller identity token could not be trusted."""


class KeyFetchFailed(AuthError):
    """The issuer's verification keys could not be retrieved."""


class SignatureInvalid(AuthError):
    """The token is malformed, unsigned by a known key, or its signature is wrong."""


class TokenExpired(AuthError):
    """The token is outside its validity window."""

    def __init__(self, message: str, *, not_yet_valid: bool = False) -> None:
        super().__init__(message)
        self.not_yet_valid = not_yet_valid


class ClaimMismatch(AuthError):
    """A claim does not match the configured trust anchor."""

    def __init__(self, field: str, message: str | None = None) -> None:
        super().__init__(message or f"Claim mismatch: {field}")
        self.field = field


# --- app credentials ----------------------------------------------------------


class CredentialError(WorkflowAutomationError):
    """The app's signing material could not be used."""


class MalformedKey(CredentialError):
    pass


# --- installation token exchange ----------------------------------------------


class ExchangeError(WorkflowAutomationError):
    """An installation access token could not be obtained."""


class UpstreamRejected(ExchangeError):
    def __init__(self, status_code: int, message: str | None = None) -> None:
        super().__init__(message or f"Token issuance rejected (HTTP {status_code})")
        self.status_code = status_code


class MalformedResponse(ExchangeError):
    pass


class ExchangeRequestFailed(ExchangeError):
    """The token endpoint could not be reached."""


# --- saga ---------------------------------------------------------------------


class SagaError(WorkflowAutomationError):
    """A step of the create -> resolve -> enable-auto-merge saga failed.

    Attributes:
        detail: Operator-facing description (may include upstream error text).
        pr_number: The PR number when the PR is known to exist, else ``None``.
        last_completed_step: Value of the furthest ``SagaStep`` reached.
    """

    def __init__(
        self,
        detail: str,
        *,
        last_completed_step: str,
        pr_number: int | None = None,
    ) -> None:
        super().__init__(detail)
        self.detail = detail
        self.pr_number = pr_number
        self.last_completed_step = last_completed_step

    @property
    def step(self) -> str:
        """Stable failure code, e.g. ``"MergeEnableFailed"``."""

        return type(self).__name__


class CreateFailed(SagaError):
    """PR creation failed. Whether the PR exists upstream is unknown."""

    def __init__(self, detail: str, *, last_completed_step: str) -> None:
        super().__init__(detail, last_completed_step=last_completed_step, pr_number=None)


class ResolveFailed(SagaError):
    """The PR exists but its GraphQL node id could not be resolved."""

    def __init__(self, detail: str, *, pr_number: int, last_completed_step: str) -> None:
        super().__init__(detail, last_completed_step=last_completed_step, pr_number=pr_number)


class MergeEnableFailed(SagaError):
    """The PR exists but auto-merge could not be enabled."""

    def __init__(self, detail: str, *, pr_number: int, last_completed_step: str) -> None:
        super().__init__(detail, last_completed_step=last_completed_step, pr_number=pr_number)
