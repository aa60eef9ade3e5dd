"""Configuration for the workflow-automation service.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Settings are read once at startup. Components receive the derived
:class:`AutomationCredentials` / :class:`TrustAnchor` values and never read the
environment themselves.
"""

from __future__ import annotations

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from workflow_automation.auth.credentials import AutomationCredentials, TrustAnchor
from workflow_automation.github.saga import DEFAULT_COMMIT_BODY

GITHUB_ACTIONS_OIDC_ISSUER = "https://token.actions.githubusercontent.com"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class AutomationSettings(BaseSettings):
    """Settings for the service.

    Environment variables:
    - GITHUB_APP_CLIENT_ID, GITHUB_APP_CLIENT_SECRET, GITHUB_APP_PRIVATE_KEY,
      GITHUB_APP_INSTALLATION_ID, GITHUB_APP_ID
    - OIDC_EXPECTED_AUDIENCE, OIDC_EXPECTED_REPOSITORY_OWNER, OIDC_EXPECTED_REPOSITORY
    - OIDC_ISSUER, OIDC_JWKS_CACHE_TTL_SECONDS   (optional)
    - OIDC_JWKS_MISS_REFETCH_INTERVAL_SECONDS    (optional)
    - GITHUB_BASE_URL, HTTP_TIMEOUT_SECONDS      (optional)
    - AUTO_MERGE_COMMIT_BODY, ADOPT_EXISTING_PULL_REQUEST (optional)
    - LOG_LEVEL                                  (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `AutomationSettings(_env_file=path_to_env)`.
    """

    # Defaults are intentionally empty; validation below enforces that values are provided.
    github_app_client_id: str = Field(default="", validation_alias="GITHUB_APP_CLIENT_ID")
    github_app_client_secret: SecretStr = Field(
        default=SecretStr(""), validation_alias="GITHUB_APP_CLIENT_SECRET"
    )
    github_app_private_key: SecretStr = Field(
        default=SecretStr(""),
        validation_alias="GITHUB_APP_PRIVATE_KEY",
        description="PEM-encoded RSA private key. Literal '\\n' sequences are unescaped.",
    )
    github_app_installation_id: str = Field(
        default="", validation_alias="GITHUB_APP_INSTALLATION_ID"
    )
    github_app_id: str = Field(default="", validation_alias="GITHUB_APP_ID")

    github_base_url: str = Field(
        default="https://api.github.com",
        validation_alias="GITHUB_BASE_URL",
        description="GitHub API base URL (useful for GitHub Enterprise)",
    )

    oidc_issuer: str = Field(default=GITHUB_ACTIONS_OIDC_ISSUER, validation_alias="OIDC_ISSUER")
    oidc_expected_audience: str = Field(default="", validation_alias="OIDC_EXPECTED_AUDIENCE")
    oidc_expected_repository_owner: str = Field(
        default="", validation_alias="OIDC_EXPECTED_REPOSITORY_OWNER"
    )
    oidc_expected_repository: str = Field(
        default="",
        validation_alias="OIDC_EXPECTED_REPOSITORY",
        description="Expected 'repository' claim, in the form 'owner/repo'",
    )
    oidc_jwks_cache_ttl_seconds: float = Field(
        default=300.0,
        validation_alias="OIDC_JWKS_CACHE_TTL_SECONDS",
        ge=0,
        le=86400,
    )

    oidc_jwks_miss_refetch_interval_seconds: float = Field(
        default=60.0,
        validation_alias="OIDC_JWKS_MISS_REFETCH_INTERVAL_SECONDS",
        ge=0,
        le=3600,
        description="Minimum spacing of key refetches triggered by an unknown key id",
    )

    auto_merge_commit_body: str = Field(
        default=DEFAULT_COMMIT_BODY, validation_alias="AUTO_MERGE_COMMIT_BODY"
    )
    adopt_existing_pull_request: bool = Field(
        default=False,
        validation_alias="ADOPT_EXISTING_PULL_REQUEST",
        description=(
            "If true, a create call rejected because a PR for the head branch already exists "
            "continues the saga with that open PR instead of failing."
        ),
    )
    http_timeout_seconds: float = Field(
        default=30.0, validation_alias="HTTP_TIMEOUT_SECONDS", gt=0, le=300
    )

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    @field_validator("github_app_private_key", mode="before")
    @classmethod
    def _unescape_newlines(cls, value: object) -> object:
        if isinstance(value, str):
            return value.replace("\\n", "\n")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of: {', '.join(_LOG_LEVELS)}")
        return level

    @model_validator(mode="after")
    def _require_values(self) -> AutomationSettings:
        required = {
            "GITHUB_APP_CLIENT_ID": self.github_app_client_id,
            "GITHUB_APP_PRIVATE_KEY": self.github_app_private_key.get_secret_value(),
            "GITHUB_APP_INSTALLATION_ID": self.github_app_installation_id,
            "GITHUB_APP_ID": self.github_app_id,
            "OIDC_EXPECTED_AUDIENCE": self.oidc_expected_audience,
            "OIDC_EXPECTED_REPOSITORY_OWNER": self.oidc_expected_repository_owner,
            "OIDC_EXPECTED_REPOSITORY": self.oidc_expected_repository,
        }
        missing = [name for name, value in required.items() if not value.strip()]
        if missing:
            raise ValueError(f"Missing required settings: {', '.join(missing)}")

        owner, sep, name = self.oidc_expected_repository.strip().partition("/")
        if not sep or not owner.strip() or not name.strip() or "/" in name:
            raise ValueError("OIDC_EXPECTED_REPOSITORY must be in the form 'owner/repo'")
        if owner.strip() != self.oidc_expected_repository_owner.strip():
            raise ValueError(
                "OIDC_EXPECTED_REPOSITORY owner must equal OIDC_EXPECTED_REPOSITORY_OWNER"
            )
        return self

    def credentials(self) -> AutomationCredentials:
        return AutomationCredentials(
            client_id=self.github_app_client_id.strip(),
            client_secret=self.github_app_client_secret.get_secret_value(),
            private_key=self.github_app_private_key.get_secret_value(),
            installation_id=self.github_app_installation_id.strip(),
            app_id=self.github_app_id.strip(),
        )

    def trust_anchor(self) -> TrustAnchor:
        return TrustAnchor(
            issuer=self.oidc_issuer.strip(),
            audience=self.oidc_expected_audience.strip(),
            repository_owner=self.oidc_expected_repository_owner.strip(),
            repository=self.oidc_expected_repository.strip(),
        )
