"""workflow-automation.

Lets a CI job holding a GitHub Actions OIDC token open a pull request with
auto-merge enabled, using a GitHub App installation token minted per request.
"""

__version__ = "0.1.0"

from workflow_automation.config import AutomationSettings

__all__ = ["__version__", "AutomationSettings"]
