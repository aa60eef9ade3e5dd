"""FastAPI server adapter for workflow-automation.

Design intent:
- Keep the credential exchange and saga in `workflow_automation.auth` / `.github`
- Keep HTTP concerns (routing, status codes, response bodies) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from workflow_automation.server.app import create_app
