"""CLI entrypoint for workflow-automation.

Commands:
- ``serve``: run the HTTP service under uvicorn
- ``check-config``: load settings and sign a test app assertion locally
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from pydantic import ValidationError

from workflow_automation import __version__
from workflow_automation.auth.assertion import mint
from workflow_automation.config import AutomationSettings
from workflow_automation.errors import CredentialError
from workflow_automation.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workflow-automation",
        description="Open auto-merging pull requests on behalf of trusted CI callers",
    )
    parser.add_argument(
        "--version", action="version", version=f"workflow-automation {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    serve.add_argument("--port", type=int, default=3000, help="Port to bind")

    subparsers.add_parser(
        "check-config",
        help="Validate settings and confirm the app private key can sign an assertion",
    )
    return parser


def _load_settings() -> AutomationSettings | None:
    try:
        return AutomationSettings()
    except ValidationError as e:
        # Validation errors can echo input values; print only field locations and messages.
        for err in e.errors(include_input=False):
            loc = ".".join(str(p) for p in err.get("loc", ())) or "settings"
            print(f"Invalid configuration ({loc}): {err.get('msg')}", file=sys.stderr)
        return None


def _cmd_serve(settings: AutomationSettings, args: argparse.Namespace) -> int:
    import uvicorn

    from workflow_automation.server.app import create_app

    app = create_app(settings)
    logger.info("Starting server", extra={"host": args.host, "port": args.port})
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    return 0


def _cmd_check_config(settings: AutomationSettings) -> int:
    credentials = settings.credentials()
    anchor = settings.trust_anchor()
    try:
        assertion = mint(credentials)
    except CredentialError as e:
        print(f"Private key check failed: {e}", file=sys.stderr)
        return 1

    print(f"GitHub App id:        {credentials.app_id}")
    print(f"Client id:            {credentials.client_id}")
    print(f"Installation id:      {credentials.installation_id}")
    print(f"OIDC issuer:          {anchor.issuer}")
    print(f"Expected audience:    {anchor.audience}")
    print(f"Expected repository:  {anchor.repository}")
    print(f"Assertion lifetime:   {assertion.expires_at - assertion.issued_at}s")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = _load_settings()
    if settings is None:
        return 2

    configure_logging(settings.log_level)

    if args.command == "serve":
        return _cmd_serve(settings, args)
    if args.command == "check-config":
        return _cmd_check_config(settings)

    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
