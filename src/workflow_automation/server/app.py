"""FastAPI app factory.

Endpoints are intentionally thin wrappers over :class:`AutoMergeService`.

Error disclosure: upstream error text (GitHub messages, JWT library messages) is
logged for operators only. Callers get a generic message plus this service's own
identifiers (failure step, last completed step, PR number).
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from workflow_automation import __version__
from workflow_automation.config import AutomationSettings
from workflow_automation.errors import AuthError, CredentialError, ExchangeError, SagaError
from workflow_automation.server.models import CreatePrRequest, CreatePrResponse, SagaErrorResponse
from workflow_automation.service import AutoMergeService

logger = logging.getLogger(__name__)

INVALID_IDENTITY_MESSAGE = "Invalid GitHub OIDC JWT"
ACCESS_TOKEN_FAILED_MESSAGE = "Failed to obtain GitHub access token"

_SAGA_FAILURE_MESSAGES: dict[str, str] = {
    "CreateFailed": "Failed to create pull request",
    "ResolveFailed": "Pull request created but could not be resolved for auto-merge",
    "MergeEnableFailed": "Pull request created but auto-merge could not be enabled",
}


def create_app(
    settings: AutomationSettings | None = None,
    *,
    service: AutoMergeService | None = None,
) -> FastAPI:
    if service is None:
        service = AutoMergeService.from_settings(settings or AutomationSettings())

    app = FastAPI(
        title="workflow-automation",
        version=__version__,
        description="Opens pull requests with auto-merge on behalf of trusted CI callers.",
    )
    app.state.service = service

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        # No `input` in the body: the request carries the caller's token.
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
        logger.warning(
            "Rejected malformed request",
            extra={"path": request.url.path, "fields": [e["loc"] for e in errors]},
        )
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.post("/create-pr", response_model=CreatePrResponse, response_model_by_alias=True)
    def create_pr(req: CreatePrRequest) -> CreatePrResponse | JSONResponse:
        spec = req.to_spec()
        try:
            handle = service.open_pull_request(identity_token=req.github_oidc_jwt, spec=spec)
        except AuthError as e:
            logger.warning(
                "Rejected caller identity token",
                extra={"reason": type(e).__name__, "error": str(e), "repo": spec.repository},
            )
            raise HTTPException(status_code=401, detail=INVALID_IDENTITY_MESSAGE) from e
        except (CredentialError, ExchangeError) as e:
            logger.error(
                "Could not obtain installation access token",
                extra={"reason": type(e).__name__, "error": str(e)},
            )
            raise HTTPException(status_code=500, detail=ACCESS_TOKEN_FAILED_MESSAGE) from e
        except SagaError as e:
            logger.error(
                "Pull request saga failed",
                extra={
                    "repo": spec.repository,
                    "step": e.step,
                    "last_completed_step": e.last_completed_step,
                    "pull_number": e.pr_number,
                    "error": e.detail,
                },
            )
            body = SagaErrorResponse(
                detail=_SAGA_FAILURE_MESSAGES.get(e.step, "Pull request automation failed"),
                step=e.step,
                last_completed_step=e.last_completed_step,
                pr_number=e.pr_number,
            )
            return JSONResponse(status_code=500, content=body.model_dump(by_alias=True))

        return CreatePrResponse(pr_number=handle.number)

    return app
