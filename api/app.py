from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes.jobs import router as jobs_router
from api.routes.projects import router as projects_router
from api.routes.references import router as references_router
from api.routes.versions import router as versions_router
from draft_intake.intake import IntakeError

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="Draft Intake API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(IntakeError)
    async def intake_error_handler(request: Request, exc: IntakeError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    app.include_router(projects_router)
    app.include_router(references_router)
    app.include_router(jobs_router)
    app.include_router(versions_router)

    @app.get("/healthz")
    def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
