"""Entrypoint for the FastAPI application."""

import os
from dotenv import load_dotenv

# Load .env locally only; deployed environments inject variables directly.
env_path = os.path.join(os.path.dirname(__file__), "../.env")
if os.path.exists(env_path):
    load_dotenv(dotenv_path=os.path.abspath(env_path))

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import health, invoices, salary_settings, teacher_salary
from .core.logging import configure_logging
from .services.exceptions import SalaryServiceError

LOGGER = structlog.get_logger(__name__)


async def _salary_error_handler(request: Request, exc: SalaryServiceError) -> JSONResponse:
    LOGGER.info(
        "salary_request_rejected",
        path=request.url.path,
        error_type=type(exc).__name__,
        detail=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "detail": exc.message},
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Tutor Payroll", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(SalaryServiceError, _salary_error_handler)

    app.include_router(health.router, prefix="/api")
    app.include_router(teacher_salary.router, prefix="/api")
    app.include_router(salary_settings.router, prefix="/api")
    app.include_router(invoices.router, prefix="/api")

    return app


app = create_app()
