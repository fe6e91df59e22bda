from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from closeflow import __version__
from closeflow.api.errors import closeflow_error_handler
from closeflow.api.middleware import RequestLoggingMiddleware
from closeflow.api.routers import approval_logs, approvals, comments, health, report_batches, workflow
from closeflow.core.config import Settings, get_settings
from closeflow.core.errors import CloseflowError
from closeflow.core.logger import configure_logging
from closeflow.core.orchestration import OrchestrationFacade


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Notification delivery runs on its own worker thread for the app's lifetime
    notifier = app.state.facade.notifier
    if notifier is not None:
        notifier.start()
    try:
        yield
    finally:
        if notifier is not None:
            notifier.stop()


def create_app(
    facade: Optional[OrchestrationFacade] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Approval gating and workflow dependency engine for the monthly reporting close",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.facade = facade if facade is not None else OrchestrationFacade.from_settings(settings)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["ETag", "X-Request-ID"],
    )

    # Request logging middleware - logs all API requests
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(CloseflowError, closeflow_error_handler)

    # Include routers
    app.include_router(health.router)
    app.include_router(report_batches.router, prefix="/v1")
    app.include_router(approvals.router, prefix="/v1")
    app.include_router(comments.router, prefix="/v1")
    app.include_router(approval_logs.router, prefix="/v1")
    app.include_router(workflow.router, prefix="/v1")

    return app


app = create_app()
