"""
FastAPI application entry point for the ledger host.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from ledgervote.core.config import settings
from ledgervote.core.database import async_session_maker, init_db, close_db
from ledgervote.core.errors import LedgerError
from ledgervote.core.logging import configure_logging
from ledgervote.services.ledger_service import ElectionLedgerService, LedgerSequencer
from ledgervote.api.v1.router import api_router


logger = structlog.get_logger(__name__)


ERROR_STATUS_CODES = {
    "Unauthorized": 403,
    "PeriodActive": 409,
    "InvalidWindow": 422,
    "NotActive": 409,
    "AlreadyVoted": 409,
    "UnknownCandidate": 404,
    "NotFound": 404,
    "InvalidRequest": 422,
    "LedgerUnavailable": 503,
    "ClockUnresolved": 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan handler for startup and shutdown."""
    # Startup
    await init_db()
    async with async_session_maker() as session:
        state = await ElectionLedgerService(session, app.state.sequencer).bootstrap()
    logger.info("ledger_ready", owner=state.owner, round=state.current_round, block=state.block_number)
    yield
    # Shutdown
    await close_db()


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Render a ledger error as an RPC error body."""
    logger.info(
        "ledger_rejected",
        path=request.url.path,
        error=exc.kind,
        detail=exc.detail,
    )
    return JSONResponse(
        status_code=ERROR_STATUS_CODES.get(exc.kind, 400),
        content=exc.to_payload(),
    )


def create_application(
    ledger_clock: Optional[Callable[[], int]] = None,
    use_lifespan: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
        Election Ledger API

        The authoritative store for one election:
        - Candidate registry with never-reused ids
        - A voting window gated by the ledger clock
        - Monotonic election rounds
        - At most one accepted vote per voter per round
        """,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url=f"{settings.API_V1_PREFIX}/docs",
        redoc_url=f"{settings.API_V1_PREFIX}/redoc",
        lifespan=lifespan if use_lifespan else None,
    )

    # Single write sequencer for the process
    app.state.sequencer = LedgerSequencer(clock=ledger_clock)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Gzip compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.add_exception_handler(LedgerError, ledger_error_handler)

    # Include API router
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": settings.APP_VERSION}

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": f"{settings.API_V1_PREFIX}/docs"
        }

    return app


configure_logging()
app = create_application()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "ledgervote.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=settings.WORKERS if not settings.DEBUG else 1,
    )
