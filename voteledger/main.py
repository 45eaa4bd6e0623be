"""
VoteLedger - Hash-Linked Vote Ledger

Main application entry point.

Votes are appended, never edited.
Each vote carries the hash of the one before it.
"""

import argparse
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from voteledger.api.routes import router
from voteledger.config import ServiceConfig
from voteledger.db.store import ChainNotInitializedError, ChainStore
from voteledger.observability import (
    setup_logging,
    get_logger,
    RequestContextMiddleware,
    check_health,
    get_metrics,
)

logger = get_logger(__name__)


def create_app(store: Optional[ChainStore] = None) -> FastAPI:
    """
    Build the application around a single ChainStore.

    The store is created here (or handed in) and owned by the app; handlers
    reach it through app.state. Genesis is created synchronously during
    startup, before the first request is served.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        chain_store = store if store is not None else ChainStore()
        if not chain_store.is_initialized:
            chain_store.initialize()
        app.state.chain_store = chain_store

        logger.info(
            "Application startup complete",
            vote_count=chain_store.length,
        )

        yield

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="VoteLedger",
        description="""
## Hash-Linked Vote Ledger

An append-only chain of votes held in memory.

- **Append-only**: votes are never modified or removed
- **Linked**: every vote carries its predecessor's hash
- **Serialized**: appends are totally ordered, the chain never forks
- **Volatile**: a restart begins a fresh chain from a new genesis vote
        """,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(RequestContextMiddleware)

    @app.exception_handler(RequestValidationError)
    async def malformed_body_handler(request: Request, exc: RequestValidationError):
        """Undecodable or wrongly shaped bodies are client errors (400)."""
        logger.info("Malformed request body", path=request.url.path)
        return JSONResponse(
            status_code=400,
            content={"message": "malformed request", "detail": jsonable_errors(exc)},
        )

    @app.exception_handler(ChainNotInitializedError)
    async def uninitialized_handler(request: Request, exc: ChainNotInitializedError):
        return JSONResponse(status_code=503, content={"message": str(exc)})

    app.include_router(router)

    @app.get("/health", tags=["System"])
    async def health():
        """
        Basic health check endpoint.

        Returns 200 if the service is running.
        For chain verification, use /health/chain
        """
        return {"status": "healthy", "service": "voteledger"}

    @app.get("/health/chain", tags=["System"])
    async def health_chain(request: Request):
        """
        Chain-specific health check.

        Verifies genesis, linkage and every hash from genesis to tail.
        Returns 200 if healthy, 503 if unhealthy.
        """
        health_status = check_health(store=request.app.state.chain_store)
        integrity = health_status.checks.get("chain_integrity", {})

        return JSONResponse(
            status_code=200 if health_status.healthy else 503,
            content={
                "status": "healthy" if health_status.healthy else "unhealthy",
                "vote_count": integrity.get("vote_count", 0),
                "chain_valid": integrity.get("valid", False),
                "last_hash": integrity.get("last_hash"),
                "duration_ms": health_status.duration_ms,
            },
        )

    @app.get("/metrics", tags=["System"])
    async def metrics():
        """
        Get application metrics.

        Returns counters and latency percentiles.
        """
        return get_metrics().get_summary()

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    """Strip validation errors down to JSON-safe fields."""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]


app = create_app()


def run(argv: Optional[list[str]] = None) -> None:
    """Parse the command line and serve the API."""
    env_config = ServiceConfig.from_env()

    parser = argparse.ArgumentParser(description="Serve the VoteLedger API")
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help=f"specifies the API port (default: {env_config.port})",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help=f"interface to bind (default: {env_config.host})",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help=f"DEBUG, INFO, WARNING or ERROR (default: {env_config.log_level})",
    )
    args = parser.parse_args(argv)

    config = env_config.with_overrides(
        host=args.host,
        port=args.port,
        log_level=args.log_level,
    )

    setup_logging(config.log_level)
    logger.info("Starting service", host=config.host, port=config.port)

    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )
