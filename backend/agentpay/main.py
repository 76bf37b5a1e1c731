"""
AgentPay Backend - FastAPI Application

HTTP surface for agent management, the service catalogue, payment sessions
and the transaction ledger.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.agents import router as agents_router
from .api.dependencies import configure_services
from .api.services import router as services_router
from .api.sessions import router as sessions_router
from .api.transactions import router as transactions_router
from .config import settings
from .db.init_db import configure_database, dispose_database, get_engine, initialize_database
from .exceptions import AgentPayError, NotFoundError
from .mocks.chain import SimulatedChain
from .mocks.text_generator import CannedTextGenerator
from .services.bedrock_service import get_bedrock_service
from .services.scheduler import configure_maintenance_jobs, shutdown_scheduler, start_scheduler

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(database_path: Optional[str] = None, enable_scheduler: bool = True) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        database_path: SQLite file, defaults to settings.database_path
        enable_scheduler: Start the maintenance jobs in the lifespan
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup: database, text generation, services, scheduler.
        Shutdown: scheduler, database engine.
        """
        logger.info("Starting AgentPay backend server...")
        logger.info(f"Demo mode: {settings.demo_mode}")

        session_factory = configure_database(database_path)
        await initialize_database(get_engine())

        if settings.demo_mode:
            text_generator = CannedTextGenerator()
            logger.info("Using canned text generator (demo mode)")
        else:
            text_generator = get_bedrock_service()
            logger.info(f"Using Bedrock text generation ({settings.aws_bedrock_model_id})")

        chain = SimulatedChain()
        services = configure_services(
            session_factory, chain, text_generator, use_strands_discovery=not settings.demo_mode
        )
        configure_maintenance_jobs(services.agents, chain)

        if enable_scheduler:
            # The simulated ledger does not hold agent balances, so only reconcile against a real one
            start_scheduler(reconcile=not settings.demo_mode)
            logger.info("Maintenance scheduler started")

        logger.info("AgentPay backend ready")

        yield

        logger.info("Shutting down AgentPay backend server...")
        if enable_scheduler:
            shutdown_scheduler(wait=True)
        await dispose_database()

    app = FastAPI(
        title="AgentPay API",
        description="Autonomous agent payment orchestration with MNEE",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AgentPayError)
    async def agentpay_error_handler(request: Request, exc: AgentPayError):
        """
        Return coded errors in the standard format.

        404 for NotFoundError, 400 for everything else.
        """
        logger.warning(f"AgentPay error: {exc.error_code} - {exc.message}", extra={"details": exc.details})
        status_code = 404 if isinstance(exc, NotFoundError) else 400
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(ValueError)
    async def invalid_value_handler(request: Request, exc: ValueError):
        logger.warning(f"Rejected {request.method} {request.url.path}: {exc}")
        body = {"error_code": "validation_error", "message": str(exc), "details": {}}
        return JSONResponse(status_code=400, content=body)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        """Log the traceback; clients only see the exception type, and only in demo mode."""
        logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
        details = {"error_type": type(exc).__name__} if settings.demo_mode else {}
        body = {"error_code": "internal_error", "message": "An unexpected error occurred", "details": details}
        return JSONResponse(status_code=500, content=body)

    @app.get("/api/health")
    async def health_check():
        return {
            "status": "healthy",
            "version": __version__,
            "demo_mode": settings.demo_mode,
        }

    app.include_router(agents_router, prefix="/api/agents", tags=["agents"])
    app.include_router(services_router, prefix="/api/services", tags=["services"])
    app.include_router(sessions_router, prefix="/api/payment-sessions", tags=["payment-sessions"])
    app.include_router(transactions_router, prefix="/api/transactions", tags=["transactions"])

    return app


app = create_app()


def main():
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run("agentpay.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
