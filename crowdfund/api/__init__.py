"""
Crowdfund Ledger API Application Factory
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .. import __version__
from ..config import get_config
from ..errors import (
    CrowdfundError, ValidationError, AuthorizationError, TimingError,
    BusinessRuleError, NotFoundError, ExternalDependencyError
)
from ..logging_config import setup_logging
from .campaigns import router as campaigns_router
from .audit import router as audit_router


def status_for_error(error: CrowdfundError) -> int:
    """HTTP status code for a ledger error"""
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, AuthorizationError):
        return 403
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, (TimingError, BusinessRuleError)):
        return 409
    if isinstance(error, ExternalDependencyError):
        return 502
    return 400


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Crowdfund Ledger API",
        description="Campaign ledger: launch, pledge, claim and refund",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CrowdfundError)
    async def crowdfund_error_handler(request: Request, exc: CrowdfundError):
        return JSONResponse(status_code=status_for_error(exc), content=exc.to_dict())

    app.include_router(campaigns_router, prefix="/campaigns", tags=["Campaigns"])
    app.include_router(audit_router, prefix="/audit", tags=["Audit"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "crowdfund_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Crowdfund Ledger API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "campaigns": "/campaigns",
                "audit": "/audit",
            }
        }

    return app


app = create_app()


def run_server(host: str = None, port: int = None, debug: bool = False):
    """Run the API server with settings from configuration"""
    config = get_config()
    setup_logging(level="DEBUG" if debug else config.log_level, log_format=config.log_format)
    uvicorn.run(
        app,
        host=host or config.api_host,
        port=port or config.api_port,
        log_level="debug" if debug else config.log_level.lower()
    )
