"""
EMI Engine API Application Factory
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from .. import __version__
from .loans import router as loans_router
from .emis import router as emis_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="EMI Engine API",
        description="Loan amortization schedules, part-payments and foreclosure",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(emis_router, prefix="/emis", tags=["EMIs"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "emi_engine_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "EMI Engine API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "loans": "/loans",
                "emis": "/emis",
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8091, debug: bool = False):
    """Run the API server"""
    uvicorn.run(
        "emi_engine.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info" if not debug else "debug"
    )
