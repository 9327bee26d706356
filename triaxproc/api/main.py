"""
TriaxProc FastAPI Application
=============================
Main entry point for the REST API.
"""

from datetime import datetime, timezone
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from triaxproc import __version__
from triaxproc.api.routes import channels, recordings
from triaxproc.api.schemas import HealthResponse
from triaxproc.config import configure_logging, get_config


configure_logging()

# Create FastAPI app
app = FastAPI(
    title="TriaxProc API",
    description="Sensor post-processing and permeability calculation for triaxial experiments",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS for browser front ends
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(channels.router, prefix="/channels", tags=["Channels"])
app.include_router(recordings.router, prefix="/recordings", tags=["Recordings"])


@app.get("/", tags=["Health"])
async def root():
    """API root - redirects to docs."""
    return {
        "message": "TriaxProc API",
        "docs": "/docs",
        "version": __version__
    }


@app.get("/health", tags=["Health"], response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        version=__version__
    )


if __name__ == "__main__":
    import uvicorn
    api = get_config().api
    uvicorn.run(app, host=api.host, port=api.port)
