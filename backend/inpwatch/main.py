"""Main FastAPI application."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from inpwatch.config import settings
from inpwatch.api import offenders

app = FastAPI(
    title="INP Watch API",
    description="Interaction latency rollups and Top Offenders reporting",
    version="0.1.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

# Include routers
app.include_router(offenders.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "INP Watch API",
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
