from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from . import config

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

from .dependencies import datasets_repository, simulator
from .routes import dataset_routes, stream_routes

logger = logging.getLogger(__name__)

app = FastAPI(title="Lumina Analytics")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(dataset_routes.router, prefix="/api/v1", tags=["datasets"])
app.include_router(stream_routes.router, prefix="/api/v1", tags=["stream"])


@app.get("/")
async def home():
    """Service health"""
    return {
        "service": "Lumina Analytics",
        "docs": "/docs",
        "repository": type(datasets_repository).__name__,
        "stream": simulator.state.value
    }


@app.on_event("startup")
async def startup_event():
    """Initialize database connection on startup"""
    try:
        datasets_repository.connect()
    except Exception as e:
        logger.error(f"Error connecting to database: {str(e)}")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the live stream and close the database connection"""
    simulator.stop()
    try:
        datasets_repository.close()
    except Exception as e:
        logger.error(f"Error closing database connection: {str(e)}")


if __name__ == "__main__":
    import uvicorn
    import os

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
