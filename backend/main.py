"""
App setup, middleware, lifespan
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import settings
from core.startup import initialize_rag_system, cleanup_rag_system
from api.routes import root, retrieval, ingestion

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic"""
    await initialize_rag_system(app)
    try:
        yield
    finally:
        # shutdown
        await cleanup_rag_system(app)


def create_app() -> FastAPI:
    app = FastAPI(title="Hybrid Retrieval API", version="0.1.0", lifespan=lifespan)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Allows all origins
        allow_credentials=True,
        allow_methods=["*"],  # Allows all methods
        allow_headers=["*"],  # Allows all headers
    )

    # Include routes
    app.include_router(root.router)
    app.include_router(retrieval.router)
    app.include_router(ingestion.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
