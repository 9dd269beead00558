# marketplace/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from marketplace.core.config import settings
from marketplace.core.middleware import configure_logging, register_middleware
from marketplace.db.session import create_tables, dispose_engine
from marketplace.errors import register_all_errors
from marketplace.api.routers import (
    auth,
    users,
    conversations,
    messages,
)

configure_logging()
logger = logging.getLogger(__name__)

# Lifespan manager for startup and shutdown events
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up...")
    await create_tables()
    yield
    logger.info("Shutting down...")
    await dispose_engine()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Buyer/seller messaging for the second-hand marketplace.",
    version="0.1.0",
    lifespan=lifespan,
    openapi_url=f"{settings.API_PREFIX}/openapi.json"
)


# Prometheus Metrics Integration
Instrumentator().instrument(app).expose(app)


# Error handlers, logging and CORS
register_all_errors(app)
register_middleware(app)


# Include API Routers
api_prefix = settings.API_PREFIX
app.include_router(auth.router, prefix=f"{api_prefix}/auth", tags=["Auth"])
app.include_router(users.router, prefix=f"{api_prefix}/users", tags=["Users"])
app.include_router(conversations.router, prefix=f"{api_prefix}/conversations", tags=["Conversations"])
app.include_router(messages.router, prefix=f"{api_prefix}/messages", tags=["Messages"])


@app.get("/", tags=["Health Check"])
async def root():
    """Health check endpoint."""
    return {"message": "Marketplace messaging API is running!"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("marketplace.main:app", host="0.0.0.0", port=8000, reload=True)
