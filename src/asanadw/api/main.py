"""FastAPI application factory."""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlmodel import SQLModel

from asanadw.api.routes import sync as sync_routes
from asanadw.db.engine import get_engine


def create_app() -> FastAPI:
    """Build and return the FastAPI app."""

    engine = get_engine()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        SQLModel.metadata.create_all(engine)
        yield

    app = FastAPI(
        title="Asana Data Warehouse API",
        description="Local Asana mirror: sync control and status",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app


# Module-level app instance for uvicorn
app = create_app()
