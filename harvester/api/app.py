"""FastAPI application entry point for the results viewer."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from harvester.api import routes
from harvester.config.settings import APIConfig


def create_app(config: APIConfig | None = None) -> FastAPI:
    """Factory function for creating the FastAPI application."""
    config = config or APIConfig()
    routes._api_config = config

    app = FastAPI(
        title="Harvester",
        description="Therapist profile harvester results",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(routes.router, prefix="/api")
    app.include_router(routes.viewer_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy", "service": "harvester", "version": "1.0.0"}

    return app
