from __future__ import annotations

from fastapi import FastAPI

from page_composer import __version__
from page_composer.api.errors import register_error_handlers
from page_composer.api.lifespan import lifespan
from page_composer.api.routes.configurations import router as configurations_router
from page_composer.api.routes.defaults import router as defaults_router
from page_composer.api.routes.health import router as health_router
from page_composer.api.routes.root import router as root_router
from page_composer.api.routes.tenants import router as tenants_router


def create_app() -> FastAPI:
    app = FastAPI(
        title="Page Composer API",
        description="Versioned page slot configurations with publish control and override resolution.",
        version=__version__,
        lifespan=lifespan,
    )
    register_error_handlers(app)

    app.include_router(root_router, include_in_schema=False)
    app.include_router(health_router, include_in_schema=False)
    app.include_router(configurations_router)
    app.include_router(tenants_router)
    app.include_router(defaults_router)

    return app
