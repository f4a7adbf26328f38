"""
REST API main application.
Entry point for the FastAPI costing server.
"""

from fastapi import FastAPI

from shared.config.settings import settings
from rest_api.core.cors import configure_cors
from rest_api.core.lifespan import lifespan
from rest_api.core.middlewares import register_middlewares
from rest_api.routers.public import health_router
from rest_api.routers.costing import (
    ingredients_router,
    recipes_router,
    menu_items_router,
    settings_router,
)
from rest_api.routers.queues import jobs_router


app = FastAPI(
    title="Menu Costing API",
    description="Ingredient, recipe and menu cost propagation for multi-branch restaurants",
    version="0.1.0",
    lifespan=lifespan,
)

register_middlewares(app)
configure_cors(app)


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(health_router)
app.include_router(ingredients_router)
app.include_router(recipes_router)
app.include_router(menu_items_router)
app.include_router(settings_router)
app.include_router(jobs_router)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rest_api.main:app",
        host="0.0.0.0",
        port=settings.rest_api_port,
        reload=settings.debug,
    )
