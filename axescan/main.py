from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from axescan.api_routers.v1 import api_router
from axescan.features.health.routes.health import router as health_router
from axescan.platform.config import settings
from axescan.platform.exceptions import add_exception_handlers
from axescan.platform.logger import configure_logging

configure_logging()


def create_app() -> FastAPI:
    app = FastAPI(
        title="AxeScan API",
        description="Automated WCAG accessibility scanning powered by axe-core",
        version="1.0.0",
        debug=settings.DEBUG,
    )

    # Root endpoint for basic info
    @app.get("/", tags=["Info"])
    def root():
        return {
            "app_name": "AxeScan API",
            "description": "Headless-browser accessibility audits with a 0-100 score.",
            "version": "1.0.0",
            "docs_url": "/docs",
            "api_base": "/api/v1",
        }

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Create static directory if it doesn't exist
    static_dir = Path("static")
    static_dir.mkdir(exist_ok=True)

    # Mount static files for serving violation screenshots
    app.mount("/static", StaticFiles(directory="static"), name="static")

    add_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()
