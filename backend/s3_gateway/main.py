from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from s3_gateway import __version__
from s3_gateway.api.routers import objects as objects_router
from s3_gateway.core.config import Settings, get_settings
from s3_gateway.services.storage import StorageService, create_storage_service

CORS_ALLOWED_METHODS = ["GET", "POST", "OPTIONS"]
CORS_ALLOWED_HEADERS = ["Content-Type", "Authorization"]


def create_app(
    settings: Settings | None = None,
    storage: StorageService | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(
        debug=settings.debug,
        title="S3 Gateway",
        version=__version__,
    )
    app.state.settings = settings
    app.state.storage = storage or create_storage_service(settings)

    app.include_router(objects_router.router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=CORS_ALLOWED_METHODS,
        allow_headers=CORS_ALLOWED_HEADERS,
    )
    return app
