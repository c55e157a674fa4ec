from fastapi import Request

from s3_gateway.core.config import Settings
from s3_gateway.services.storage import StorageService


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> StorageService:
    return request.app.state.storage
