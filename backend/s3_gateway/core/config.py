from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from s3_gateway.core.errors import ConfigurationError

MiB = 1024 * 1024


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    debug: bool = Field(default=False, alias="DEBUG")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8080, alias="PORT")

    access_key: str = Field(..., min_length=1, alias="ACCESS_KEY")
    secret_key: str = Field(..., min_length=1, alias="SECRET_KEY")
    s3_endpoint: str = Field(..., min_length=1, alias="S3_ENDPOINT")
    s3_secure: bool = Field(default=False, alias="S3_SECURE")
    s3_region: str = Field(default="us-east-1", alias="S3_REGION")
    s3_connect_timeout: float = Field(default=5.0, gt=0, alias="S3_CONNECT_TIMEOUT")
    s3_read_timeout: float = Field(default=60.0, gt=0, alias="S3_READ_TIMEOUT")

    max_upload_bytes: int = Field(default=10 * MiB, gt=0, alias="MAX_UPLOAD_BYTES")
    download_chunk_size: int = Field(default=64 * 1024, gt=0, alias="DOWNLOAD_CHUNK_SIZE")
    sanitize_object_keys: bool = Field(default=False, alias="SANITIZE_OBJECT_KEYS")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO", alias="LOG_LEVEL")
    log_file: str = Field(default="", alias="LOG_FILE")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @property
    def s3_endpoint_url(self) -> str:
        """Endpoint as a URL; a bare host:port gets a scheme from s3_secure."""
        if "://" in self.s3_endpoint:
            return self.s3_endpoint
        scheme = "https" if self.s3_secure else "http"
        return f"{scheme}://{self.s3_endpoint}"


def load_settings(**overrides: Any) -> Settings:
    """Build settings, turning validation failures into ConfigurationError."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        raise ConfigurationError(
            f"Missing or invalid configuration: {', '.join(fields)}"
        ) from exc


@lru_cache
def get_settings() -> Settings:
    return load_settings()
