from __future__ import annotations
import os
from dataclasses import dataclass


def _get_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.lower() in {"1", "true", "yes", "on"}


def _get_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(x.strip() for x in raw.split(",") if x.strip())


@dataclass(frozen=True)
class AppConfig:
    storage_backend: str
    storage_dir: str
    s3_bucket: str
    s3_prefix: str
    s3_endpoint_url: str | None
    database_url: str
    api_key: str | None
    cors_origins: tuple[str, ...]
    max_upload_mb: int
    preview_rows: int
    top_variable: int
    log_level: str
    log_json: bool

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @staticmethod
    def load() -> "AppConfig":
        return AppConfig(
            storage_backend=os.getenv("STORAGE_BACKEND", "local").lower(),
            storage_dir=os.getenv("STORAGE_DIR", "data/uploads"),
            s3_bucket=os.getenv("S3_BUCKET", "bioxp-uploads"),
            s3_prefix=os.getenv("S3_PREFIX", ""),
            s3_endpoint_url=os.getenv("S3_ENDPOINT_URL") or None,
            database_url=os.getenv("DATABASE_URL", "sqlite:///data/projects.db"),
            api_key=os.getenv("API_KEY") or None,
            cors_origins=_get_list("CORS_ORIGINS", "*"),
            max_upload_mb=int(os.getenv("MAX_UPLOAD_MB", "50")),
            preview_rows=int(os.getenv("PREVIEW_ROWS", "10")),
            top_variable=int(os.getenv("TOP_VARIABLE", "10")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_json=_get_bool("LOG_JSON", True),
        )
