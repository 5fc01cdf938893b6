from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "OpsDesk API"
    app_env: str = "local"
    app_debug: bool = True
    api_port: int = 8000
    database_url: str = "sqlite+pysqlite:///./opsdesk.db"
    jwt_secret: str = "replace-me"
    jwt_algorithm: str = "HS256"
    metrics_enabled: bool = False
    otel_enabled: bool = False
    default_po_currency: str = "AED"
    approval_reject_clears_approve_fields: bool = False

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    return Settings()
