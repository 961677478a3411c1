# app/config/settings.py
from pydantic_settings import BaseSettings
from typing import List
import os
import re

class Settings(BaseSettings):
    # App Info
    app_name: str = "Courier Warehouse Sync API"
    version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Database - SQLite local por defecto, PostgreSQL en producción
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./courier_sync.db")

    # Security
    secret_key: str = os.getenv("SECRET_KEY", "change-in-production")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 10080

    # Integración con bodegas aliadas
    warehouse_api_keys: str = os.getenv("WAREHOUSE_API_KEYS", "")
    partner_key_header: str = "x-warehouse-key"
    partner_api_key_header: str = "x-api-key"
    partner_body_token_field: str = "APIToken"
    partner_query_token_param: str = "id"
    partner_session_roles: List[str] = ["warehouse", "admin"]

    # Rate limiting (ventana fija, en memoria del proceso)
    rate_limit_window_ms: int = 60_000
    partner_write_rate_limit: int = 100
    partner_read_rate_limit: int = 200
    rate_limit_max_tracked: int = 10_000

    # Tracking numbers
    tracking_prefix: str = "TAS"
    tracking_mode: str = "long"
    enforce_tracking_checksum: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = int(os.getenv("PORT", 10000))

    @property
    def allowed_warehouse_keys(self) -> List[str]:
        """Llaves estáticas permitidas (separadas por coma o espacios)"""
        return [key.strip() for key in re.split(r"[,\s]+", self.warehouse_api_keys or "") if key.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = 'ignore'

settings = Settings()
