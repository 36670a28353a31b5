from pydantic_settings import BaseSettings
from typing import List, Optional
from pathlib import Path

# Project root (parent of the bookies package)
PROJECT_DIR = Path(__file__).parent.parent
ENV_FILE = PROJECT_DIR / ".env"

class Settings(BaseSettings):
    # Server settings
    host: str = "0.0.0.0"
    port: int = 8090

    # HTTPS/SSL settings for uvicorn
    ssl_enabled: bool = False
    ssl_certfile: Optional[str] = None
    ssl_keyfile: Optional[str] = None

    # Browser clients allowed to call the API (JSON list in the environment)
    cors_origins: List[str] = [
        "http://localhost:8080",
        "http://localhost:8081",
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Database settings - a full URL wins, otherwise PostgreSQL parts, otherwise local SQLite
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: Optional[str] = None
    db_user: Optional[str] = None
    db_password: Optional[str] = None  # confidential, from .env only

    # Database SSL settings (PostgreSQL only)
    db_ssl_mode: str = "prefer"  # Options: disable, allow, prefer, require, verify-ca, verify-full
    db_ssl_cert: Optional[str] = None
    db_ssl_key: Optional[str] = None
    db_ssl_root_cert: Optional[str] = None

    # JWT settings - confidential values from .env
    jwt_secret_key: str  # Required from .env (confidential - no default)
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 1440

    # Accounts
    allow_admin_signup: bool = False
    default_admin_email: Optional[str] = None  # Seeded at startup when both are set
    default_admin_password: Optional[str] = None

    # Lending
    loan_period_days: int = 30
    timezone: str = "UTC"  # Any pytz zone name, e.g. Asia/Kuala_Lumpur

    # MQTT settings - status events for clients watching the catalogue
    mqtt_enabled: bool = False
    mqtt_broker: str = "localhost"
    mqtt_port: int = 1883
    mqtt_username: Optional[str] = None
    mqtt_password: Optional[str] = None  # confidential
    mqtt_topic_prefix: str = "bookies"

    # MQTT TLS/SSL settings
    mqtt_use_tls: bool = False
    mqtt_tls_insecure: bool = False  # Self-signed brokers only
    mqtt_ca_cert: Optional[str] = None
    mqtt_client_cert: Optional[str] = None  # mutual TLS
    mqtt_client_key: Optional[str] = None

    class Config:
        env_file = str(ENV_FILE) if ENV_FILE.exists() else ".env"
        case_sensitive = False

settings = Settings()
