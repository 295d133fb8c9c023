"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # Dataset storage
    storage_bucket: str = "ml-datasets"
    storage_prefix: str = "uploads"
    upload_dir: str = ""  # system temp dir when empty
    max_upload_bytes: int = 50 * 1024 * 1024

    # External workflow
    workflow_webhook_url: str = "https://n8n-r920.onrender.com/webhook-test/ml-upload"
    callback_url: Optional[str] = None  # derived from the request when unset
    workflow_timeout_seconds: float = 10.0

    # Callback protection, open when unset
    callback_secret: Optional[str] = None

    # Stale job expiry (0 disables the reaper)
    stale_job_timeout_minutes: int = 0
    reaper_interval_seconds: float = 60.0

    # Server
    port: int = 5000
    log_level: str = "INFO"
    shutdown_grace_seconds: float = 5.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
