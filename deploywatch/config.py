from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Credential encryption (required before any credential is read or written)
    encryption_secret: str = ""

    # Storage
    db_path: str = ""  # empty = data/deploywatch.db next to the package

    # Health monitoring
    health_check_interval_seconds: int = 300  # every 5 minutes
    health_history_limit: int = 20
    health_retention_days: int = 30
    probe_timeout_seconds: float = 10.0
    probe_workers: int = 4

    # Managed n8n instance ("your_instance" deployments)
    n8n_instance_url: str = ""
    n8n_api_key: str = ""

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"

    # Notifications (optional: Slack / Telegram)
    slack_webhook_url: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""


settings = Settings()
