from __future__ import annotations

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    secret_key: str = "change-me"
    access_token_exp_minutes: int = 60 * 24

    database_url: str = "sqlite:///./ticketflow.db"

    extraction_api_key: str | None = None
    extraction_base_url: str = "https://api.openai.com/v1"
    extraction_model: str = "gpt-4o-mini"
    extraction_timeout_seconds: float = 30.0
    extraction_max_attempts: int = 3

    max_upload_bytes: int = 10 * 1024 * 1024
    reconciliation_tolerance: Decimal = Decimal("0.01")

    rate_limit_max_requests: int = 10
    rate_limit_window_seconds: float = 60.0

    demo_mode_enabled: bool = True
    demo_organization_name: str = "Demo"
    demo_employee_email: str = "demo@ticketflow.app"
    default_category_name: str = "Otros"


settings = Settings()
