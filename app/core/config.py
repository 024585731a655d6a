import json
from typing import List, Union
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "BotCRM Backend"
    env: str = "dev"

    # DATABASE
    database_url: str
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=20, ge=0, le=200)
    db_pool_timeout_seconds: int = Field(default=30, ge=1, le=300)
    db_pool_recycle_seconds: int = Field(default=1800, ge=30, le=86_400)

    # TELEGRAM
    telegram_bot_token: str | None = None
    telegram_admin_bot_token: str | None = None
    telegram_webhook_secret: str | None = None
    telegram_api_base_url: str = "https://api.telegram.org"
    telegram_request_timeout_seconds: float = Field(default=15.0, gt=0, le=300)
    send_capability_default: str = "telegram"
    uploads_dir: str = "uploads"

    # ADMIN API
    admin_api_key: str | None = None

    # SCHEDULER
    scheduler_enabled: bool = False
    scheduler_timezone: str = "Europe/Moscow"
    post_queue_interval_seconds: int = Field(default=60, ge=1, le=86_400)
    sales_rule_queue_interval_seconds: int = Field(default=60, ge=1, le=86_400)
    attention_check_hour: int = Field(default=9, ge=0, le=23)
    attention_check_minute: int = Field(default=0, ge=0, le=59)

    # QUEUES / ENGAGEMENT / COUPONS
    post_queue_batch_size: int = Field(default=100, ge=1, le=10_000)
    sales_rule_queue_batch_size: int = Field(default=300, ge=1, le=10_000)
    attention_stale_days: int = Field(default=14, ge=1, le=365)
    coupon_code_max_attempts: int = Field(default=5, ge=1, le=50)
    config_cache_seconds: int = Field(default=300, ge=0, le=86_400)

    # CORS
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            if not v.strip():
                return []
            if v.startswith("["):
                parsed = json.loads(v)
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON value must be a list")
                return [str(i).strip() for i in parsed if str(i).strip()]
            return [i.strip() for i in v.split(",") if i.strip()]
        if isinstance(v, list):
            return [str(i).strip() for i in v if str(i).strip()]
        raise ValueError(v)

    @field_validator(
        "telegram_bot_token",
        "telegram_admin_bot_token",
        "telegram_webhook_secret",
        "admin_api_key",
        mode="before",
    )
    @classmethod
    def normalize_optional_strings(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @field_validator("send_capability_default", mode="before")
    @classmethod
    def normalize_send_capability(cls, value: str | None) -> str:
        return (str(value or "telegram")).strip().lower()

    @model_validator(mode="after")
    def validate_production_safety(self) -> "Settings":
        env_value = self.env.lower().strip()
        if env_value not in {"prod", "production"}:
            return self

        if not self.admin_api_key or len(self.admin_api_key) < 24:
            raise ValueError("ADMIN_API_KEY must be a strong random value in production")
        if "*" in self.cors_origins:
            raise ValueError("CORS_ORIGINS cannot contain '*' in production")
        if self.send_capability_default == "telegram" and not self.telegram_bot_token:
            raise ValueError("TELEGRAM_BOT_TOKEN is required in production")

        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        enable_decoding=False,
    )


settings = Settings()
