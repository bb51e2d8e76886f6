from __future__ import annotations

from decimal import Decimal

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    api_key: str = Field("test-api-key", alias="API_KEY")

    database_url: str = Field("sqlite:////tmp/session_engine_test.db", alias="DATABASE_URL")
    db_create_all: bool = Field(False, alias="DB_CREATE_ALL")

    redis_url: str = Field("redis://localhost:6379", alias="REDIS_URL")
    rate_limit_per_minute: int = Field(120, alias="RATE_LIMIT_PER_MINUTE")

    ledger_max_retries: int = Field(
        3,
        alias="LEDGER_MAX_RETRIES",
        description="Attempts for a ledger transaction before reporting contention",
    )
    session_length_minutes: int = Field(15, alias="SESSION_LENGTH_MINUTES")

    default_vapi_cost_per_minute: Decimal = Field(
        Decimal("0.11"), alias="DEFAULT_VAPI_COST_PER_MINUTE"
    )
    default_markup_percentage: Decimal = Field(
        Decimal("36.36"), alias="DEFAULT_MARKUP_PERCENTAGE"
    )
    default_annual_license_cost: Decimal = Field(
        Decimal("19.96"), alias="DEFAULT_ANNUAL_LICENSE_COST"
    )

    min_vapi_cost: Decimal = Field(Decimal("0.05"), alias="MIN_VAPI_COST")
    max_vapi_cost: Decimal = Field(Decimal("0.25"), alias="MAX_VAPI_COST")
    min_markup_percentage: Decimal = Field(Decimal("10"), alias="MIN_MARKUP_PERCENTAGE")
    max_markup_percentage: Decimal = Field(Decimal("100"), alias="MAX_MARKUP_PERCENTAGE")

    model_config = ConfigDict(
        extra="ignore",
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
    )
