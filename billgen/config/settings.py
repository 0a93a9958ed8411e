from decimal import Decimal

from pydantic import Field, AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Read env from container + optionally from files
    model_config = SettingsConfigDict(
        env_file=(".env", ".env.docker"),
        extra="ignore",
        case_sensitive=False,
    )

    # App
    ENVIRONMENT: str = Field(default="docker", validation_alias=AliasChoices("ENVIRONMENT", "environment"))
    APP_NAME: str = Field(default="billgen", validation_alias=AliasChoices("APP_NAME", "app_name"))
    LOG_LEVEL: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))
    DEBUG: bool = Field(default=False, validation_alias=AliasChoices("DEBUG", "debug"))

    # Infrastructure
    DATABASE_URL: str = Field(
        default="postgresql+asyncpg://postgres:postgres@db:5432/billgen_db",
        validation_alias=AliasChoices("DATABASE_URL", "database_url"),
    )
    DATABASE_SSL: bool = Field(default=False, validation_alias=AliasChoices("DATABASE_SSL", "database_ssl"))

    # Company branding printed on every bill
    COMPANY_NAME: str = Field(default="VIGHNESHWARA ENTERPRISES", validation_alias=AliasChoices("COMPANY_NAME", "company_name"))
    COMPANY_GSTIN: str = Field(default="29ABCDE1234F1Z5", validation_alias=AliasChoices("COMPANY_GSTIN", "company_gstin"))
    COMPANY_STATE: str = Field(default="Karnataka", validation_alias=AliasChoices("COMPANY_STATE", "company_state"))
    COMPANY_STATE_CODE: str = Field(default="29", validation_alias=AliasChoices("COMPANY_STATE_CODE", "company_state_code"))

    # GST (flat rate, split 50/50 into CGST + SGST for intra-state supplies)
    GST_RATE: Decimal = Field(default=Decimal("0.18"), ge=0, le=1, validation_alias=AliasChoices("GST_RATE", "gst_rate"))

    # Bill numbering
    BILL_NUMBER_MAX_RETRIES: int = Field(default=20, ge=1, validation_alias=AliasChoices("BILL_NUMBER_MAX_RETRIES", "bill_number_max_retries"))
    SIGNATURE_SECRET: str = Field(default="change-me", validation_alias=AliasChoices("SIGNATURE_SECRET", "signature_secret"))

    # PDF rendering engine
    RENDER_MAX_CONCURRENCY: int = Field(default=4, ge=1, validation_alias=AliasChoices("RENDER_MAX_CONCURRENCY", "render_max_concurrency"))
    RENDER_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0, validation_alias=AliasChoices("RENDER_TIMEOUT_SECONDS", "render_timeout_seconds"))


settings = Settings()
