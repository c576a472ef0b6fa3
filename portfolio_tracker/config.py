"""Application configuration."""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict

from portfolio_tracker.constants import Currency


class Settings(BaseSettings):
    """Application settings."""

    # Currencies
    base_currency: str = Currency.USD
    quote_currency: str = Currency.EUR
    fallback_fx_rate: Decimal = Decimal("0.92")

    # Refresh cycle
    refresh_interval_seconds: float = 300.0
    equity_quote_timeout_seconds: float = 8.0
    http_timeout_seconds: float = 10.0

    # History retention
    history_compaction_interval: int = 100

    # Presentation
    min_display_value: Decimal = Decimal("10")

    # Market data providers
    coingecko_api_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key: str = ""
    coincap_api_url: str = "https://api.coincap.io/v2"
    exchange_rate_api_url: str = "https://api.exchangerate-api.com/v4/latest/USD"
    yahoo_chart_url: str = "https://query1.finance.yahoo.com/v8/finance/chart"

    # Key-value storage
    database_url: str = "sqlite:///portfolio_tracker.db"

    # Application
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )


settings = Settings()
