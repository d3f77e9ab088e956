"""
Configuration management for the resale analytics backend
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Resale Analytics"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_to_file: bool = True

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 4

    # Database
    database_url: str = "sqlite:///./resale_analytics.db"

    # Currency
    currency: str = "PEN"
    usd_exchange_rate: float = 3.7  # Fixed USD -> local rate used for purchase costs

    # Sellers (comma-separated). The split marker means a 50/50 sale.
    seller_names: str = "gonzalo,renato"
    split_seller_marker: str = "ambos"

    # Summary thresholds (defaults when the request does not override them)
    late_shipment_days: int = 20
    aging_bucket_15: int = 15
    aging_bucket_30: int = 30
    aging_bucket_60: int = 60
    low_margin_threshold: float = 15.0

    # Stale-while-revalidate cache for the summary
    summary_revalidate_after_ms: int = 60_000
    summary_cache_ttl_seconds: int = 600
    cache_max_entries: int = 80

    # Background warm-up of the default summary
    enable_cache_warmup: bool = True
    cache_warmup_interval_minutes: int = 10

    @property
    def seller_list(self) -> List[str]:
        return [s.strip().lower() for s in self.seller_names.split(",") if s.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
