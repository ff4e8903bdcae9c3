from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "tournament-sweeps"
    environment: str = "dev"
    admin_secret_header: str = "X-Admin-Secret"
    admin_secret: str | None = None
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    user_agent: str = "RI-Tournament-Enricher/1.0"
    fetch_timeout_seconds: float = 10.0
    fetch_max_redirects: int = 5
    fetch_max_bytes: int = 1024 * 1024
    fetch_min_html_bytes: int = 2048
    politeness_delay_seconds: float = 0.5
    crawl_max_pages: int = 6
    sweep_default_limit: int = 10
    sweep_max_limit: int = 2000
    sweep_cooldown_days: int = 10
    contact_pool_width: int = 2
    contact_jitter_min_seconds: float = 0.3
    contact_jitter_max_seconds: float = 0.8
    source_ignore_days: int = 7
    otel_enabled: bool = True
    otel_service_name: str = "tournament-sweeps"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="SWEEPS_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
