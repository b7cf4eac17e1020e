from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "jobsync-api"
    environment: str = "dev"
    admin_api_key: str | None = None
    storage_backend: Literal["postgres", "memory"] = "postgres"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10

    jsearch_api_key: str | None = None
    jsearch_api_host: str = "jsearch.p.rapidapi.com"
    adzuna_app_id: str | None = None
    adzuna_app_key: str | None = None
    careerjet_affid: str | None = None
    linkedin_rapidapi_key: str | None = None
    linkedin_rapidapi_host: str | None = None
    apify_api_token: str | None = None
    apify_linkedin_actor_id: str = "curious_coder/linkedin-jobs-scraper"
    apify_linkedin_run_id: str | None = None
    apify_naukri_run_id: str | None = None
    apify_indeed_run_id: str | None = None
    apify_poll_interval_seconds: float = 10.0
    apify_run_timeout_seconds: float = 300.0

    default_search_location: str = "Karnataka,India"
    scraping_enabled: bool = False
    scraping_interval_hours: int = 24
    max_jobs_per_scrape: int = 100
    inter_source_delay_seconds: float = 2.0
    recent_days: int = 7
    http_timeout_seconds: float = 15.0
    scheduler_tick_seconds: float = 60.0

    otel_enabled: bool = True
    otel_service_name: str = "jobsync-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True
    log_level: str = "INFO"

    model_config = SettingsConfigDict(extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
