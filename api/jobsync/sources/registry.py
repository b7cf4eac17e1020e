from __future__ import annotations

import httpx

from jobsync.core.config import Settings
from jobsync.sources.adzuna import AdzunaSource
from jobsync.sources.apify import ApifyIndeedSource, ApifyLinkedInSource, ApifyNaukriSource
from jobsync.sources.arbeitnow import ArbeitnowSource
from jobsync.sources.base import JobSource
from jobsync.sources.careerjet import CareerjetSource
from jobsync.sources.jsearch import JSearchSource
from jobsync.sources.linkedin import LinkedInRapidApiSource
from jobsync.sources.remotive import RemotiveSource
from jobsync.sources.themuse import TheMuseSource

SOURCE_NAMES = (
    "jsearch",
    "adzuna",
    "careerjet",
    "themuse",
    "remotive",
    "arbeitnow",
    "linkedin",
    "apify-linkedin",
    "apify-naukri",
    "apify-indeed",
)
APIFY_SOURCE_NAMES = ("apify-linkedin", "apify-naukri", "apify-indeed")
DEFAULT_AGGREGATE_SOURCES = ("linkedin", "jsearch", "adzuna", "careerjet")
DEFAULT_FETCH_SOURCES = ("jsearch", "adzuna", "careerjet", "themuse", "remotive", "arbeitnow")
DEFAULT_ADMIN_SCRAPE_SOURCES = ("jsearch", "adzuna", "careerjet")


def build_sources(settings: Settings, client: httpx.AsyncClient | None = None) -> dict[str, JobSource]:
    common = {"client": client, "timeout_seconds": settings.http_timeout_seconds}
    sources: list[JobSource] = [
        JSearchSource(api_key=settings.jsearch_api_key, api_host=settings.jsearch_api_host, **common),
        AdzunaSource(app_id=settings.adzuna_app_id, app_key=settings.adzuna_app_key, **common),
        CareerjetSource(affid=settings.careerjet_affid, **common),
        TheMuseSource(**common),
        RemotiveSource(**common),
        ArbeitnowSource(**common),
        LinkedInRapidApiSource(
            api_key=settings.linkedin_rapidapi_key,
            api_host=settings.linkedin_rapidapi_host,
            **common,
        ),
        ApifyLinkedInSource(api_token=settings.apify_api_token, run_id=settings.apify_linkedin_run_id, client=client),
        ApifyNaukriSource(api_token=settings.apify_api_token, run_id=settings.apify_naukri_run_id, client=client),
        ApifyIndeedSource(api_token=settings.apify_api_token, run_id=settings.apify_indeed_run_id, client=client),
    ]
    return {source.name: source for source in sources}
