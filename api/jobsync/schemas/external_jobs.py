from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SourceName = Literal[
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
]
ApifySourceName = Literal["apify-linkedin", "apify-naukri", "apify-indeed"]
PostingStatus = Literal["active", "expired", "removed", "duplicate", "processed"]
WorkMode = Literal["Remote", "Hybrid", "On-site"]
ExperienceLevel = Literal["entry", "junior", "mid", "senior", "lead", "executive", "unknown"]
SalaryCurrency = Literal["INR", "USD", "EUR", "GBP", "CAD", "AUD"]
SalaryPeriod = Literal["annual", "monthly", "hourly"]
PostingSortBy = Literal["posted_date", "scraped_at", "last_updated", "quality_score", "views", "title", "company"]
SortDir = Literal["asc", "desc"]


class SalaryModel(BaseModel):
    min: float | None = None
    max: float | None = None
    currency: SalaryCurrency = "INR"
    period: SalaryPeriod = "annual"
    text: str | None = None


class CompanyInfoModel(BaseModel):
    size: str | None = None
    industry: str | None = None
    website: str | None = None
    logo: str | None = None
    description: str | None = Field(default=None, max_length=2000)


class ExternalJobRecord(BaseModel):
    """Persistence-time validation of a normalized posting."""

    source: SourceName
    external_id: str = Field(min_length=1, max_length=500)
    title: str = Field(min_length=1, max_length=300)
    company: str = Field(min_length=1, max_length=200)
    location: str = Field(min_length=1, max_length=300)
    description: str = Field(min_length=1, max_length=10_000)
    summary: str | None = Field(default=None, max_length=1000)
    external_url: str | None = Field(default=None, pattern=r"^https?://")
    category: str = "General"
    job_type: str = "Full-time"
    work_mode: WorkMode = "On-site"
    experience_level: ExperienceLevel = "unknown"
    salary: SalaryModel | None = None
    required_skills: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)
    responsibilities: list[str] = Field(default_factory=list)
    benefits: list[str] = Field(default_factory=list)
    qualifications: list[str] = Field(default_factory=list)
    company_info: CompanyInfoModel | None = None
    parsed_location: dict[str, Any] | None = None
    provider_data: dict[str, Any] = Field(default_factory=dict)
    posted_date: datetime | None = None
    status: PostingStatus = "active"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExternalJobOut(CamelModel):
    id: str
    source: str
    external_id: str
    title: str
    company: str
    location: str
    description: str
    summary: str | None = None
    external_url: str | None = None
    category: str
    job_type: str
    work_mode: str
    experience_level: str
    salary: SalaryModel | None = None
    required_skills: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)
    responsibilities: list[str] = Field(default_factory=list)
    benefits: list[str] = Field(default_factory=list)
    qualifications: list[str] = Field(default_factory=list)
    company_info: dict[str, Any] | None = None
    parsed_location: dict[str, Any] | None = None
    provider_data: dict[str, Any] = Field(default_factory=dict)
    posted_date: datetime | None = None
    scraped_at: datetime | None = None
    last_updated: datetime | None = None
    last_synced_at: datetime | None = None
    status: str
    is_active: bool = True
    quality_score: int = 0
    relevance_score: int = 0
    views: int = 0
    content_hash: str | None = None
    duplicate_of: str | None = None


class PaginationOut(CamelModel):
    current_page: int
    total_pages: int
    total_jobs: int
    limit: int


class ExternalJobListOut(CamelModel):
    jobs: list[ExternalJobOut]
    pagination: PaginationOut


class CountBucket(CamelModel):
    key: str | None
    count: int


class RecentJobOut(CamelModel):
    id: str
    title: str
    company: str
    source: str
    posted_date: datetime | None = None


class ExternalJobStatsOut(CamelModel):
    total: int
    by_source: list[CountBucket]
    by_category: list[CountBucket]
    by_work_mode: list[CountBucket]
    recent: list[RecentJobOut]
    last_updated: datetime


class FetchRequest(CamelModel):
    location: str | None = None
    limit_per_source: int | None = Field(default=None, ge=1, le=100)
    sources: list[SourceName] | None = None


class SourceErrorOut(CamelModel):
    source: str
    error: str


class AggregationOut(CamelModel):
    total: int
    by_source: dict[str, int]
    errors: list[SourceErrorOut]


class SaveSummaryOut(CamelModel):
    saved_count: int
    updated_count: int
    error_count: int
    duplicate_count: int


class FetchResponse(CamelModel):
    success: bool
    message: str
    aggregation: AggregationOut | None = None
    database: SaveSummaryOut | None = None


class CleanupRequest(CamelModel):
    days_old: int = Field(default=90, ge=1)


class CleanupResponse(CamelModel):
    message: str
    deleted_count: int


class ScrapeDetailsResponse(CamelModel):
    success: bool
    message: str
    source: Literal["cache", "scraped"] | None = None
    data: ExternalJobOut | None = None


class ScrapeAcceptedResponse(CamelModel):
    message: str
    location: str
    limit_per_source: int
    sources: list[str]


class ApifyImportRequest(CamelModel):
    run_id: str | None = Field(default=None, min_length=1)
    limit: int = Field(default=1000, ge=1, le=5000)
    region_only: bool = True


class ApifyImportResponse(CamelModel):
    source: str
    run_id: str
    fetched: int
    normalized: int
    kept: int
    database: SaveSummaryOut


class MessageResponse(CamelModel):
    message: str


class ApifyLinkedInRunRequest(CamelModel):
    keywords: str = Field(min_length=1, max_length=200)
    location: str = "Bengaluru, Karnataka, India"
    number_of_jobs: int = Field(default=20, ge=1, le=500)


class ApifyRunAcceptedResponse(CamelModel):
    message: str
    actor_id: str
