import logging
import math
from dataclasses import asdict
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status

from jobsync.api.deps import get_aggregator, get_enricher
from jobsync.core.config import Settings, get_settings
from jobsync.core.security import require_admin
from jobsync.pipeline.location import location_search_terms
from jobsync.schemas.external_jobs import (
    AggregationOut,
    CleanupRequest,
    CleanupResponse,
    ExternalJobListOut,
    ExternalJobOut,
    ExternalJobStatsOut,
    FetchRequest,
    FetchResponse,
    PaginationOut,
    PostingSortBy,
    SaveSummaryOut,
    ScrapeDetailsResponse,
    SortDir,
    SourceName,
    WorkMode,
)
from jobsync.services.aggregator import AggregateOptions
from jobsync.services.repository import (
    PostingFilters,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    company_search_terms,
    get_repository,
)
from jobsync.sources.registry import DEFAULT_FETCH_SOURCES

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/fetch", response_model=FetchResponse)
async def fetch_external_jobs(
    payload: FetchRequest | None = None,
    admin_key_id: str = Depends(require_admin),
    settings: Settings = Depends(get_settings),
    aggregator=Depends(get_aggregator),
) -> FetchResponse:
    payload = payload or FetchRequest()
    options = AggregateOptions(
        location=payload.location or settings.default_search_location,
        limit_per_source=payload.limit_per_source or 20,
        sources=payload.sources or DEFAULT_FETCH_SOURCES,
    )
    logger.info("manual fetch requested admin=%s sources=%s", admin_key_id, ",".join(options.sources))
    outcome = await aggregator.fetch_and_save_all(options)
    return FetchResponse(
        success=outcome.success,
        message=outcome.message,
        aggregation=AggregationOut(**outcome.aggregation.summary()),
        database=SaveSummaryOut(**asdict(outcome.database)) if outcome.database else None,
    )


@router.get("", response_model=ExternalJobListOut)
async def list_external_jobs(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    source: SourceName | None = Query(default=None),
    location: str | None = Query(default=None, min_length=1),
    company: str | None = Query(default=None, min_length=1),
    category: str | None = Query(default=None, min_length=1),
    job_type: str | None = Query(default=None, alias="jobType", min_length=1),
    work_mode: WorkMode | None = Query(default=None, alias="workMode"),
    search: str | None = Query(default=None, min_length=1),
    sort_by: PostingSortBy = Query(default="posted_date", alias="sortBy"),
    order: SortDir = Query(default="desc"),
    repository=Depends(get_repository),
) -> ExternalJobListOut:
    filters = PostingFilters(
        source=source,
        location_terms=location_search_terms(location),
        company_terms=company_search_terms(company),
        category=category,
        job_type=job_type,
        work_mode=work_mode,
        search=search,
    )
    try:
        rows = await repository.list_postings(
            filters,
            limit=limit,
            offset=(page - 1) * limit,
            sort_by=sort_by,
            sort_dir=order,
        )
        total = await repository.count_postings(filters)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return ExternalJobListOut(
        jobs=[ExternalJobOut(**row) for row in rows],
        pagination=PaginationOut(
            current_page=page,
            total_pages=math.ceil(total / limit),
            total_jobs=total,
            limit=limit,
        ),
    )


@router.get("/stats", response_model=ExternalJobStatsOut)
async def get_external_job_stats(repository=Depends(get_repository)) -> ExternalJobStatsOut:
    try:
        stats = await repository.get_stats()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return ExternalJobStatsOut(**stats, last_updated=datetime.now(timezone.utc))


@router.delete("/cleanup", response_model=CleanupResponse)
async def cleanup_external_jobs(
    payload: CleanupRequest | None = None,
    admin_key_id: str = Depends(require_admin),
    repository=Depends(get_repository),
) -> CleanupResponse:
    days_old = (payload or CleanupRequest()).days_old
    try:
        deleted = await repository.cleanup_postings(days_old)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    logger.info("cleanup requested admin=%s days_old=%s deleted=%s", admin_key_id, days_old, deleted)
    return CleanupResponse(message=f"Deleted {deleted} old job listings", deleted_count=deleted)


@router.patch("/{posting_id}/deactivate", response_model=ExternalJobOut)
async def deactivate_external_job(
    posting_id: str,
    _: str = Depends(require_admin),
    repository=Depends(get_repository),
) -> ExternalJobOut:
    try:
        row = await repository.deactivate_posting(posting_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return ExternalJobOut(**row)


@router.post("/{posting_id}/scrape-details", response_model=ScrapeDetailsResponse)
async def scrape_external_job_details(posting_id: str, enricher=Depends(get_enricher)) -> ScrapeDetailsResponse:
    try:
        result = await enricher.enrich(posting_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    if result.success:
        message = (
            "Full details already available" if result.source == "cache" else "Successfully scraped full job details"
        )
    else:
        message = result.message or "Could not fetch full details"
    return ScrapeDetailsResponse(
        success=result.success,
        message=message,
        source=result.source,
        data=ExternalJobOut(**result.posting),
    )


@router.get("/{posting_id}", response_model=ExternalJobOut)
async def get_external_job(posting_id: str, repository=Depends(get_repository)) -> ExternalJobOut:
    try:
        row = await repository.increment_views(posting_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return ExternalJobOut(**row)
