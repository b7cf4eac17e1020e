import logging
from dataclasses import asdict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status as http_status

from jobsync.api.deps import get_actor_trigger, get_aggregator, get_scheduler
from jobsync.core.config import Settings, get_settings
from jobsync.core.security import require_admin
from jobsync.schemas.external_jobs import (
    ApifyImportRequest,
    ApifyImportResponse,
    ApifyLinkedInRunRequest,
    ApifyRunAcceptedResponse,
    ApifySourceName,
    FetchRequest,
    MessageResponse,
    SaveSummaryOut,
    ScrapeAcceptedResponse,
)
from jobsync.schemas.scheduler import SchedulerActionOut, SchedulerStatusOut
from jobsync.services.aggregator import AggregateOptions, JobAggregator
from jobsync.services.repository import (
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    get_repository,
)
from jobsync.sources.apify_trigger import ActorRunError, ApifyActorTrigger, build_linkedin_search_input
from jobsync.sources.base import SourceError
from jobsync.sources.registry import DEFAULT_ADMIN_SCRAPE_SOURCES

router = APIRouter(dependencies=[Depends(require_admin)])
logger = logging.getLogger(__name__)

ADMIN_SCRAPE_LIMIT_PER_SOURCE = 50


async def _run_aggregation(aggregator: JobAggregator, options: AggregateOptions) -> None:
    try:
        outcome = await aggregator.fetch_and_save_all(options)
    except Exception:
        logger.exception("background aggregation failed")
        return
    logger.info("background aggregation finished success=%s message=%s", outcome.success, outcome.message)


async def _run_linkedin_actor(
    trigger: ApifyActorTrigger,
    aggregator: JobAggregator,
    actor_id: str,
    payload: ApifyLinkedInRunRequest,
) -> None:
    run_input = build_linkedin_search_input(
        payload.keywords,
        location=payload.location,
        number_of_jobs=payload.number_of_jobs,
    )
    try:
        run, items = await trigger.run_and_collect(actor_id, run_input)
        if items:
            await aggregator.import_items("apify-linkedin", items, run_id=str(run.get("id") or ""))
    except (ActorRunError, RepositoryUnavailableError):
        logger.exception("apify linkedin run failed actor=%s", actor_id)


@router.post("/scrape", response_model=ScrapeAcceptedResponse, status_code=http_status.HTTP_202_ACCEPTED)
async def trigger_scrape(
    background_tasks: BackgroundTasks,
    payload: FetchRequest | None = None,
    settings: Settings = Depends(get_settings),
    aggregator=Depends(get_aggregator),
) -> ScrapeAcceptedResponse:
    payload = payload or FetchRequest()
    options = AggregateOptions(
        location=payload.location or settings.default_search_location,
        limit_per_source=payload.limit_per_source or ADMIN_SCRAPE_LIMIT_PER_SOURCE,
        sources=payload.sources or DEFAULT_ADMIN_SCRAPE_SOURCES,
    )
    background_tasks.add_task(_run_aggregation, aggregator, options)
    return ScrapeAcceptedResponse(
        message=f"Job aggregation initiated from {len(options.sources)} sources ({', '.join(options.sources)})",
        location=options.location or settings.default_search_location,
        limit_per_source=options.limit_per_source,
        sources=list(options.sources),
    )


@router.post("/apify/linkedin/run", response_model=ApifyRunAcceptedResponse, status_code=http_status.HTTP_202_ACCEPTED)
async def run_apify_linkedin_actor(
    payload: ApifyLinkedInRunRequest,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_settings),
    trigger=Depends(get_actor_trigger),
    aggregator=Depends(get_aggregator),
) -> ApifyRunAcceptedResponse:
    if not settings.apify_api_token:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail="APIFY_API_TOKEN is not configured")
    actor_id = settings.apify_linkedin_actor_id
    background_tasks.add_task(_run_linkedin_actor, trigger, aggregator, actor_id, payload)
    return ApifyRunAcceptedResponse(message="Apify LinkedIn actor run started", actor_id=actor_id)


@router.post("/apify/{source}/import", response_model=ApifyImportResponse)
async def import_apify_run(
    source: ApifySourceName,
    payload: ApifyImportRequest,
    aggregator=Depends(get_aggregator),
) -> ApifyImportResponse:
    try:
        outcome = await aggregator.import_source(
            source,
            run_id=payload.run_id,
            limit=payload.limit,
            region_only=payload.region_only,
        )
    except SourceError as exc:
        raise HTTPException(status_code=http_status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return ApifyImportResponse(
        source=outcome.source,
        run_id=outcome.run_id,
        fetched=outcome.fetched,
        normalized=outcome.normalized,
        kept=outcome.kept,
        database=SaveSummaryOut(**asdict(outcome.database)),
    )


@router.get("/scheduler/status", response_model=SchedulerStatusOut)
async def get_scheduler_status(scheduler=Depends(get_scheduler)) -> SchedulerStatusOut:
    return SchedulerStatusOut(**scheduler.status())


@router.post("/scheduler/start", response_model=SchedulerActionOut)
async def start_scheduler(scheduler=Depends(get_scheduler)) -> SchedulerActionOut:
    started = scheduler.start()
    if started:
        message = "Job scheduler started successfully"
    elif not scheduler.snapshot.enabled:
        message = "Job scraping is disabled by configuration"
    else:
        message = "Job scheduler is already running"
    return SchedulerActionOut(message=message, status=SchedulerStatusOut(**scheduler.status()))


@router.post("/scheduler/stop", response_model=SchedulerActionOut)
async def stop_scheduler(scheduler=Depends(get_scheduler)) -> SchedulerActionOut:
    stopped = scheduler.stop()
    message = "Job scheduler stopped successfully" if stopped else "Job scheduler is not running"
    return SchedulerActionOut(message=message, status=SchedulerStatusOut(**scheduler.status()))


@router.post("/scheduler/trigger", response_model=MessageResponse, status_code=http_status.HTTP_202_ACCEPTED)
async def trigger_scheduler(background_tasks: BackgroundTasks, scheduler=Depends(get_scheduler)) -> MessageResponse:
    background_tasks.add_task(scheduler.trigger_now)
    return MessageResponse(message="Job aggregation triggered successfully. Check logs for progress.")


@router.delete("/{posting_id}", response_model=MessageResponse)
async def delete_external_job(posting_id: str, repository=Depends(get_repository)) -> MessageResponse:
    try:
        await repository.delete_posting(posting_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return MessageResponse(message="External job deleted")
