from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from opentelemetry import trace
from pydantic import ValidationError

from jobsync.pipeline.models import CanonicalPosting
from jobsync.pipeline.quality import calculate_quality_score
from jobsync.schemas.external_jobs import ExternalJobRecord
from jobsync.services.dedupe import content_hash, decide_duplicate
from jobsync.services.repository import (
    ExternalJobRepository,
    RepositoryError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(slots=True)
class UpsertOutcome:
    created: bool
    posting: dict[str, Any]
    duplicate_of: str | None = None


@dataclass(slots=True)
class SaveSummary:
    saved_count: int = 0
    updated_count: int = 0
    error_count: int = 0
    duplicate_count: int = 0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobPersistence:
    def __init__(self, repository: ExternalJobRepository, clock: Callable[[], datetime] = _utc_now) -> None:
        self.repository = repository
        self._clock = clock

    def build_record(self, posting: CanonicalPosting) -> dict[str, Any]:
        try:
            validated = ExternalJobRecord.model_validate(posting.to_record())
        except ValidationError as exc:
            fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in exc.errors())
            raise RepositoryValidationError(f"invalid posting {posting.source}/{posting.external_id}: {fields}") from exc

        now = self._clock()
        record = validated.model_dump()
        record["content_hash"] = content_hash(record["title"], record["company"], record["location"])
        record["quality_score"] = calculate_quality_score(record, now=now)
        record["relevance_score"] = 0
        record["scraped_at"] = now
        record["last_updated"] = now
        record["last_synced_at"] = now
        return record

    async def upsert(self, posting: CanonicalPosting) -> UpsertOutcome:
        record = self.build_record(posting)
        created, row = await self.repository.upsert_posting(record)
        if not created:
            return UpsertOutcome(created=False, posting=row)

        match = await self.repository.find_by_content_hash(record["content_hash"], exclude_source=record["source"])
        decision = decide_duplicate(record["source"], match)
        if not decision.is_duplicate or decision.duplicate_of is None:
            return UpsertOutcome(created=True, posting=row)

        row = await self.repository.mark_duplicate(row["id"], decision.duplicate_of)
        logger.info(
            "cross-source duplicate source=%s external_id=%s duplicate_of=%s matched_source=%s",
            record["source"],
            record["external_id"],
            decision.duplicate_of,
            decision.matched_source,
        )
        return UpsertOutcome(created=True, posting=row, duplicate_of=decision.duplicate_of)

    async def save_batch(self, postings: Iterable[CanonicalPosting]) -> SaveSummary:
        summary = SaveSummary()
        with tracer.start_as_current_span("persistence.save_batch") as span:
            for posting in postings:
                try:
                    outcome = await self.upsert(posting)
                except RepositoryUnavailableError:
                    raise
                except RepositoryError as exc:
                    summary.error_count += 1
                    logger.warning("failed to save posting source=%s external_id=%s: %s", posting.source, posting.external_id, exc)
                    continue

                if outcome.created:
                    summary.saved_count += 1
                else:
                    summary.updated_count += 1
                if outcome.duplicate_of:
                    summary.duplicate_count += 1

            span.set_attribute("persistence.saved", summary.saved_count)
            span.set_attribute("persistence.updated", summary.updated_count)
            span.set_attribute("persistence.errors", summary.error_count)

        logger.info(
            "save batch complete saved=%s updated=%s errors=%s duplicates=%s",
            summary.saved_count,
            summary.updated_count,
            summary.error_count,
            summary.duplicate_count,
        )
        return summary
