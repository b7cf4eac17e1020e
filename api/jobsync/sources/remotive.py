from __future__ import annotations

import logging
from typing import Any

from jobsync.pipeline import normalize as norm
from jobsync.pipeline.models import CanonicalPosting, SearchParams
from jobsync.sources.base import BROWSER_USER_AGENT, JobSource, take_list

logger = logging.getLogger(__name__)

REMOTIVE_JOBS_URL = "https://remotive.com/api/remote-jobs"


class RemotiveSource(JobSource):
    """Remote-only board, so every posting is Remote regardless of its text."""

    name = "remotive"

    async def fetch(self, params: SearchParams) -> list[dict[str, Any]]:
        query: dict[str, Any] = {"limit": params.limit}
        if params.query:
            query["search"] = params.query
        payload = await self._get_json(
            REMOTIVE_JOBS_URL,
            params=query,
            headers={"User-Agent": BROWSER_USER_AGENT, "Accept": "application/json"},
        )
        items = take_list(payload, "jobs", params.limit)
        if not items:
            logger.warning("remotive returned no jobs")
        return items

    def normalize(self, raw: dict[str, Any]) -> CanonicalPosting:
        title = norm.first_text(raw.get("title")) or "Untitled Position"
        description = norm.clean_text(norm.first_text(raw.get("description"))) or norm.DEFAULT_DESCRIPTION
        tags = raw.get("tags") if isinstance(raw.get("tags"), list) else []

        return CanonicalPosting(
            source=self.name,
            external_id=norm.first_text(raw.get("id")) or norm.fallback_external_id(self.name),
            title=title,
            company=norm.first_text(raw.get("company_name")) or norm.DEFAULT_COMPANY,
            location=norm.first_text(raw.get("candidate_required_location")) or "Remote",
            description=description,
            external_url=norm.first_text(raw.get("url")) or norm.placeholder_url(self.name),
            posted_date=norm.parse_posted_date(raw.get("publication_date")),
            job_type=norm.map_job_type(norm.first_text(raw.get("job_type"))),
            work_mode=norm.WORK_MODE_REMOTE,
            experience_level=norm.map_experience_from_text(title),
            category=norm.first_text(raw.get("category")) or "General",
            salary=norm.parse_salary(norm.first_text(raw.get("salary")), currency="USD"),
            requirements=norm.extract_requirements(description),
            benefits=norm.extract_benefits(description),
            required_skills=norm.uniq_preserve_order(
                [tag for tag in tags if isinstance(tag, str)] + norm.extract_skills(description)
            )[:20],
            company_info={"logo": norm.first_text(raw.get("company_logo"))},
        )
