from __future__ import annotations

import logging
from typing import Any

from jobsync.pipeline import normalize as norm
from jobsync.pipeline.models import CanonicalPosting, SearchParams
from jobsync.sources.base import BROWSER_USER_AGENT, JobSource, take_list

logger = logging.getLogger(__name__)

ARBEITNOW_JOBS_URL = "https://www.arbeitnow.com/api/job-board-api"


class ArbeitnowSource(JobSource):
    name = "arbeitnow"

    async def fetch(self, params: SearchParams) -> list[dict[str, Any]]:
        payload = await self._get_json(
            ARBEITNOW_JOBS_URL,
            headers={"User-Agent": BROWSER_USER_AGENT, "Accept": "application/json"},
        )
        items = take_list(payload, "data", params.limit)
        if not items:
            logger.warning("arbeitnow returned no jobs")
        return items

    def normalize(self, raw: dict[str, Any]) -> CanonicalPosting:
        title = norm.first_text(raw.get("title")) or "Untitled Position"
        description = norm.clean_text(norm.first_text(raw.get("description"))) or norm.DEFAULT_DESCRIPTION
        location = norm.first_text(raw.get("location")) or "Remote"
        job_types = [item for item in raw.get("job_types") or [] if isinstance(item, str)]
        tags = [item for item in raw.get("tags") or [] if isinstance(item, str)]
        remote = raw.get("remote")

        return CanonicalPosting(
            source=self.name,
            external_id=norm.first_text(raw.get("slug"), raw.get("id")) or norm.fallback_external_id(self.name),
            title=title,
            company=norm.first_text(raw.get("company_name")) or norm.DEFAULT_COMPANY,
            location=location,
            description=description,
            external_url=norm.first_text(raw.get("url")) or norm.placeholder_url(self.name),
            # created_at is epoch seconds
            posted_date=norm.parse_posted_date(raw.get("created_at")),
            job_type=norm.map_job_type(job_types),
            work_mode=norm.infer_work_mode(
                remote if isinstance(remote, bool) else None,
                title=title,
                description=description,
                location=location,
            ),
            experience_level=norm.map_experience_from_text(job_types + [title]),
            category=norm.detect_category(title),
            requirements=norm.extract_requirements(description),
            benefits=norm.extract_benefits(description),
            required_skills=norm.uniq_preserve_order(tags + norm.extract_skills(description))[:20],
        )
