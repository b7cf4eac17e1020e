from __future__ import annotations

import logging
from typing import Any

from jobsync.pipeline import normalize as norm
from jobsync.pipeline.models import CanonicalPosting, SearchParams
from jobsync.sources.base import BROWSER_USER_AGENT, JobSource, take_list

logger = logging.getLogger(__name__)

THEMUSE_JOBS_URL = "https://www.themuse.com/api/public/jobs"


class TheMuseSource(JobSource):
    name = "themuse"

    async def fetch(self, params: SearchParams) -> list[dict[str, Any]]:
        payload = await self._get_json(
            THEMUSE_JOBS_URL,
            params={"page": 1, "descending": "true"},
            headers={"User-Agent": BROWSER_USER_AGENT, "Accept": "application/json"},
        )
        items = take_list(payload, "results", params.limit)
        if not items:
            logger.warning("themuse returned no jobs")
        return items

    def normalize(self, raw: dict[str, Any]) -> CanonicalPosting:
        company = raw.get("company") if isinstance(raw.get("company"), dict) else {}
        refs = raw.get("refs") if isinstance(raw.get("refs"), dict) else {}
        title = norm.first_text(raw.get("name"), raw.get("title")) or "Untitled Position"
        description = norm.clean_text(norm.first_text(raw.get("contents"))) or norm.DEFAULT_DESCRIPTION
        location = ", ".join(_names(raw.get("locations"))) or "Remote"
        categories = _names(raw.get("categories"))

        return CanonicalPosting(
            source=self.name,
            external_id=norm.first_text(raw.get("id")) or norm.fallback_external_id(self.name),
            title=title,
            company=norm.first_text(company.get("name")) or norm.DEFAULT_COMPANY,
            location=location,
            description=description,
            external_url=norm.first_text(refs.get("landing_page")) or norm.placeholder_url(self.name),
            posted_date=norm.parse_posted_date(raw.get("publication_date")),
            job_type=norm.map_job_type(norm.first_text(raw.get("type"))),
            work_mode=norm.infer_work_mode(title=title, description=description, location=location),
            experience_level=norm.map_experience_from_text(_names(raw.get("levels"))),
            category=categories[0] if categories else norm.detect_category(title),
            requirements=norm.extract_requirements(description),
            benefits=norm.extract_benefits(description),
            required_skills=norm.extract_skills(description),
        )


def _names(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [name for item in value if isinstance(item, dict) and (name := norm.first_text(item.get("name")))]
