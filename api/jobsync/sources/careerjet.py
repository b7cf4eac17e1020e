from __future__ import annotations

import logging
from typing import Any

from jobsync.pipeline import normalize as norm
from jobsync.pipeline.models import CanonicalPosting, SearchParams
from jobsync.sources.base import BROWSER_USER_AGENT, JobSource, take_list

logger = logging.getLogger(__name__)

# The HTTPS endpoint drops connections; the public API is served over plain HTTP.
CAREERJET_SEARCH_URL = "http://public.api.careerjet.net/search"


class CareerjetSource(JobSource):
    name = "careerjet"

    def __init__(self, *, affid: str | None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.affid = affid

    async def fetch(self, params: SearchParams) -> list[dict[str, Any]]:
        affid = self._require(self.affid, "CAREERJET_AFFID")
        payload = await self._get_json(
            CAREERJET_SEARCH_URL,
            params={
                "locale_code": "en_IN",
                "keywords": params.query or "jobs",
                "location": "Karnataka, India",
                "affid": affid,
                "pagesize": params.limit,
                "page": 1,
                "user_ip": "8.8.8.8",
                "user_agent": BROWSER_USER_AGENT,
            },
            headers={"User-Agent": BROWSER_USER_AGENT, "Accept": "application/json"},
        )
        items = take_list(payload, "jobs", params.limit)
        if not items:
            logger.warning("careerjet returned no jobs")
        return items

    def normalize(self, raw: dict[str, Any]) -> CanonicalPosting:
        title = norm.first_text(raw.get("title")) or "Untitled Position"
        description = norm.clean_text(norm.first_text(raw.get("description"))) or norm.DEFAULT_DESCRIPTION
        location = norm.first_text(raw.get("locations")) or norm.DEFAULT_LOCATION
        url = norm.first_text(raw.get("url"))
        experience = norm.first_text(raw.get("experience"))

        return CanonicalPosting(
            source=self.name,
            external_id=norm.first_text(raw.get("id"), url) or norm.fallback_external_id(self.name),
            title=title,
            company=norm.first_text(raw.get("company")) or norm.DEFAULT_COMPANY,
            location=location,
            description=description,
            external_url=url or norm.placeholder_url(self.name),
            posted_date=norm.parse_posted_date(raw.get("date")),
            job_type=norm.map_job_type(norm.first_text(raw.get("contract_type"))),
            work_mode=norm.infer_work_mode(title=title, description=description, location=location),
            experience_level=norm.map_experience_from_text(experience or title),
            category=norm.detect_category(title),
            salary=norm.parse_salary(norm.first_text(raw.get("salary")), currency="INR"),
            requirements=norm.extract_requirements(description),
            benefits=norm.extract_benefits(description),
            required_skills=norm.extract_skills(description),
        )
