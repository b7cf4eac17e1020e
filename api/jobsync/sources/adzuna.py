from __future__ import annotations

import logging
from typing import Any

from jobsync.pipeline import normalize as norm
from jobsync.pipeline.models import CanonicalPosting, SearchParams
from jobsync.sources.base import JobSource, take_list

logger = logging.getLogger(__name__)

ADZUNA_SEARCH_URL = "https://api.adzuna.com/v1/api/jobs/in/search/1"


class AdzunaSource(JobSource):
    """Adzuna India search; a 429 waits and retries once before giving up."""

    name = "adzuna"
    rate_limit_retries = 1
    rate_limit_delay_seconds = 5.0

    def __init__(self, *, app_id: str | None, app_key: str | None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.app_id = app_id
        self.app_key = app_key

    async def fetch(self, params: SearchParams) -> list[dict[str, Any]]:
        app_id = self._require(self.app_id, "ADZUNA_APP_ID")
        app_key = self._require(self.app_key, "ADZUNA_APP_KEY")
        payload = await self._get_json(
            ADZUNA_SEARCH_URL,
            params={
                "app_id": app_id,
                "app_key": app_key,
                "results_per_page": params.limit,
                "what": params.query or "jobs",
                "where": "Karnataka OR Bangalore",
                "max_days_old": 30,
            },
            headers={"Content-Type": "application/json"},
        )
        items = take_list(payload, "results", params.limit)
        if not items:
            logger.warning("adzuna returned no jobs")
        return items

    def normalize(self, raw: dict[str, Any]) -> CanonicalPosting:
        company = raw.get("company") if isinstance(raw.get("company"), dict) else {}
        location_data = raw.get("location") if isinstance(raw.get("location"), dict) else {}
        category = raw.get("category") if isinstance(raw.get("category"), dict) else {}

        title = norm.first_text(raw.get("title")) or "Untitled Position"
        description = norm.clean_text(norm.first_text(raw.get("description"))) or norm.DEFAULT_DESCRIPTION
        location = norm.first_text(location_data.get("display_name")) or norm.DEFAULT_LOCATION

        salary = norm.salary_from_bounds(raw.get("salary_min"), raw.get("salary_max"), "INR", "annual")
        if salary is not None and raw.get("salary_min") and raw.get("salary_max"):
            salary.text = f"{raw['salary_min']} - {raw['salary_max']} INR"

        areas = location_data.get("area") if isinstance(location_data.get("area"), list) else []
        return CanonicalPosting(
            source=self.name,
            external_id=norm.first_text(raw.get("id")) or norm.fallback_external_id(self.name),
            title=title,
            company=norm.first_text(company.get("display_name")) or norm.DEFAULT_COMPANY,
            location=location,
            description=description,
            external_url=norm.first_text(raw.get("redirect_url")) or norm.placeholder_url(self.name),
            posted_date=norm.parse_posted_date(raw.get("created")),
            job_type=norm.map_job_type(norm.first_text(raw.get("contract_time"), raw.get("contract_type"))),
            work_mode=norm.infer_work_mode(title=title, description=description, location=location),
            category=norm.first_text(category.get("label")) or "General",
            salary=salary,
            requirements=norm.extract_requirements(description),
            benefits=norm.extract_benefits(description),
            required_skills=norm.extract_skills(description),
            parsed_location={
                "country": areas[0] if len(areas) > 0 else None,
                "state": areas[1] if len(areas) > 1 else None,
                "city": areas[-1] if len(areas) > 2 else None,
            },
        )
