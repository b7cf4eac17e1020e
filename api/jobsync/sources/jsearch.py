from __future__ import annotations

import logging
from typing import Any

from jobsync.pipeline import normalize as norm
from jobsync.pipeline.models import CanonicalPosting, SearchParams
from jobsync.sources.base import JobSource, take_list

logger = logging.getLogger(__name__)

DEFAULT_QUERY = "jobs in Karnataka OR Bangalore OR Bengaluru"


class JSearchSource(JobSource):
    name = "jsearch"

    def __init__(self, *, api_key: str | None, api_host: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key
        self.api_host = api_host

    async def fetch(self, params: SearchParams) -> list[dict[str, Any]]:
        api_key = self._require(self.api_key, "JSEARCH_API_KEY")
        payload = await self._get_json(
            f"https://{self.api_host}/search",
            params={
                "query": params.query or DEFAULT_QUERY,
                "page": "1",
                "num_pages": "5",
                "date_posted": "month",
                "country": "in",
            },
            headers={"X-RapidAPI-Key": api_key, "X-RapidAPI-Host": self.api_host},
        )
        items = take_list(payload, "data", params.limit)
        if not items:
            logger.warning("jsearch returned no jobs")
        return items

    def normalize(self, raw: dict[str, Any]) -> CanonicalPosting:
        title = norm.first_text(raw.get("job_title"), raw.get("title")) or "Untitled Position"
        description = norm.clean_text(norm.first_text(raw.get("job_description"))) or norm.DEFAULT_DESCRIPTION
        location = self._location(raw)
        currency = norm.first_text(raw.get("job_salary_currency")) or "INR"
        salary = norm.salary_from_bounds(
            raw.get("job_min_salary"),
            raw.get("job_max_salary"),
            currency,
            norm.first_text(raw.get("job_salary_period")) or "annual",
        )
        if salary is not None and salary.min is not None and salary.max is not None:
            salary.text = f"{raw.get('job_min_salary') or salary.min} - {raw.get('job_max_salary') or salary.max} {currency}"

        return CanonicalPosting(
            source=self.name,
            external_id=norm.first_text(raw.get("job_id"), raw.get("id")) or norm.fallback_external_id(self.name),
            title=title,
            company=norm.first_text(raw.get("employer_name")) or norm.DEFAULT_COMPANY,
            location=location,
            description=description,
            external_url=norm.first_text(raw.get("job_apply_link"), raw.get("job_google_link"))
            or norm.placeholder_url(self.name),
            posted_date=norm.parse_posted_date(
                raw.get("job_posted_at_datetime_utc") or raw.get("job_posted_at_timestamp")
            ),
            job_type=norm.map_job_type(raw.get("job_employment_type")),
            work_mode=norm.infer_work_mode(
                raw.get("job_is_remote") if isinstance(raw.get("job_is_remote"), bool) else None,
                title=title,
                description=description,
                location=location,
            ),
            category=norm.first_text(raw.get("job_occupation")) or norm.detect_category(title),
            salary=salary,
            requirements=norm.extract_requirements(description),
            benefits=norm.extract_benefits(description),
            required_skills=norm.extract_skills(description),
            company_info={"website": norm.first_text(raw.get("employer_website")), "logo": norm.first_text(raw.get("employer_logo"))},
            parsed_location={
                "city": norm.first_text(raw.get("job_city")),
                "state": norm.first_text(raw.get("job_state")),
                "country": norm.first_text(raw.get("job_country")),
            },
        )

    @staticmethod
    def _location(raw: dict[str, Any]) -> str:
        city = norm.first_text(raw.get("job_city"))
        state = norm.first_text(raw.get("job_state"))
        if city and state:
            return f"{city}, {state}, {norm.first_text(raw.get('job_country')) or norm.DEFAULT_LOCATION}"
        return city or state or norm.DEFAULT_LOCATION
