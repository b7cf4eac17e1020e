from __future__ import annotations

import logging
from typing import Any

from jobsync.pipeline import normalize as norm
from jobsync.pipeline.models import CanonicalPosting, Salary, SearchParams
from jobsync.sources.base import JobSource, take_list

logger = logging.getLogger(__name__)

DEFAULT_LOCATION_FILTER = "Karnataka OR Bangalore OR Bengaluru"
DEFAULT_TYPE_FILTER = "FULL_TIME,PART_TIME,CONTRACTOR"


class LinkedInRapidApiSource(JobSource):
    """LinkedIn active-jobs feed (last 7 days) served through RapidAPI."""

    name = "linkedin"

    def __init__(self, *, api_key: str | None, api_host: str | None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key
        self.api_host = api_host

    async def fetch(self, params: SearchParams) -> list[dict[str, Any]]:
        api_key = self._require(self.api_key, "LINKEDIN_RAPIDAPI_KEY")
        api_host = self._require(self.api_host, "LINKEDIN_RAPIDAPI_HOST")
        payload = await self._get_json(
            f"https://{api_host}/active-jb-7d",
            params={
                "limit": params.limit,
                "offset": 0,
                "location_filter": DEFAULT_LOCATION_FILTER,
                "title_filter": params.query or "",
                "description_type": "text",
                "type_filter": DEFAULT_TYPE_FILTER,
            },
            headers={"x-rapidapi-key": api_key, "x-rapidapi-host": api_host, "Accept": "application/json"},
        )
        items = take_list(payload, None, params.limit)
        if not items:
            logger.warning("linkedin returned no jobs")
        return items

    def normalize(self, raw: dict[str, Any]) -> CanonicalPosting:
        title = norm.first_text(raw.get("title")) or "Untitled Position"
        description = (
            norm.clean_text(norm.first_text(raw.get("description_text"), raw.get("description"), raw.get("linkedin_description")))
            or norm.DEFAULT_DESCRIPTION
        )
        display, city, region, country = _location(raw)
        employment_types = raw.get("employment_type") if isinstance(raw.get("employment_type"), list) else []
        remote_flag = raw.get("remote_derived") is True or raw.get("location_type") == "TELECOMMUTE"
        raw_id = norm.first_text(raw.get("id"))

        return CanonicalPosting(
            source=self.name,
            external_id=f"linkedin-{raw_id}" if raw_id else norm.fallback_external_id(self.name),
            title=title,
            company=norm.first_text(raw.get("organization")) or norm.DEFAULT_COMPANY,
            location=display,
            description=description,
            external_url=norm.first_text(raw.get("url")) or norm.placeholder_url(self.name),
            posted_date=norm.parse_posted_date(raw.get("date_posted")),
            job_type=norm.map_job_type(employment_types[:1]),
            work_mode=norm.WORK_MODE_REMOTE if remote_flag else norm.infer_work_mode(description=description),
            experience_level=norm.map_experience_from_text(norm.first_text(raw.get("seniority"))),
            category=norm.first_text(raw.get("linkedin_org_industry")) or norm.detect_category(title),
            salary=_salary(raw),
            required_skills=norm.extract_skills(description),
            company_info={
                "industry": norm.first_text(raw.get("linkedin_org_industry")),
                "size": norm.first_text(raw.get("linkedin_org_size")),
                "website": norm.first_text(raw.get("linkedin_org_url")),
                "logo": norm.first_text(raw.get("organization_logo")),
                "description": (norm.first_text(raw.get("linkedin_org_description")) or "")[:2000] or None,
            },
            parsed_location={"city": city, "state": region, "country": country},
            provider_data={
                "org_employees": raw.get("linkedin_org_employees"),
                "org_headquarters": raw.get("linkedin_org_headquarters"),
                "org_followers": raw.get("linkedin_org_followers"),
                "org_specialties": raw.get("linkedin_org_specialties") or [],
                "recruiter_name": raw.get("recruiter_name"),
                "recruiter_title": raw.get("recruiter_title"),
                "recruiter_url": raw.get("recruiter_url"),
            },
        )


def _first(value: Any) -> str | None:
    if isinstance(value, list) and value:
        return norm.first_text(value[0])
    return None


def _location(raw: dict[str, Any]) -> tuple[str, str | None, str | None, str]:
    city = _first(raw.get("cities_derived"))
    region = _first(raw.get("regions_derived"))
    country = _first(raw.get("countries_derived")) or norm.DEFAULT_LOCATION
    display = _first(raw.get("locations_derived"))
    if not display:
        display = ", ".join(part for part in (city, region, country) if part) or norm.DEFAULT_LOCATION
    return display, city, region, country


def _salary(raw: dict[str, Any]) -> Salary | None:
    salary_raw = raw.get("salary_raw")
    if not isinstance(salary_raw, dict) or not isinstance(salary_raw.get("value"), dict):
        return None
    value = salary_raw["value"]
    if not value.get("minValue") or not value.get("maxValue"):
        return None
    return norm.salary_from_bounds(
        value.get("minValue"),
        value.get("maxValue"),
        norm.first_text(salary_raw.get("currency")) or "USD",
        norm.first_text(value.get("unitText")) or "YEAR",
    )
