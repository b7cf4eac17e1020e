"""Dataset-pull adapters for Apify actors (LinkedIn, Naukri, Indeed).

These adapters never start a scrape themselves; they read the output dataset of an
actor run that already finished, identified by its run id.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from jobsync.pipeline import normalize as norm
from jobsync.pipeline.models import CanonicalPosting, Salary, SearchParams
from jobsync.sources.base import JobSource, SourceUnavailableError, take_list

logger = logging.getLogger(__name__)

APIFY_API_BASE_URL = "https://api.apify.com/v2"
NAUKRI_BASE_URL = "https://www.naukri.com"
_BENEFIT_NAME_RE = re.compile(r"BenefitName=([^;}]+)")


class ApifyDatasetSource(JobSource):
    def __init__(self, *, api_token: str | None, run_id: str | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("timeout_seconds", 30.0)
        super().__init__(**kwargs)
        self.api_token = api_token
        self.run_id = run_id

    async def fetch(self, params: SearchParams) -> list[dict[str, Any]]:
        token = self._require(self.api_token, "APIFY_API_TOKEN")
        run_id = params.run_id or self.run_id
        if not run_id:
            raise SourceUnavailableError(f"{self.name} has no actor run id to read from")

        payload = await self._get_json(
            f"{APIFY_API_BASE_URL}/actor-runs/{run_id}/dataset/items",
            params={"token": token},
        )
        items = take_list(payload, None, params.limit)
        if not items:
            logger.warning("%s dataset for run %s is empty", self.name, run_id)
        else:
            logger.info("%s fetched %s items from run %s", self.name, len(items), run_id)
        return items


class ApifyLinkedInSource(ApifyDatasetSource):
    name = "apify-linkedin"

    def normalize(self, raw: dict[str, Any]) -> CanonicalPosting:
        title = norm.first_text(raw.get("title"), raw.get("positionName")) or "Untitled Position"
        description = (
            norm.clean_text(norm.first_text(raw.get("descriptionText"), raw.get("descriptionHtml"), raw.get("description")))
            or norm.DEFAULT_DESCRIPTION
        )
        location = norm.first_text(raw.get("location")) or norm.DEFAULT_LOCATION
        raw_id = norm.first_text(raw.get("id"))
        benefits = [item for item in raw.get("benefits") or [] if isinstance(item, str)]

        return CanonicalPosting(
            source=self.name,
            external_id=f"apify-linkedin-{raw_id}" if raw_id else norm.fallback_external_id(self.name),
            title=title,
            company=norm.first_text(raw.get("companyName"), raw.get("company")) or norm.DEFAULT_COMPANY,
            location=location,
            description=description,
            external_url=norm.first_text(raw.get("link"), raw.get("applyUrl"), raw.get("url"))
            or norm.placeholder_url(self.name),
            posted_date=norm.parse_posted_date(raw.get("postedAt")),
            job_type=norm.map_job_type(norm.first_text(raw.get("employmentType"))),
            work_mode=norm.infer_work_mode(title=title, description=description, location=location),
            experience_level=norm.map_experience_from_text(norm.first_text(raw.get("seniorityLevel"))),
            category=norm.first_text(raw.get("industries"), raw.get("jobFunction")) or norm.detect_category(title),
            salary=norm.parse_salary(norm.first_text(raw.get("salary"))),
            benefits=benefits,
            required_skills=norm.extract_skills(description),
            company_info={
                "industry": norm.first_text(raw.get("industries")),
                "size": norm.first_text(raw.get("companyEmployeesCount")),
                "website": norm.first_text(raw.get("companyWebsite")),
                "logo": norm.first_text(raw.get("companyLogo")),
                "description": (norm.first_text(raw.get("companyDescription")) or "")[:2000] or None,
            },
            provider_data={
                "job_id": raw.get("id"),
                "tracking_id": raw.get("trackingId"),
                "ref_id": raw.get("refId"),
                "applicants_count": raw.get("applicantsCount"),
                "job_function": raw.get("jobFunction"),
                "company_linkedin_url": raw.get("companyLinkedinUrl"),
                "job_poster_name": raw.get("jobPosterName"),
                "job_poster_title": raw.get("jobPosterTitle"),
                "company_address": raw.get("companyAddress"),
            },
        )


class ApifyNaukriSource(ApifyDatasetSource):
    name = "apify-naukri"

    def normalize(self, raw: dict[str, Any]) -> CanonicalPosting:
        basic = raw.get("basicInfo") if isinstance(raw.get("basicInfo"), dict) else {}
        company = raw.get("companyDetail") if isinstance(raw.get("companyDetail"), dict) else {}

        title = norm.first_text(raw.get("title"), basic.get("title")) or "Untitled Position"
        description = (
            norm.clean_text(norm.first_text(raw.get("description"), basic.get("jobDescription")))
            or norm.DEFAULT_DESCRIPTION
        )
        location = self._location(raw, basic)
        raw_id = norm.first_text(raw.get("jobId"))
        jd_url = norm.first_text(basic.get("jdURL"))

        return CanonicalPosting(
            source=self.name,
            external_id=f"apify-naukri-{raw_id}" if raw_id else norm.fallback_external_id(self.name),
            title=title,
            company=norm.first_text(company.get("name"), basic.get("companyName")) or norm.DEFAULT_COMPANY,
            location=location,
            description=description,
            external_url=norm.first_text(raw.get("staticUrl"))
            or self._detail_url(jd_url)
            or norm.placeholder_url(self.name),
            posted_date=norm.parse_posted_date(raw.get("createdDate")),
            job_type=norm.map_job_type(norm.first_text(raw.get("jobType"), raw.get("employmentType"))),
            work_mode=self._work_mode(raw, title, description),
            experience_level=norm.map_experience_from_years(raw.get("minimumExperience"), raw.get("maximumExperience")),
            category=norm.first_text(raw.get("industry"), raw.get("functionalArea")) or norm.detect_category(title),
            salary=self._salary(raw),
            required_skills=self._skills(raw),
            benefits=self._benefits(raw),
            company_info={
                "size": norm.first_text(company.get("companySize")),
                "industry": norm.first_text(raw.get("industry")),
                "website": norm.first_text(company.get("websiteUrl")),
                "logo": norm.first_text(raw.get("clientLogo"), basic.get("logoPath")),
                "description": (norm.first_text(company.get("details")) or "")[:2000] or None,
            },
        )

    @staticmethod
    def _detail_url(jd_url: str | None) -> str | None:
        if not jd_url:
            return None
        if jd_url.startswith(("http://", "https://")):
            return jd_url
        return f"{NAUKRI_BASE_URL}/{jd_url.lstrip('/')}"

    @staticmethod
    def _location(raw: dict[str, Any], basic: dict[str, Any]) -> str:
        locations = raw.get("locations") if isinstance(raw.get("locations"), list) else []
        labels = [label for item in locations if isinstance(item, dict) and (label := norm.first_text(item.get("label")))]
        if labels:
            return ", ".join(labels)
        placeholders = basic.get("placeholders") if isinstance(basic.get("placeholders"), list) else []
        for item in placeholders:
            if isinstance(item, dict) and item.get("type") == "location":
                label = norm.first_text(item.get("label"))
                if label:
                    return label
        return norm.DEFAULT_LOCATION

    @staticmethod
    def _work_mode(raw: dict[str, Any], title: str, description: str) -> str:
        if str(raw.get("wfhType") or "") in {"1", "2"}:
            return norm.WORK_MODE_REMOTE
        return norm.infer_work_mode(title=title, description=description)

    @staticmethod
    def _salary(raw: dict[str, Any]) -> Salary | None:
        detail = raw.get("salaryDetail") if isinstance(raw.get("salaryDetail"), dict) else {}
        label = norm.first_text(detail.get("label"))
        if detail.get("minimumSalary") or detail.get("maximumSalary"):
            return norm.salary_from_bounds(
                detail.get("minimumSalary"),
                detail.get("maximumSalary"),
                norm.first_text(detail.get("currency")) or "INR",
                "annual",
                label,
            )
        return norm.parse_salary(label)

    @staticmethod
    def _skills(raw: dict[str, Any]) -> list[str]:
        key_skills = raw.get("keySkills") if isinstance(raw.get("keySkills"), dict) else {}
        labels: list[str] = []
        for bucket in ("preferred", "other"):
            entries = key_skills.get(bucket) if isinstance(key_skills.get(bucket), list) else []
            labels.extend(
                label for item in entries if isinstance(item, dict) and (label := norm.first_text(item.get("label")))
            )
        return norm.uniq_preserve_order(labels)[:20]

    @staticmethod
    def _benefits(raw: dict[str, Any]) -> list[str]:
        ambition_box = raw.get("ambitionBoxDetails") if isinstance(raw.get("ambitionBoxDetails"), dict) else {}
        benefits = ambition_box.get("benefits") if isinstance(ambition_box.get("benefits"), dict) else {}
        entries = benefits.get("List") if isinstance(benefits.get("List"), list) else []
        names: list[str] = []
        for entry in entries:
            if not isinstance(entry, str):
                continue
            match = _BENEFIT_NAME_RE.search(entry)
            if match:
                names.append(match.group(1).strip())
        return names[:10]


class ApifyIndeedSource(ApifyDatasetSource):
    name = "apify-indeed"

    def normalize(self, raw: dict[str, Any]) -> CanonicalPosting:
        title = norm.first_text(raw.get("positionName"), raw.get("title")) or "Untitled Position"
        description = norm.clean_text(norm.first_text(raw.get("description"))) or norm.DEFAULT_DESCRIPTION
        location = norm.first_text(raw.get("location")) or norm.DEFAULT_LOCATION
        job_types = [item for item in raw.get("jobType") or [] if isinstance(item, str)]
        raw_id = norm.first_text(raw.get("id"))

        return CanonicalPosting(
            source=self.name,
            external_id=f"apify-indeed-{raw_id}" if raw_id else norm.fallback_external_id(self.name),
            title=title,
            company=norm.first_text(raw.get("company")) or norm.DEFAULT_COMPANY,
            location=location,
            description=description,
            external_url=norm.first_text(raw.get("url")) or norm.placeholder_url(self.name),
            posted_date=norm.parse_posted_date(raw.get("postingDateParsed") or raw.get("postedAt")),
            job_type=norm.map_job_type(job_types),
            work_mode=norm.infer_work_mode(title=title, description=description, location=location),
            experience_level=self._experience(job_types),
            category=norm.detect_category(title),
            salary=norm.parse_salary(norm.first_text(raw.get("salary"))),
            required_skills=norm.extract_skills(description),
            provider_data={
                "rating": raw.get("rating"),
                "reviews_count": raw.get("reviewsCount"),
                "external_apply_link": raw.get("externalApplyLink"),
            },
        )

    @staticmethod
    def _experience(job_types: list[str]) -> str:
        if not job_types:
            return "unknown"
        lowered = [item.lower() for item in job_types]
        if any("fresher" in item or "entry" in item for item in lowered):
            return "entry"
        if any("junior" in item for item in lowered):
            return "junior"
        if any("senior" in item for item in lowered):
            return "senior"
        if any("lead" in item or "manager" in item for item in lowered):
            return "lead"
        if any("director" in item or "executive" in item for item in lowered):
            return "executive"
        return "mid"
