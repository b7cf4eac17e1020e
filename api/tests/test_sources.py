from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from jobsync.core.config import Settings
from jobsync.pipeline.models import PLACEHOLDER_REQUIREMENT, SearchParams
from jobsync.services.persistence import JobPersistence, SaveSummary
from jobsync.services.repository import InMemoryRepository
from jobsync.sources.adzuna import AdzunaSource
from jobsync.sources.apify import ApifyIndeedSource, ApifyLinkedInSource, ApifyNaukriSource
from jobsync.sources.arbeitnow import ArbeitnowSource
from jobsync.sources.base import SourceRateLimitedError, SourceUnavailableError
from jobsync.sources.careerjet import CareerjetSource
from jobsync.sources.jsearch import JSearchSource
from jobsync.sources.linkedin import LinkedInRapidApiSource
from jobsync.sources.registry import SOURCE_NAMES, build_sources
from jobsync.sources.remotive import RemotiveSource
from jobsync.sources.themuse import TheMuseSource


PARAMS = SearchParams(location="Karnataka,India", limit=5)


def _fetch(source_factory, handler) -> list[dict[str, Any]]:
    async def run() -> list[dict[str, Any]]:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await source_factory(client).fetch(PARAMS)

    return asyncio.run(run())


def test_jsearch_sends_rapidapi_headers_and_normalizes() -> None:
    seen: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        seen["headers"] = request.headers
        return httpx.Response(
            200,
            json={
                "data": [
                    {
                        "job_id": "js-1",
                        "job_title": "Python Developer",
                        "employer_name": "Acme",
                        "job_city": "Bengaluru",
                        "job_state": "Karnataka",
                        "job_country": "IN",
                        "job_description": "<p>Python and Docker.</p><p>Health insurance included.</p>",
                        "job_is_remote": False,
                        "job_employment_type": "FULLTIME",
                        "job_apply_link": "https://jobs.example.com/js-1",
                        "job_posted_at_datetime_utc": "2025-03-08T10:00:00.000Z",
                        "job_min_salary": 1200000,
                        "job_max_salary": 1800000,
                        "job_salary_currency": "INR",
                        "job_salary_period": "YEAR",
                    },
                    "not-an-object",
                ]
            },
            request=request,
        )

    items = _fetch(lambda client: JSearchSource(api_key="key", api_host="jsearch.p.rapidapi.com", client=client), handler)

    assert seen["url"].host == "jsearch.p.rapidapi.com"
    assert seen["url"].params["country"] == "in"
    assert seen["headers"]["X-RapidAPI-Key"] == "key"
    assert len(items) == 1

    posting = JSearchSource(api_key="key", api_host="jsearch.p.rapidapi.com").normalize(items[0])
    assert posting.external_id == "js-1"
    assert posting.location == "Bengaluru, Karnataka, IN"
    assert posting.description == "Python and Docker.\n\nHealth insurance included."
    assert posting.job_type == "Full-time"
    assert posting.work_mode == "On-site"
    assert posting.category == "Software Development"
    assert posting.salary is not None
    assert (posting.salary.min, posting.salary.max, posting.salary.period) == (1200000, 1800000, "annual")
    assert posting.salary.text == "1200000 - 1800000 INR"
    assert posting.required_skills == ["Python", "Docker"]
    assert posting.benefits == ["Health Insurance"]
    assert posting.parsed_location == {"city": "Bengaluru", "state": "Karnataka", "country": "IN"}


def test_missing_credentials_fail_before_any_request() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(SourceUnavailableError, match="JSEARCH_API_KEY"):
        _fetch(lambda client: JSearchSource(api_key=None, api_host="h", client=client), handler)
    with pytest.raises(SourceUnavailableError, match="ADZUNA_APP_KEY"):
        _fetch(lambda client: AdzunaSource(app_id="id", app_key=None, client=client), handler)
    with pytest.raises(SourceUnavailableError, match="LINKEDIN_RAPIDAPI_HOST"):
        _fetch(lambda client: LinkedInRapidApiSource(api_key="k", api_host=None, client=client), handler)
    with pytest.raises(SourceUnavailableError, match="APIFY_API_TOKEN"):
        _fetch(lambda client: ApifyNaukriSource(api_token=None, run_id="run", client=client), handler)


def test_adzuna_retries_once_after_rate_limit() -> None:
    attempts: list[int] = []
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    async def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) == 1:
            return httpx.Response(429, request=request)
        assert request.url.params["where"] == "Karnataka OR Bangalore"
        return httpx.Response(200, json={"results": [{"id": "az-1"}]}, request=request)

    items = _fetch(lambda client: AdzunaSource(app_id="id", app_key="key", client=client, sleep=fake_sleep), handler)

    assert items == [{"id": "az-1"}]
    assert len(attempts) == 2
    assert sleeps == [5.0]


def test_adzuna_gives_up_after_second_rate_limit() -> None:
    async def fake_sleep(seconds: float) -> None:
        return None

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, request=request)

    with pytest.raises(SourceRateLimitedError):
        _fetch(lambda client: AdzunaSource(app_id="id", app_key="key", client=client, sleep=fake_sleep), handler)


def test_other_sources_do_not_retry_rate_limits() -> None:
    attempts: list[int] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        return httpx.Response(429, request=request)

    with pytest.raises(SourceRateLimitedError):
        _fetch(lambda client: TheMuseSource(client=client), handler)
    assert len(attempts) == 1


def test_upstream_errors_and_bad_payloads_raise_unavailable() -> None:
    async def server_error(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, request=request)

    async def not_json(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>", request=request)

    async def connect_error(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(SourceUnavailableError, match="status 500"):
        _fetch(lambda client: RemotiveSource(client=client), server_error)
    with pytest.raises(SourceUnavailableError, match="non-JSON"):
        _fetch(lambda client: ArbeitnowSource(client=client), not_json)
    with pytest.raises(SourceUnavailableError, match="ConnectError"):
        _fetch(lambda client: TheMuseSource(client=client), connect_error)


def test_adzuna_normalize_maps_salary_and_areas() -> None:
    posting = AdzunaSource(app_id="id", app_key="key").normalize(
        {
            "id": 4711,
            "title": "Data Analyst",
            "company": {"display_name": "Insight Co"},
            "location": {"display_name": "Bangalore, Karnataka", "area": ["India", "Karnataka", "Bangalore"]},
            "description": "SQL reporting",
            "redirect_url": "https://adzuna.example/4711",
            "created": "2025-03-07T09:00:00Z",
            "contract_time": "full_time",
            "salary_min": 600000,
            "salary_max": 900000,
            "category": {"label": "IT Jobs"},
        }
    )

    assert posting.external_id == "4711"
    assert posting.company == "Insight Co"
    assert posting.category == "IT Jobs"
    assert posting.job_type == "Full-time"
    assert posting.salary is not None
    assert posting.salary.text == "600000 - 900000 INR"
    assert posting.parsed_location == {"country": "India", "state": "Karnataka", "city": "Bangalore"}
    assert posting.requirements == [PLACEHOLDER_REQUIREMENT]


def test_careerjet_falls_back_to_url_for_identity_and_parses_salary() -> None:
    posting = CareerjetSource(affid="aff").normalize(
        {
            "title": "Senior Java Engineer",
            "company": "Infra Ltd",
            "locations": "Mysore",
            "url": "https://www.careerjet.co.in/job/abc",
            "description": "Java microservices",
            "salary": "10-15 Lacs P.A.",
            "date": "Mon, 03 Mar 2025 10:00:00 GMT",
        }
    )

    assert posting.external_id == "https://www.careerjet.co.in/job/abc"
    assert posting.experience_level == "senior"
    assert posting.salary is not None
    assert (posting.salary.min, posting.salary.max) == (1_000_000, 1_500_000)
    assert posting.required_skills == ["Java", "Microservices"]


def test_placeholder_url_when_provider_has_none() -> None:
    posting = TheMuseSource().normalize(
        {
            "id": 99,
            "name": "Product Designer",
            "company": {"name": "Muse"},
            "locations": [{"name": "Bengaluru, India"}],
            "levels": [{"name": "Senior Level"}],
            "categories": [{"name": "Design and UX"}],
            "contents": "<p>Design flows</p>",
        }
    )

    assert posting.external_url is not None
    assert posting.external_url.startswith("https://example.com/themuse/")
    assert posting.location == "Bengaluru, India"
    assert posting.experience_level == "senior"
    assert posting.category == "Design and UX"


def test_remotive_and_arbeitnow_normalize() -> None:
    remote = RemotiveSource().normalize(
        {
            "id": 1,
            "title": "Junior Frontend Developer",
            "company_name": "Remote Inc",
            "candidate_required_location": "India",
            "description": "React and TypeScript",
            "tags": ["react", "frontend"],
            "salary": "USD 40k - 60k",
            "url": "https://remotive.example/1",
        }
    )
    assert remote.work_mode == "Remote"
    assert remote.experience_level == "junior"
    assert remote.required_skills == ["react", "frontend", "React", "TypeScript"]
    assert remote.salary is not None
    assert (remote.salary.min, remote.salary.max, remote.salary.currency) == (40_000, 60_000, "USD")

    board = ArbeitnowSource().normalize(
        {
            "slug": "backend-dev-berlin",
            "title": "Backend Developer",
            "company_name": "Berlin GmbH",
            "location": "Berlin",
            "remote": True,
            "job_types": ["full time"],
            "tags": ["Go"],
            "created_at": 1741000000,
            "url": "https://arbeitnow.example/backend-dev-berlin",
        }
    )
    assert board.external_id == "backend-dev-berlin"
    assert board.work_mode == "Remote"
    assert board.job_type == "Full-time"
    assert board.posted_date is not None and board.posted_date.year == 2025


def test_linkedin_rapidapi_normalize_derives_location_and_salary() -> None:
    posting = LinkedInRapidApiSource(api_key="k", api_host="h").normalize(
        {
            "id": "123",
            "title": "Engineering Manager",
            "organization": "Scale Co",
            "cities_derived": ["Bengaluru"],
            "regions_derived": ["Karnataka"],
            "countries_derived": ["India"],
            "description_text": "Lead a Kubernetes platform team",
            "employment_type": ["FULL_TIME"],
            "remote_derived": False,
            "seniority": "Director",
            "salary_raw": {"currency": "INR", "value": {"minValue": 4000000, "maxValue": 6000000, "unitText": "YEAR"}},
            "url": "https://www.linkedin.com/jobs/view/123",
        }
    )

    assert posting.source == "linkedin"
    assert posting.external_id == "linkedin-123"
    assert posting.location == "Bengaluru, Karnataka, India"
    assert posting.experience_level == "lead"
    assert posting.salary is not None
    assert (posting.salary.currency, posting.salary.period) == ("INR", "annual")
    assert posting.parsed_location == {"city": "Bengaluru", "state": "Karnataka", "country": "India"}


def test_unmapped_salary_units_fall_back_to_text_and_still_save() -> None:
    weekly = LinkedInRapidApiSource(api_key="k", api_host="h").normalize(
        {
            "id": "weekly-1",
            "title": "Contract Designer",
            "organization": "Weekly Co",
            "cities_derived": ["Bengaluru"],
            "regions_derived": ["Karnataka"],
            "countries_derived": ["India"],
            "description_text": "Short design engagement",
            "salary_raw": {"currency": "USD", "value": {"minValue": 1000, "maxValue": 1500, "unitText": "WEEK"}},
            "url": "https://www.linkedin.com/jobs/view/weekly-1",
        }
    )
    singapore = JSearchSource(api_key="key", api_host="jsearch.p.rapidapi.com").normalize(
        {
            "job_id": "sgd-1",
            "job_title": "Platform Engineer",
            "employer_name": "Lion Co",
            "job_city": "Bengaluru",
            "job_state": "Karnataka",
            "job_country": "IN",
            "job_description": "Run the platform",
            "job_apply_link": "https://jobs.example.com/sgd-1",
            "job_min_salary": 5000,
            "job_max_salary": 8000,
            "job_salary_currency": "SGD",
            "job_salary_period": "MONTH",
        }
    )

    assert weekly.salary is not None
    assert (weekly.salary.min, weekly.salary.max) == (None, None)
    assert weekly.salary.text == "1000 - 1500 USD WEEK"
    assert singapore.salary is not None
    assert (singapore.salary.min, singapore.salary.max) == (None, None)
    assert singapore.salary.text == "5000 - 8000 SGD MONTH"

    repository = InMemoryRepository()
    summary = asyncio.run(JobPersistence(repository).save_batch([weekly, singapore]))

    assert summary == SaveSummary(saved_count=2)
    stored = {item["external_id"]: item["salary"] for item in repository.postings.values()}
    assert stored["linkedin-weekly-1"]["text"] == "1000 - 1500 USD WEEK"
    assert stored["sgd-1"]["min"] is None


def test_apify_dataset_fetch_uses_run_id_and_token() -> None:
    seen: list[httpx.URL] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        return httpx.Response(200, json=[{"id": "1"}, {"id": "2"}, 7], request=request)

    items = _fetch(lambda client: ApifyLinkedInSource(api_token="tok", run_id="run-42", client=client), handler)

    assert items == [{"id": "1"}, {"id": "2"}]
    assert seen[0].path == "/v2/actor-runs/run-42/dataset/items"
    assert seen[0].params["token"] == "tok"

    with pytest.raises(SourceUnavailableError, match="run id"):
        _fetch(lambda client: ApifyIndeedSource(api_token="tok", client=client), handler)


def test_apify_naukri_normalize() -> None:
    posting = ApifyNaukriSource(api_token="tok").normalize(
        {
            "jobId": "n-77",
            "title": "Data Engineer",
            "companyDetail": {"name": "Naukri Client", "companySize": "1001-5000"},
            "locations": [{"label": "Bengaluru"}, {"label": "Mysuru"}],
            "description": "<p>Spark pipelines</p>",
            "salaryDetail": {"minimumSalary": 800000, "maximumSalary": 1200000, "currency": "INR", "label": "8-12 Lacs"},
            "keySkills": {"preferred": [{"label": "Spark"}], "other": [{"label": "SQL"}, {"label": "Spark"}]},
            "minimumExperience": 3,
            "maximumExperience": 5,
            "wfhType": "2",
            "ambitionBoxDetails": {"benefits": {"List": ["{BenefitName=Health insurance; Count=10}"]}},
            "staticUrl": "https://www.naukri.com/job-listings-n-77",
            "createdDate": 1741000000000,
        }
    )

    assert posting.external_id == "apify-naukri-n-77"
    assert posting.location == "Bengaluru, Mysuru"
    assert posting.work_mode == "Remote"
    assert posting.experience_level == "mid"
    assert posting.required_skills == ["Spark", "SQL"]
    assert posting.benefits == ["Health insurance"]
    assert posting.salary is not None
    assert (posting.salary.min, posting.salary.max, posting.salary.text) == (800000, 1200000, "8-12 Lacs")
    assert posting.company_info is not None and posting.company_info["size"] == "1001-5000"


def test_apify_naukri_only_prefixes_relative_detail_urls() -> None:
    source = ApifyNaukriSource(api_token="tok")
    base = {"jobId": "n-1", "title": "QA Engineer", "locations": [{"label": "Mysuru"}]}

    relative = source.normalize({**base, "basicInfo": {"jdURL": "/job-listings-qa-n-1"}})
    absolute = source.normalize({**base, "basicInfo": {"jdURL": "https://www.naukri.com/job-listings-qa-n-1"}})

    assert relative.external_url == "https://www.naukri.com/job-listings-qa-n-1"
    assert absolute.external_url == "https://www.naukri.com/job-listings-qa-n-1"


def test_apify_indeed_experience_from_job_types() -> None:
    source = ApifyIndeedSource(api_token="tok")
    fresher = source.normalize({"id": "i-1", "positionName": "Support Associate", "jobType": ["Fresher"], "location": "Hubli"})
    other = source.normalize({"id": "i-2", "positionName": "Accountant", "jobType": ["Full-time"], "location": "Udupi"})
    unknown = source.normalize({"id": "i-3", "positionName": "Clerk", "location": "Udupi"})

    assert fresher.external_id == "apify-indeed-i-1"
    assert fresher.experience_level == "entry"
    assert other.experience_level == "mid"
    assert other.job_type == "Full-time"
    assert unknown.experience_level == "unknown"


def test_build_sources_registers_every_provider() -> None:
    sources = build_sources(Settings(apify_api_token="tok"))
    assert tuple(sources) == SOURCE_NAMES
    assert sources["apify-naukri"].api_token == "tok"
