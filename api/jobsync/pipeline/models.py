from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

PLACEHOLDER_REQUIREMENT = "See job description"


@dataclass(slots=True)
class Salary:
    min: float | None = None
    max: float | None = None
    currency: str = "INR"
    period: str = "annual"
    text: str | None = None


@dataclass(slots=True)
class SearchParams:
    location: str
    limit: int = 20
    query: str | None = None
    run_id: str | None = None


@dataclass(slots=True)
class CanonicalPosting:
    """Source-agnostic posting produced by an adapter's normalize step."""

    source: str
    external_id: str
    title: str
    company: str
    location: str
    description: str
    external_url: str | None = None
    posted_date: datetime | None = None
    job_type: str = "Full-time"
    work_mode: str = "On-site"
    experience_level: str = "unknown"
    category: str = "General"
    summary: str | None = None
    salary: Salary | None = None
    required_skills: list[str] = field(default_factory=list)
    requirements: list[str] = field(default_factory=lambda: [PLACEHOLDER_REQUIREMENT])
    responsibilities: list[str] = field(default_factory=list)
    benefits: list[str] = field(default_factory=list)
    qualifications: list[str] = field(default_factory=list)
    company_info: dict[str, Any] | None = None
    parsed_location: dict[str, Any] | None = None
    provider_data: dict[str, Any] = field(default_factory=dict)
    status: str = "active"

    def to_record(self) -> dict[str, Any]:
        return asdict(self)
