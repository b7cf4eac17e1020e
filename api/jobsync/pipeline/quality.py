from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

UNKNOWN_MARKERS = {"", "unknown", "not specified"}


def calculate_quality_score(record: Mapping[str, Any], *, now: datetime | None = None) -> int:
    current = now or datetime.now(timezone.utc)
    score = 0

    if len(_text(record.get("title"))) > 5:
        score += 10
    if len(_text(record.get("company"))) > 2:
        score += 10
    if len(_text(record.get("location"))) > 2:
        score += 10
    if len(_text(record.get("description"))) > 100:
        score += 10

    if record.get("required_skills"):
        score += 10
    salary = record.get("salary")
    if isinstance(salary, Mapping) and (salary.get("min") or salary.get("max") or salary.get("text")):
        score += 10
    if _text(record.get("job_type")).lower() not in UNKNOWN_MARKERS:
        score += 5
    if _text(record.get("work_mode")).lower() not in UNKNOWN_MARKERS:
        score += 5

    company_info = record.get("company_info")
    if isinstance(company_info, Mapping):
        for key in ("industry", "size", "website", "description"):
            if _text(company_info.get(key)):
                score += 5

    posted_date = record.get("posted_date")
    if isinstance(posted_date, datetime):
        if posted_date.tzinfo is None:
            posted_date = posted_date.replace(tzinfo=timezone.utc)
        age_days = (current - posted_date).total_seconds() / 86400
        if age_days < 7:
            score += 10
        elif age_days < 30:
            score += 5

    return max(0, min(score, 100))


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""
