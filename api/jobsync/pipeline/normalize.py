"""Pure transforms from messy provider fields to bounded canonical values."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import html
import random
import re
import time
from typing import Any, Iterable

from dateutil import parser as date_parser

from jobsync.pipeline.models import PLACEHOLDER_REQUIREMENT, Salary

MAX_DESCRIPTION_LENGTH = 10_000
DEFAULT_COMPANY = "Not specified"
DEFAULT_LOCATION = "India"
DEFAULT_JOB_TYPE = "Full-time"
DEFAULT_DESCRIPTION = "No description available"
PLACEHOLDER_URL_PREFIX = "https://example.com/"

WORK_MODE_REMOTE = "Remote"
WORK_MODE_HYBRID = "Hybrid"
WORK_MODE_ONSITE = "On-site"

EXPERIENCE_LEVELS = ("entry", "junior", "mid", "senior", "lead", "executive", "unknown")
SALARY_CURRENCIES = ("INR", "USD", "EUR", "GBP", "CAD", "AUD")
SALARY_PERIODS = ("annual", "monthly", "hourly")

COMMON_SKILLS = (
    "JavaScript",
    "Python",
    "Java",
    "React",
    "Node.js",
    "Angular",
    "Vue",
    "SQL",
    "MongoDB",
    "PostgreSQL",
    "AWS",
    "Azure",
    "Docker",
    "Kubernetes",
    "Git",
    "HTML",
    "CSS",
    "TypeScript",
    "C++",
    "C#",
    "PHP",
    "Ruby",
    "Django",
    "Flask",
    "Spring",
    "Express",
    "GraphQL",
    "REST API",
    "Machine Learning",
    "AI",
    "Data Science",
    "DevOps",
    "CI/CD",
    "Agile",
    "Scrum",
    "Jenkins",
    "Linux",
    "Microservices",
)

_SCRIPT_STYLE_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_PARAGRAPH_END_RE = re.compile(r"</p\s*>", re.IGNORECASE)
_BREAK_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_DIV_END_RE = re.compile(r"</div\s*>", re.IGNORECASE)
_HEADING_RE = re.compile(r"</?h[1-6]\b[^>]*>", re.IGNORECASE)
_LIST_ITEM_RE = re.compile(r"<li\b[^>]*>", re.IGNORECASE)
_LIST_RE = re.compile(r"</?(?:ul|ol)\b[^>]*>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_INLINE_SPACE_RE = re.compile(r"[ \t\f\v\u00a0]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")

_JOB_TYPE_ENUMS = {
    "FULL_TIME": "Full-time",
    "FULLTIME": "Full-time",
    "PART_TIME": "Part-time",
    "PARTTIME": "Part-time",
    "CONTRACTOR": "Contract",
    "INTERN": "Internship",
    "TEMPORARY": "Temporary",
    "VOLUNTEER": "Volunteer",
}
_JOB_TYPE_RULES = (
    ("full", "Full-time"),
    ("permanent", "Full-time"),
    ("part", "Part-time"),
    ("contract", "Contract"),
    ("freelance", "Contract"),
    ("temp", "Temporary"),
    ("intern", "Internship"),
    ("volunteer", "Volunteer"),
)
_EXPERIENCE_RULES = (
    (("intern", "entry", "fresher", "graduate"), "entry"),
    (("associate", "junior"), "junior"),
    (("mid",), "mid"),
    (("senior",), "senior"),
    (("lead", "director", "manager", "principal", "staff"), "lead"),
    (("executive", "c-level", "vp", "vice president", "chief"), "executive"),
)
_CURRENCY_HINTS = (
    ("₹", "INR"),
    ("inr", "INR"),
    ("rs", "INR"),
    ("$", "USD"),
    ("usd", "USD"),
    ("€", "EUR"),
    ("eur", "EUR"),
    ("£", "GBP"),
    ("gbp", "GBP"),
    ("cad", "CAD"),
    ("aud", "AUD"),
)

_LAKH_RANGE_RE = re.compile(r"([\d.]+)\s*-\s*([\d.]+)\s*(?:lacs?|lpa|lakhs?)", re.IGNORECASE)
_LAKH_SINGLE_RE = re.compile(r"([\d.]+)\s*(?:lacs?|lpa|lakhs?)", re.IGNORECASE)
_MONTHLY_RANGE_RE = re.compile(r"([\d,]+)\s*-\s*([\d,]+)\s*(?:/\s*|per\s+)?month", re.IGNORECASE)
_THOUSAND_RANGE_RE = re.compile(r"([\d.]+)\s*k\s*(?:-|to)\s*([\d.]+)\s*k\b", re.IGNORECASE)
_PLAIN_RANGE_RE = re.compile(r"([\d][\d,]*(?:\.\d+)?)\s*(?:-|to)\s*([\d][\d,]*(?:\.\d+)?)", re.IGNORECASE)
_SINGLE_AMOUNT_RE = re.compile(r"([\d][\d,]*(?:\.\d+)?)\s*(k\b)?", re.IGNORECASE)
_RELATIVE_DATE_RE = re.compile(r"(\d+)\+?\s*(minute|hour|day|week|month)s?\s*ago", re.IGNORECASE)
_YEARS_RE = re.compile(r"(\d+)\+?\s*years?")


def clean_text(value: str | None, *, max_length: int = MAX_DESCRIPTION_LENGTH) -> str:
    """Convert HTML-laden provider text to plain text that keeps paragraph and list boundaries.

    Structural tags are rewritten to newlines and bullets before the generic tag strip,
    otherwise adjacent blocks run together.
    """
    if not value:
        return ""

    text = _SCRIPT_STYLE_RE.sub("", value)
    text = _PARAGRAPH_END_RE.sub("\n\n", text)
    text = _BREAK_RE.sub("\n", text)
    text = _DIV_END_RE.sub("\n", text)
    text = _HEADING_RE.sub("\n\n", text)
    text = _LIST_ITEM_RE.sub("\n• ", text)
    text = _LIST_RE.sub("\n", text)
    text = _TAG_RE.sub("", text)
    text = html.unescape(text)

    text = _INLINE_SPACE_RE.sub(" ", text.replace("\r\n", "\n").replace("\r", "\n"))
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = _BLANK_LINES_RE.sub("\n\n", text).strip()
    return truncate_description(text, max_length=max_length)


def truncate_description(value: str | None, *, max_length: int = MAX_DESCRIPTION_LENGTH) -> str:
    if not value:
        return ""
    return value[:max_length]


def infer_work_mode(
    explicit: str | bool | None = None,
    *,
    title: str | None = None,
    description: str | None = None,
    location: str | None = None,
) -> str:
    if isinstance(explicit, bool):
        return WORK_MODE_REMOTE if explicit else WORK_MODE_ONSITE
    explicit_mode = _canonical_work_mode(explicit)
    if explicit_mode:
        return explicit_mode

    haystack = " ".join(part for part in (title, description, location) if part).lower()
    if "remote" in haystack or "work from home" in haystack or "wfh" in haystack:
        return WORK_MODE_REMOTE
    if "hybrid" in haystack:
        return WORK_MODE_HYBRID
    return WORK_MODE_ONSITE


def _canonical_work_mode(value: str | None) -> str | None:
    if not value:
        return None
    lowered = value.lower()
    if "remote" in lowered or "telecommute" in lowered:
        return WORK_MODE_REMOTE
    if "hybrid" in lowered:
        return WORK_MODE_HYBRID
    if "on-site" in lowered or "onsite" in lowered or "office" in lowered:
        return WORK_MODE_ONSITE
    return None


def map_job_type(value: str | Iterable[str] | None) -> str:
    if value is None:
        return DEFAULT_JOB_TYPE
    values = [value] if isinstance(value, str) else [item for item in value if isinstance(item, str)]
    values = [item.strip() for item in values if item and item.strip()]
    if not values:
        return DEFAULT_JOB_TYPE

    for item in values:
        mapped = _JOB_TYPE_ENUMS.get(item.upper())
        if mapped:
            return mapped

    lowered = [item.lower() for item in values]
    for needle, label in _JOB_TYPE_RULES:
        if any(needle in item for item in lowered):
            return label
    return DEFAULT_JOB_TYPE


def map_experience_from_text(value: str | Iterable[str] | None) -> str:
    if value is None:
        return "unknown"
    values = [value] if isinstance(value, str) else [item for item in value if isinstance(item, str)]
    lowered = " ".join(values).lower()
    if not lowered.strip() or "not applicable" in lowered or "not specified" in lowered:
        return "unknown"
    for needles, level in _EXPERIENCE_RULES:
        if any(needle in lowered for needle in needles):
            return level
    return "unknown"


def map_experience_from_years(minimum: Any, maximum: Any) -> str:
    bounds = [number for number in (_as_number(minimum), _as_number(maximum)) if number is not None]
    if not bounds:
        return "unknown"

    average = sum(bounds) / len(bounds)
    if average == 0:
        return "entry"
    if average <= 2:
        return "junior"
    if average <= 5:
        return "mid"
    if average <= 10:
        return "senior"
    return "lead"


def parse_salary(text: str | None, *, currency: str = "INR") -> Salary | None:
    """Parse free-form salary text; the raw text is always carried through unchanged."""
    if not text or not text.strip():
        return None
    lowered = text.lower()
    if "not disclosed" in lowered:
        return None

    detected_currency = detect_currency(text) or currency

    match = _LAKH_RANGE_RE.search(text)
    if match:
        return _salary_range(match.group(1), match.group(2), 100_000, detected_currency, "annual", text)

    match = _LAKH_SINGLE_RE.search(text)
    if match:
        return salary_from_bounds(_scaled(match.group(1), 100_000), None, detected_currency, "annual", text)

    match = _MONTHLY_RANGE_RE.search(text)
    if match:
        return _salary_range(match.group(1), match.group(2), 1, detected_currency, "monthly", text)

    period = _period_hint(lowered)

    match = _THOUSAND_RANGE_RE.search(text)
    if match:
        return _salary_range(match.group(1), match.group(2), 1_000, detected_currency, period, text)

    match = _PLAIN_RANGE_RE.search(text)
    if match:
        return _salary_range(match.group(1), match.group(2), 1, detected_currency, period, text)

    match = _SINGLE_AMOUNT_RE.search(text)
    if match:
        multiplier = 1_000 if match.group(2) else 1
        amount = _scaled(match.group(1), multiplier)
        if amount:
            return salary_from_bounds(amount, None, detected_currency, period, text)

    return Salary(currency=detected_currency, period=period, text=text)


def salary_from_bounds(
    minimum: Any,
    maximum: Any,
    currency: str | None = "INR",
    period: str | None = "annual",
    text: str | None = None,
) -> Salary | None:
    """Build a salary from structured bounds; a lone bound becomes a ±10% band.

    A currency or pay period outside the stored vocabulary yields a text-only salary.
    """
    low = _as_number(minimum)
    high = _as_number(maximum)
    currency_code = normalize_currency(currency)
    period_code = normalize_period(period)
    if not low and not high:
        if text and text.strip():
            return Salary(currency=currency_code or "INR", period=period_code or "annual", text=text)
        return None

    if currency_code is None or period_code is None:
        return Salary(text=text or _bounds_text(low, high, currency, period))

    if low is not None and high is None:
        low, high = round(low * 0.9), round(low * 1.1)
    elif high is not None and low is None:
        low, high = round(high * 0.9), round(high * 1.1)

    return Salary(
        min=low,
        max=high,
        currency=currency_code,
        period=period_code,
        text=text,
    )


def detect_currency(text: str | None) -> str | None:
    if not text:
        return None
    lowered = text.lower()
    for hint, code in _CURRENCY_HINTS:
        if hint.isalpha():
            if re.search(rf"(?<![a-z]){re.escape(hint)}(?![a-z])", lowered):
                return code
        elif hint in lowered:
            return code
    return None


def normalize_currency(value: str | None) -> str | None:
    """Map to a stored currency code; ``None`` when the code is not one we keep."""
    if not value:
        return "INR"
    code = value.strip().upper()
    return code if code in SALARY_CURRENCIES else None


def normalize_period(value: str | None) -> str | None:
    if not value:
        return "annual"
    lowered = value.strip().lower()
    if lowered.startswith("hour"):
        return "hourly"
    if lowered.startswith("month"):
        return "monthly"
    if lowered in {"year", "yearly", "annual", "annually", "per annum", "p.a."}:
        return "annual"
    return None


def parse_posted_date(value: Any, *, now: datetime | None = None) -> datetime:
    """Best-effort posted date; unparseable input falls back to ``now``."""
    current = now or datetime.now(timezone.utc)
    if value is None or value == "":
        return current
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _from_epoch(float(value))

    text = str(value).strip()
    if text.isdigit():
        return _from_epoch(float(text))

    lowered = text.lower()
    match = _RELATIVE_DATE_RE.search(lowered)
    if match:
        amount = int(match.group(1))
        unit = match.group(2).lower()
        delta = {
            "minute": timedelta(minutes=amount),
            "hour": timedelta(hours=amount),
            "day": timedelta(days=amount),
            "week": timedelta(weeks=amount),
            "month": timedelta(days=30 * amount),
        }[unit]
        return current - delta
    if "today" in lowered or "just now" in lowered or "just posted" in lowered:
        return current
    if "yesterday" in lowered:
        return current - timedelta(days=1)

    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        return current
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _from_epoch(value: float) -> datetime:
    if value > 1e12:
        value = value / 1000.0
    return datetime.fromtimestamp(value, tz=timezone.utc)


def extract_requirements(description: str | None) -> list[str]:
    lowered = (description or "").lower()
    requirements: list[str] = []
    if "bachelor" in lowered or "degree" in lowered:
        requirements.append("Bachelor's degree or equivalent")
    if "experience" in lowered or "years" in lowered:
        match = _YEARS_RE.search(lowered)
        if match:
            requirements.append(f"{match.group(1)}+ years of experience")
    return requirements or [PLACEHOLDER_REQUIREMENT]


def extract_benefits(description: str | None) -> list[str]:
    lowered = (description or "").lower()
    benefits: list[str] = []
    if "health insurance" in lowered:
        benefits.append("Health Insurance")
    if "401k" in lowered or "pension" in lowered:
        benefits.append("Retirement Plan")
    if "pto" in lowered or "paid time off" in lowered:
        benefits.append("Paid Time Off")
    if "work from home" in lowered or "remote" in lowered:
        benefits.append("Remote Work")
    if "flexible" in lowered:
        benefits.append("Flexible Schedule")
    return benefits


def extract_skills(text: str | None) -> list[str]:
    lowered = (text or "").lower()
    if not lowered:
        return []
    found: list[str] = []
    for skill in COMMON_SKILLS:
        pattern = rf"(?<![a-z0-9]){re.escape(skill.lower())}(?![a-z0-9+#])"
        if re.search(pattern, lowered) and skill not in found:
            found.append(skill)
    return found


def detect_category(title: str | None) -> str:
    lowered = (title or "").lower()
    if "software" in lowered or "developer" in lowered or "engineer" in lowered:
        return "Software Development"
    if "data" in lowered or "analyst" in lowered:
        return "Data & Analytics"
    if "design" in lowered or re.search(r"\b(ui|ux)\b", lowered):
        return "Design"
    if "marketing" in lowered:
        return "Marketing"
    if "sales" in lowered:
        return "Sales"
    return "General"


def placeholder_url(source: str) -> str:
    return f"{PLACEHOLDER_URL_PREFIX}{source}/{int(time.time() * 1000)}"


def is_placeholder_url(url: str | None) -> bool:
    return bool(url) and url.startswith(PLACEHOLDER_URL_PREFIX)


def fallback_external_id(source: str) -> str:
    return f"{source}-{int(time.time() * 1000)}-{random.random()}"


def first_text(*values: Any) -> str | None:
    for value in values:
        text = as_text(value)
        if text:
            return text
    return None


def as_text(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def uniq_preserve_order(items: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    output: list[str] = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            output.append(item)
    return output


def _salary_range(low: str, high: str, multiplier: int, currency: str, period: str, text: str) -> Salary | None:
    return salary_from_bounds(_scaled(low, multiplier), _scaled(high, multiplier), currency, period, text)


def _scaled(value: str, multiplier: int) -> float | None:
    try:
        number = float(value.replace(",", "").rstrip("."))
    except ValueError:
        return None
    scaled = number * multiplier
    return int(round(scaled)) if multiplier > 1 or scaled.is_integer() else scaled


def _period_hint(lowered: str) -> str:
    if "hour" in lowered or "/hr" in lowered:
        return "hourly"
    if "month" in lowered:
        return "monthly"
    return "annual"


def _as_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.replace(",", "").strip())
        except ValueError:
            return None
    return None


def _bounds_text(low: float | None, high: float | None, currency: str | None, period: str | None) -> str:
    amounts = " - ".join(str(int(value) if float(value).is_integer() else value) for value in (low, high) if value is not None)
    suffix = " ".join(part.strip() for part in (currency, period) if part and part.strip())
    return f"{amounts} {suffix}".strip()
