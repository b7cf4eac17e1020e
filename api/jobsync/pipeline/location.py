"""Karnataka region filter and location search helpers."""

from __future__ import annotations

import logging
import re
from typing import Iterable

from jobsync.pipeline.models import CanonicalPosting
from jobsync.pipeline.normalize import WORK_MODE_REMOTE

logger = logging.getLogger(__name__)

REGION_COUNTRY = "india"

REGION_ALLOW_TERMS: tuple[str, ...] = (
    "karnataka",
    "bangalore",
    "bengaluru",
    "banglore",
    "bangaluru",
    "mysore",
    "mysuru",
    "mangalore",
    "mangaluru",
    "dakshina kannada",
    "hubli",
    "hubballi",
    "dharwad",
    "belgaum",
    "belagavi",
    "tumkur",
    "tumakuru",
    "davangere",
    "davanagere",
    "bellary",
    "ballari",
    "bijapur",
    "vijayapura",
    "shimoga",
    "shivamogga",
    "gulbarga",
    "kalaburagi",
    "raichur",
    "bidar",
    "bagalkot",
    "chamarajanagar",
    "chikkaballapur",
    "chikballapur",
    "chikkamagaluru",
    "chikmagalur",
    "chitradurga",
    "gadag",
    "haveri",
    "kodagu",
    "coorg",
    "kolar",
    "koppal",
    "mandya",
    "hassan",
    "ramanagara",
    "udupi",
    "uttara kannada",
    "karwar",
    "yadgir",
    "vijayanagara",
)

FOREIGN_REJECT_TERMS: tuple[str, ...] = (
    "germany",
    "berlin",
    "munich",
    "hamburg",
    "usa",
    "united states",
    "new york",
    "san francisco",
    "california",
    "texas",
    "uk",
    "united kingdom",
    "london",
    "manchester",
    "canada",
    "toronto",
    "vancouver",
    "australia",
    "sydney",
    "melbourne",
    "singapore",
    "dubai",
    "uae",
    "europe",
    "asia",
)

CITY_VARIATIONS: dict[str, tuple[str, ...]] = {
    "bangalore": ("bengaluru", "bangaluru", "banglore", "blr"),
    "bengaluru": ("bangalore", "bangaluru", "banglore", "blr"),
    "mysore": ("mysuru", "mysur"),
    "mysuru": ("mysore", "mysur"),
    "mangalore": ("mangaluru", "mangalur"),
    "mangaluru": ("mangalore", "mangalur"),
    "hubli": ("hubballi", "hubali"),
    "hubballi": ("hubli", "hubali"),
    "belgaum": ("belagavi", "belgavi"),
    "belagavi": ("belgaum", "belgavi"),
    "gulbarga": ("kalaburagi", "kalburgi"),
    "kalaburagi": ("gulbarga", "kalburgi"),
    "bellary": ("ballari", "belary"),
    "ballari": ("bellary", "belary"),
    "bijapur": ("vijayapura", "vijaypura"),
    "vijayapura": ("bijapur", "vijaypura"),
    "shimoga": ("shivamogga", "shivamoga"),
    "shivamogga": ("shimoga", "shivamoga"),
    "tumkur": ("tumakuru", "tumkuru"),
    "tumakuru": ("tumkur", "tumkuru"),
}

_COUNTRY_SUFFIX_RE = re.compile(r",\s*(india|in|ind)$", re.IGNORECASE)
_STATE_SUFFIX_RE = re.compile(r",\s*(karnataka|ka|kar)$", re.IGNORECASE)
_FILLER_WORDS_RE = re.compile(r"\b(city|district|taluk|town)\b", re.IGNORECASE)


def _contains_term(text: str, term: str) -> bool:
    # Short codes such as "uk"/"usa"/"uae" must not match inside words like "sukhumvit".
    if len(term) <= 3:
        return re.search(rf"(?<![a-z]){re.escape(term)}(?![a-z])", text) is not None
    return term in text


def is_in_region(location: str | None, work_mode: str | None = None) -> bool:
    """Decide whether a posting belongs to the target region.

    Order: missing location rejects, any foreign term rejects, any Karnataka term
    accepts, remote postings that name India accept, everything else rejects.
    """
    if not location or not location.strip():
        return False

    lowered = location.lower()
    if any(_contains_term(lowered, term) for term in FOREIGN_REJECT_TERMS):
        return False
    if any(term in lowered for term in REGION_ALLOW_TERMS):
        return True
    if REGION_COUNTRY in lowered and ("remote" in lowered or work_mode == WORK_MODE_REMOTE):
        return True
    return False


def filter_in_region(postings: Iterable[CanonicalPosting]) -> list[CanonicalPosting]:
    accepted: list[CanonicalPosting] = []
    rejected = 0
    for posting in postings:
        if is_in_region(posting.location, posting.work_mode):
            accepted.append(posting)
            continue
        rejected += 1
        logger.debug("region filter rejected source=%s location=%r", posting.source, posting.location)
    logger.info("region filter accepted=%s rejected=%s", len(accepted), rejected)
    return accepted


def normalize_location(location: str | None) -> str:
    if not location:
        return ""
    normalized = location.lower().strip()
    normalized = _COUNTRY_SUFFIX_RE.sub("", normalized)
    normalized = _STATE_SUFFIX_RE.sub("", normalized)
    normalized = _FILLER_WORDS_RE.sub("", normalized).strip()
    return normalized.split(",")[0].strip()


def location_search_terms(location: str | None) -> list[str]:
    """Main city name plus its known spelling variants, for listing queries."""
    main_city = normalize_location(location)
    if not main_city:
        return []
    return [main_city, *CITY_VARIATIONS.get(main_city, ())]
