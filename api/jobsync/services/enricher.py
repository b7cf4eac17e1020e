from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Literal
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup, Tag
from opentelemetry import trace

from jobsync.pipeline import normalize as norm
from jobsync.pipeline.models import PLACEHOLDER_REQUIREMENT
from jobsync.services.repository import ExternalJobRepository

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

ENRICH_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
ENRICH_HEADERS = {
    "User-Agent": ENRICH_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

HOST_SELECTORS: dict[str, tuple[str, ...]] = {
    "linkedin.com": (".description__text", ".show-more-less-html__markup", '[class*="description"]'),
    "naukri.com": (".job-desc", ".JDC_description", '[class*="description"]'),
    "indeed.com": ("#jobDescriptionText", ".jobsearch-jobDescriptionText", '[id*="jobDescription"]'),
    "monster.com": (".job-description", '[class*="description"]'),
}
GENERIC_SELECTORS = (
    ".job-description",
    ".description",
    "#job-description",
    "#description",
    '[class*="job-desc"]',
    '[class*="description"]',
    '[id*="description"]',
    "article",
    ".content",
    "main",
)
GENERIC_MIN_HTML_LENGTH = 200

REQUIREMENT_HEADINGS = ("requirements", "qualifications", "required qualifications", "must have", "what you need")
RESPONSIBILITY_HEADINGS = (
    "responsibilities",
    "duties",
    "you will",
    "what you'll do",
    "key responsibilities",
    "role responsibilities",
)
HEADING_TAGS = {"h1", "h2", "h3", "h4", "h5", "h6"}
MIN_ITEM_LENGTH = 10
MAX_SECTION_ITEMS = 15

NO_URL_MESSAGE = "No external URL available"
SCRAPE_FAILED_MESSAGE = "Could not scrape additional details"


@dataclass(slots=True)
class ScrapedDetails:
    requirements: list[str] = field(default_factory=list)
    responsibilities: list[str] = field(default_factory=list)
    skills: list[str] = field(default_factory=list)


@dataclass(slots=True)
class EnrichmentResult:
    success: bool
    posting: dict[str, Any]
    source: Literal["cache", "scraped"] | None = None
    message: str | None = None


def has_detailed_requirements(posting: dict[str, Any]) -> bool:
    requirements = posting.get("requirements") or []
    return len(requirements) > 3 and PLACEHOLDER_REQUIREMENT not in requirements


def url_host(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def find_description_block(soup: BeautifulSoup, url: str) -> Tag | None:
    host = url_host(url)
    for domain, selectors in HOST_SELECTORS.items():
        if host == domain or host.endswith(f".{domain}"):
            for selector in selectors:
                block = soup.select_one(selector)
                if block is not None and block.get_text(strip=True):
                    return block
            return None

    best: Tag | None = None
    best_length = 0
    for selector in GENERIC_SELECTORS:
        block = soup.select_one(selector)
        if block is None:
            continue
        length = len(block.decode_contents())
        if length > best_length:
            best, best_length = block, length
    if best is None or best_length <= GENERIC_MIN_HTML_LENGTH:
        return None
    return best


def extract_section(block: Tag, vocabulary: tuple[str, ...]) -> list[str]:
    items: list[str] = []
    for heading in block.find_all(["h1", "h2", "h3", "h4", "h5", "h6", "strong", "b"]):
        heading_text = heading.get_text(" ", strip=True).lower()
        if not any(term in heading_text for term in vocabulary):
            continue

        for sibling in _section_anchor(heading).find_next_siblings():
            if sibling.name in HEADING_TAGS or _is_inline_heading(sibling):
                break
            if sibling.name in {"ul", "ol"}:
                candidates = [li.get_text(" ", strip=True) for li in sibling.find_all("li")]
            elif sibling.name in {"p", "div"}:
                candidates = [sibling.get_text(" ", strip=True)]
            else:
                continue
            items.extend(text for text in candidates if len(text) > MIN_ITEM_LENGTH)

    return norm.uniq_preserve_order(items)[:MAX_SECTION_ITEMS]


def extract_details(html: str, url: str) -> ScrapedDetails | None:
    soup = BeautifulSoup(html, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()

    block = find_description_block(soup, url)
    if block is None:
        return None
    return ScrapedDetails(
        requirements=extract_section(block, REQUIREMENT_HEADINGS),
        responsibilities=extract_section(block, RESPONSIBILITY_HEADINGS),
        skills=norm.extract_skills(block.get_text("\n", strip=True)),
    )


def _section_anchor(heading: Tag) -> Tag:
    # <p><strong>Requirements</strong></p> acts as a heading for the paragraph's siblings
    parent = heading.parent
    if (
        heading.name in {"strong", "b"}
        and isinstance(parent, Tag)
        and parent.name in {"p", "div"}
        and parent.get_text(strip=True) == heading.get_text(strip=True)
    ):
        return parent
    return heading


def _is_inline_heading(element: Tag) -> bool:
    if element.name not in {"p", "div"}:
        return False
    emphasis = element.find(["strong", "b"])
    return emphasis is not None and element.get_text(strip=True) == emphasis.get_text(strip=True)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DetailEnricher:
    """Best-effort scrape of a posting's original page for requirements, responsibilities and skills."""

    def __init__(
        self,
        repository: ExternalJobRepository,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 15.0,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.repository = repository
        self.client = client
        self.timeout_seconds = timeout_seconds
        self._clock = clock

    async def enrich(self, posting_id: str) -> EnrichmentResult:
        posting = await self.repository.get_posting(posting_id)
        if has_detailed_requirements(posting):
            return EnrichmentResult(success=True, source="cache", posting=posting)

        url = posting.get("external_url")
        if not url or norm.is_placeholder_url(url):
            return EnrichmentResult(success=False, posting=posting, message=NO_URL_MESSAGE)

        with tracer.start_as_current_span("enricher.enrich") as span:
            span.set_attribute("enricher.host", url_host(url))
            try:
                html = await self._fetch_html(url)
                details = extract_details(html, url)
            except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
                logger.warning("detail scrape failed posting_id=%s url=%s error=%s", posting_id, url, exc)
                span.record_exception(exc)
                return EnrichmentResult(success=False, posting=posting, message=SCRAPE_FAILED_MESSAGE)

            if details is None:
                logger.info("no description block found posting_id=%s url=%s", posting_id, url)
                return EnrichmentResult(success=False, posting=posting, message=SCRAPE_FAILED_MESSAGE)
            span.set_attribute("enricher.requirements", len(details.requirements))
            span.set_attribute("enricher.responsibilities", len(details.responsibilities))

        updated = await self.repository.update_posting_details(
            posting_id,
            requirements=details.requirements or None,
            responsibilities=details.responsibilities or None,
            required_skills=norm.uniq_preserve_order([*(posting.get("required_skills") or []), *details.skills]),
            last_updated=self._clock(),
        )
        logger.info(
            "detail scrape saved posting_id=%s requirements=%s responsibilities=%s skills=%s",
            posting_id,
            len(details.requirements),
            len(details.responsibilities),
            len(details.skills),
        )
        return EnrichmentResult(success=True, source="scraped", posting=updated)

    async def _fetch_html(self, url: str) -> str:
        if self.client is not None:
            response = await self.client.get(
                url, headers=ENRICH_HEADERS, timeout=self.timeout_seconds, follow_redirects=True
            )
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, follow_redirects=True) as temp_client:
                response = await temp_client.get(url, headers=ENRICH_HEADERS)
        response.raise_for_status()
        return response.text
