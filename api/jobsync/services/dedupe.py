from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Literal, Mapping

DuplicateVerdict = Literal["unique", "duplicate"]


@dataclass(slots=True)
class DuplicateDecision:
    verdict: DuplicateVerdict
    duplicate_of: str | None = None
    matched_source: str | None = None

    @property
    def is_duplicate(self) -> bool:
        return self.verdict == "duplicate"


def content_hash(title: str | None, company: str | None, location: str | None) -> str:
    """Fingerprint used to spot the same posting arriving from different providers."""
    parts = [(value or "").strip().lower() for value in (title, company, location)]
    return hashlib.md5("|".join(parts).encode("utf-8")).hexdigest()


def decide_duplicate(new_source: str, match: Mapping[str, Any] | None) -> DuplicateDecision:
    if match is None:
        return DuplicateDecision(verdict="unique")
    matched_source = match.get("source")
    if not matched_source or matched_source == new_source:
        return DuplicateDecision(verdict="unique")
    matched_id = match.get("id")
    if not matched_id:
        return DuplicateDecision(verdict="unique")
    return DuplicateDecision(verdict="duplicate", duplicate_of=str(matched_id), matched_source=str(matched_source))
