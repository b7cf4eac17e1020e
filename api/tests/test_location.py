from __future__ import annotations

from jobsync.pipeline.location import filter_in_region, is_in_region, location_search_terms, normalize_location
from jobsync.pipeline.models import CanonicalPosting


def _posting(location: str, work_mode: str = "On-site") -> CanonicalPosting:
    return CanonicalPosting(
        source="jsearch",
        external_id=location,
        title="Engineer",
        company="Acme",
        location=location,
        description="Build things",
        work_mode=work_mode,
    )


def test_region_filter_accepts_karnataka_cities() -> None:
    assert is_in_region("Bangalore, Karnataka, India") is True
    assert is_in_region("Mysuru") is True
    assert is_in_region("Hubballi-Dharwad, KA") is True


def test_region_filter_rejects_foreign_and_unknown_locations() -> None:
    assert is_in_region("Berlin, Germany") is False
    assert is_in_region("Bangalore or London") is False
    assert is_in_region("Pune, Maharashtra, India") is False
    assert is_in_region("") is False
    assert is_in_region(None) is False


def test_short_reject_terms_only_match_whole_words() -> None:
    assert is_in_region("Sukhumvit Road, Bengaluru") is True
    assert is_in_region("Bengaluru / UK") is False


def test_remote_india_postings_are_accepted() -> None:
    assert is_in_region("Remote, India") is True
    assert is_in_region("India", work_mode="Remote") is True
    assert is_in_region("India", work_mode="On-site") is False


def test_filter_in_region_keeps_order() -> None:
    postings = [_posting("Bengaluru"), _posting("Berlin"), _posting("Mangaluru, Karnataka"), _posting("India", "Remote")]
    kept = filter_in_region(postings)
    assert [item.location for item in kept] == ["Bengaluru", "Mangaluru, Karnataka", "India"]


def test_location_search_terms_expand_city_variants() -> None:
    assert normalize_location("Bangalore City, Karnataka") == "bangalore"
    assert location_search_terms("Bangalore, Karnataka") == ["bangalore", "bengaluru", "bangaluru", "banglore", "blr"]
    assert location_search_terms("Udupi") == ["udupi"]
    assert location_search_terms(None) == []
