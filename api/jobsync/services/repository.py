from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Protocol
from uuid import UUID, uuid4

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from jobsync.core.config import get_settings

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation violates a uniqueness or state rule."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


SCHEMA_SQL = """
create table if not exists external_jobs (
  id uuid primary key default gen_random_uuid(),
  source text not null,
  external_id text not null,
  title text not null,
  company text not null,
  location text not null,
  description text not null,
  summary text,
  external_url text,
  category text not null default 'General',
  job_type text not null default 'Full-time',
  work_mode text not null default 'On-site',
  experience_level text not null default 'unknown',
  salary jsonb,
  required_skills text[] not null default '{}',
  requirements text[] not null default '{}',
  responsibilities text[] not null default '{}',
  benefits text[] not null default '{}',
  qualifications text[] not null default '{}',
  company_info jsonb,
  parsed_location jsonb,
  provider_data jsonb not null default '{}'::jsonb,
  posted_date timestamptz,
  scraped_at timestamptz not null default now(),
  last_updated timestamptz not null default now(),
  last_synced_at timestamptz not null default now(),
  status text not null default 'active'
    check (status in ('active', 'expired', 'removed', 'duplicate', 'processed')),
  is_active boolean not null default true,
  quality_score integer not null default 0 check (quality_score between 0 and 100),
  relevance_score integer not null default 0 check (relevance_score between 0 and 100),
  views integer not null default 0,
  content_hash text,
  duplicate_of uuid references external_jobs(id) on delete set null,
  unique (source, external_id)
);
create index if not exists external_jobs_content_hash_idx on external_jobs (content_hash);
create index if not exists external_jobs_status_posted_idx on external_jobs (status, posted_date desc);
create index if not exists external_jobs_source_idx on external_jobs (source);
"""

JSON_COLUMNS = ("salary", "company_info", "parsed_location", "provider_data")
LIST_COLUMNS = ("required_skills", "requirements", "responsibilities", "benefits", "qualifications")
MUTABLE_COLUMNS = (
    "title",
    "company",
    "location",
    "description",
    "summary",
    "external_url",
    "category",
    "job_type",
    "work_mode",
    "experience_level",
    "salary",
    "required_skills",
    "requirements",
    "responsibilities",
    "benefits",
    "qualifications",
    "company_info",
    "parsed_location",
    "provider_data",
    "posted_date",
    "content_hash",
    "quality_score",
    "relevance_score",
)
INSERT_COLUMNS = ("source", "external_id", *MUTABLE_COLUMNS, "status", "scraped_at", "last_updated", "last_synced_at")
SELECT_COLUMNS_SQL = """
  id::text as id,
  source,
  external_id,
  title,
  company,
  location,
  description,
  summary,
  external_url,
  category,
  job_type,
  work_mode,
  experience_level,
  salary,
  required_skills,
  requirements,
  responsibilities,
  benefits,
  qualifications,
  company_info,
  parsed_location,
  provider_data,
  posted_date,
  scraped_at,
  last_updated,
  last_synced_at,
  status,
  is_active,
  quality_score,
  relevance_score,
  views,
  content_hash,
  duplicate_of::text as duplicate_of
"""
SORT_COLUMNS = {
    "posted_date": "posted_date",
    "scraped_at": "scraped_at",
    "last_updated": "last_updated",
    "quality_score": "quality_score",
    "views": "views",
    "title": "title",
    "company": "company",
}


@dataclass(slots=True)
class PostingFilters:
    source: str | None = None
    location_terms: list[str] = field(default_factory=list)
    company_terms: list[str] = field(default_factory=list)
    category: str | None = None
    job_type: str | None = None
    work_mode: str | None = None
    search: str | None = None
    status: str | None = "active"
    active_only: bool = True


class ExternalJobRepository(Protocol):
    async def close(self) -> None: ...

    async def find_one(self, source: str, external_id: str) -> dict[str, Any] | None: ...

    async def find_by_content_hash(self, content_hash: str, exclude_source: str) -> dict[str, Any] | None: ...

    async def upsert_posting(self, record: dict[str, Any]) -> tuple[bool, dict[str, Any]]: ...

    async def mark_duplicate(self, posting_id: str, duplicate_of: str) -> dict[str, Any]: ...

    async def get_posting(self, posting_id: str) -> dict[str, Any]: ...

    async def increment_views(self, posting_id: str) -> dict[str, Any]: ...

    async def list_postings(
        self,
        filters: PostingFilters,
        *,
        limit: int,
        offset: int,
        sort_by: str,
        sort_dir: str,
    ) -> list[dict[str, Any]]: ...

    async def count_postings(self, filters: PostingFilters) -> int: ...

    async def get_stats(self) -> dict[str, Any]: ...

    async def deactivate_posting(self, posting_id: str) -> dict[str, Any]: ...

    async def delete_posting(self, posting_id: str) -> None: ...

    async def cleanup_postings(self, days_old: int, *, now: datetime | None = None) -> int: ...

    async def update_posting_details(
        self,
        posting_id: str,
        *,
        requirements: list[str] | None,
        responsibilities: list[str] | None,
        required_skills: list[str],
        last_updated: datetime,
    ) -> dict[str, Any]: ...


class PostgresRepository:
    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def find_one(self, source: str, external_id: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"select {SELECT_COLUMNS_SQL} from external_jobs where source = $1 and external_id = $2",
            source,
            external_id,
        )
        return self._posting_row_to_dict(row) if row else None

    async def find_by_content_hash(self, content_hash: str, exclude_source: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            select {SELECT_COLUMNS_SQL}
            from external_jobs
            where content_hash = $1
              and source <> $2
              and status <> 'duplicate'
            order by scraped_at asc, id asc
            limit 1
            """,
            content_hash,
            exclude_source,
        )
        return self._posting_row_to_dict(row) if row else None

    async def upsert_posting(self, record: dict[str, Any]) -> tuple[bool, dict[str, Any]]:
        pool = await self._get_pool()
        params: list[Any] = []
        placeholders: list[str] = []
        for column in INSERT_COLUMNS:
            value = record.get(column)
            if column in JSON_COLUMNS:
                params.append(json.dumps(value, default=str) if value is not None else None)
                placeholders.append(f"${len(params)}::jsonb")
            elif column in LIST_COLUMNS:
                params.append(list(value or []))
                placeholders.append(f"${len(params)}")
            else:
                params.append(value)
                placeholders.append(f"${len(params)}")

        update_sql = ",\n              ".join(f"{column} = excluded.{column}" for column in MUTABLE_COLUMNS)
        try:
            row = await pool.fetchrow(
                f"""
                insert into external_jobs ({", ".join(INSERT_COLUMNS)})
                values ({", ".join(placeholders)})
                on conflict (source, external_id) do update set
                  {update_sql},
                  status = case
                    when external_jobs.status = 'duplicate' then external_jobs.status
                    else excluded.status
                  end,
                  last_updated = excluded.last_updated,
                  last_synced_at = excluded.last_synced_at
                returning {SELECT_COLUMNS_SQL}, (xmax = 0) as created
                """,
                *params,
            )
        except (pg_exc.CheckViolationError, pg_exc.NotNullViolationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError(f"posting rejected by database: {exc.__class__.__name__}") from exc
        if row is None:
            raise RepositoryConflictError("upsert returned no row")
        return bool(row["created"]), self._posting_row_to_dict(row)

    async def mark_duplicate(self, posting_id: str, duplicate_of: str) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                update external_jobs
                set status = 'duplicate', duplicate_of = $2::uuid
                where id = $1::uuid
                returning {SELECT_COLUMNS_SQL}
                """,
                posting_id,
                duplicate_of,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("posting not found") from exc
        if not row:
            raise RepositoryNotFoundError("posting not found")
        return self._posting_row_to_dict(row)

    async def get_posting(self, posting_id: str) -> dict[str, Any]:
        return await self._fetch_one_by_id(f"select {SELECT_COLUMNS_SQL} from external_jobs where id = $1::uuid", posting_id)

    async def increment_views(self, posting_id: str) -> dict[str, Any]:
        return await self._fetch_one_by_id(
            f"update external_jobs set views = views + 1 where id = $1::uuid returning {SELECT_COLUMNS_SQL}",
            posting_id,
        )

    async def list_postings(
        self,
        filters: PostingFilters,
        *,
        limit: int,
        offset: int,
        sort_by: str,
        sort_dir: str,
    ) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        where_sql, params = self._build_filters(filters)
        sort_column = SORT_COLUMNS.get(sort_by, "posted_date")
        direction = "asc" if sort_dir == "asc" else "desc"
        params.extend([limit, offset])
        rows = await pool.fetch(
            f"""
            select {SELECT_COLUMNS_SQL}
            from external_jobs
            where {where_sql}
            order by {sort_column} {direction} nulls last, id asc
            limit ${len(params) - 1}
            offset ${len(params)}
            """,
            *params,
        )
        return [self._posting_row_to_dict(row) for row in rows]

    async def count_postings(self, filters: PostingFilters) -> int:
        pool = await self._get_pool()
        where_sql, params = self._build_filters(filters)
        value = await pool.fetchval(f"select count(*) from external_jobs where {where_sql}", *params)
        return int(value or 0)

    async def get_stats(self) -> dict[str, Any]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            total = await conn.fetchval("select count(*) from external_jobs where status = 'active'")
            by_source = await conn.fetch(
                """
                select source as key, count(*)::int as count
                from external_jobs where status = 'active'
                group by source order by count desc, source asc
                """
            )
            by_category = await conn.fetch(
                """
                select category as key, count(*)::int as count
                from external_jobs where status = 'active'
                group by category order by count desc, category asc
                limit 10
                """
            )
            by_work_mode = await conn.fetch(
                """
                select work_mode as key, count(*)::int as count
                from external_jobs where status = 'active'
                group by work_mode order by count desc, work_mode asc
                """
            )
            recent = await conn.fetch(
                """
                select id::text as id, title, company, source, posted_date
                from external_jobs where status = 'active'
                order by posted_date desc nulls last, id asc
                limit 5
                """
            )
        return {
            "total": int(total or 0),
            "by_source": [dict(row) for row in by_source],
            "by_category": [dict(row) for row in by_category],
            "by_work_mode": [dict(row) for row in by_work_mode],
            "recent": [dict(row) for row in recent],
        }

    async def deactivate_posting(self, posting_id: str) -> dict[str, Any]:
        return await self._fetch_one_by_id(
            f"update external_jobs set is_active = false where id = $1::uuid returning {SELECT_COLUMNS_SQL}",
            posting_id,
        )

    async def delete_posting(self, posting_id: str) -> None:
        await self._fetch_one_by_id("delete from external_jobs where id = $1::uuid returning id::text as id", posting_id)

    async def cleanup_postings(self, days_old: int, *, now: datetime | None = None) -> int:
        pool = await self._get_pool()
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days_old)
        rows = await pool.fetch("delete from external_jobs where posted_date < $1 returning id", cutoff)
        logger.info("cleanup removed %s postings older than %s days", len(rows), days_old)
        return len(rows)

    async def update_posting_details(
        self,
        posting_id: str,
        *,
        requirements: list[str] | None,
        responsibilities: list[str] | None,
        required_skills: list[str],
        last_updated: datetime,
    ) -> dict[str, Any]:
        return await self._fetch_one_by_id(
            f"""
            update external_jobs
            set requirements = coalesce($2, requirements),
                responsibilities = coalesce($3, responsibilities),
                required_skills = $4,
                last_updated = $5
            where id = $1::uuid
            returning {SELECT_COLUMNS_SQL}
            """,
            posting_id,
            requirements,
            responsibilities,
            required_skills,
            last_updated,
        )

    async def _fetch_one_by_id(self, query: str, posting_id: str, *args: Any) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(query, posting_id, *args)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("posting not found") from exc
        if not row:
            raise RepositoryNotFoundError("posting not found")
        return self._posting_row_to_dict(row) if "source" in row.keys() else dict(row)

    @staticmethod
    def _build_filters(filters: PostingFilters) -> tuple[str, list[Any]]:
        conditions: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if filters.status:
            conditions.append(f"status = {bind(filters.status)}")
        if filters.active_only:
            conditions.append("is_active = true")
        if filters.source:
            conditions.append(f"source = {bind(filters.source)}")
        if filters.location_terms:
            patterns = bind([f"%{term}%" for term in filters.location_terms])
            conditions.append(
                f"(location ilike any({patterns}::text[]) or coalesce(parsed_location->>'city', '') ilike any({patterns}::text[]))"
            )
        if filters.company_terms:
            conditions.append(f"company ilike any({bind([f'%{term}%' for term in filters.company_terms])}::text[])")
        if filters.category:
            conditions.append(f"category ilike {bind(f'%{filters.category}%')}")
        if filters.job_type:
            conditions.append(f"job_type = {bind(filters.job_type)}")
        if filters.work_mode:
            conditions.append(f"work_mode = {bind(filters.work_mode)}")
        if filters.search:
            token = bind(f"%{filters.search}%")
            conditions.append(f"(title ilike {token} or company ilike {token} or description ilike {token})")

        return (" and ".join(conditions) if conditions else "true"), params

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            await pool.execute(SCHEMA_SQL)
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc
        self._pool = pool
        return self._pool

    @staticmethod
    def _posting_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        item = {key: row[key] for key in row.keys() if key != "created"}
        for column in JSON_COLUMNS:
            value = item.get(column)
            if isinstance(value, str):
                try:
                    value = json.loads(value)
                except json.JSONDecodeError:
                    value = None
            item[column] = value if isinstance(value, dict) else None
        if item.get("provider_data") is None:
            item["provider_data"] = {}
        for column in LIST_COLUMNS:
            item[column] = list(item.get(column) or [])
        return item


class InMemoryRepository:
    """Process-local backend used by tests and by STORAGE_BACKEND=memory."""

    def __init__(self) -> None:
        self.postings: dict[str, dict[str, Any]] = {}
        self._keys: dict[tuple[str, str], str] = {}

    async def close(self) -> None:
        return None

    async def find_one(self, source: str, external_id: str) -> dict[str, Any] | None:
        posting_id = self._keys.get((source, external_id))
        return dict(self.postings[posting_id]) if posting_id else None

    async def find_by_content_hash(self, content_hash: str, exclude_source: str) -> dict[str, Any] | None:
        matches = [
            item
            for item in self.postings.values()
            if item.get("content_hash") == content_hash
            and item["source"] != exclude_source
            and item["status"] != "duplicate"
        ]
        if not matches:
            return None
        matches.sort(key=lambda item: (item["scraped_at"], item["id"]))
        return dict(matches[0])

    async def upsert_posting(self, record: dict[str, Any]) -> tuple[bool, dict[str, Any]]:
        key = (record["source"], record["external_id"])
        posting_id = self._keys.get(key)
        if posting_id is None:
            posting_id = str(uuid4())
            stored = {column: record.get(column) for column in INSERT_COLUMNS}
            for column in LIST_COLUMNS:
                stored[column] = list(stored.get(column) or [])
            stored["provider_data"] = dict(stored.get("provider_data") or {})
            stored.update(
                {
                    "id": posting_id,
                    "status": record.get("status") or "active",
                    "is_active": True,
                    "views": 0,
                    "duplicate_of": None,
                }
            )
            self.postings[posting_id] = stored
            self._keys[key] = posting_id
            return True, dict(stored)

        stored = self.postings[posting_id]
        for column in MUTABLE_COLUMNS:
            value = record.get(column)
            stored[column] = list(value or []) if column in LIST_COLUMNS else value
        if stored["provider_data"] is None:
            stored["provider_data"] = {}
        if stored["status"] != "duplicate":
            stored["status"] = record.get("status") or "active"
        stored["last_updated"] = record.get("last_updated")
        stored["last_synced_at"] = record.get("last_synced_at")
        return False, dict(stored)

    async def mark_duplicate(self, posting_id: str, duplicate_of: str) -> dict[str, Any]:
        stored = self._require(posting_id)
        stored["status"] = "duplicate"
        stored["duplicate_of"] = duplicate_of
        return dict(stored)

    async def get_posting(self, posting_id: str) -> dict[str, Any]:
        return dict(self._require(posting_id))

    async def increment_views(self, posting_id: str) -> dict[str, Any]:
        stored = self._require(posting_id)
        stored["views"] += 1
        return dict(stored)

    async def list_postings(
        self,
        filters: PostingFilters,
        *,
        limit: int,
        offset: int,
        sort_by: str,
        sort_dir: str,
    ) -> list[dict[str, Any]]:
        column = SORT_COLUMNS.get(sort_by, "posted_date")
        matches = [item for item in self.postings.values() if self._matches(item, filters)]
        present = [item for item in matches if item.get(column) is not None]
        missing = [item for item in matches if item.get(column) is None]
        present.sort(key=lambda item: item["id"])
        present.sort(key=lambda item: item[column], reverse=sort_dir != "asc")
        missing.sort(key=lambda item: item["id"])
        ordered = present + missing
        return [dict(item) for item in ordered[offset : offset + limit]]

    async def count_postings(self, filters: PostingFilters) -> int:
        return sum(1 for item in self.postings.values() if self._matches(item, filters))

    async def get_stats(self) -> dict[str, Any]:
        active = [item for item in self.postings.values() if item["status"] == "active"]
        recent = sorted(
            (item for item in active if item.get("posted_date") is not None),
            key=lambda item: item["posted_date"],
            reverse=True,
        )[:5]
        return {
            "total": len(active),
            "by_source": _count_by(active, "source"),
            "by_category": _count_by(active, "category")[:10],
            "by_work_mode": _count_by(active, "work_mode"),
            "recent": [
                {key: item.get(key) for key in ("id", "title", "company", "source", "posted_date")} for item in recent
            ],
        }

    async def deactivate_posting(self, posting_id: str) -> dict[str, Any]:
        stored = self._require(posting_id)
        stored["is_active"] = False
        return dict(stored)

    async def delete_posting(self, posting_id: str) -> None:
        stored = self._require(posting_id)
        self._remove(stored)

    async def cleanup_postings(self, days_old: int, *, now: datetime | None = None) -> int:
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days_old)
        stale = [
            item
            for item in self.postings.values()
            if item.get("posted_date") is not None and item["posted_date"] < cutoff
        ]
        for item in stale:
            self._remove(item)
        logger.info("cleanup removed %s postings older than %s days", len(stale), days_old)
        return len(stale)

    async def update_posting_details(
        self,
        posting_id: str,
        *,
        requirements: list[str] | None,
        responsibilities: list[str] | None,
        required_skills: list[str],
        last_updated: datetime,
    ) -> dict[str, Any]:
        stored = self._require(posting_id)
        if requirements is not None:
            stored["requirements"] = list(requirements)
        if responsibilities is not None:
            stored["responsibilities"] = list(responsibilities)
        stored["required_skills"] = list(required_skills)
        stored["last_updated"] = last_updated
        return dict(stored)

    def _require(self, posting_id: str) -> dict[str, Any]:
        try:
            UUID(posting_id)
        except ValueError as exc:
            raise RepositoryNotFoundError("posting not found") from exc
        stored = self.postings.get(posting_id)
        if stored is None:
            raise RepositoryNotFoundError("posting not found")
        return stored

    def _remove(self, stored: dict[str, Any]) -> None:
        self.postings.pop(stored["id"], None)
        self._keys.pop((stored["source"], stored["external_id"]), None)
        for item in self.postings.values():
            if item.get("duplicate_of") == stored["id"]:
                item["duplicate_of"] = None

    @staticmethod
    def _matches(item: dict[str, Any], filters: PostingFilters) -> bool:
        if filters.status and item["status"] != filters.status:
            return False
        if filters.active_only and not item.get("is_active", True):
            return False
        if filters.source and item["source"] != filters.source:
            return False
        if filters.location_terms:
            city = (item.get("parsed_location") or {}).get("city") or ""
            haystacks = ((item.get("location") or "").lower(), str(city).lower())
            if not any(term.lower() in text for term in filters.location_terms for text in haystacks):
                return False
        if filters.company_terms:
            company = (item.get("company") or "").lower()
            if not any(term.lower() in company for term in filters.company_terms):
                return False
        if filters.category and filters.category.lower() not in (item.get("category") or "").lower():
            return False
        if filters.job_type and item.get("job_type") != filters.job_type:
            return False
        if filters.work_mode and item.get("work_mode") != filters.work_mode:
            return False
        if filters.search:
            needle = filters.search.lower()
            fields = (item.get("title"), item.get("company"), item.get("description"))
            if not any(needle in (value or "").lower() for value in fields):
                return False
        return True


def company_search_terms(company: str | None) -> list[str]:
    """Split a company filter into words longer than two characters, falling back to the whole value."""
    if not company or not company.strip():
        return []
    words = [word for word in re.split(r"\s+", company.strip()) if len(word) > 2]
    return words or [company.strip()]


def _count_by(items: list[dict[str, Any]], key: str) -> list[dict[str, Any]]:
    counts: dict[Any, int] = {}
    for item in items:
        counts[item.get(key)] = counts.get(item.get(key), 0) + 1
    ordered = sorted(counts.items(), key=lambda pair: (-pair[1], str(pair[0])))
    return [{"key": value, "count": count} for value, count in ordered]


@lru_cache
def get_repository() -> ExternalJobRepository:
    settings = get_settings()
    if settings.storage_backend == "memory":
        logger.warning("using in-memory posting storage; data is lost on restart")
        return InMemoryRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
