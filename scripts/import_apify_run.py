#!/usr/bin/env python3
"""Import a finished Apify dataset (or start a LinkedIn actor run) into external_jobs."""

from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import asdict

from jobsync.core.config import get_settings
from jobsync.core.telemetry import configure_logging
from jobsync.services.aggregator import ImportOutcome, JobAggregator
from jobsync.services.persistence import JobPersistence
from jobsync.services.repository import get_repository
from jobsync.sources.apify_trigger import ApifyActorTrigger, build_linkedin_search_input
from jobsync.sources.registry import APIFY_SOURCE_NAMES, build_sources


async def run_import(
    *,
    source: str,
    run_id: str | None,
    limit: int,
    region_only: bool,
    trigger_keywords: str | None,
) -> ImportOutcome:
    settings = get_settings()
    repository = get_repository()
    aggregator = JobAggregator(
        build_sources(settings),
        JobPersistence(repository),
        default_location=settings.default_search_location,
    )
    try:
        if trigger_keywords:
            trigger = ApifyActorTrigger(
                api_token=settings.apify_api_token,
                poll_interval_seconds=settings.apify_poll_interval_seconds,
                timeout_seconds=settings.apify_run_timeout_seconds,
            )
            run, items = await trigger.run_and_collect(
                settings.apify_linkedin_actor_id,
                build_linkedin_search_input(trigger_keywords, number_of_jobs=limit),
            )
            return await aggregator.import_items(
                source,
                items,
                run_id=str(run.get("id") or ""),
                region_only=region_only,
            )
        return await aggregator.import_source(source, run_id=run_id, limit=limit, region_only=region_only)
    finally:
        await repository.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Import Apify job datasets into the external_jobs table.")
    parser.add_argument("--source", choices=APIFY_SOURCE_NAMES, required=True, help="Apify dataset adapter to use")
    target_group = parser.add_mutually_exclusive_group()
    target_group.add_argument("--run-id", help="Apify run id; defaults to the configured APIFY_*_RUN_ID")
    target_group.add_argument(
        "--trigger-keywords",
        help="Start the LinkedIn actor with these keywords and import its results (apify-linkedin only)",
    )
    parser.add_argument("--limit", type=int, default=1000, help="Maximum dataset items to read")
    parser.add_argument(
        "--all-regions",
        action="store_true",
        help="Keep postings outside Karnataka instead of dropping them",
    )
    args = parser.parse_args()

    if args.trigger_keywords and args.source != "apify-linkedin":
        parser.error("--trigger-keywords is only supported for --source apify-linkedin")

    configure_logging()
    outcome = asyncio.run(
        run_import(
            source=args.source,
            run_id=args.run_id,
            limit=args.limit,
            region_only=not args.all_regions,
            trigger_keywords=args.trigger_keywords,
        )
    )
    print(json.dumps(asdict(outcome), indent=2, default=str))


if __name__ == "__main__":
    main()
