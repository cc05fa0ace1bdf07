#!/usr/bin/env python3
"""Compute the instability index for one or every country and print it as JSON."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from storyline.analytics.instability import InstabilityEngine
from storyline.config import Settings, configure_logging
from storyline.countries import CountryCode
from storyline.storage.postgres_schema import ensure_story_schema
from storyline.storage.postgres_stories import PostgresStoryStore


logger = logging.getLogger("compute_instability_worker")


def main() -> int:
    parser = argparse.ArgumentParser(description="Compute country instability index")
    parser.add_argument("--country", default=None, help="Country code (default: all countries)")
    args = parser.parse_args()

    settings = Settings.from_env()
    configure_logging(settings)
    try:
        settings.validate(require_ai=False)
    except ValueError as e:
        logger.error(f"Configuration error:\n{e}")
        return 1

    ensure_story_schema(settings.pg_dsn)
    engine = InstabilityEngine(PostgresStoryStore(settings.pg_dsn))

    if args.country:
        try:
            country = CountryCode.parse(args.country)
        except ValueError as e:
            logger.error(str(e))
            return 2
        out = {country.value: engine.calculate(country).as_dict()}
    else:
        out = {cc: report.as_dict() for cc, report in engine.calculate_all().items()}

    print(json.dumps(out, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
