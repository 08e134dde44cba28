#!/usr/bin/env python3
"""
Periodic job that folds new search history into popular search term counts.
Meant to run from cron; re-running over an already processed window adds
nothing.
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient

from storefront_search.database.mongodb import (
    AGGREGATION_STATE, DEFAULT_MONGODB_URI, POPULAR_SEARCHES, SEARCH_HISTORY,
    database_name_from_uri
)
from storefront_search.errors import RetrievalError
from storefront_search.services.popular_terms import PopularTermAggregator

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("aggregate_popular_terms")


def parse_until(value):
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


async def run(uri: str, until):
    client = AsyncIOMotorClient(uri, tz_aware=True)
    try:
        database = client[database_name_from_uri(uri)]
        aggregator = PopularTermAggregator(
            database[POPULAR_SEARCHES],
            history_collection=database[SEARCH_HISTORY],
            state_collection=database[AGGREGATION_STATE]
        )
        return await aggregator.roll_up(until)
    finally:
        client.close()


def main():
    parser = argparse.ArgumentParser(description="Roll search history up into popular search terms")
    parser.add_argument("--uri", default=os.getenv("MONGODB_URI", DEFAULT_MONGODB_URI), help="MongoDB URI connection string")
    parser.add_argument("--until", default=None, help="ISO timestamp closing the window (default: now minus the roll-up grace period)")
    args = parser.parse_args()

    try:
        stats = asyncio.run(run(args.uri, parse_until(args.until)))
    except RetrievalError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(f"Roll-up complete: {stats}")


if __name__ == "__main__":
    main()
