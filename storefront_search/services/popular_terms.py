"""
Popular term aggregator.

Request handlers only read popular_searches. The periodic roll-up job is the
only writer: it folds new search_history rows into per-term counts with
atomic insert-or-increment upserts, and it is safe to re-run over the same
history window or to run concurrently.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from storefront_search.errors import RetrievalError
from storefront_search.models.search import PopularSearchTerm
from storefront_search.services.search_history import prefix_regex

logger = logging.getLogger(__name__)

ROLL_UP_STATE_ID = "popular_terms"
# Number of applied window ids remembered per term
APPLIED_WINDOWS_KEPT = 20
# Default window end lags behind now by at least the history write timeout
ROLL_UP_GRACE = timedelta(seconds=30)
ROLL_UP_CLAIM_ATTEMPTS = 5

_TERM_ORDER = [("count", DESCENDING), ("term", ASCENDING)]
_TERM_PROJECTION = {"_id": 0, "term": 1, "count": 1, "lastUpdatedAt": 1}


def _as_utc(value: datetime) -> datetime:
    # BSON dates come back naive (UTC)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def window_id(start: Optional[datetime], end: datetime) -> str:
    start_part = _as_utc(start).isoformat() if start else "origin"
    return f"{start_part}/{_as_utc(end).isoformat()}"


class PopularTermAggregator:
    """
    Reads and maintains popular_searches (unique index on term).
    """

    def __init__(self, collection, history_collection=None, state_collection=None,
                 grace: timedelta = ROLL_UP_GRACE):
        self.collection = collection
        self.history_collection = history_collection
        self.state_collection = state_collection
        self.grace = grace

    async def _find_terms(self, query: Dict[str, Any], limit: int) -> List[PopularSearchTerm]:
        if limit <= 0:
            return []
        try:
            cursor = self.collection.find(query, _TERM_PROJECTION).sort(_TERM_ORDER).limit(limit)
            rows = await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise RetrievalError(f"Failed to read popular search terms: {e}") from e
        return [PopularSearchTerm(**row) for row in rows]

    async def top_terms(self, prefix: str, limit: int) -> List[PopularSearchTerm]:
        """
        Popular terms starting with prefix (case-insensitive),
        highest count first, ties by term.
        """
        return await self._find_terms({"term": prefix_regex(prefix)}, limit)

    async def top(self, limit: int = 10) -> List[PopularSearchTerm]:
        """Overall most searched terms, for "trending searches" lists"""
        return await self._find_terms({}, limit)

    async def increment(self, term: str, by: int = 1, applied_window: Optional[str] = None) -> bool:
        """
        Atomically add ``by`` to a term's count, creating the term if needed.

        When applied_window is given the increment is applied at most once
        per window id: a second attempt either finds no matching document
        and hits the unique term index, or matches nothing.

        Returns:
            True if the count changed
        """
        now = datetime.now(timezone.utc)
        query: Dict[str, Any] = {"term": term}
        update: Dict[str, Any] = {
            "$inc": {"count": by},
            "$set": {"lastUpdatedAt": now}
        }
        if applied_window is not None:
            query["appliedWindows"] = {"$ne": applied_window}
            update["$push"] = {
                "appliedWindows": {"$each": [applied_window], "$slice": -APPLIED_WINDOWS_KEPT}
            }

        try:
            result = await self.collection.update_one(query, update, upsert=True)
        except DuplicateKeyError:
            # The term exists and this window was already applied to it
            return False
        return bool(result.modified_count or result.upserted_id is not None)

    async def _load_state(self) -> Dict[str, Any]:
        state = await self.state_collection.find_one({"_id": ROLL_UP_STATE_ID})
        return state or {}

    async def _count_window(self, start: Optional[datetime], end: datetime) -> List[Dict[str, Any]]:
        created_at: Dict[str, Any] = {"$lte": end}
        if start is not None:
            created_at["$gt"] = start

        pipeline = [
            {"$match": {"createdAt": created_at, "queryText": {"$nin": ["", None]}}},
            {"$group": {"_id": "$queryText", "count": {"$sum": 1}}},
            {"$sort": {"_id": 1}}
        ]
        return await self.history_collection.aggregate(pipeline).to_list(length=None)

    async def _apply_window(self, start: Optional[datetime], end: datetime) -> int:
        applied = window_id(start, end)
        updated = 0
        for row in await self._count_window(start, end):
            if await self.increment(row["_id"], row["count"], applied_window=applied):
                updated += 1
        return updated

    async def _claim_window(self, start: Optional[datetime], end: datetime) -> bool:
        """
        Record (start, end] as the pending window, only if no other run holds
        a pending window and the watermark is still ``start``. A competing
        run makes the upsert collide on _id.
        """
        try:
            await self.state_collection.update_one(
                {"_id": ROLL_UP_STATE_ID, "pending": {"$exists": False}, "watermark": start},
                {"$set": {"pending": {"start": start, "end": end}}},
                upsert=True
            )
        except DuplicateKeyError:
            return False
        return True

    async def _finish_window(self, start: Optional[datetime], end: datetime) -> None:
        # Only the run that still sees this pending window moves the watermark
        await self.state_collection.update_one(
            {"_id": ROLL_UP_STATE_ID, "pending.start": start, "pending.end": end},
            {"$set": {"watermark": end}, "$unset": {"pending": ""}}
        )

    async def roll_up(self, until: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Fold search history rows newer than the stored watermark and not
        newer than ``until`` into popular term counts.

        ``until`` defaults to now minus the grace period, so rows stamped
        before a fire-and-forget insert committed are not skipped.

        A window is claimed in the state document before any increment.
        An interrupted run is finished with the exact same window next
        time, and a run that loses the claim to a concurrent one finishes
        the winner's window under the same window id before trying again.

        Returns:
            Statistics about the run
        """
        if self.history_collection is None or self.state_collection is None:
            raise RuntimeError("roll_up needs the history and state collections")

        until = until or datetime.now(timezone.utc) - self.grace
        # BSON dates keep milliseconds; the window id must survive a round trip
        until = _as_utc(until).replace(microsecond=until.microsecond // 1000 * 1000)
        terms_updated = 0
        try:
            for _ in range(ROLL_UP_CLAIM_ATTEMPTS):
                state = await self._load_state()
                watermark = state.get("watermark")

                pending = state.get("pending")
                if pending:
                    logger.info(f"Finishing pending popular term roll-up {window_id(pending.get('start'), pending['end'])}")
                    terms_updated += await self._apply_window(pending.get("start"), pending["end"])
                    await self._finish_window(pending.get("start"), pending["end"])
                    watermark = pending["end"]

                if watermark is not None and until <= _as_utc(watermark):
                    return {"window": None, "terms_updated": terms_updated, "watermark": watermark}

                if not await self._claim_window(watermark, until):
                    logger.info("Popular term roll-up window claimed by another run, retrying")
                    continue

                terms_updated += await self._apply_window(watermark, until)
                await self._finish_window(watermark, until)
                logger.info(f"Popular term roll-up up to {until.isoformat()} updated {terms_updated} terms")
                return {"window": window_id(watermark, until), "terms_updated": terms_updated, "watermark": until}
        except PyMongoError as e:
            logger.error(f"Popular term roll-up failed: {e}")
            raise RetrievalError(f"Popular term roll-up failed: {e}") from e

        raise RetrievalError(f"Popular term roll-up could not claim a window after {ROLL_UP_CLAIM_ATTEMPTS} attempts")
