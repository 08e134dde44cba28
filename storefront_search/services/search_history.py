"""
Search history recorder: an append-only audit trail of executed searches,
also used as the per-user source for autocomplete and recent searches.
"""

import re
from datetime import datetime, timezone
from typing import List, Optional

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from storefront_search.errors import RetrievalError
from storefront_search.models.search import SearchHistoryRecord


def prefix_regex(prefix: str) -> dict:
    """Case-insensitive "starts with" filter for a literal prefix"""
    return {"$regex": f"^{re.escape(prefix)}", "$options": "i"}


class SearchHistoryRecorder:
    """
    Reads and appends search_history rows. Rows are never updated or deleted.
    """

    def __init__(self, collection):
        self.collection = collection

    async def record(self, query_text: str, requester_id: Optional[str], result_count: int) -> None:
        """
        Append one history row for a completed search.

        Args:
            query_text: The query as submitted, surrounding whitespace trimmed
            requester_id: Requester identity, None for anonymous searches
            result_count: Total number of matches the search reported
        """
        record = SearchHistoryRecord(
            requesterId=requester_id,
            queryText=(query_text or "").strip(),
            resultCount=result_count,
            createdAt=datetime.now(timezone.utc)
        )
        try:
            await self.collection.insert_one(record.model_dump(exclude={"id"}))
        except PyMongoError as e:
            raise RetrievalError(f"Failed to record search history: {e}") from e

    async def matching_prefix(self, requester_id: Optional[str], prefix: str, limit: int) -> List[str]:
        """
        The requester's own past queries starting with prefix, newest first.
        One entry per history row, so a query searched twice appears twice.
        """
        if requester_id is None or limit <= 0:
            return []

        try:
            cursor = self.collection.find(
                {"requesterId": requester_id, "queryText": prefix_regex(prefix)},
                {"_id": 0, "queryText": 1}
            ).sort("createdAt", DESCENDING).limit(limit)
            rows = await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise RetrievalError(f"Failed to read search history: {e}") from e

        return [row["queryText"] for row in rows]

    async def recent(self, requester_id: Optional[str], limit: int = 5) -> List[str]:
        """
        Distinct recent queries of a requester, most recent first.
        """
        if requester_id is None or limit <= 0:
            return []

        pipeline = [
            {"$match": {"requesterId": requester_id, "queryText": {"$ne": ""}}},
            {"$group": {"_id": "$queryText", "lastSearchedAt": {"$max": "$createdAt"}}},
            {"$sort": {"lastSearchedAt": DESCENDING, "_id": 1}},
            {"$limit": limit}
        ]
        try:
            rows = await self.collection.aggregate(pipeline).to_list(length=limit)
        except PyMongoError as e:
            raise RetrievalError(f"Failed to read recent searches: {e}") from e

        return [row["_id"] for row in rows]
