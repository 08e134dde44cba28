"""
Search service: the operations exposed to callers.

One instance is built per process from the datastore handle and shared by
all requests. The only state it keeps is the set of history writes still in
flight.
"""

import asyncio
import logging
from typing import List, Optional, Set

from storefront_search.models.product import SearchResultSet
from storefront_search.models.search import AutocompleteSuggestion, SearchRequest
from storefront_search.services.autocomplete import AutocompleteComposer, DEFAULT_SUGGESTION_LIMIT
from storefront_search.services.filters import compose_predicate
from storefront_search.services.popular_terms import PopularTermAggregator
from storefront_search.services.product_index import ProductIndex
from storefront_search.services.query_normalizer import normalize_query
from storefront_search.services.search_executor import SearchExecutor
from storefront_search.services.search_history import SearchHistoryRecorder

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_WRITE_TIMEOUT = 2.0


class SearchService:
    def __init__(
        self,
        index: ProductIndex,
        history: SearchHistoryRecorder,
        popular_terms: PopularTermAggregator,
        history_write_timeout: float = DEFAULT_HISTORY_WRITE_TIMEOUT
    ):
        self.executor = SearchExecutor(index)
        self.history = history
        self.popular_terms = popular_terms
        self.autocomplete = AutocompleteComposer(popular_terms, history)
        self.history_write_timeout = history_write_timeout
        self._pending_writes: Set[asyncio.Task] = set()

    async def search_products(
        self,
        request: SearchRequest,
        requester_id: Optional[str] = None
    ) -> SearchResultSet:
        """
        Normalize, filter, rank and paginate, then record the search.

        The history write is dispatched without being awaited; its failure
        never affects the returned result.
        """
        query = normalize_query(request.rawQuery)
        predicate = compose_predicate(request.filters)

        result = await self.executor.execute(
            query, predicate, request.sort, request.page, request.pageSize
        )

        self._dispatch_history_write(request.rawQuery, requester_id, result.totalCount)
        return result

    async def get_autocomplete_suggestions(
        self,
        prefix: str,
        limit: int = DEFAULT_SUGGESTION_LIMIT,
        requester_id: Optional[str] = None
    ) -> List[AutocompleteSuggestion]:
        return await self.autocomplete.suggest(prefix, limit, requester_id)

    async def get_popular_search_terms(self, limit: int = 10) -> List[str]:
        return [item.term for item in await self.popular_terms.top(limit)]

    async def get_recent_searches(self, requester_id: Optional[str], limit: int = 5) -> List[str]:
        return await self.history.recent(requester_id, limit)

    def _dispatch_history_write(self, query_text: str, requester_id: Optional[str], result_count: int) -> None:
        task = asyncio.create_task(self._record_history(query_text, requester_id, result_count))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _record_history(self, query_text: str, requester_id: Optional[str], result_count: int) -> None:
        try:
            await asyncio.wait_for(
                self.history.record(query_text, requester_id, result_count),
                timeout=self.history_write_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Search history write timed out after {self.history_write_timeout}s "
                f"(query='{query_text}')"
            )
        except Exception as e:
            logger.warning(f"Search history write failed (query='{query_text}'): {e}")

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    async def drain(self) -> None:
        """Wait for history writes still in flight, e.g. on shutdown"""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)
