"""
Search executor: validates paging and sort, resolves the ordering and runs
one ranked, filtered, paginated retrieval against the product index.
"""

import logging
import math
from typing import List, Tuple

from pymongo import ASCENDING, DESCENDING
from pydantic import ValidationError as DocumentValidationError
from pymongo.errors import PyMongoError

from storefront_search.errors import RetrievalError, ValidationError
from storefront_search.models.product import ProductDocument, SearchHit, SearchResultSet
from storefront_search.models.search import SortMode
from storefront_search.services.filters import Predicate
from storefront_search.services.product_index import SCORE_FIELD, ProductIndex
from storefront_search.services.query_normalizer import NormalizedQuery

logger = logging.getLogger(__name__)

# Appended to every ordering so that pagination is deterministic
TIE_BREAKER = ("id", ASCENDING)

_SORT_ORDERINGS = {
    SortMode.RELEVANCE: [(SCORE_FIELD, DESCENDING)],
    SortMode.PRICE_ASCENDING: [("price", ASCENDING)],
    SortMode.PRICE_DESCENDING: [("price", DESCENDING)],
    SortMode.NEWEST: [("createdAt", DESCENDING)],
}


def parse_sort_mode(sort) -> SortMode:
    if isinstance(sort, SortMode):
        return sort
    try:
        return SortMode(sort)
    except ValueError:
        allowed = ", ".join(mode.value for mode in SortMode)
        raise ValidationError(f"Unknown sort mode '{sort}', expected one of: {allowed}")


def resolve_sort_mode(sort: SortMode, query: NormalizedQuery) -> SortMode:
    """Relevance has nothing to rank by without query text"""
    if sort == SortMode.RELEVANCE and query.is_empty:
        return SortMode.NEWEST
    return sort


def build_ordering(sort: SortMode) -> List[Tuple[str, int]]:
    return _SORT_ORDERINGS[sort] + [TIE_BREAKER]


def validate_paging(page: int, page_size: int) -> None:
    if page is None or page < 1:
        raise ValidationError(f"page must be >= 1, got {page}")
    if page_size is None or page_size < 1:
        raise ValidationError(f"pageSize must be >= 1, got {page_size}")


class SearchExecutor:
    """
    Runs searches against a ProductIndex backend.
    Holds no state besides the backend handle.
    """

    def __init__(self, index: ProductIndex):
        self.index = index

    async def execute(
        self,
        query: NormalizedQuery,
        predicate: Predicate,
        sort,
        page: int,
        page_size: int
    ) -> SearchResultSet:
        """
        Execute a search.

        Args:
            query: Normalized query, empty means filter-only retrieval
            predicate: Composed facet predicate
            sort: SortMode or its string value
            page: 1-based page number
            page_size: Number of items per page

        Returns:
            SearchResultSet with the requested page and the total match count

        Raises:
            ValidationError: bad paging or unknown sort mode, before retrieval
            RetrievalError: the index failed to answer or returned a
                malformed product document
        """
        validate_paging(page, page_size)
        sort_mode = resolve_sort_mode(parse_sort_mode(sort), query)
        ordering = build_ordering(sort_mode)
        offset = (page - 1) * page_size

        try:
            documents, total = await self.index.retrieve(
                query, predicate, ordering, offset, page_size
            )
        except PyMongoError as e:
            logger.error(f"Product retrieval failed for '{query.expression}': {e}")
            raise RetrievalError(f"Product retrieval failed: {e}") from e

        items = []
        for doc in documents:
            score = doc.pop(SCORE_FIELD, 0.0) or 0.0
            try:
                product = ProductDocument(**doc)
            except DocumentValidationError as e:
                logger.error(f"Malformed product document {doc.get('id')!r} in the index: {e}")
                raise RetrievalError(f"Malformed product document in the index: {doc.get('id')!r}") from e
            items.append(SearchHit(product=product, score=float(score)))

        return SearchResultSet(
            items=items,
            totalCount=total,
            page=page,
            pageSize=page_size,
            totalPages=math.ceil(total / page_size) if total else 0
        )
