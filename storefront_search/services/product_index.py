"""
Product index backends.

Both backends answer the same question: which products match an
AND-of-prefixes query plus a predicate, in which order, and how many match
in total. AtlasProductIndex relies on an Atlas Search index, while
LocalProductIndex is a plain aggregation pipeline for local development and
deployments without Atlas Search.
"""

import re
from typing import Any, Dict, List, Sequence, Tuple

from storefront_search.services.filters import Predicate
from storefront_search.services.query_normalizer import NormalizedQuery

SCORE_FIELD = "score"
SEARCH_TEXT_FIELD = "searchText"
# Longest edge gram stored by the Atlas autocomplete mapping
AUTOCOMPLETE_MAX_GRAMS = 20
# A token starts where no letter or digit precedes it (underscore is a separator)
WORD_START = r"(?<![\p{L}\p{N}])"

Ordering = Sequence[Tuple[str, int]]
IndexPage = Tuple[List[Dict[str, Any]], int]


def _page_stages(ordering: Ordering, offset: int, limit: int) -> List[Dict[str, Any]]:
    """Sort, paginate and count in one round trip"""
    return [
        {
            "$facet": {
                "items": [
                    {"$sort": {field: direction for field, direction in ordering}},
                    {"$skip": offset},
                    {"$limit": limit},
                    {"$project": {"_id": 0}}
                ],
                "total": [{"$count": "count"}]
            }
        }
    ]


def _filter_only_stages(predicate: Predicate) -> List[Dict[str, Any]]:
    stages = []
    if not predicate.is_empty:
        stages.append({"$match": predicate.to_match()})
    stages.append({"$addFields": {SCORE_FIELD: 0.0}})
    return stages


async def _run_pipeline(collection, pipeline: List[Dict[str, Any]]) -> IndexPage:
    results = await collection.aggregate(pipeline).to_list(length=1)
    if not results:
        return [], 0

    facet = results[0]
    total = facet["total"][0]["count"] if facet.get("total") else 0
    return list(facet.get("items", [])), total


class ProductIndex:
    """
    Interface of a product index backend.
    """

    async def retrieve(
        self,
        query: NormalizedQuery,
        predicate: Predicate,
        ordering: Ordering,
        offset: int,
        limit: int
    ) -> IndexPage:
        """
        Retrieve one page of matching product documents.

        Args:
            query: Normalized query, possibly empty (filter-only retrieval)
            predicate: Facet predicate intersected with the text match
            ordering: (field, direction) pairs, applied in order
            offset: Number of matches to skip
            limit: Maximum number of documents to return

        Returns:
            Tuple of (documents carrying a ``score`` field, total match count)
        """
        raise NotImplementedError

    def build_pipeline(
        self,
        query: NormalizedQuery,
        predicate: Predicate,
        ordering: Ordering,
        offset: int,
        limit: int
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError


class AtlasProductIndex(ProductIndex):
    """
    Atlas Search backend. Each token becomes an ``autocomplete`` clause on the
    searchText field, so it matches as a word prefix, and all clauses are
    required. Tokens longer than the indexed edge grams are cut to
    AUTOCOMPLETE_MAX_GRAMS characters, otherwise they could never match.
    """

    def __init__(self, collection, index_name: str = "product_search"):
        self.collection = collection
        self.index_name = index_name

    def build_pipeline(self, query, predicate, ordering, offset, limit):
        if query.is_empty:
            return _filter_only_stages(predicate) + _page_stages(ordering, offset, limit)

        compound: Dict[str, Any] = {
            "must": [
                {"autocomplete": {"query": token[:AUTOCOMPLETE_MAX_GRAMS], "path": SEARCH_TEXT_FIELD}}
                for token in query.tokens
            ]
        }
        filters = predicate.to_search_filters()
        if filters:
            compound["filter"] = filters

        return [
            {"$search": {"index": self.index_name, "compound": compound}},
            {"$addFields": {SCORE_FIELD: {"$meta": "searchScore"}}},
        ] + _page_stages(ordering, offset, limit)

    async def retrieve(self, query, predicate, ordering, offset, limit):
        pipeline = self.build_pipeline(query, predicate, ordering, offset, limit)
        return await _run_pipeline(self.collection, pipeline)


class LocalProductIndex(ProductIndex):
    """
    Aggregation-only backend that works on any MongoDB server.
    A token matches when a word of searchText starts with it (case-insensitive);
    the score is the number of such word-prefix hits over all tokens.
    """

    def __init__(self, collection):
        self.collection = collection

    @staticmethod
    def token_pattern(token: str) -> str:
        return WORD_START + re.escape(token)

    def build_pipeline(self, query, predicate, ordering, offset, limit):
        if query.is_empty:
            return _filter_only_stages(predicate) + _page_stages(ordering, offset, limit)

        patterns = [self.token_pattern(token) for token in query.tokens]
        clauses = [
            {SEARCH_TEXT_FIELD: {"$regex": pattern, "$options": "i"}}
            for pattern in patterns
        ]
        clauses.extend(predicate.match_clauses())

        hit_counts = [
            {"$size": {"$regexFindAll": {
                "input": f"${SEARCH_TEXT_FIELD}",
                "regex": pattern,
                "options": "i"
            }}}
            for pattern in patterns
        ]

        return [
            {"$match": {"$and": clauses}},
            {"$addFields": {SCORE_FIELD: {"$toDouble": {"$add": hit_counts}}}},
        ] + _page_stages(ordering, offset, limit)

    async def retrieve(self, query, predicate, ordering, offset, limit):
        pipeline = self.build_pipeline(query, predicate, ordering, offset, limit)
        return await _run_pipeline(self.collection, pipeline)


def create_product_index(backend: str, collection, index_name: str = "product_search") -> ProductIndex:
    """Pick the product index backend by name ("atlas" or "local")"""
    if backend == "atlas":
        return AtlasProductIndex(collection, index_name=index_name)
    if backend == "local":
        return LocalProductIndex(collection)
    raise ValueError(f"Unknown search backend: {backend}")
