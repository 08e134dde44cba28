from fastapi import APIRouter, Body, Depends, Query
from typing import List, Optional

from storefront_search.dependencies import get_api_key, get_requester_id, get_search_service
from storefront_search.errors import SearchError
from storefront_search.models.product import SearchResultSet
from storefront_search.models.search import AutocompleteQuery, AutocompleteSuggestion, SearchRequest
from storefront_search.services.search_service import SearchService
from storefront_search.utils.helpers import log_search_query, raise_http_error

router = APIRouter(
    tags=["Search"],
    dependencies=[Depends(get_api_key)]
)


@router.post("/search", response_model=SearchResultSet)
async def search_products(
    query: SearchRequest = Body(...),
    requester_id: Optional[str] = Depends(get_requester_id),
    service: SearchService = Depends(get_search_service)
):
    """
    Full-text product search with facet filters, sorting and pagination.
    Every token of the query matches as a word prefix, all tokens are required.
    An empty query lists products by the filters alone.
    """
    log_search_query(query.rawQuery, query.filters.model_dump(exclude_none=True))

    try:
        return await service.search_products(query, requester_id)
    except SearchError as e:
        raise_http_error(e)


@router.post("/autocomplete", response_model=List[AutocompleteSuggestion])
async def autocomplete(
    query: AutocompleteQuery = Body(...),
    requester_id: Optional[str] = Depends(get_requester_id),
    service: SearchService = Depends(get_search_service)
):
    """
    Suggestions for a typed prefix, blending popular search terms with the
    requester's own recent searches. Prefixes under two characters yield [].
    """
    try:
        return await service.get_autocomplete_suggestions(query.prefix, query.limit, requester_id)
    except SearchError as e:
        raise_http_error(e)


@router.get("/search/popular", response_model=List[str])
async def popular_searches(
    limit: int = Query(10, ge=1, le=50),
    service: SearchService = Depends(get_search_service)
):
    """
    Trending search terms across all shoppers
    """
    try:
        return await service.get_popular_search_terms(limit)
    except SearchError as e:
        raise_http_error(e)


@router.get("/search/recent", response_model=List[str])
async def recent_searches(
    limit: int = Query(5, ge=1, le=50),
    requester_id: Optional[str] = Depends(get_requester_id),
    service: SearchService = Depends(get_search_service)
):
    """
    The caller's own recent searches, most recent first, without duplicates.
    Anonymous callers get an empty list.
    """
    try:
        return await service.get_recent_searches(requester_id, limit)
    except SearchError as e:
        raise_http_error(e)
