import json
import logging
from typing import Any, Dict, NoReturn
from fastapi import HTTPException, status

from storefront_search.errors import RetrievalError, SearchError, ValidationError

logger = logging.getLogger(__name__)


def raise_http_error(error: SearchError) -> NoReturn:
    """
    Translate search engine errors into HTTP errors consistently
    """
    if isinstance(error, ValidationError):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(error)
        )
    if isinstance(error, RetrievalError):
        logger.error(f"Search backend error: {error}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Search is temporarily unavailable"
        )
    logger.error(f"Search error: {error}")
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Search operation failed"
    )


def log_search_query(query: str, filters: Dict[str, Any] = None) -> None:
    """
    Log search queries for debugging
    """
    logger.info(f"Search Query: '{query}' - Filters: {json.dumps(filters or {}, default=str)}")
