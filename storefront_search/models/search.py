from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class SortMode(str, Enum):
    RELEVANCE = "relevance"
    PRICE_ASCENDING = "price_ascending"
    PRICE_DESCENDING = "price_descending"
    NEWEST = "newest"


class FilterSet(BaseModel):
    """
    Structured facet filters. A field left as None places no constraint.
    Bounds are checked by the filter compositor, not here.
    """
    model_config = ConfigDict(frozen=True)

    categoryId: Optional[str] = None
    minPrice: Optional[float] = None
    maxPrice: Optional[float] = None
    materialTag: Optional[str] = None
    styleTag: Optional[str] = None
    inStockOnly: bool = False


class SearchRequest(BaseModel):
    """
    Model for product search requests.
    Sort, page and pageSize are validated by the search executor so that
    malformed values surface as the engine's ValidationError.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "rawQuery": "gold ring",
                "filters": {"maxPrice": 500, "inStockOnly": True},
                "sort": "relevance",
                "page": 1,
                "pageSize": 12
            }
        }
    )

    rawQuery: str = ""
    filters: FilterSet = Field(default_factory=FilterSet)
    sort: str = SortMode.RELEVANCE.value
    page: int = 1
    pageSize: int = 12


class AutocompleteQuery(BaseModel):
    """
    Model for autocomplete queries
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "prefix": "gol",
                "limit": 5
            }
        }
    )

    prefix: str
    limit: int = Field(5, ge=1, le=20)


class AutocompleteSuggestion(BaseModel):
    term: str
    count: int


class SearchHistoryRecord(BaseModel):
    """One executed search. Append-only."""
    id: Optional[str] = None
    requesterId: Optional[str] = None
    queryText: str
    resultCount: int
    createdAt: datetime


class PopularSearchTerm(BaseModel):
    term: str
    count: int = 0
    lastUpdatedAt: Optional[datetime] = None
