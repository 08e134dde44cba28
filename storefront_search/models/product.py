from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict


class ProductDocument(BaseModel):
    """
    Searchable projection of a catalog product.
    The catalog owns these documents, the search engine only reads them.
    """
    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "example": {
                "id": "prod-001",
                "name": "Gold Ring",
                "description": "Handmade 14k gold ring",
                "price": 249.0,
                "categoryId": "rings",
                "inStock": True,
                "createdAt": "2024-03-01T12:00:00Z",
                "material": "gold",
                "style": "classic",
                "searchText": "Gold Ring Handmade 14k gold ring"
            }
        }
    )

    id: str
    name: str
    description: str = ""
    price: float
    categoryId: Optional[str] = None
    inStock: bool = True
    createdAt: datetime
    material: Optional[str] = None
    style: Optional[str] = None
    searchText: str = ""


class SearchHit(BaseModel):
    """A product with the relevance score it was retrieved with"""
    product: ProductDocument
    score: float = 0.0


class SearchResultSet(BaseModel):
    """
    One page of search results.
    totalCount is the number of matches before pagination.
    """
    items: List[SearchHit]
    totalCount: int
    page: int
    pageSize: int
    totalPages: int
