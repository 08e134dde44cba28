"""
Filter compositor: translates an immutable FilterSet into a predicate
description the product index backends can render.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from storefront_search.errors import ValidationError
from storefront_search.models.search import FilterSet

EQ = "eq"
GTE = "gte"
LTE = "lte"

_MONGO_OPERATORS = {EQ: "$eq", GTE: "$gte", LTE: "$lte"}


@dataclass(frozen=True)
class PredicateTerm:
    field: str
    op: str
    value: Any


@dataclass(frozen=True)
class Predicate:
    """Conjunction of predicate terms. No terms means no constraint."""
    terms: Tuple[PredicateTerm, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.terms

    def match_clauses(self) -> List[Dict[str, Any]]:
        return [
            {term.field: {_MONGO_OPERATORS[term.op]: term.value}}
            for term in self.terms
        ]

    def to_match(self) -> Dict[str, Any]:
        """Render as a MongoDB ``$match`` document"""
        if not self.terms:
            return {}
        return {"$and": self.match_clauses()}

    def to_search_filters(self) -> List[Dict[str, Any]]:
        """Render as Atlas Search ``compound.filter`` clauses"""
        clauses = []
        for term in self.terms:
            if term.op == EQ:
                clauses.append({"equals": {"path": term.field, "value": term.value}})
            else:
                clauses.append({"range": {"path": term.field, term.op: term.value}})
        return clauses


def validate_filters(filters: FilterSet) -> None:
    for name in ("minPrice", "maxPrice"):
        value = getattr(filters, name)
        if value is not None and value < 0:
            raise ValidationError(f"{name} must not be negative")

    if (
        filters.minPrice is not None
        and filters.maxPrice is not None
        and filters.minPrice > filters.maxPrice
    ):
        raise ValidationError(
            f"minPrice ({filters.minPrice}) is greater than maxPrice ({filters.maxPrice})"
        )


def compose_predicate(filters: FilterSet) -> Predicate:
    """
    Build the retrieval predicate for a FilterSet.

    Absent values contribute no term. Raises ValidationError for negative
    price bounds or minPrice > maxPrice, the bounds are never swapped.
    """
    validate_filters(filters)

    terms = []
    if filters.categoryId is not None:
        terms.append(PredicateTerm("categoryId", EQ, filters.categoryId))
    if filters.minPrice is not None:
        terms.append(PredicateTerm("price", GTE, filters.minPrice))
    if filters.maxPrice is not None:
        terms.append(PredicateTerm("price", LTE, filters.maxPrice))
    if filters.materialTag is not None:
        terms.append(PredicateTerm("material", EQ, filters.materialTag))
    if filters.styleTag is not None:
        terms.append(PredicateTerm("style", EQ, filters.styleTag))
    if filters.inStockOnly:
        terms.append(PredicateTerm("inStock", EQ, True))

    return Predicate(terms=tuple(terms))
