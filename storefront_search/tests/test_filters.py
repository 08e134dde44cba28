"""
Tests for the filter compositor
"""
import pytest

from storefront_search.errors import ValidationError
from storefront_search.models.search import FilterSet
from storefront_search.services.filters import EQ, GTE, LTE, PredicateTerm, compose_predicate


def test_empty_filter_set_places_no_constraint():
    predicate = compose_predicate(FilterSet())

    assert predicate.is_empty
    assert predicate.to_match() == {}
    assert predicate.to_search_filters() == []


def test_all_filters_compose_in_a_conjunction():
    filters = FilterSet(
        categoryId="rings", minPrice=10, maxPrice=500,
        materialTag="gold", styleTag="vintage", inStockOnly=True
    )

    predicate = compose_predicate(filters)

    assert predicate.terms == (
        PredicateTerm("categoryId", EQ, "rings"),
        PredicateTerm("price", GTE, 10),
        PredicateTerm("price", LTE, 500),
        PredicateTerm("material", EQ, "gold"),
        PredicateTerm("style", EQ, "vintage"),
        PredicateTerm("inStock", EQ, True),
    )
    assert predicate.to_match() == {
        "$and": [
            {"categoryId": {"$eq": "rings"}},
            {"price": {"$gte": 10}},
            {"price": {"$lte": 500}},
            {"material": {"$eq": "gold"}},
            {"style": {"$eq": "vintage"}},
            {"inStock": {"$eq": True}},
        ]
    }


def test_search_filters_rendering():
    predicate = compose_predicate(FilterSet(categoryId="rings", maxPrice=100, inStockOnly=True))

    assert predicate.to_search_filters() == [
        {"equals": {"path": "categoryId", "value": "rings"}},
        {"range": {"path": "price", "lte": 100}},
        {"equals": {"path": "inStock", "value": True}},
    ]


def test_in_stock_false_is_not_a_constraint():
    assert compose_predicate(FilterSet(inStockOnly=False)).is_empty


def test_zero_price_bound_is_kept():
    predicate = compose_predicate(FilterSet(minPrice=0))

    assert predicate.terms == (PredicateTerm("price", GTE, 0),)


def test_min_price_above_max_price_is_rejected():
    with pytest.raises(ValidationError):
        compose_predicate(FilterSet(minPrice=100, maxPrice=50))


def test_equal_bounds_are_accepted():
    predicate = compose_predicate(FilterSet(minPrice=50, maxPrice=50))

    assert len(predicate.terms) == 2


def test_negative_price_is_rejected():
    with pytest.raises(ValidationError):
        compose_predicate(FilterSet(maxPrice=-1))


def test_filter_set_is_immutable():
    filters = FilterSet(categoryId="rings")

    with pytest.raises(Exception):
        filters.categoryId = "chains"
