"""Pytest configuration file for the storefront search tests."""
import os

# Must be set before the application modules read them
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017/test_storefront")
os.environ["API_KEY"] = "test_api_key"
os.environ.setdefault("SEARCH_BACKEND", "local")

import pytest
from unittest.mock import patch

from storefront_search.services.popular_terms import PopularTermAggregator
from storefront_search.services.search_history import SearchHistoryRecorder
from storefront_search.services.search_service import SearchService
from storefront_search.tests.mock_db import InMemoryProductIndex, MockCollection, make_product

TEST_API_KEY = "test_api_key"
TEST_HEADERS = {"x-apikey": TEST_API_KEY}


@pytest.fixture
def product_corpus():
    """
    Five in-stock and three out-of-stock products matching "gold",
    plus two products that do not match it.
    """
    return [
        make_product("prod-01", "Gold Ring", price=250.0, description="Solid gold band", created_days_ago=9),
        make_product("prod-02", "Gold Chain", price=180.0, category_id="necklaces", created_days_ago=3),
        make_product("prod-03", "Golden Earrings", price=90.0, description="gold plated", category_id="earrings", created_days_ago=1),
        make_product("prod-04", "Gold Bracelet", price=320.0, category_id="bracelets", created_days_ago=5),
        make_product("prod-05", "Rose Gold Pendant", price=140.0, category_id="necklaces", created_days_ago=7),
        make_product("prod-06", "Gold Anklet", price=60.0, in_stock=False, category_id="anklets", created_days_ago=2),
        make_product("prod-07", "Gold Hoops", price=75.0, in_stock=False, category_id="earrings", created_days_ago=4),
        make_product("prod-08", "Gold Cufflinks", price=210.0, in_stock=False, category_id="accessories", created_days_ago=6),
        make_product("prod-09", "Silver Ring", price=45.0, material="silver", created_days_ago=0),
        make_product("prod-10", "Platinum Chain", price=900.0, category_id="necklaces", created_days_ago=8),
    ]


@pytest.fixture
def product_index(product_corpus):
    return InMemoryProductIndex(product_corpus)


@pytest.fixture
def history_collection():
    return MockCollection("search_history")


@pytest.fixture
def popular_collection():
    return MockCollection("popular_searches")


@pytest.fixture
def search_service(product_index, history_collection, popular_collection):
    """SearchService over the in-memory corpus and mock history/popular collections"""
    return SearchService(
        product_index,
        SearchHistoryRecorder(history_collection),
        PopularTermAggregator(popular_collection),
        history_write_timeout=0.5
    )


@pytest.fixture
def test_client(search_service):
    """Create a test client with the search service injected"""
    from fastapi.testclient import TestClient
    from storefront_search.dependencies import get_search_service
    from storefront_search.main import app

    app.dependency_overrides[get_search_service] = lambda: search_service
    app.state.popular_terms = search_service.popular_terms
    # Not entering the client context keeps the MongoDB lifespan from running
    with patch("storefront_search.dependencies.API_KEY", TEST_API_KEY):
        yield TestClient(app)
    app.dependency_overrides.clear()
