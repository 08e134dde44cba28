from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from datetime import timedelta
from dotenv import load_dotenv
import logging
import os

load_dotenv()

from storefront_search.database.mongodb import (
    AGGREGATION_STATE, POPULAR_SEARCHES, PRODUCTS, SEARCH_HISTORY,
    db, init_indexes, init_search_index
)
from storefront_search.routers import admin, health, search
from storefront_search.services.monitoring import APIMonitoringMiddleware
from storefront_search.services.popular_terms import ROLL_UP_GRACE, PopularTermAggregator
from storefront_search.services.product_index import create_product_index
from storefront_search.services.search_history import SearchHistoryRecorder
from storefront_search.services.search_service import DEFAULT_HISTORY_WRITE_TIMEOUT, SearchService

logger = logging.getLogger(__name__)

# TEST_MODE switches to the aggregation-only index for servers without Atlas Search
TEST_MODE = os.environ.get("TEST_MODE", "false").lower() in ("true", "1", "yes")
SEARCH_BACKEND = os.environ.get("SEARCH_BACKEND", "local" if TEST_MODE else "atlas").lower()
SEARCH_INDEX_NAME = os.environ.get("SEARCH_INDEX_NAME", "product_search")
HISTORY_WRITE_TIMEOUT = float(os.environ.get("HISTORY_WRITE_TIMEOUT", DEFAULT_HISTORY_WRITE_TIMEOUT))


def build_search_service(database) -> SearchService:
    """Wire the search service onto one database handle"""
    history = SearchHistoryRecorder(database[SEARCH_HISTORY])
    popular_terms = PopularTermAggregator(
        database[POPULAR_SEARCHES],
        history_collection=database[SEARCH_HISTORY],
        state_collection=database[AGGREGATION_STATE],
        grace=max(ROLL_UP_GRACE, timedelta(seconds=HISTORY_WRITE_TIMEOUT))
    )
    index = create_product_index(SEARCH_BACKEND, database[PRODUCTS], index_name=SEARCH_INDEX_NAME)
    return SearchService(index, history, popular_terms, history_write_timeout=HISTORY_WRITE_TIMEOUT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db.initialize(os.getenv("MONGODB_URI"))

    await init_indexes(db.db)
    if SEARCH_BACKEND == "atlas":
        await init_search_index(SEARCH_INDEX_NAME, db.db)

    service = build_search_service(db.db)
    app.state.search_service = service
    app.state.popular_terms = service.popular_terms
    logger.info(f"Search service ready (backend: {SEARCH_BACKEND})")
    yield
    # Let fire-and-forget history writes finish before closing the client
    await service.drain()
    db.close()
    logger.info("MongoDB connection closed")


app = FastAPI(
    title="Storefront Product Search API",
    description="Product search, autocomplete and search history for the storefront",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(APIMonitoringMiddleware)

app.include_router(search.router)
app.include_router(admin.router)
# Health router does not require API key authentication
app.include_router(health.router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("storefront_search.main:app", host="0.0.0.0", port=8000, reload=True)
