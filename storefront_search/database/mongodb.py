from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure
from pymongo.operations import SearchIndexModel
import logging
import os
from typing import Any, Dict, Optional

from storefront_search.services.product_index import AUTOCOMPLETE_MAX_GRAMS

logger = logging.getLogger(__name__)

DEFAULT_MONGODB_URI = "mongodb://localhost:27017/storefront"
DEFAULT_DATABASE_NAME = "storefront"

PRODUCTS = "products"
SEARCH_HISTORY = "search_history"
POPULAR_SEARCHES = "popular_searches"
AGGREGATION_STATE = "aggregation_state"


def database_name_from_uri(uri: str) -> str:
    """Take the database name from the URI path, e.g. mongodb://host/storefront?x=y"""
    location = uri.split("://")[-1]
    if "/" not in location:
        return DEFAULT_DATABASE_NAME
    name = location.split("/", 1)[1].split("?")[0]
    return name or DEFAULT_DATABASE_NAME


# Database connection objects with lazy initialization
class DB:
    client: Optional[AsyncIOMotorClient] = None
    db = None
    initialized = False

    @classmethod
    def initialize(cls, uri: Optional[str] = None, db_name: Optional[str] = None):
        """Initialize database connection"""
        if cls.initialized and cls.client is not None and cls.db is not None:
            return

        mongodb_uri = uri or os.getenv("MONGODB_URI", DEFAULT_MONGODB_URI)
        database_name = db_name or database_name_from_uri(mongodb_uri)

        # tz_aware so that createdAt values compare with aware datetimes
        cls.client = AsyncIOMotorClient(mongodb_uri, tz_aware=True)
        cls.db = cls.client[database_name]
        cls.initialized = True
        logger.info(f"MongoDB client created for database '{database_name}'")

    @classmethod
    def close(cls):
        if cls.client is not None:
            cls.client.close()
        cls.client = None
        cls.db = None
        cls.initialized = False


db = DB()


def product_search_index_definition() -> Dict[str, Any]:
    """
    Atlas Search index over the products collection.
    searchText is indexed for word-prefix (edgeGram) matching, the facet
    fields are indexed so that they can be used as compound filters.
    """
    return {
        "mappings": {
            "dynamic": False,
            "fields": {
                "searchText": {
                    "type": "autocomplete",
                    "tokenization": "edgeGram",
                    "minGrams": 1,
                    "maxGrams": AUTOCOMPLETE_MAX_GRAMS,
                    "foldDiacritics": True
                },
                "categoryId": {"type": "token"},
                "material": {"type": "token"},
                "style": {"type": "token"},
                "price": {"type": "number"},
                "inStock": {"type": "boolean"},
                "createdAt": {"type": "date"},
                "id": {"type": "token"}
            }
        }
    }


async def init_indexes(database=None):
    """
    Create the regular indexes used by search, history and popular terms.
    """
    database = database if database is not None else db.db
    try:
        await database[PRODUCTS].create_index("id", unique=True)
        await database[PRODUCTS].create_index("categoryId")
        await database[PRODUCTS].create_index([("price", ASCENDING), ("id", ASCENDING)])
        await database[PRODUCTS].create_index([("createdAt", DESCENDING), ("id", ASCENDING)])

        await database[SEARCH_HISTORY].create_index([("requesterId", ASCENDING), ("createdAt", DESCENDING)])
        await database[SEARCH_HISTORY].create_index("createdAt")

        await database[POPULAR_SEARCHES].create_index("term", unique=True)
        await database[POPULAR_SEARCHES].create_index([("count", DESCENDING), ("term", ASCENDING)])

        logger.info("Database indexes initialized successfully")
    except OperationFailure as e:
        # Usually a permissions issue or a conflicting existing index
        logger.error(f"Error creating indexes: {e}")


async def init_search_index(index_name: str, database=None):
    """Create the Atlas Search index unless it already exists"""
    database = database if database is not None else db.db
    collection = database[PRODUCTS]
    try:
        existing = await collection.list_search_indexes(index_name).to_list(length=1)
        if existing:
            return
        await collection.create_search_index(
            SearchIndexModel(definition=product_search_index_definition(), name=index_name)
        )
        logger.info(f"Atlas Search index '{index_name}' requested")
    except OperationFailure as e:
        # Not an Atlas cluster, or missing privileges
        logger.warning(f"Could not create Atlas Search index '{index_name}': {e}")


async def get_db() -> Any:
    """Get the database instance, initializing if needed"""
    if not db.initialized:
        db.initialize()
    return db.db
