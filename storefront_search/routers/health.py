from fastapi import APIRouter
from typing import Dict, Any
import time
import os

from storefront_search.database.mongodb import POPULAR_SEARCHES, PRODUCTS, SEARCH_HISTORY, get_db

router = APIRouter(tags=["health"])


@router.get("/health", response_model=Dict[str, Any])
async def health_check():
    """
    Health check endpoint for monitoring system status.
    Verifies database connection and returns basic collection information.
    Does not require API key authentication.
    """
    start_time = time.time()

    health_info = {
        "status": "healthy",
        "timestamp": time.time(),
        "version": os.environ.get("APP_VERSION", "1.0.0"),
        "services": {}
    }

    try:
        db = await get_db()
        await db.command("ping")
        health_info["database_connection"] = "ok"

        # Collection counts are informative only
        try:
            collections = {}
            for name in (PRODUCTS, SEARCH_HISTORY, POPULAR_SEARCHES):
                collections[name] = {"count": await db[name].estimated_document_count()}
            health_info["services"]["mongodb"] = {
                "status": "healthy",
                "collections": collections
            }
        except Exception:
            health_info["services"]["mongodb"] = {
                "status": "healthy",
                "collections_stats": "unavailable"
            }

    except Exception as e:
        health_info["status"] = "unhealthy"
        health_info["database_connection"] = f"error: {str(e)}"

    health_info["response_time_ms"] = round((time.time() - start_time) * 1000, 2)

    return health_info
