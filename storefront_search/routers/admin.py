"""
Administration router for the search service
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from typing import Any, Dict
import logging

from storefront_search.dependencies import get_api_key
from storefront_search.errors import SearchError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["Administration"],
    dependencies=[Depends(get_api_key)]
)


async def run_popular_terms_roll_up(aggregator) -> None:
    """Background entry point, failures are logged since nobody awaits the task"""
    try:
        stats = await aggregator.roll_up()
        logger.info(f"Popular terms roll-up finished: {stats}")
    except SearchError as e:
        logger.error(f"Popular terms roll-up failed: {e}")


@router.post("/popular-terms/roll-up", status_code=status.HTTP_202_ACCEPTED, response_model=Dict[str, Any])
async def roll_up_popular_terms(request: Request, background_tasks: BackgroundTasks):
    """
    Fold new search history into popular term counts.
    Runs in the background; safe to trigger repeatedly.
    """
    background_tasks.add_task(run_popular_terms_roll_up, request.app.state.popular_terms)
    return {"status": "Popular terms roll-up started in the background"}
