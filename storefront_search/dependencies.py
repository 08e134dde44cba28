from fastapi import Header, HTTPException, Request, status
from typing import Optional
import os

from storefront_search.services.search_service import SearchService

API_KEY = os.getenv("API_KEY", "your_default_api_key")


async def get_api_key(x_apikey: str = Header(...)):
    """
    Validate the API key sent in the x-apikey header.
    Simple shared secret between the storefront and this service.
    """
    if x_apikey != API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key"
        )
    return x_apikey


async def get_requester_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """
    Identity of the shopper, resolved upstream by the session layer.
    Missing or blank means anonymous.
    """
    if x_user_id is None or not x_user_id.strip():
        return None
    return x_user_id.strip()


def get_search_service(request: Request) -> SearchService:
    """The SearchService built in the application lifespan"""
    return request.app.state.search_service
