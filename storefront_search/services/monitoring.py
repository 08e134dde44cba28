import time
import logging
import os
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class APIMonitoringMiddleware(BaseHTTPMiddleware):
    """
    Middleware that logs every request with its status and processing time
    and exposes the time in the X-Process-Time header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        method = request.method
        path = request.url.path
        client_host = request.client.host if request.client else "unknown"

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                f"Request failed: {method} {path} | Client: {client_host} | "
                f"Error: {str(e)} | Time: {process_time:.4f}s"
            )
            # Re-raise the exception to be handled by FastAPI
            raise

        process_time = time.time() - start_time
        logger.info(
            f"Request: {method} {path} | Client: {client_host} | "
            f"Status: {response.status_code} | Time: {process_time:.4f}s"
        )
        response.headers["X-Process-Time"] = str(process_time)
        return response
