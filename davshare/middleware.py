"""
Middleware for davshare
"""

import logging
import time
from typing import Callable, Optional
from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .auth import remote_addr
from .models import Config
from .router import DispatchMiddleware
from .utils import format_duration

logger = logging.getLogger(__name__)


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Access logging middleware"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            self._log_access(request, None, duration, error=str(e))
            raise

        duration = time.time() - start_time
        self._log_access(request, response, duration)
        return response

    def _log_access(
        self,
        request: Request,
        response: Optional[Response],
        duration: float,
        error: Optional[str] = None
    ):
        """Log access information"""

        status_code = response.status_code if response else 500
        log_data = {
            "ip": remote_addr(request),
            "method": request.method,
            "url": str(request.url),
            "status": status_code,
            "duration": format_duration(duration),
            "user_agent": request.headers.get("user-agent", "-"),
        }

        if error:
            log_data["error"] = error

        # Log level based on status code
        if status_code >= 500:
            logger.error(f"ACCESS {log_data}")
        elif status_code >= 400:
            logger.warning(f"ACCESS {log_data}")
        else:
            logger.info(f"ACCESS {log_data}")


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """Global exception handler middleware"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except Exception as e:
            logger.exception(f"Unhandled exception: {request.method} {request.url}: {e}")
            return PlainTextResponse("Internal Server Error", status_code=500)


def setup_middleware(app: FastAPI, config: Config, webdav_app=None):
    """Setup all middleware for the application"""

    # Innermost: access gate and dispatch
    app.add_middleware(DispatchMiddleware, config=config, webdav_app=webdav_app)

    # Exception handling
    app.add_middleware(ExceptionHandlerMiddleware)

    # Access logging (outermost)
    app.add_middleware(AccessLogMiddleware)

    logger.info("Middleware setup complete")
