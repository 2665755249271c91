"""Custom middleware for the API."""

import asyncio
import time
from typing import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.utils.logging import get_logger

logger = get_logger(__name__)


class ConnectionTracker:
    """Counts in-flight requests so shutdown can let them finish.

    A deployment can take minutes; killing the process mid-run would leave a
    half-published site behind.
    """

    def __init__(self):
        self._active = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self.is_shutting_down = False

    @property
    def active(self) -> int:
        return self._active

    def acquire(self) -> None:
        self._active += 1
        self._idle.clear()

    def release(self) -> None:
        self._active -= 1
        if self._active <= 0:
            self._active = 0
            self._idle.set()

    def start_shutdown(self) -> None:
        self.is_shutting_down = True
        logger.info("shutdown.started", active_connections=self._active)

    async def wait_for_connections(self, timeout: float) -> bool:
        """Wait for in-flight requests. Returns False if the wait timed out."""
        if self._active == 0:
            return True

        logger.info("shutdown.waiting", active_connections=self._active)
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("shutdown.wait_timeout", active_connections=self._active)
            return False

        logger.info("shutdown.drained")
        return True


# Singleton instance
_connection_tracker: ConnectionTracker | None = None


def get_connection_tracker() -> ConnectionTracker:
    global _connection_tracker
    if _connection_tracker is None:
        _connection_tracker = ConnectionTracker()
    return _connection_tracker


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request and tracks it for graceful shutdown."""

    def __init__(self, app, tracker: ConnectionTracker | None = None):
        super().__init__(app)
        self.tracker = tracker or get_connection_tracker()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID", str(time.time_ns()))

        if self.tracker.is_shutting_down:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={
                    "success": False,
                    "error": {
                        "code": "SERVICE_UNAVAILABLE",
                        "message": "Server is shutting down, please try again later",
                        "classification": "unavailable",
                    },
                },
                headers={"X-Request-ID": request_id},
            )

        start_time = time.perf_counter()
        logger.info(
            "request.started",
            method=request.method,
            path=request.url.path,
            request_id=request_id,
        )

        self.tracker.acquire()
        try:
            response = await call_next(request)
        finally:
            self.tracker.release()

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "request.completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
            request_id=request_id,
        )

        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        response.headers["X-Request-ID"] = request_id

        return response
