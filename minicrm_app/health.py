# health.py
import logging
import os
import platform
import threading
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

SLOW_DATABASE_SECONDS = 1.0


class HealthChecker:
    """Database ping plus process facts. Plain checks are cached for a few seconds."""

    def __init__(self, engine, version: str, environment: str, cache_seconds: int = 10):
        self.engine = engine
        self.version = version
        self.environment = environment
        self.cache_seconds = cache_seconds
        self.start_time = datetime.now(timezone.utc)
        self._started = time.monotonic()
        self._lock = threading.Lock()
        self._cached = None
        self._cached_at = 0.0

    def check(self, detailed: bool = False) -> dict:
        if not detailed:
            with self._lock:
                if self._cached is not None and time.monotonic() - self._cached_at < self.cache_seconds:
                    return self._cached

        result = self._run(detailed)

        if not detailed:
            with self._lock:
                self._cached = result
                self._cached_at = time.monotonic()
        return result

    def _run(self, detailed: bool) -> dict:
        database = self._check_database()
        result = {
            "status": database["status"],
            "version": self.version,
            "environment": self.environment,
            "uptime": round(time.monotonic() - self._started, 3),
            "start_time": self.start_time.isoformat(),
            "services": {"database": database},
        }
        if detailed:
            result["system"] = {
                "python_version": platform.python_version(),
                "platform": platform.platform(),
                "pid": os.getpid(),
                "threads": threading.active_count(),
            }
        return result

    def _check_database(self) -> dict:
        started = time.perf_counter()
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("Database health check failed: %s", e)
            status, description = "error", f"Database unreachable: {e}"
        else:
            elapsed = time.perf_counter() - started
            if elapsed > SLOW_DATABASE_SECONDS:
                status, description = "warning", "Database responding slowly"
            else:
                status, description = "ok", "Database reachable"
        return {
            "status": status,
            "description": description,
            "latency": f"{(time.perf_counter() - started) * 1000:.2f}ms",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


def build_health_router() -> APIRouter:
    router = APIRouter(tags=["health"])

    @router.get("/health")
    def health(request: Request, detailed: bool = False):
        result = request.app.state.health.check(detailed=detailed)
        status_code = 503 if result["status"] == "error" else 200
        return JSONResponse(status_code=status_code, content=jsonable_encoder(result))

    return router
