"""
Observability Module - Logging, Metrics, and Health

Provides:
- Structured JSON logging with request IDs
- Request/response logging middleware
- Metrics collection (append latency, rejections, request counts)
- Health check utilities

Configuration:
- VOTELEDGER_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- VOTELEDGER_LOG_FORMAT: json, text (default: json in production)
- VOTELEDGER_PRODUCTION: Enable production mode

Usage:
    from voteledger.observability import get_logger, RequestContextMiddleware

    logger = get_logger(__name__)
    logger.info("Vote appended", index=vote.index)
"""

import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from .core.ledger import verify_chain

# Context variable for request tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Keep only the most recent latency samples
MAX_SAMPLES = 1000

_STANDARD_RECORD_FIELDS = frozenset((
    "name", "msg", "args", "created", "levelname", "levelno",
    "pathname", "filename", "module", "lineno", "funcName",
    "exc_info", "exc_text", "stack_info", "message", "msecs",
    "relativeCreated", "thread", "threadName", "processName",
    "process", "taskName",
))


# ============================================================
# CONFIGURATION
# ============================================================

def _is_production() -> bool:
    return os.environ.get("VOTELEDGER_PRODUCTION", "").lower() in ("1", "true", "yes")


def get_log_level(level_str: Optional[str] = None) -> int:
    level_str = (level_str or os.environ.get("VOTELEDGER_LOG_LEVEL", "INFO")).upper()
    levels = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return levels.get(level_str, logging.INFO)


def _use_json_logging() -> bool:
    format_str = os.environ.get("VOTELEDGER_LOG_FORMAT", "").lower()
    if format_str == "json":
        return True
    if format_str == "text":
        return False
    return _is_production()


# ============================================================
# STRUCTURED LOGGING
# ============================================================

class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00.000Z",
        "level": "INFO",
        "logger": "voteledger.db.store",
        "message": "Vote appended",
        "request_id": "abc-123",
        ...extra fields...
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields passed through ContextLogger
        for key, value in record.__dict__.items():
            if key in _STANDARD_RECORD_FIELDS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        prefix = ""
        request_id = request_id_var.get()
        if request_id:
            prefix = f"[{request_id[:8]}] "

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        msg = f"{timestamp} {record.levelname:8} {prefix}{record.name}: {record.getMessage()}"

        extras = {
            key: value for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_FIELDS and not key.startswith("_")
        }
        if extras:
            msg += " " + " ".join(f"{k}={v}" for k, v in extras.items())

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that automatically includes context fields.

    Usage:
        logger = get_logger(__name__)
        logger.warning("Vote rejected", reason="hash_mismatch")
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get("extra", {})

        # Move non-standard kwargs to extra
        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel", "extra"):
                extra[key] = kwargs.pop(key)

        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """
    Get a structured logger for the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        ContextLogger instance with structured output
    """
    return ContextLogger(logging.getLogger(name), {})


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure logging for the application.

    Call this once at application startup.
    """
    log_level = get_log_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    if _use_json_logging():
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ============================================================
# REQUEST CONTEXT MIDDLEWARE
# ============================================================

class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that sets up request context for logging.

    Features:
    - Generates unique request ID for each request
    - Logs request/response with timing
    - Records request metrics
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        # Use X-Request-ID header if provided
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request_id_var.set(request_id)

        logger = get_logger("voteledger.request")
        start_time = time.perf_counter()

        logger.debug(
            f"{request.method} {request.url.path}",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            log_level = logging.INFO if response.status_code < 400 else logging.WARNING

            logger.log(
                log_level,
                f"{request.method} {request.url.path} -> {response.status_code}",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )
            get_metrics().record_request(duration_ms, success=response.status_code < 500)

            response.headers["X-Request-ID"] = request_id

            return response

        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                f"{request.method} {request.url.path} -> 500",
                method=request.method,
                path=request.url.path,
                status_code=500,
                duration_ms=round(duration_ms, 2),
                error=str(e),
            )
            get_metrics().record_request(duration_ms, success=False)
            raise

        finally:
            request_id_var.set("")


# ============================================================
# METRICS
# ============================================================

@dataclass
class MetricsCollector:
    """
    Simple in-memory metrics collector.

    For production, replace with Prometheus, StatsD, or similar.
    """

    # Counters
    votes_appended: int = 0
    votes_rejected: int = 0
    requests_total: int = 0
    requests_failed: int = 0
    rejections_by_reason: Dict[str, int] = field(default_factory=dict)

    # Histograms (simplified as lists)
    append_latencies_ms: list = field(default_factory=list)
    request_latencies_ms: list = field(default_factory=list)

    def record_append(self, latency_ms: float) -> None:
        """Record an accepted vote."""
        self.votes_appended += 1
        self.append_latencies_ms.append(latency_ms)
        if len(self.append_latencies_ms) > MAX_SAMPLES:
            self.append_latencies_ms = self.append_latencies_ms[-MAX_SAMPLES:]

    def record_rejection(self, reason: Any) -> None:
        """Record a rejected vote."""
        key = getattr(reason, "value", str(reason))
        self.votes_rejected += 1
        self.rejections_by_reason[key] = self.rejections_by_reason.get(key, 0) + 1

    def record_request(self, latency_ms: float, success: bool) -> None:
        """Record a request."""
        self.requests_total += 1
        if not success:
            self.requests_failed += 1
        self.request_latencies_ms.append(latency_ms)
        if len(self.request_latencies_ms) > MAX_SAMPLES:
            self.request_latencies_ms = self.request_latencies_ms[-MAX_SAMPLES:]

    def reset(self) -> None:
        """Zero every counter (for testing only)."""
        self.votes_appended = 0
        self.votes_rejected = 0
        self.requests_total = 0
        self.requests_failed = 0
        self.rejections_by_reason = {}
        self.append_latencies_ms = []
        self.request_latencies_ms = []

    def get_summary(self) -> Dict[str, Any]:
        """Get metrics summary."""
        def percentile(data: list, p: float) -> Optional[float]:
            if not data:
                return None
            sorted_data = sorted(data)
            idx = int(len(sorted_data) * p)
            return sorted_data[min(idx, len(sorted_data) - 1)]

        return {
            "votes_appended": self.votes_appended,
            "votes_rejected": self.votes_rejected,
            "rejections_by_reason": dict(self.rejections_by_reason),
            "requests_total": self.requests_total,
            "requests_failed": self.requests_failed,
            "append_latency_p50_ms": percentile(self.append_latencies_ms, 0.5),
            "append_latency_p95_ms": percentile(self.append_latencies_ms, 0.95),
            "append_latency_p99_ms": percentile(self.append_latencies_ms, 0.99),
            "request_latency_p50_ms": percentile(self.request_latencies_ms, 0.5),
            "request_latency_p95_ms": percentile(self.request_latencies_ms, 0.95),
        }


# Global metrics instance
_metrics = MetricsCollector()


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return _metrics


# ============================================================
# HEALTH CHECKS
# ============================================================

@dataclass
class HealthStatus:
    """Health check result."""
    healthy: bool
    checks: Dict[str, Dict[str, Any]]
    duration_ms: float


def check_health(store=None) -> HealthStatus:
    """
    Run all health checks.

    Args:
        store: ChainStore instance

    Returns:
        HealthStatus with all check results
    """
    start = time.perf_counter()
    checks = {}
    all_healthy = True

    # Check 1: Basic liveness
    checks["liveness"] = {"status": "healthy"}

    # Check 2: Chain integrity
    if store is not None:
        votes = store.get_all()
        if not votes:
            checks["chain_integrity"] = {
                "status": "unhealthy",
                "error": "chain has no genesis vote",
            }
            all_healthy = False
        else:
            is_valid = verify_chain(votes)
            checks["chain_integrity"] = {
                "status": "healthy" if is_valid else "unhealthy",
                "valid": is_valid,
                "vote_count": len(votes),
                "last_hash": votes[-1].hash[:16] + "...",
            }
            if not is_valid:
                all_healthy = False

    duration_ms = (time.perf_counter() - start) * 1000

    return HealthStatus(
        healthy=all_healthy,
        checks=checks,
        duration_ms=round(duration_ms, 2),
    )
