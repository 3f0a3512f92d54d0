"""
Simple in-memory rate limiter for API endpoints.

Used to debounce payment verification polling per reference.
"""
import logging
import time
from typing import Dict, List
from fastapi import Request, HTTPException, status

logger = logging.getLogger(__name__)

# Store for rate limit tracking: {key: [timestamp, ...]}
rate_limit_store: Dict[str, List[float]] = {}


def get_client_ip(request: Request) -> str:
    """Extract client IP address from request."""
    # Check for forwarded IP (from proxy/load balancer)
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # Take the first IP in the chain
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


def _drop_idle_buckets(cutoff: float) -> None:
    idle = [key for key, timestamps in rate_limit_store.items() if not timestamps or timestamps[-1] <= cutoff]
    for key in idle:
        del rate_limit_store[key]


def check_rate_limit(key: str, max_requests: int = 10, window_seconds: int = 60) -> None:
    """
    Check if a caller has exceeded the rate limit for ``key``.

    Args:
        key: Bucket identifier (client IP, user/reference pair, ...)
        max_requests: Maximum number of requests allowed
        window_seconds: Time window in seconds

    Raises:
        HTTPException: 429 if rate limit exceeded
    """
    now = time.time()

    # Clean old entries (older than window); buckets left empty are dropped
    cutoff = now - window_seconds
    _drop_idle_buckets(cutoff)
    timestamps = [
        timestamp for timestamp in rate_limit_store.get(key, [])
        if timestamp > cutoff
    ]

    request_count = len(timestamps)

    if request_count >= max_requests:
        logger.warning(f"Rate limit exceeded for key: {key} ({request_count} requests in {window_seconds}s)")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Rate limit exceeded. Maximum {max_requests} requests per {window_seconds} seconds."
        )

    timestamps.append(now)
    rate_limit_store[key] = timestamps

    logger.debug(f"Rate limit check passed for key: {key} ({request_count + 1}/{max_requests})")


def reset_rate_limits() -> None:
    """Clear all buckets."""
    rate_limit_store.clear()
