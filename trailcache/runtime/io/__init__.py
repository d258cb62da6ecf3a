"""Remote event fetching helpers."""

from .audit_fetcher import HttpAuditLogFetcher
from .rate_limiter import SharedLimiter, get_shared_limiter, reset_shared_limiters

__all__ = [
    "HttpAuditLogFetcher",
    "SharedLimiter",
    "get_shared_limiter",
    "reset_shared_limiters",
]
