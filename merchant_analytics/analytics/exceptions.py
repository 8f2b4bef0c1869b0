"""
Analytics exception hierarchy.
"""

from typing import Optional


class AnalyticsError(Exception):
    """Base class for aggregation core errors"""


class FetchError(AnalyticsError):
    """A raw-tier query failed after all retries"""

    def __init__(self, table: str, cause: Optional[BaseException] = None):
        self.table = table
        self.cause = cause
        detail = f"{type(cause).__name__}: {cause}" if cause is not None else "unknown error"
        super().__init__(f"Failed to fetch rows from {table}: {detail}")


class TenantScopeError(AnalyticsError):
    """A query was issued without a merchant id outside admin mode"""


class InvalidFilterError(AnalyticsError, ValueError):
    """Filter bounds are reversed or could not be parsed"""
