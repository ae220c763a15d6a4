"""Council API middleware."""

from council.api.middleware.request_id import RequestIdMiddleware

__all__ = ["RequestIdMiddleware"]
