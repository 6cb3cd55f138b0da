"""HTTP middleware."""

from frameshop.middleware.audit import RequestLogMiddleware, mask_exception_message

__all__ = ["RequestLogMiddleware", "mask_exception_message"]
