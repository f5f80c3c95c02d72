# leadsync/middleware/__init__.py
from leadsync.middleware.logging import LoggingMiddleware
from leadsync.middleware.request_id import RequestIdMiddleware

__all__ = ["LoggingMiddleware", "RequestIdMiddleware"]
