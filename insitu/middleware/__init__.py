"""
Middleware package for the API.
"""
from .logging_middleware import RequestLoggingMiddleware, get_logger

__all__ = [
    "RequestLoggingMiddleware",
    "get_logger",
]
