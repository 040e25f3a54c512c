"""API middleware package."""

from src.meeting_tasks.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
