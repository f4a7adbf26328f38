"""
Queue routers.
- /api/jobs/{queue}/* - Stats, failed jobs, manual retry and cleanup
"""

from .jobs import router as jobs_router

__all__ = ["jobs_router"]
