"""
Public routers - No organization scope.
- /api/health - Liveness and readiness checks
"""

from .health import router as health_router

__all__ = ["health_router"]
