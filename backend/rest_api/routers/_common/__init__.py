"""
Common dependencies shared across routers.
"""

from .deps import get_queue

__all__ = ["get_queue"]
