"""
Customer routers - authenticated by the table token only.
"""

from .routes import router

__all__ = ["router"]
