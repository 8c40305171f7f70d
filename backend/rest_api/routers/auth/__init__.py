"""
Authentication routers - /api/auth/*
Handles staff login and the current user's info.
"""

from .routes import router

__all__ = ["router"]
