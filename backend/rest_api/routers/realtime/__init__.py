"""
Realtime routers - /ws/*
"""

from .changes import router

__all__ = ["router"]
