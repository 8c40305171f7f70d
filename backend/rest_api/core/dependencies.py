"""
Shared FastAPI dependencies.
"""

from fastapi.requests import HTTPConnection

from shared.infrastructure.events import RealtimeNotifier


def get_notifier(conn: HTTPConnection) -> RealtimeNotifier:
    """
    The process-wide notifier built in the lifespan handler.

    Works for both HTTP and WebSocket routes. Tests override it with an
    InMemoryNotifier.
    """
    return conn.app.state.notifier
