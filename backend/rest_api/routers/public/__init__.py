"""
Public routers - No authentication required.
- /api/qr/* - QR token issuance
- /api/health - Health check
"""

from .health import router as health_router
from .qr import router as qr_router

__all__ = ["health_router", "qr_router"]
