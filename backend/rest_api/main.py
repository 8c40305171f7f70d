"""
REST API main application.
Entry point for the FastAPI REST server.
"""

from fastapi import FastAPI
from slowapi.errors import RateLimitExceeded

from shared.infrastructure.correlation import CorrelationIdMiddleware
from shared.security.rate_limit import limiter, rate_limit_exceeded_handler
from shared.utils.exceptions import AppException, app_exception_handler
from rest_api.core.cors import configure_cors
from rest_api.core.lifespan import lifespan
from rest_api.core.middlewares import register_middlewares
from rest_api.routers.auth import router as auth_router
from rest_api.routers.customer import router as customer_router
from rest_api.routers.public import health_router, qr_router
from rest_api.routers.realtime import router as realtime_router
from rest_api.routers.staff import router as staff_router


# Create FastAPI application
app = FastAPI(
    title="Table Ordering API",
    description="QR table sessions, orders and kitchen workflow for restaurants",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Domain errors render as {"detail", "code"}
app.add_exception_handler(AppException, app_exception_handler)

# Middlewares run in reverse order of registration: CORS, correlation, security
register_middlewares(app)
app.add_middleware(CorrelationIdMiddleware)
configure_cors(app)


# =============================================================================
# Routers
# =============================================================================

app.include_router(health_router)
app.include_router(qr_router)
app.include_router(auth_router)
app.include_router(customer_router)
app.include_router(staff_router)
app.include_router(realtime_router)
