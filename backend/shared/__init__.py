"""
Shared module for common utilities used by the REST API.

STRUCTURE:
- shared.security: Authentication, authorization, rate limiting
  - auth.py: JWT verification, current_user_context, require_roles
  - password.py: Bcrypt hashing
  - rate_limit.py: Login and QR rate limiting

- shared.infrastructure: Database and messaging
  - db.py: SQLAlchemy sessions, safe_commit()
  - correlation.py: Request ID propagation
  - events/: Change events, Redis pub/sub and in-memory notifiers

- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging
  - constants.py: UserRole, OrderStatus, transition rules

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging
  - schemas.py: Shared Pydantic schemas

IMPORT EXAMPLES:
    from shared.security.auth import verify_jwt, current_user_context
    from shared.infrastructure.db import get_db, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import UserRole, OrderStatus
    from shared.utils.exceptions import NotFoundError, ForbiddenError
"""
