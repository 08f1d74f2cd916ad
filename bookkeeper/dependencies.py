# bookkeeper/dependencies.py
# Shared FastAPI dependencies for authentication, database and pagination

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from . import models, auth
from .config import get_settings
from .errors import AuthError, BookkeeperError, ForbiddenError, InvalidTokenError

# Security (missing headers are reported by get_current_user itself)
security = HTTPBearer(auto_error=False)

# ===== DATABASE DEPENDENCY =====
def get_db():
    """Database session dependency."""
    db = models.SessionLocal()
    try:
        yield db
    finally:
        db.close()

# ===== AUTHENTICATION DEPENDENCIES =====
def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> models.User:
    """Resolve the bearer token to a user and attach it to the request."""
    if credentials is None or not credentials.credentials:
        raise AuthError("Not authenticated: access token required")

    payload = auth.verify_token(credentials.credentials)

    user = db.query(models.User).filter(models.User.id == payload["userId"]).first()
    if user is None:
        raise InvalidTokenError("Invalid token")

    request.state.user = payload
    return user


def get_current_user_optional(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Optional[models.User]:
    """Get current user if authenticated, None if not (for optional auth endpoints)."""
    if not credentials:
        return None

    try:
        return get_current_user(request, credentials, db)
    except BookkeeperError:
        return None


def require_operator(current_user: models.User = Depends(get_current_user)) -> models.User:
    """Allow only the accounts listed in ``admin_emails``."""
    operators = {email.lower() for email in get_settings().admin_emails}
    if current_user.email.lower() not in operators:
        raise ForbiddenError("Operator access required")
    return current_user

# ===== PAGINATION DEPENDENCIES =====
def get_pagination_params(
    page: int = 1,
    limit: int = 10
) -> dict:
    """Get pagination parameters with validation."""
    if page < 1:
        page = 1
    if limit < 1:
        limit = 10
    if limit > 100:  # Prevent excessive queries
        limit = 100

    return {"page": page, "limit": limit, "offset": (page - 1) * limit}
