# bookkeeper/routers/auth.py
# Registration, login, token verification and logout

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from .. import auth, models, schemas
from ..dependencies import get_current_user, get_current_user_optional, get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: schemas.RegisterRequest, db: Session = Depends(get_db)):
    """Register a new user and return a session token."""
    result = auth.register_user(
        db,
        email=payload.email,
        password=payload.password,
        company_name=payload.company_name,
        name=payload.name,
        phone=payload.phone,
    )
    return {"success": True, "message": "Registration successful", "data": result}


@router.post("/login")
def login(payload: schemas.LoginRequest, db: Session = Depends(get_db)):
    """Authenticate user and return a session token."""
    result = auth.login_user(db, payload.email, payload.password)
    return {"success": True, "message": "Login successful", "data": result}


@router.get("/verify")
def verify(request: Request, current_user: models.User = Depends(get_current_user)):
    """Confirm the bearer token is still valid."""
    return {
        "success": True,
        "data": {
            "user": auth.serialize_user(current_user),
            "claims": request.state.user,
        },
    }


@router.post("/logout")
def logout(current_user: Optional[models.User] = Depends(get_current_user_optional)):
    """Tokens are stateless, so logging out is the client's job; a stale token still succeeds."""
    if current_user is not None:
        logger.info("User %s logged out", current_user.id)
    return {"success": True, "message": "Logged out", "data": {"authenticated": current_user is not None}}
