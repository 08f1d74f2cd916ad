# bookkeeper/auth.py
# Password hashing, session tokens, registration and login

import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from email_validator import validate_email, EmailNotValidError
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import models
from .config import get_settings
from .errors import AuthError, ConflictError, InvalidTokenError, TokenExpiredError, ValidationError

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
INVALID_CREDENTIALS = "Invalid email or password"


class AuthManager:
    """Hashes passwords and issues/verifies signed session tokens."""

    def __init__(self, secret_key: str, algorithm: str = "HS256",
                 expire_hours: int = 24, bcrypt_rounds: int = 12):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_hours = expire_hours
        self.pwd_context = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=bcrypt_rounds
        )

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Verify a plaintext password against its hash."""
        return self.pwd_context.verify(plain_password, hashed_password)

    def get_password_hash(self, password: str) -> str:
        """Hash a password for storing."""
        return self.pwd_context.hash(password)

    def create_access_token(self, user: models.User,
                            expires_delta: Optional[timedelta] = None) -> str:
        """Create a token carrying the user's identity claims."""
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(hours=self.expire_hours))
        claims = {
            "userId": user.id,
            "email": user.email,
            "name": user.name,
            "companyName": user.company_name,
            "type": "access",
            "iat": now,
            "exp": expire,
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> dict:
        """Decode a token, raising TokenExpiredError or InvalidTokenError."""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise TokenExpiredError("Token has expired, please log in again")
        except JWTError:
            raise InvalidTokenError("Invalid token")

        if payload.get("type") != "access" or not payload.get("userId"):
            raise InvalidTokenError("Invalid token")
        return payload


def _build_auth_manager() -> AuthManager:
    settings = get_settings()
    return AuthManager(
        secret_key=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expire_hours=settings.token_expire_hours,
        bcrypt_rounds=settings.bcrypt_rounds,
    )


# Global auth manager instance
auth_manager = _build_auth_manager()


def verify_token(token: str) -> dict:
    return auth_manager.verify_token(token)


def serialize_user(user: models.User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "companyName": user.company_name,
        "phone": user.phone,
    }


def generate_user_id() -> str:
    return f"USER-{int(time.time() * 1000)}-{secrets.token_hex(4)}"

# ===== REGISTRATION & LOGIN =====

def register_user(db: Session, email: str, password: str, company_name: str,
                  name: str, phone: Optional[str] = None) -> dict:
    """Create a user and return ``{token, user}``."""
    errors = []
    try:
        email = validate_email(email or "", check_deliverability=False).normalized.lower()
    except EmailNotValidError:
        errors.append({"field": "email", "message": "A valid email is required"})
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        errors.append({"field": "password",
                       "message": f"Password must be at least {MIN_PASSWORD_LENGTH} characters"})
    if not company_name or not company_name.strip():
        errors.append({"field": "companyName", "message": "Company name is required"})
    if not name or not name.strip():
        errors.append({"field": "name", "message": "Name is required"})
    if errors:
        raise ValidationError("Invalid registration data", details=errors)

    if db.query(models.User).filter(models.User.email == email).first():
        raise ConflictError("Email already registered")

    user = models.User(
        id=generate_user_id(),
        email=email,
        hashed_password=auth_manager.get_password_hash(password),
        name=name.strip(),
        company_name=company_name.strip(),
        phone=phone,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.id)

    return {"token": auth_manager.create_access_token(user), "user": serialize_user(user)}


def login_user(db: Session, email: str, password: str) -> dict:
    """Check credentials, stamp last_login and return ``{token, user}``."""
    user = None
    if email:
        user = db.query(models.User).filter(models.User.email == email.strip().lower()).first()

    if not user or not password or not auth_manager.verify_password(password, user.hashed_password):
        raise AuthError(INVALID_CREDENTIALS)

    user.last_login = models.utcnow()
    db.commit()

    return {"token": auth_manager.create_access_token(user), "user": serialize_user(user)}
