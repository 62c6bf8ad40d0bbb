# core/security.py
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from core.config import settings


# ========================================
# 🔑 JWT CONFIG
# ========================================
SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM or "HS256"

# Tokens are minted by the identity provider, not by this service.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=True)

# Roles allowed to run instructor and admin actions
STAFF_ROLES = ("instructor", "admin")


@dataclass
class Principal:
    """Authenticated subject as seen by the engine."""

    id: str
    display_name: str
    email: Optional[str] = None
    role: str = "student"

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def decode_token(token: str) -> dict:
    """Decode JWT and return payload."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token.",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_current_principal(token: str = Depends(oauth2_scheme)) -> Principal:
    """Extract the principal (subject + display name) from the bearer token."""
    payload = decode_token(token)
    subject = payload.get("sub") or payload.get("user_id")
    if not subject:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    email = payload.get("email")
    display_name = payload.get("name") or email or str(subject)
    role = payload.get("role") or "student"
    return Principal(id=str(subject), display_name=display_name, email=email, role=role)


def get_current_staff(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Require an instructor or admin."""
    if not principal.is_staff:
        raise HTTPException(status_code=403, detail="Instructor or admin privileges required")
    return principal
