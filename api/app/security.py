import bcrypt, secrets
from datetime import datetime, timedelta, timezone
from fastapi import Depends, Header, HTTPException, status
from jose import jwt, JWTError
from sqlalchemy.orm import Session
from .config import settings
from .db import get_db
from .errors import Unauthenticated
from .models import User

ALGO = "HS256"

def verify_admin_password(plaintext: str) -> bool:
    # Prefer secure hash if provided
    if settings.admin_password_hash:
        try:
            return bcrypt.checkpw(
                plaintext.encode("utf-8"),
                settings.admin_password_hash.encode("utf-8"),
            )
        except ValueError:
            return False
    # Fallback: compare to plaintext env
    if settings.admin_password:
        return secrets.compare_digest(plaintext, settings.admin_password)
    return False

def make_admin_token() -> str:
    exp = datetime.now(timezone.utc) + timedelta(hours=settings.admin_token_hours)
    return jwt.encode({"sub": "admin", "role": "admin", "exp": exp}, settings.jwt_secret, algorithm=ALGO)

def make_access_token(user_id: int) -> str:
    exp = datetime.now(timezone.utc) + timedelta(hours=settings.access_token_hours)
    return jwt.encode({"sub": str(user_id), "exp": exp}, settings.jwt_secret, algorithm=ALGO)

def _bearer(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization.split(" ", 1)[1].strip()

def get_current_user(
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> User:
    token = _bearer(authorization)
    if not token:
        raise Unauthenticated("Authorization header required")
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[ALGO])
    except JWTError:
        raise Unauthenticated("Invalid token")
    try:
        user_id = int(payload.get("sub", ""))
    except (TypeError, ValueError):
        raise Unauthenticated("Invalid token")
    user = db.get(User, user_id)
    if user is None:
        raise Unauthenticated()
    return user

def require_admin(authorization: str | None = Header(default=None, alias="Authorization")):
    token = _bearer(authorization)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[ALGO])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    if payload.get("role") != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return True
