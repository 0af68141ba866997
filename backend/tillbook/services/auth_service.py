# Overview: Staff authentication; bcrypt password hashes and signed bearer tokens.

"""
Staff Authentication

- Passwords hashed with bcrypt (cost from BCRYPT_ROUNDS)
- Login issues an HS256 JWT carrying sub (staff id), username and role
- Roles are ranked; a higher rank satisfies any lower requirement
"""

from __future__ import annotations

from datetime import timedelta, timezone

import bcrypt
from flask import current_app
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import func

from ..errors import AuthError, ConflictError, ValidationError
from ..extensions import db
from ..models import Staff
from ..time_utils import utcnow

ALGORITHM = "HS256"

ROLE_RANKS = {
    "cashier": 1,
    "accounts": 2,
    "manager": 3,
    "admin": 4,
}


def hash_password(password: str) -> str:
    if not password or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_staff(username: str, password: str, *, role: str = "cashier", email: str | None = None) -> Staff:
    if role not in ROLE_RANKS:
        raise ValidationError(f"Unknown role: {role}")
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")

    existing = db.session.query(Staff).filter(func.lower(Staff.username) == username.lower()).first()
    if existing:
        raise ConflictError(f"Username '{username}' already exists")

    staff = Staff(username=username, email=email, password_hash=hash_password(password), role=role)
    db.session.add(staff)
    db.session.commit()
    return staff


def authenticate(username: str, password: str) -> Staff:
    """Raises AuthError on unknown user, wrong password or inactive account."""
    staff = (
        db.session.query(Staff)
        .filter(func.lower(Staff.username) == (username or "").strip().lower())
        .first()
    )
    if staff is None or not verify_password(password or "", staff.password_hash):
        raise AuthError("Invalid username or password")
    if not staff.is_active:
        raise AuthError("Account is disabled")
    return staff


def issue_token(staff: Staff) -> str:
    now = utcnow().replace(tzinfo=timezone.utc)
    claims = {
        "sub": str(staff.id),
        "username": staff.username,
        "role": staff.role,
        "iat": now,
        "exp": now + timedelta(days=current_app.config.get("JWT_EXPIRES_DAYS", 30)),
    }
    return jwt.encode(claims, current_app.config["JWT_SECRET"], algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise AuthError("Token has expired")
    except JWTError:
        raise AuthError("Invalid token")


def staff_for_token(token: str) -> Staff:
    claims = decode_token(token)
    try:
        staff_id = int(claims.get("sub"))
    except (TypeError, ValueError):
        raise AuthError("Invalid token")
    staff = db.session.get(Staff, staff_id)
    if staff is None or not staff.is_active:
        raise AuthError("Invalid or expired token")
    return staff


def role_allows(role: str | None, required) -> bool:
    """
    required is one role name or a list of them.

    A single role means that role or higher. A list means any listed role,
    or a rank at least the highest listed.
    """
    rank = ROLE_RANKS.get(role or "", 0)
    if rank == 0:
        return False
    if isinstance(required, str):
        required = [required]
    if role in required:
        return True
    return rank >= max(ROLE_RANKS.get(r, 99) for r in required)
