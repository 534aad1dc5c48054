# Overview: Password hashing, JWT issuance, and the role/location predicates used by every route.

"""
Authentication and authorisation helpers.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, 12 by default)
- Minimum 8 characters with upper, lower, digit and special character
- Access tokens are HS256 JWTs carrying sub (user id) and role
- Admins bypass location checks; everyone else is limited to the
  locations linked to their account
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

import bcrypt
from flask import current_app
from jose import JWTError, jwt
from sqlalchemy import or_

from ..errors import AuthError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Location, User
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER, ROLES


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises ValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise ValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise ValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise ValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise ValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Returns True if password matches hash, False otherwise.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except (ValueError, AttributeError):
        return False


def issue_token(user: User) -> str:
    expires = datetime.now(timezone.utc) + timedelta(minutes=current_app.config["JWT_EXPIRES_MINUTES"])
    claims = {"sub": str(user.id), "role": user.role, "exp": expires}
    return jwt.encode(claims, current_app.config["JWT_SECRET"], algorithm=current_app.config["JWT_ALGORITHM"])


def decode_token(token: str) -> User:
    """
    Resolve a bearer token to an active user.

    Raises:
        AuthError: Bad signature, expired token, unknown or inactive user
    """
    try:
        claims = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
        )
    except JWTError:
        raise AuthError("Invalid or expired token")

    try:
        user_id = int(claims.get("sub"))
    except (TypeError, ValueError):
        raise AuthError("Invalid or expired token")

    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthError("Invalid or expired token")
    return user


def authenticate(identifier: str, password: str) -> User:
    """Look a user up by username or email and check the password."""
    if not identifier or not password:
        raise ValidationError("username and password are required")

    user = (
        db.session.query(User)
        .filter(or_(User.username == identifier, User.email == identifier.lower()))
        .first()
    )
    if user is None or not user.is_active or not verify_password(password, user.password_hash):
        raise AuthError("Invalid credentials")
    return user


def create_user(
    *,
    username: str,
    email: str,
    password: str,
    role: str = "staff",
    name: str | None = None,
    location_ids: list[int] | None = None,
) -> User:
    if not username or not email:
        raise ValidationError("username and email are required")
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")

    email = email.strip().lower()
    if db.session.query(User).filter(or_(User.username == username, User.email == email)).first():
        raise ConflictError("A user with that username or email already exists")

    locations = []
    for location_id in location_ids or []:
        location = db.session.get(Location, location_id)
        if location is None:
            raise NotFoundError(f"Location {location_id} not found")
        locations.append(location)

    user = User(
        username=username,
        email=email,
        name=name,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    user.locations = locations
    db.session.add(user)
    db.session.commit()
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.id.asc()).all()


def is_admin(user: User | None) -> bool:
    return user is not None and user.role == ROLE_ADMIN


def is_manager_or_admin(user: User | None) -> bool:
    return user is not None and user.role in (ROLE_ADMIN, ROLE_MANAGER)


def has_location_access(user: User | None, location_id: int | None) -> bool:
    if user is None or location_id is None:
        return False
    if is_admin(user):
        return True
    return location_id in user.location_ids


def accessible_location_ids(user: User) -> set[int] | None:
    """None means unrestricted (admin)."""
    if is_admin(user):
        return None
    return user.location_ids
