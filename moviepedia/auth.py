# moviepedia/auth.py
"""Access tokens, refresh tokens and the caller identity passed to services."""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from flask import current_app
from sqlalchemy import or_
from werkzeug.security import check_password_hash

from .errors import (
    AuthenticationRequired,
    InvalidCredentials,
    InvalidToken,
    PermissionDenied,
    RefreshTokenExpired,
    RefreshTokenNotFound,
    TokenExpired,
    UserNotFound,
)
from .models import RefreshToken, Role, User, db, utcnow
from .store import atomic, get_or_raise

ALGORITHM = "HS256"


@dataclass(frozen=True)
class Caller:
    user_id: Optional[int]
    role: Role

    @classmethod
    def anonymous(cls):
        return cls(user_id=None, role=Role.ANONYMOUS)

    @property
    def is_authenticated(self):
        return self.role is not Role.ANONYMOUS and self.user_id is not None

    @property
    def is_admin(self):
        return self.role is Role.ADMIN

    def require_user(self):
        if not self.is_authenticated:
            raise AuthenticationRequired("You must be logged in to do this")
        return self.user_id

    def require_admin(self):
        self.require_user()
        if not self.is_admin:
            raise PermissionDenied("Administrator role required")

    def require_self_or_admin(self, user_id, message="Users can only act on their own account"):
        self.require_user()
        if not self.is_admin and self.user_id != user_id:
            raise PermissionDenied(message)


# ---------------- ACCESS TOKENS ----------------
def generate_access_token(user_id, role):
    cfg = current_app.config
    role = Role(role)
    payload = {
        "iss": cfg["JWT_ISSUER"],
        "sub": str(user_id),
        "role": role.value,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=cfg["ACCESS_TOKEN_EXPIRES_SECONDS"]),
    }
    return jwt.encode(payload, cfg["JWT_SECRET_KEY"], algorithm=ALGORITHM)


def validate_token(token):
    """Verify ``token`` and return the ``Caller`` it identifies."""
    cfg = current_app.config
    try:
        claims = jwt.decode(
            token,
            cfg["JWT_SECRET_KEY"],
            algorithms=[ALGORITHM],
            issuer=cfg["JWT_ISSUER"],
            options={"require": ["exp", "sub", "iss"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired("Access token has expired") from None
    except jwt.InvalidTokenError as e:
        current_app.logger.warning("Rejected access token: %s", e)
        raise InvalidToken("Access token is invalid") from None

    try:
        role = Role(claims.get("role"))
        user_id = int(claims["sub"])
    except (TypeError, ValueError):
        raise InvalidToken("Access token carries malformed claims") from None
    if role is Role.ANONYMOUS:
        raise InvalidToken("Access token carries malformed claims")
    return Caller(user_id=user_id, role=role)


def caller_from_header(header_value):
    """Resolve a caller from an ``Authorization`` header; no header means anonymous."""
    if not header_value:
        return Caller.anonymous()
    parts = header_value.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        raise InvalidToken("Authorization header must be 'Bearer <token>'")
    return validate_token(parts[1])


# ---------------- REFRESH TOKENS ----------------
def create_refresh_token(user):
    """Issue a refresh token for ``user``, replacing any token it already holds.

    Adds to the current session; the caller commits.
    """
    existing = RefreshToken.query.filter_by(user_id=user.user_id).first()
    if existing is not None:
        db.session.delete(existing)
        db.session.flush()

    expires = utcnow() + timedelta(seconds=current_app.config["REFRESH_TOKEN_EXPIRES_SECONDS"])
    record = RefreshToken(token=secrets.token_urlsafe(32), expiration_date=expires, user=user)
    db.session.add(record)
    return record


def find_refresh_token(token):
    record = RefreshToken.query.filter_by(token=token).first() if token else None
    if record is None:
        raise RefreshTokenNotFound("Refresh token does not exist")
    return record


def find_refresh_token_by_user_id(user_id):
    record = RefreshToken.query.filter_by(user_id=user_id).first()
    if record is None:
        raise RefreshTokenNotFound(f"Refresh token with user id: {user_id} does not exist")
    return record


def refresh_token_exists_for_user(user_id):
    return RefreshToken.query.filter_by(user_id=user_id).first() is not None


def verify_refresh_token_expiration(record):
    if record.expiration_date < utcnow():
        user_id = record.user_id
        with atomic():
            db.session.delete(record)
        current_app.logger.info("Removed expired refresh token of user %s", user_id)
        raise RefreshTokenExpired("Refresh token has expired, please log in again")
    return record


def delete_refresh_token_by_user_id(user_id):
    get_or_raise(User, user_id, UserNotFound, "User")
    record = RefreshToken.query.filter_by(user_id=user_id).first()
    if record is None:
        raise RefreshTokenNotFound(f"User with id: {user_id} is already logged out")
    with atomic():
        db.session.delete(record)


def delete_refresh_token_by_token(token):
    record = find_refresh_token(token)
    with atomic():
        db.session.delete(record)


# ---------------- SESSION FLOWS ----------------
def login(name_or_email, password):
    """Check credentials and return ``(user, access_token, refresh_token)``."""
    user = None
    if name_or_email:
        user = User.query.filter(
            or_(User.username == name_or_email, User.email == name_or_email)
        ).first()
    if user is None or not check_password_hash(user.password_hash, password or ""):
        current_app.logger.warning("Failed login for %r", name_or_email)
        raise InvalidCredentials("Invalid credentials")

    with atomic():
        refresh = create_refresh_token(user)
    current_app.logger.info("User %s logged in", user.user_id)
    return user, generate_access_token(user.user_id, user.role), refresh.token


def refresh_access_token(token):
    record = verify_refresh_token_expiration(find_refresh_token(token))
    return generate_access_token(record.user.user_id, record.user.role)
