# moviepedia/users.py
"""User accounts."""
from flask import current_app
from sqlalchemy import or_
from werkzeug.security import generate_password_hash

from .errors import Conflict, UserNotFound, ValidationError
from .models import RefreshToken, Role, User, db
from .movies import withdraw_ratings_of_user
from .reviews import clear_reactions_of_user
from .store import atomic, get_or_raise


def get_user_entity(user_id):
    return get_or_raise(User, user_id, UserNotFound, "User")


def _check_unique(username, email, exclude_id=None):
    query = User.query.filter(or_(User.username == username, User.email == email))
    if exclude_id is not None:
        query = query.filter(User.user_id != exclude_id)
    existing = query.first()
    if existing is None:
        return
    if existing.username == username:
        raise Conflict("Username already exists")
    raise Conflict("Email already exists")


def _clean_credentials(data, require_password=True):
    username = (data.get("username") or "").strip()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not username or not email or (require_password and not password):
        raise ValidationError("Please fill all fields")
    if "@" not in email:
        raise ValidationError("Invalid email address")
    return username, email, password


def register_user(data, role=Role.USER):
    username, email, password = _clean_credentials(data)
    _check_unique(username, email)
    with atomic():
        user = User(
            username=username,
            email=email,
            password_hash=generate_password_hash(password),
            role=Role(role).value,
        )
        db.session.add(user)
    current_app.logger.info("Registered user %s (%s)", user.user_id, username)
    return user.to_dict()


def get_all_users():
    return [u.to_dict() for u in User.query.order_by(User.user_id).all()]


def get_user_by_id(user_id):
    return get_user_entity(user_id).to_dict()


def edit_user(caller, user_id, data):
    caller.require_self_or_admin(user_id)
    user = get_user_entity(user_id)
    username, email, password = _clean_credentials(data, require_password=False)
    _check_unique(username, email, exclude_id=user_id)
    with atomic():
        user.username = username
        user.email = email
        if password:
            user.password_hash = generate_password_hash(password)
    return user.to_dict()


def delete_user(caller, user_id):
    """Delete an account and everything hanging off it.

    The user's ratings are taken out of the movie aggregates first, then
    watchlists, watched movies, review reactions, reviews and the
    refresh token go.
    """
    caller.require_self_or_admin(user_id)
    user = get_user_entity(user_id)
    with atomic():
        withdraw_ratings_of_user(user)
        for movie in list(user.watchlist):
            user.watchlist.discard(movie)
            movie.users_with_movie_in_watchlist.discard(user)
        for movie in list(user.watched_movies):
            user.watched_movies.discard(movie)
            movie.users_who_watched_movie.discard(user)
        clear_reactions_of_user(user_id)
        for review in list(user.reviews):
            db.session.delete(review)
        RefreshToken.query.filter_by(user_id=user_id).delete()
        db.session.delete(user)
    current_app.logger.info("Deleted user %s", user_id)
