# moviepedia/reviews.py
from flask import current_app

from .errors import PermissionDenied, ReviewNotFound, UserNotFound, ValidationError
from .models import Review, User, db, review_dislikes, review_likes
from .movies import get_directors_movie
from .store import atomic, get_or_raise


def get_review_entity(review_id):
    return get_or_raise(Review, review_id, ReviewNotFound, "Review")


def get_reviews_for_movie(director_id, movie_id):
    movie = get_directors_movie(director_id, movie_id)
    return [r.to_dict() for r in sorted(movie.reviews, key=lambda r: r.review_id)]


def create_review(caller, director_id, movie_id, text):
    user = get_or_raise(User, caller.require_user(), UserNotFound, "User")
    movie = get_directors_movie(director_id, movie_id)
    text = (text or "").strip()
    if not text:
        raise ValidationError("Review text is required")
    with atomic():
        review = Review(text=text, reviewer=user, movie=movie)
        db.session.add(review)
    current_app.logger.info("User %s reviewed movie %s", user.user_id, movie_id)
    return review.to_dict()


def delete_review(caller, review_id):
    review = get_review_entity(review_id)
    caller.require_user()
    if not caller.is_admin and review.user_id != caller.user_id:
        raise PermissionDenied("Users can only delete their own reviews")
    with atomic():
        db.session.delete(review)


def like_review(caller, review_id):
    """Like a review; a dislike by the same user is withdrawn."""
    user = get_or_raise(User, caller.require_user(), UserNotFound, "User")
    review = get_review_entity(review_id)
    with atomic():
        review.dislikes.discard(user)
        review.likes.add(user)
    return review.to_dict()


def dislike_review(caller, review_id):
    """Dislike a review; a like by the same user is withdrawn."""
    user = get_or_raise(User, caller.require_user(), UserNotFound, "User")
    review = get_review_entity(review_id)
    with atomic():
        review.likes.discard(user)
        review.dislikes.add(user)
    return review.to_dict()


def clear_reactions_of_user(user_id):
    """Drop every like / dislike by ``user_id`` (open transaction)."""
    db.session.execute(review_likes.delete().where(review_likes.c.user_id == user_id))
    db.session.execute(review_dislikes.delete().where(review_dislikes.c.user_id == user_id))
