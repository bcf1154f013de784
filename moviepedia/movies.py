# moviepedia/movies.py
"""Movie aggregate operations.

Every operation takes the caller explicitly. Mutations run inside
``atomic()`` so rating state, actor sets and the detach-then-delete
sequence are committed together or not at all. Picture files are not
transactional: a new file is removed again if the transaction fails,
and an old file is only removed after the transaction committed.
"""
from flask import current_app

from .criteria import DataOption, SearchCriterion, search_query
from .errors import (
    ActorNotFound,
    DirectorNotFound,
    InconsistentState,
    InvalidRating,
    MovieNotFound,
    RatingNotFound,
    UserNotFound,
    ValidationError,
)
from .models import Actor, Director, Movie, Rating, User, db
from .storage import get_image_store
from .store import atomic, get_or_raise

MIN_RATING = 1
MAX_RATING = 10


# ---------------- LOOKUPS ----------------
def get_director(director_id):
    return get_or_raise(Director, director_id, DirectorNotFound, "Director")


def get_movie_entity(movie_id):
    return get_or_raise(Movie, movie_id, MovieNotFound, "Movie")


def get_directors_movie(director_id, movie_id):
    """Find ``movie_id`` among the movies of ``director_id`` only."""
    director = get_director(director_id)
    for movie in director.movies:
        if movie.movie_id == movie_id:
            return movie
    raise MovieNotFound(f"Director has not made a movie with id: {movie_id}")


def _require_poster(movie):
    if movie.poster is None:
        current_app.logger.error("Movie %s has no poster record", movie.movie_id)
        raise InconsistentState(f"Movie with id: {movie.movie_id} has no picture")
    return movie.poster


def _user_rating(user_id, movie):
    return Rating.query.filter_by(user_id=user_id, movie_id=movie.movie_id).first()


def to_retrieval(movie, caller=None, user=None):
    """Project a movie; viewer fields are filled only for authenticated callers."""
    data = {
        "id": movie.movie_id,
        "title": movie.title,
        "year": movie.year,
        "synopsis": movie.synopsis,
        "picture": _require_poster(movie).link,
        "rating": movie.rating,
        "total_votes": movie.total_votes,
        "director_id": movie.director_id,
        "actor_ids": sorted(a.actor_id for a in movie.actors),
        "user_rating_for_movie": 0,
    }
    if caller is not None and caller.is_authenticated:
        if user is None:
            user = get_or_raise(User, caller.user_id, UserNotFound, "User")
        rating = _user_rating(user.user_id, movie)
        data["user_rating_for_movie"] = rating.rating if rating else 0
        data["movie_in_user_watchlist"] = movie in user.watchlist
        data["movie_in_user_watched_movies"] = movie in user.watched_movies
    return data


def get_all_movies():
    return [to_retrieval(m) for m in Movie.query.order_by(Movie.movie_id).all()]


def get_movies_by_director(director_id):
    director = get_director(director_id)
    return [to_retrieval(m) for m in sorted(director.movies, key=lambda m: m.movie_id)]


def get_movie(caller, director_id, movie_id):
    return to_retrieval(get_directors_movie(director_id, movie_id), caller)


# ---------------- CREATE / EDIT ----------------
def _apply_movie_fields(movie, data):
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Movie title is required")
    year = data.get("year")
    if year is not None and year != "":
        try:
            year = int(year)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid year: {year!r}") from None
    else:
        year = None
    movie.title = title
    movie.year = year
    movie.synopsis = data.get("synopsis")


def create_movie(director_id, data, picture):
    director = get_director(director_id)
    store = get_image_store()
    image = store.save_file(picture)
    try:
        with atomic():
            movie = Movie(director=director, total_rating=0, total_votes=0, rating=0.0, poster=image)
            _apply_movie_fields(movie, data)
            db.session.add(movie)
    except Exception:
        store.delete_file(image.link)
        raise
    current_app.logger.info("Created movie %s for director %s", movie.movie_id, director_id)
    return to_retrieval(movie)


def edit_movie(director_id, movie_id, data, picture):
    """Replace a movie's fields and picture; ratings, actors and reviews stay."""
    movie = get_directors_movie(director_id, movie_id)
    old_image = _require_poster(movie)

    store = get_image_store()
    new_image = store.save_file(picture)
    old_link = old_image.link
    try:
        with atomic():
            _apply_movie_fields(movie, data)
            movie.poster = new_image
            db.session.delete(old_image)
    except Exception:
        store.delete_file(new_image.link)
        raise
    store.delete_file(old_link)
    current_app.logger.info("Edited movie %s", movie_id)
    return to_retrieval(movie)


# ---------------- ACTORS ----------------
def set_movie_actors(director_id, movie_id, actor_ids):
    movie = get_directors_movie(director_id, movie_id)
    actors = set()
    for actor_id in actor_ids or ():
        actors.add(get_or_raise(Actor, actor_id, ActorNotFound, "Actor"))

    with atomic():
        for actor in movie.actors - actors:
            movie.actors.discard(actor)
            actor.movies.discard(movie)
        for actor in actors - movie.actors:
            movie.actors.add(actor)
            actor.movies.add(movie)
    current_app.logger.info("Movie %s now has actors %s", movie_id, sorted(a.actor_id for a in actors))
    return to_retrieval(movie)


# ---------------- DELETE ----------------
def detach_movie(movie):
    """Remove ``movie`` from every actor, watchlist and watched list."""
    for actor in list(movie.actors):
        movie.actors.discard(actor)
        actor.movies.discard(movie)
    for user in list(movie.users_with_movie_in_watchlist):
        movie.users_with_movie_in_watchlist.discard(user)
        user.watchlist.discard(movie)
    for user in list(movie.users_who_watched_movie):
        movie.users_who_watched_movie.discard(user)
        user.watched_movies.discard(movie)


def delete_movie_rows(movie):
    """Detach and delete inside an open transaction; returns the picture link."""
    image = _require_poster(movie)
    detach_movie(movie)
    db.session.delete(movie)
    db.session.delete(image)
    return image.link


def delete_movie(director_id, movie_id):
    movie = get_directors_movie(director_id, movie_id)
    with atomic():
        image_link = delete_movie_rows(movie)
    get_image_store().delete_file(image_link)
    current_app.logger.info("Deleted movie %s of director %s", movie_id, director_id)


# ---------------- SEARCH ----------------
def search_movies(caller, criteria, data_option=DataOption.ALL, page=0, size=10):
    try:
        page, size = int(page), int(size)
    except (TypeError, ValueError):
        raise ValidationError("Page number and page size must be integers") from None
    if page < 0 or size <= 0:
        raise ValidationError("Page number must be >= 0 and page size > 0")

    parsed = [c if isinstance(c, SearchCriterion) else SearchCriterion.from_dict(c) for c in criteria or []]
    query = search_query(parsed, DataOption.parse(data_option))
    # paginate() is one-based
    result = query.paginate(page=page + 1, per_page=size, error_out=False)

    user = None
    if caller is not None and caller.is_authenticated:
        user = get_or_raise(User, caller.user_id, UserNotFound, "User")
    return {
        "page": page,
        "size": size,
        "total": result.total,
        "movies": [to_retrieval(m, caller, user) for m in result.items],
    }


# ---------------- WATCHLIST / WATCHED ----------------
def _current_user(caller):
    return get_or_raise(User, caller.require_user(), UserNotFound, "User")


def add_movie_to_watchlist(caller, director_id, movie_id):
    user = _current_user(caller)
    movie = get_directors_movie(director_id, movie_id)
    with atomic():
        user.watchlist.add(movie)
        movie.users_with_movie_in_watchlist.add(user)


def delete_movie_from_watchlist(caller, director_id, movie_id):
    user = _current_user(caller)
    movie = get_directors_movie(director_id, movie_id)
    with atomic():
        user.watchlist.discard(movie)
        movie.users_with_movie_in_watchlist.discard(user)


def add_movie_to_watched_movies(caller, director_id, movie_id):
    user = _current_user(caller)
    movie = get_directors_movie(director_id, movie_id)
    with atomic():
        user.watched_movies.add(movie)
        movie.users_who_watched_movie.add(user)


def delete_movie_from_watched_movies(caller, director_id, movie_id):
    user = _current_user(caller)
    movie = get_directors_movie(director_id, movie_id)
    with atomic():
        user.watched_movies.discard(movie)
        movie.users_who_watched_movie.discard(user)


def get_watchlist(caller):
    user = _current_user(caller)
    return [to_retrieval(m, caller, user) for m in sorted(user.watchlist, key=lambda m: m.movie_id)]


def get_watched_movies(caller):
    user = _current_user(caller)
    return [to_retrieval(m, caller, user) for m in sorted(user.watched_movies, key=lambda m: m.movie_id)]


# ---------------- RATINGS ----------------
def _validate_rating(value):
    if isinstance(value, bool):
        raise InvalidRating(f"Rating must be an integer between {MIN_RATING} and {MAX_RATING}")
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise InvalidRating(f"Rating must be an integer between {MIN_RATING} and {MAX_RATING}") from None
    if not MIN_RATING <= value <= MAX_RATING:
        raise InvalidRating(f"Rating must be an integer between {MIN_RATING} and {MAX_RATING}")
    return value


def rate_movie(caller, director_id, movie_id, value):
    """Record the caller's rating; a previous rating is replaced, never added to."""
    if isinstance(value, float) and not value.is_integer():
        raise InvalidRating(f"Rating must be an integer between {MIN_RATING} and {MAX_RATING}")
    value = _validate_rating(value)
    user = _current_user(caller)
    movie = get_directors_movie(director_id, movie_id)

    with atomic():
        previous = _user_rating(user.user_id, movie)
        if previous is not None:
            movie.remove_vote(previous.rating)
            # loading either collection must not flush the orphaned row away
            with db.session.no_autoflush:
                movie.ratings.remove(previous)
                user.ratings.remove(previous)
            db.session.delete(previous)
            # the old row must be gone before the new one hits the unique constraint
            db.session.flush()
        movie.add_vote(value)
        db.session.add(Rating(rating=value, user=user, movie=movie))
    current_app.logger.info("User %s rated movie %s with %s", user.user_id, movie_id, value)
    return to_retrieval(movie, caller, user)


def get_rating_by_user_and_movie(caller, user_id, movie_id):
    caller.require_self_or_admin(user_id, "Users can only retrieve their own rating for the movie")
    movie = get_movie_entity(movie_id)
    rating = _user_rating(user_id, movie)
    if rating is None:
        raise RatingNotFound(f"User with id: {user_id} has not rated this movie")
    return rating.rating


def withdraw_ratings_of_user(user):
    """Take every rating of ``user`` out of the movie aggregates (open transaction)."""
    with db.session.no_autoflush:
        for rating in list(user.ratings):
            rating.movie.remove_vote(rating.rating)
            rating.movie.ratings.remove(rating)
            user.ratings.remove(rating)
            db.session.delete(rating)
