# moviepedia/models.py
from enum import Enum
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow():
    # naive UTC, the way the columns are stored
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Role(str, Enum):
    USER = "ROLE_USER"
    ADMIN = "ROLE_ADMIN"
    ANONYMOUS = "ROLE_ANONYMOUS"


# ---------------- ASSOCIATION TABLES ----------------
movie_actors = db.Table(
    "movie_actors",
    db.Column("movie_id", db.Integer, db.ForeignKey("movies.movie_id"), primary_key=True),
    db.Column("actor_id", db.Integer, db.ForeignKey("actors.actor_id"), primary_key=True),
)

watchlists = db.Table(
    "watchlists",
    db.Column("user_id", db.Integer, db.ForeignKey("users.user_id"), primary_key=True),
    db.Column("movie_id", db.Integer, db.ForeignKey("movies.movie_id"), primary_key=True),
)

watched_movies = db.Table(
    "watched_movies",
    db.Column("user_id", db.Integer, db.ForeignKey("users.user_id"), primary_key=True),
    db.Column("movie_id", db.Integer, db.ForeignKey("movies.movie_id"), primary_key=True),
)

review_likes = db.Table(
    "review_likes",
    db.Column("review_id", db.Integer, db.ForeignKey("reviews.review_id"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.user_id"), primary_key=True),
)

review_dislikes = db.Table(
    "review_dislikes",
    db.Column("review_id", db.Integer, db.ForeignKey("reviews.review_id"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.user_id"), primary_key=True),
)


class Image(db.Model):
    """A stored picture; ``image_id`` doubles as the deletion hash."""

    __tablename__ = "images"
    image_id = db.Column(db.String(64), primary_key=True)
    link = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {"id": self.image_id, "link": self.link}


class User(db.Model):
    __tablename__ = "users"
    user_id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False)
    email = db.Column(db.String(100), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=Role.USER.value)
    created_at = db.Column(db.DateTime, default=utcnow)

    watchlist = db.relationship(
        "Movie", secondary=watchlists, collection_class=set,
        back_populates="users_with_movie_in_watchlist",
    )
    watched_movies = db.relationship(
        "Movie", secondary=watched_movies, collection_class=set,
        back_populates="users_who_watched_movie",
    )
    ratings = db.relationship("Rating", back_populates="user")
    reviews = db.relationship("Review", back_populates="reviewer")

    def to_dict(self):
        return {
            "id": self.user_id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
        }


class Director(db.Model):
    __tablename__ = "directors"
    director_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    surname = db.Column(db.String(100), nullable=False)
    date_of_birth = db.Column(db.Date)
    biography = db.Column(db.Text)
    image_id = db.Column(db.String(64), db.ForeignKey("images.image_id"))

    picture = db.relationship("Image")
    movies = db.relationship("Movie", back_populates="director")

    def to_dict(self):
        return {
            "id": self.director_id,
            "name": self.name,
            "surname": self.surname,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "biography": self.biography,
            "picture": self.picture.link if self.picture else None,
        }


class Actor(db.Model):
    __tablename__ = "actors"
    actor_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    surname = db.Column(db.String(100), nullable=False)
    date_of_birth = db.Column(db.Date)
    biography = db.Column(db.Text)
    image_id = db.Column(db.String(64), db.ForeignKey("images.image_id"))

    picture = db.relationship("Image")
    movies = db.relationship(
        "Movie", secondary=movie_actors, collection_class=set, back_populates="actors"
    )

    def to_dict(self):
        return {
            "id": self.actor_id,
            "name": self.name,
            "surname": self.surname,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "biography": self.biography,
            "picture": self.picture.link if self.picture else None,
        }


class Movie(db.Model):
    __tablename__ = "movies"
    movie_id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    year = db.Column(db.Integer)
    synopsis = db.Column(db.Text)
    total_rating = db.Column(db.Integer, nullable=False, default=0)
    total_votes = db.Column(db.Integer, nullable=False, default=0)
    rating = db.Column(db.Float, nullable=False, default=0.0)
    director_id = db.Column(db.Integer, db.ForeignKey("directors.director_id"), nullable=False)
    image_id = db.Column(db.String(64), db.ForeignKey("images.image_id"))

    director = db.relationship("Director", back_populates="movies")
    poster = db.relationship("Image")
    actors = db.relationship(
        "Actor", secondary=movie_actors, collection_class=set, back_populates="movies"
    )
    reviews = db.relationship("Review", back_populates="movie", cascade="all, delete-orphan")
    ratings = db.relationship("Rating", back_populates="movie", cascade="all, delete-orphan")
    users_with_movie_in_watchlist = db.relationship(
        "User", secondary=watchlists, collection_class=set, back_populates="watchlist"
    )
    users_who_watched_movie = db.relationship(
        "User", secondary=watched_movies, collection_class=set, back_populates="watched_movies"
    )

    def add_vote(self, value):
        self.total_rating = (self.total_rating or 0) + value
        self.total_votes = (self.total_votes or 0) + 1
        self._recompute_rating()

    def remove_vote(self, value):
        self.total_rating = (self.total_rating or 0) - value
        self.total_votes = (self.total_votes or 0) - 1
        self._recompute_rating()

    def _recompute_rating(self):
        if self.total_votes > 0:
            self.rating = self.total_rating / self.total_votes
        else:
            self.rating = 0.0

    def __repr__(self):
        return f"<Movie {self.movie_id} {self.title!r} ({self.year})>"


class Rating(db.Model):
    __tablename__ = "ratings"
    rating_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    movie_id = db.Column(db.Integer, db.ForeignKey("movies.movie_id"), nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    rated_at = db.Column(db.DateTime, default=utcnow)

    user = db.relationship("User", back_populates="ratings")
    movie = db.relationship("Movie", back_populates="ratings")

    __table_args__ = (db.UniqueConstraint("user_id", "movie_id", name="uq_rating_user_movie"),)


class Review(db.Model):
    __tablename__ = "reviews"
    review_id = db.Column(db.Integer, primary_key=True)
    text = db.Column(db.Text, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    movie_id = db.Column(db.Integer, db.ForeignKey("movies.movie_id"), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    reviewer = db.relationship("User", back_populates="reviews")
    movie = db.relationship("Movie", back_populates="reviews")
    likes = db.relationship("User", secondary=review_likes, collection_class=set)
    dislikes = db.relationship("User", secondary=review_dislikes, collection_class=set)

    def to_dict(self):
        return {
            "id": self.review_id,
            "text": self.text,
            "user_id": self.user_id,
            "movie_id": self.movie_id,
            "likes": len(self.likes),
            "dislikes": len(self.dislikes),
        }


class RefreshToken(db.Model):
    __tablename__ = "refresh_tokens"
    refresh_token_id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(64), unique=True, nullable=False)
    expiration_date = db.Column(db.DateTime, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), unique=True, nullable=False)

    user = db.relationship("User")
