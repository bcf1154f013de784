# moviepedia/app.py
import os
from functools import wraps

import click
from flask import Flask, jsonify, request, send_from_directory
from sqlalchemy.exc import SQLAlchemyError

from . import auth, catalog, movies, reviews, users
from .config import Config, database_uri
from .errors import MoviePediaError, ValidationError
from .models import Role, db


def create_app(config_object=None, **overrides):
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    app.config.update(overrides)
    if not app.config.get("SQLALCHEMY_DATABASE_URI"):
        app.config["SQLALCHEMY_DATABASE_URI"] = database_uri()

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    db.init_app(app)

    # Ensure DB tables exist
    with app.app_context():
        try:
            db.create_all()
        except SQLAlchemyError as e:
            app.logger.warning("DB create_all warning: %s", e)

    # ---------------- ERRORS ----------------
    @app.errorhandler(MoviePediaError)
    def handle_error(e):
        if e.status_code >= 500:
            app.logger.error("%s: %s", e.code, e.message)
        return jsonify(e.to_dict()), e.status_code

    # ---------------- HELPERS ----------------
    def current_caller():
        return auth.caller_from_header(request.headers.get("Authorization"))

    def login_required(view):
        @wraps(view)
        def decorated(*args, **kwargs):
            caller = current_caller()
            caller.require_user()
            return view(caller, *args, **kwargs)
        return decorated

    def admin_required(view):
        @wraps(view)
        def decorated(*args, **kwargs):
            current_caller().require_admin()
            return view(*args, **kwargs)
        return decorated

    def payload():
        if request.form:
            return request.form
        return request.get_json(silent=True) or {}

    # ---------------- AUTH ----------------
    @app.route("/auth/register", methods=["POST"])
    def register():
        return jsonify(users.register_user(payload())), 201

    @app.route("/auth/login", methods=["POST"])
    def login():
        data = payload()
        user, access_token, refresh_token = auth.login(data.get("username"), data.get("password"))
        return jsonify({
            "user": user.to_dict(),
            "access_token": access_token,
            "refresh_token": refresh_token,
        })

    @app.route("/auth/refresh", methods=["POST"])
    def refresh():
        access_token = auth.refresh_access_token(payload().get("refresh_token"))
        return jsonify({"access_token": access_token})

    @app.route("/auth/logout", methods=["POST"])
    def logout():
        auth.delete_refresh_token_by_token(payload().get("refresh_token"))
        return jsonify({"ok": True})

    # ---------------- USERS ----------------
    @app.route("/users")
    def list_users():
        return jsonify(users.get_all_users())

    @app.route("/users/<int:user_id>")
    def get_user(user_id):
        return jsonify(users.get_user_by_id(user_id))

    @app.route("/users/<int:user_id>", methods=["PUT"])
    @login_required
    def edit_user(caller, user_id):
        return jsonify(users.edit_user(caller, user_id, payload()))

    @app.route("/users/<int:user_id>", methods=["DELETE"])
    @login_required
    def delete_user(caller, user_id):
        users.delete_user(caller, user_id)
        return jsonify({"ok": True})

    @app.route("/users/<int:user_id>/ratings/<int:movie_id>")
    @login_required
    def get_user_rating(caller, user_id, movie_id):
        rating = movies.get_rating_by_user_and_movie(caller, user_id, movie_id)
        return jsonify({"user_id": user_id, "movie_id": movie_id, "rating": rating})

    @app.route("/me/watchlist")
    @login_required
    def my_watchlist(caller):
        return jsonify(movies.get_watchlist(caller))

    @app.route("/me/watched")
    @login_required
    def my_watched_movies(caller):
        return jsonify(movies.get_watched_movies(caller))

    # ---------------- DIRECTORS ----------------
    @app.route("/directors")
    def list_directors():
        return jsonify(catalog.get_all_directors())

    @app.route("/directors/<int:director_id>")
    def get_director(director_id):
        return jsonify(catalog.get_director_by_id(director_id))

    @app.route("/directors", methods=["POST"])
    @admin_required
    def create_director():
        return jsonify(catalog.create_director(payload(), request.files.get("picture"))), 201

    @app.route("/directors/<int:director_id>", methods=["PUT"])
    @admin_required
    def edit_director(director_id):
        return jsonify(catalog.edit_director(director_id, payload(), request.files.get("picture")))

    @app.route("/directors/<int:director_id>", methods=["DELETE"])
    @admin_required
    def delete_director(director_id):
        catalog.delete_director(director_id)
        return jsonify({"ok": True})

    # ---------------- ACTORS ----------------
    @app.route("/actors")
    def list_actors():
        return jsonify(catalog.get_all_actors())

    @app.route("/actors/<int:actor_id>")
    def get_actor(actor_id):
        return jsonify(catalog.get_actor_by_id(actor_id))

    @app.route("/actors", methods=["POST"])
    @admin_required
    def create_actor():
        return jsonify(catalog.create_actor(payload(), request.files.get("picture"))), 201

    @app.route("/actors/<int:actor_id>", methods=["PUT"])
    @admin_required
    def edit_actor(actor_id):
        return jsonify(catalog.edit_actor(actor_id, payload(), request.files.get("picture")))

    @app.route("/actors/<int:actor_id>", methods=["DELETE"])
    @admin_required
    def delete_actor(actor_id):
        catalog.delete_actor(actor_id)
        return jsonify({"ok": True})

    # ---------------- MOVIES ----------------
    @app.route("/movies")
    def list_movies():
        return jsonify(movies.get_all_movies())

    @app.route("/movies/search", methods=["POST"])
    def search_movies():
        data = request.get_json(silent=True) or {}
        criteria = data.get("criteria") or []
        if not isinstance(criteria, list):
            raise ValidationError("'criteria' must be a list")
        result = movies.search_movies(
            current_caller(),
            criteria,
            data.get("data_option"),
            page=request.args.get("page", 0),
            size=request.args.get("size", 10),
        )
        return jsonify(result)

    @app.route("/directors/<int:director_id>/movies")
    def list_director_movies(director_id):
        return jsonify(movies.get_movies_by_director(director_id))

    @app.route("/directors/<int:director_id>/movies", methods=["POST"])
    @admin_required
    def create_movie(director_id):
        movie = movies.create_movie(director_id, request.form, request.files.get("picture"))
        return jsonify(movie), 201

    @app.route("/directors/<int:director_id>/movies/<int:movie_id>")
    def get_movie(director_id, movie_id):
        return jsonify(movies.get_movie(current_caller(), director_id, movie_id))

    @app.route("/directors/<int:director_id>/movies/<int:movie_id>", methods=["PUT"])
    @admin_required
    def edit_movie(director_id, movie_id):
        movie = movies.edit_movie(director_id, movie_id, request.form, request.files.get("picture"))
        return jsonify(movie)

    @app.route("/directors/<int:director_id>/movies/<int:movie_id>", methods=["DELETE"])
    @admin_required
    def delete_movie(director_id, movie_id):
        movies.delete_movie(director_id, movie_id)
        return jsonify({"ok": True})

    @app.route("/directors/<int:director_id>/movies/<int:movie_id>/actors", methods=["PUT"])
    @admin_required
    def set_movie_actors(director_id, movie_id):
        actor_ids = (request.get_json(silent=True) or {}).get("actor_ids")
        if actor_ids is not None and not isinstance(actor_ids, list):
            raise ValidationError("'actor_ids' must be a list")
        return jsonify(movies.set_movie_actors(director_id, movie_id, actor_ids))

    # ---------------- RATE MOVIE ----------------
    @app.route("/directors/<int:director_id>/movies/<int:movie_id>/rating", methods=["POST"])
    @login_required
    def rate_movie(caller, director_id, movie_id):
        rating = payload().get("rating")
        return jsonify(movies.rate_movie(caller, director_id, movie_id, rating))

    # ---------------- WATCHLIST / WATCHED ----------------
    @app.route("/directors/<int:director_id>/movies/<int:movie_id>/watchlist", methods=["POST", "DELETE"])
    @login_required
    def watchlist(caller, director_id, movie_id):
        if request.method == "POST":
            movies.add_movie_to_watchlist(caller, director_id, movie_id)
        else:
            movies.delete_movie_from_watchlist(caller, director_id, movie_id)
        return jsonify({"ok": True})

    @app.route("/directors/<int:director_id>/movies/<int:movie_id>/watched", methods=["POST", "DELETE"])
    @login_required
    def watched(caller, director_id, movie_id):
        if request.method == "POST":
            movies.add_movie_to_watched_movies(caller, director_id, movie_id)
        else:
            movies.delete_movie_from_watched_movies(caller, director_id, movie_id)
        return jsonify({"ok": True})

    # ---------------- REVIEWS ----------------
    @app.route("/directors/<int:director_id>/movies/<int:movie_id>/reviews")
    def list_reviews(director_id, movie_id):
        return jsonify(reviews.get_reviews_for_movie(director_id, movie_id))

    @app.route("/directors/<int:director_id>/movies/<int:movie_id>/reviews", methods=["POST"])
    @login_required
    def create_review(caller, director_id, movie_id):
        review = reviews.create_review(caller, director_id, movie_id, payload().get("text"))
        return jsonify(review), 201

    @app.route("/reviews/<int:review_id>", methods=["DELETE"])
    @login_required
    def delete_review(caller, review_id):
        reviews.delete_review(caller, review_id)
        return jsonify({"ok": True})

    @app.route("/reviews/<int:review_id>/like", methods=["POST"])
    @login_required
    def like_review(caller, review_id):
        return jsonify(reviews.like_review(caller, review_id))

    @app.route("/reviews/<int:review_id>/dislike", methods=["POST"])
    @login_required
    def dislike_review(caller, review_id):
        return jsonify(reviews.dislike_review(caller, review_id))

    # ---------------- CLI ----------------
    @app.cli.command("create-admin")
    @click.argument("username")
    @click.argument("email")
    @click.password_option()
    def create_admin(username, email, password):
        """Create an administrator account."""
        admin = users.register_user(
            {"username": username, "email": email, "password": password}, role=Role.ADMIN
        )
        click.echo(f"Created admin {admin['username']} (id {admin['id']})")

    # ---------------- UPLOADED PICTURES ----------------
    @app.route("/uploads/<path:filename>")
    def uploaded_picture(filename):
        return send_from_directory(app.config["UPLOAD_FOLDER"], filename)

    return app


# python -m moviepedia.app, or: flask --app moviepedia run
if __name__ == "__main__":
    app = create_app()
    app.run(debug=(os.getenv("FLASK_ENV") == "development"))
