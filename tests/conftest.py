import io

import pytest
from werkzeug.datastructures import FileStorage

from moviepedia import create_app
from moviepedia import catalog, movies, users
from moviepedia.auth import Caller
from moviepedia.models import Role, db


def picture(name="poster.png"):
    return FileStorage(stream=io.BytesIO(b"\x89PNG not really"), filename=name, content_type="image/png")


@pytest.fixture
def app(tmp_path):
    app = create_app(
        SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
        UPLOAD_FOLDER=str(tmp_path / "uploads"),
        JWT_SECRET_KEY="test-secret",
        TESTING=True,
    )
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def upload_dir(app):
    return app.config["UPLOAD_FOLDER"]


@pytest.fixture
def director(app):
    return catalog.create_director({"name": "Christopher", "surname": "Nolan", "date_of_birth": "1970-07-30"})


@pytest.fixture
def make_movie(director):
    def _make(title="Movie", year=2000, synopsis=None, director_id=None):
        return movies.create_movie(
            director_id or director["id"],
            {"title": title, "year": year, "synopsis": synopsis},
            picture(),
        )
    return _make


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(role=Role.USER):
        counter["n"] += 1
        n = counter["n"]
        data = users.register_user(
            {"username": f"user{n}", "email": f"user{n}@example.com", "password": "pw"}, role=role
        )
        return Caller(user_id=data["id"], role=Role(data["role"]))
    return _make


@pytest.fixture
def anonymous():
    return Caller.anonymous()
