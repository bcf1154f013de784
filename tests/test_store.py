import os
from datetime import timedelta

import pytest

from moviepedia import auth, movies
from moviepedia.errors import Conflict
from moviepedia.models import Movie, Rating, RefreshToken, User, db, utcnow
from moviepedia.storage import ImageStore
from moviepedia.store import atomic


# ---------------- TRANSACTIONS ----------------
def test_duplicate_rating_row_is_a_conflict(director, make_movie, make_user):
    movie = make_movie()
    alice = make_user()
    movies.rate_movie(alice, director["id"], movie["id"], 7)

    with pytest.raises(Conflict):
        with atomic():
            db.session.add(Rating(rating=3, user_id=alice.user_id, movie_id=movie["id"]))

    # rolled back, session still usable
    assert [r.rating for r in Rating.query.all()] == [7]
    entity = db.session.get(Movie, movie["id"])
    assert (entity.total_rating, entity.total_votes) == (7, 1)
    movies.rate_movie(alice, director["id"], movie["id"], 9)
    assert db.session.get(Movie, movie["id"]).total_rating == 9


def test_second_refresh_token_for_a_user_is_a_conflict(make_user):
    alice = make_user()
    with atomic():
        first = auth.create_refresh_token(db.session.get(User, alice.user_id))
    token = first.token

    with pytest.raises(Conflict):
        with atomic():
            db.session.add(
                RefreshToken(token="another", expiration_date=utcnow() + timedelta(hours=1), user_id=alice.user_id)
            )

    assert RefreshToken.query.count() == 1
    assert auth.find_refresh_token(token).user_id == alice.user_id


def test_other_errors_roll_back_and_propagate(make_user):
    alice = make_user()
    with pytest.raises(RuntimeError):
        with atomic():
            db.session.get(User, alice.user_id).username = "renamed"
            raise RuntimeError("boom")
    assert db.session.get(User, alice.user_id).username != "renamed"


# ---------------- PICTURES ----------------
def test_delete_file_removes_only_the_linked_picture(make_movie, upload_dir):
    gone = make_movie("Memento", 2000)
    kept = make_movie("Inception", 2010)

    ImageStore(upload_dir).delete_file(gone["picture"])

    assert sorted(os.listdir(upload_dir)) == [os.path.basename(kept["picture"])]


def test_delete_file_ignores_missing_files(app, upload_dir):
    store = ImageStore(upload_dir)
    store.delete_file("/uploads/0123456789abcdef.png")
    store.delete_file(None)
