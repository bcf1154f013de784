import os

import pytest
from sqlalchemy import func, select

from conftest import picture
from moviepedia import catalog, movies, reviews, users
from moviepedia.errors import (
    ActorNotFound,
    AuthenticationRequired,
    DirectorNotFound,
    InconsistentState,
    InvalidRating,
    MovieNotFound,
    NotFound,
    PermissionDenied,
    RatingNotFound,
    ValidationError,
)
from moviepedia.models import Actor, Movie, Rating, User, db, movie_actors, watched_movies, watchlists


def count_rows(table):
    return db.session.execute(select(func.count()).select_from(table)).scalar()


def stored_files(upload_dir):
    return sorted(os.listdir(upload_dir)) if os.path.isdir(upload_dir) else []


# ---------------- CREATE / EDIT ----------------
def test_create_movie_starts_with_empty_aggregate(make_movie, upload_dir):
    movie = make_movie("Memento", 2000)
    assert movie["rating"] == 0
    assert movie["total_votes"] == 0
    assert movie["actor_ids"] == []
    assert movie["picture"].startswith("/uploads/")
    assert len(stored_files(upload_dir)) == 1


def test_create_movie_needs_existing_director(app):
    with pytest.raises(DirectorNotFound):
        movies.create_movie(999, {"title": "Ghost"}, picture())


def test_create_movie_needs_picture(director):
    with pytest.raises(ValidationError):
        movies.create_movie(director["id"], {"title": "No poster"}, None)


def test_failed_create_removes_stored_picture(director, upload_dir):
    with pytest.raises(ValidationError):
        movies.create_movie(director["id"], {"title": ""}, picture())
    assert stored_files(upload_dir) == []
    assert Movie.query.count() == 0


def test_edit_under_wrong_director_is_not_found(director, make_movie):
    movie = make_movie("Memento", 2000)
    other = catalog.create_director({"name": "Greta", "surname": "Gerwig"})

    with pytest.raises(NotFound):
        movies.edit_movie(other["id"], movie["id"], {"title": "Stolen"}, picture())
    assert db.session.get(Movie, movie["id"]).title == "Memento"


def test_edit_keeps_ratings_and_actors_and_replaces_picture(director, make_movie, make_user, upload_dir):
    movie = make_movie("Memento", 2000)
    actor = catalog.create_actor({"name": "Guy", "surname": "Pearce"})
    movies.set_movie_actors(director["id"], movie["id"], [actor["id"]])
    movies.rate_movie(make_user(), director["id"], movie["id"], 9)

    edited = movies.edit_movie(director["id"], movie["id"], {"title": "Memento (2000)", "year": "2001"}, picture("new.jpg"))

    assert edited["title"] == "Memento (2000)"
    assert edited["year"] == 2001
    assert edited["rating"] == 9
    assert edited["total_votes"] == 1
    assert edited["actor_ids"] == [actor["id"]]
    assert edited["picture"] != movie["picture"]
    assert stored_files(upload_dir) == [os.path.basename(edited["picture"])]


def test_missing_picture_record_is_an_inconsistent_state(director, make_movie):
    movie = make_movie("Memento", 2000)
    entity = db.session.get(Movie, movie["id"])
    entity.poster = None
    db.session.commit()

    with pytest.raises(InconsistentState):
        movies.get_movie(None, director["id"], movie["id"])


# ---------------- ACTORS ----------------
def test_set_actors_replaces_the_whole_set(director, make_movie):
    movie = make_movie()
    a, b, c = (catalog.create_actor({"name": n, "surname": "X"}) for n in "ABC")

    movies.set_movie_actors(director["id"], movie["id"], [a["id"], b["id"]])
    result = movies.set_movie_actors(director["id"], movie["id"], [b["id"], c["id"]])

    assert result["actor_ids"] == sorted([b["id"], c["id"]])
    assert db.session.get(Actor, a["id"]).movies == set()
    assert {m.movie_id for m in db.session.get(Actor, c["id"]).movies} == {movie["id"]}


def test_set_actors_none_clears(director, make_movie):
    movie = make_movie()
    a = catalog.create_actor({"name": "A", "surname": "X"})
    movies.set_movie_actors(director["id"], movie["id"], [a["id"]])

    result = movies.set_movie_actors(director["id"], movie["id"], None)

    assert result["actor_ids"] == []
    assert count_rows(movie_actors) == 0


def test_set_actors_with_unknown_actor_changes_nothing(director, make_movie):
    movie = make_movie()
    a = catalog.create_actor({"name": "A", "surname": "X"})
    movies.set_movie_actors(director["id"], movie["id"], [a["id"]])

    with pytest.raises(ActorNotFound):
        movies.set_movie_actors(director["id"], movie["id"], [a["id"], 4242])
    assert movies.get_movie(None, director["id"], movie["id"])["actor_ids"] == [a["id"]]


# ---------------- DELETE ----------------
def test_delete_leaves_no_dangling_references(director, make_movie, make_user, upload_dir):
    movie = make_movie("Memento", 2000)
    keep = make_movie("Inception", 2010)
    actor = catalog.create_actor({"name": "Guy", "surname": "Pearce"})
    movies.set_movie_actors(director["id"], movie["id"], [actor["id"]])
    movies.set_movie_actors(director["id"], keep["id"], [actor["id"]])
    alice, bob = make_user(), make_user()
    movies.add_movie_to_watchlist(alice, director["id"], movie["id"])
    movies.add_movie_to_watched_movies(bob, director["id"], movie["id"])
    movies.rate_movie(alice, director["id"], movie["id"], 7)
    reviews.create_review(bob, director["id"], movie["id"], "Backwards and brilliant")

    movies.delete_movie(director["id"], movie["id"])

    assert db.session.get(Movie, movie["id"]) is None
    assert {m.movie_id for m in db.session.get(Actor, actor["id"]).movies} == {keep["id"]}
    assert db.session.get(User, alice.user_id).watchlist == set()
    assert db.session.get(User, bob.user_id).watched_movies == set()
    assert count_rows(watchlists) == 0
    assert count_rows(watched_movies) == 0
    assert Rating.query.count() == 0
    assert stored_files(upload_dir) == [os.path.basename(keep["picture"])]


def test_delete_under_wrong_director_is_not_found(director, make_movie):
    movie = make_movie()
    other = catalog.create_director({"name": "Greta", "surname": "Gerwig"})
    with pytest.raises(MovieNotFound):
        movies.delete_movie(other["id"], movie["id"])
    assert db.session.get(Movie, movie["id"]) is not None


def test_delete_director_deletes_its_movies(director, make_movie, make_user):
    movie = make_movie()
    user = make_user()
    movies.add_movie_to_watchlist(user, director["id"], movie["id"])

    catalog.delete_director(director["id"])

    assert Movie.query.count() == 0
    assert count_rows(watchlists) == 0


def test_delete_actor_detaches_it_from_movies(director, make_movie):
    movie = make_movie()
    actor = catalog.create_actor({"name": "A", "surname": "X"})
    movies.set_movie_actors(director["id"], movie["id"], [actor["id"]])

    catalog.delete_actor(actor["id"])

    assert movies.get_movie(None, director["id"], movie["id"])["actor_ids"] == []


# ---------------- RATINGS ----------------
def test_resubmitted_rating_replaces_the_old_one(director, make_movie, make_user):
    movie = make_movie()
    alice = make_user()

    movies.rate_movie(alice, director["id"], movie["id"], 8)
    result = movies.rate_movie(alice, director["id"], movie["id"], 5)

    entity = db.session.get(Movie, movie["id"])
    assert (entity.total_rating, entity.total_votes, entity.rating) == (5, 1, 5.0)
    assert result["user_rating_for_movie"] == 5
    assert Rating.query.count() == 1


def test_rerating_with_loaded_collections(director, make_movie, make_user):
    movie = make_movie()
    alice = make_user()
    movies.rate_movie(alice, director["id"], movie["id"], 8)

    # both sides of the relationship already in memory
    assert len(db.session.get(Movie, movie["id"]).ratings) == 1
    assert len(db.session.get(User, alice.user_id).ratings) == 1

    movies.rate_movie(alice, director["id"], movie["id"], 3)
    movies.rate_movie(alice, director["id"], movie["id"], 6)

    entity = db.session.get(Movie, movie["id"])
    assert (entity.total_rating, entity.total_votes, entity.rating) == (6, 1, 6.0)
    assert [r.rating for r in db.session.get(User, alice.user_id).ratings] == [6]


def test_deleting_a_user_after_rerating(director, make_movie, make_user):
    movie = make_movie()
    alice, bob = make_user(), make_user()
    movies.rate_movie(alice, director["id"], movie["id"], 8)
    movies.rate_movie(alice, director["id"], movie["id"], 2)
    movies.rate_movie(bob, director["id"], movie["id"], 4)

    users.delete_user(alice, alice.user_id)

    entity = db.session.get(Movie, movie["id"])
    assert (entity.total_rating, entity.total_votes, entity.rating) == (4, 1, 4.0)
    assert Rating.query.count() == 1


def test_average_over_current_ratings(director, make_movie, make_user):
    movie = make_movie()
    alice, bob, carol = make_user(), make_user(), make_user()

    movies.rate_movie(alice, director["id"], movie["id"], 10)
    movies.rate_movie(bob, director["id"], movie["id"], 4)
    movies.rate_movie(carol, director["id"], movie["id"], 7)
    movies.rate_movie(bob, director["id"], movie["id"], 1)

    entity = db.session.get(Movie, movie["id"])
    assert entity.total_votes == 3
    assert entity.total_rating == 18
    assert entity.rating == pytest.approx(6.0)


@pytest.mark.parametrize("value", [0, 11, -3, "ten", None, 7.5, True])
def test_out_of_range_rating_is_rejected(director, make_movie, make_user, value):
    movie = make_movie()
    with pytest.raises(InvalidRating):
        movies.rate_movie(make_user(), director["id"], movie["id"], value)
    assert db.session.get(Movie, movie["id"]).total_votes == 0


def test_rating_requires_a_user(director, make_movie, anonymous):
    movie = make_movie()
    with pytest.raises(AuthenticationRequired):
        movies.rate_movie(anonymous, director["id"], movie["id"], 5)


def test_reading_another_users_rating(director, make_movie, make_user):
    movie = make_movie()
    alice, bob = make_user(), make_user()
    movies.rate_movie(alice, director["id"], movie["id"], 6)

    assert movies.get_rating_by_user_and_movie(alice, alice.user_id, movie["id"]) == 6
    with pytest.raises(PermissionDenied):
        movies.get_rating_by_user_and_movie(bob, alice.user_id, movie["id"])
    with pytest.raises(RatingNotFound):
        movies.get_rating_by_user_and_movie(bob, bob.user_id, movie["id"])


# ---------------- WATCHLIST / WATCHED ----------------
def test_watchlist_add_is_idempotent(director, make_movie, make_user):
    movie = make_movie()
    alice = make_user()

    movies.add_movie_to_watchlist(alice, director["id"], movie["id"])
    movies.add_movie_to_watchlist(alice, director["id"], movie["id"])

    assert [m["id"] for m in movies.get_watchlist(alice)] == [movie["id"]]
    assert count_rows(watchlists) == 1


def test_removing_absent_entries_is_a_noop(director, make_movie, make_user):
    movie = make_movie()
    alice = make_user()
    movies.delete_movie_from_watchlist(alice, director["id"], movie["id"])
    movies.delete_movie_from_watched_movies(alice, director["id"], movie["id"])
    assert movies.get_watchlist(alice) == []
    assert movies.get_watched_movies(alice) == []


def test_watched_list_round_trip(director, make_movie, make_user):
    movie = make_movie()
    alice = make_user()
    movies.add_movie_to_watched_movies(alice, director["id"], movie["id"])
    assert movies.get_watched_movies(alice)[0]["movie_in_user_watched_movies"] is True
    movies.delete_movie_from_watched_movies(alice, director["id"], movie["id"])
    assert movies.get_watched_movies(alice) == []


def test_watchlist_needs_a_user(director, make_movie, anonymous):
    movie = make_movie()
    with pytest.raises(AuthenticationRequired):
        movies.add_movie_to_watchlist(anonymous, director["id"], movie["id"])


# ---------------- SEARCH ----------------
def test_search_enriches_rows_only_for_authenticated_callers(director, make_movie, make_user, anonymous):
    old = make_movie("Old", 1990)
    new = make_movie("New", 2020)
    alice = make_user()
    movies.rate_movie(alice, director["id"], old["id"], 9)
    movies.add_movie_to_watchlist(alice, director["id"], new["id"])

    seen_by_alice = movies.search_movies(alice, [], page=0, size=10)["movies"]
    seen_by_anonymous = movies.search_movies(anonymous, [], page=0, size=10)["movies"]

    assert [m["title"] for m in seen_by_alice] == ["New", "Old"]
    assert seen_by_alice[0]["movie_in_user_watchlist"] is True
    assert seen_by_alice[0]["user_rating_for_movie"] == 0
    assert seen_by_alice[1]["user_rating_for_movie"] == 9
    assert seen_by_alice[1]["movie_in_user_watchlist"] is False

    assert [m["user_rating_for_movie"] for m in seen_by_anonymous] == [0, 0]
    assert "movie_in_user_watchlist" not in seen_by_anonymous[0]


def test_search_paginates(make_movie, anonymous):
    for year in range(2001, 2006):
        make_movie(f"Movie {year}", year)

    first = movies.search_movies(anonymous, [], page=0, size=2)
    last = movies.search_movies(anonymous, [], page=2, size=2)

    assert first["total"] == 5
    assert [m["year"] for m in first["movies"]] == [2005, 2004]
    assert [m["year"] for m in last["movies"]] == [2001]


def test_search_accepts_dict_criteria(make_movie, anonymous):
    make_movie("Memento", 2000)
    make_movie("Tenet", 2020)
    result = movies.search_movies(
        anonymous,
        [{"field": "year", "operation": "lt", "value": 2010}, {"field": "title", "operation": "eq", "value": "tenet"}],
        "any",
    )
    assert [m["title"] for m in result["movies"]] == ["Tenet", "Memento"]


@pytest.mark.parametrize("page,size", [(-1, 10), (0, 0), ("x", 10)])
def test_search_rejects_bad_paging(app, anonymous, page, size):
    with pytest.raises(ValidationError):
        movies.search_movies(anonymous, [], page=page, size=size)
