# moviepedia/catalog.py
"""Directors and actors."""
from datetime import date

from flask import current_app

from .errors import ActorNotFound, DirectorNotFound, ValidationError
from .models import Actor, Director, db
from .movies import delete_movie_rows
from .storage import get_image_store
from .store import atomic, get_or_raise


def _apply_person_fields(person, data):
    name = (data.get("name") or "").strip()
    surname = (data.get("surname") or "").strip()
    if not name or not surname:
        raise ValidationError("Name and surname are required")

    born = data.get("date_of_birth")
    if born:
        try:
            born = date.fromisoformat(born)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid date of birth: {born!r}") from None
    else:
        born = None

    person.name = name
    person.surname = surname
    person.date_of_birth = born
    person.biography = data.get("biography")


def _save_person(person, data, picture):
    """Apply fields and an optional new picture in one transaction."""
    store = get_image_store()
    old_image = person.picture if picture is not None else None
    old_link = old_image.link if old_image is not None else None
    new_image = store.save_file(picture) if picture is not None else None
    try:
        with atomic():
            _apply_person_fields(person, data)
            if new_image is not None:
                person.picture = new_image
            if old_image is not None:
                db.session.delete(old_image)
            db.session.add(person)
    except Exception:
        if new_image is not None:
            store.delete_file(new_image.link)
        raise
    if old_image is not None:
        store.delete_file(old_link)
    return person


# ---------------- DIRECTORS ----------------
def get_director_entity(director_id):
    return get_or_raise(Director, director_id, DirectorNotFound, "Director")


def get_all_directors():
    return [d.to_dict() for d in Director.query.order_by(Director.director_id).all()]


def get_director_by_id(director_id):
    return get_director_entity(director_id).to_dict()


def create_director(data, picture=None):
    director = _save_person(Director(), data, picture)
    current_app.logger.info("Created director %s", director.director_id)
    return director.to_dict()


def edit_director(director_id, data, picture=None):
    return _save_person(get_director_entity(director_id), data, picture).to_dict()


def delete_director(director_id):
    """Delete a director together with every movie it made."""
    director = get_director_entity(director_id)
    picture = director.picture
    with atomic():
        links = [delete_movie_rows(movie) for movie in list(director.movies)]
        db.session.delete(director)
        if picture is not None:
            links.append(picture.link)
            db.session.delete(picture)

    store = get_image_store()
    for link in links:
        store.delete_file(link)
    current_app.logger.info("Deleted director %s and %d picture(s)", director_id, len(links))


# ---------------- ACTORS ----------------
def get_actor_entity(actor_id):
    return get_or_raise(Actor, actor_id, ActorNotFound, "Actor")


def get_all_actors():
    return [a.to_dict() for a in Actor.query.order_by(Actor.actor_id).all()]


def get_actor_by_id(actor_id):
    return get_actor_entity(actor_id).to_dict()


def create_actor(data, picture=None):
    actor = _save_person(Actor(), data, picture)
    current_app.logger.info("Created actor %s", actor.actor_id)
    return actor.to_dict()


def edit_actor(actor_id, data, picture=None):
    return _save_person(get_actor_entity(actor_id), data, picture).to_dict()


def delete_actor(actor_id):
    actor = get_actor_entity(actor_id)
    picture = actor.picture
    picture_link = picture.link if picture is not None else None
    with atomic():
        for movie in list(actor.movies):
            actor.movies.discard(movie)
            movie.actors.discard(actor)
        db.session.delete(actor)
        if picture is not None:
            db.session.delete(picture)
    if picture is not None:
        get_image_store().delete_file(picture_link)
    current_app.logger.info("Deleted actor %s", actor_id)
