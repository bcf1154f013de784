# moviepedia/store.py
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .errors import Conflict
from .models import db


@contextmanager
def atomic():
    """Run the block as one transaction on the request session.

    Commits when the block finishes, rolls back and re-raises otherwise.
    Unique-constraint violations come out as ``Conflict``.
    """
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        current_app.logger.warning("Integrity error, transaction rolled back: %s", e.orig)
        raise Conflict("Operation conflicts with existing data") from e
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error("Database error, transaction rolled back: %s", e)
        raise
    except Exception:
        db.session.rollback()
        raise


def get_or_raise(model, entity_id, error, label=None):
    entity = db.session.get(model, entity_id) if entity_id is not None else None
    if entity is None:
        label = label or model.__name__
        raise error(f"{label} with id: {entity_id} does not exist")
    return entity
