# moviepedia/criteria.py
"""Translate search criteria into a single SQLAlchemy predicate over ``Movie``.

A criterion is ``(field, operation, value)``. Every criterion becomes one
atomic clause; the clauses are folded with AND (``DataOption.ALL``) or
OR (``DataOption.ANY``). No criteria means "every movie".

Fields and the operations they accept:

    title, synopsis   text    eq ne cn nc bw ew in nu nn  (case insensitive)
    year, votes       number  eq ne gt ge lt le in nu nn
    rating            number  eq ne gt ge lt le in
    director          id      eq ne in
    actor             set     eq ne in nu nn
"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from sqlalchemy import and_, false, func, not_, or_, true

from .errors import InvalidCriteriaField, InvalidCriteriaOperation
from .models import Actor, Movie


class DataOption(str, Enum):
    ALL = "all"
    ANY = "any"

    @classmethod
    def parse(cls, raw):
        if raw is None:
            return cls.ALL
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).lower())
        except ValueError:
            raise InvalidCriteriaOperation(f"Unknown data option: {raw!r}") from None


@dataclass
class SearchCriterion:
    field: str
    operation: str
    value: Any = None

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise InvalidCriteriaOperation("Each search criterion must be an object")
        field = data.get("field", data.get("filterKey"))
        return cls(field=field, operation=str(data.get("operation", "")).lower(), value=data.get("value"))


TEXT_OPS = {"eq", "ne", "cn", "nc", "bw", "ew", "in", "nu", "nn"}
NUMBER_OPS = {"eq", "ne", "gt", "ge", "lt", "le", "in", "nu", "nn"}
ID_OPS = {"eq", "ne", "in"}
SET_OPS = {"eq", "ne", "in", "nu", "nn"}

# field name -> (kind, column, python type, accepted operations)
FIELDS = {
    "title": ("text", Movie.title, str, TEXT_OPS),
    "synopsis": ("text", Movie.synopsis, str, TEXT_OPS),
    "year": ("number", Movie.year, int, NUMBER_OPS),
    "votes": ("number", Movie.total_votes, int, NUMBER_OPS - {"nu", "nn"}),
    "rating": ("number", Movie.rating, float, NUMBER_OPS - {"nu", "nn"}),
    "director": ("id", Movie.director_id, int, ID_OPS),
    "actor": ("set", None, int, SET_OPS),
}

# year descending, ties by id ascending so pages are stable
MOVIE_ORDERING = (Movie.year.desc(), Movie.movie_id.asc())


def _coerce(value, python_type, field):
    if isinstance(value, bool):
        raise InvalidCriteriaOperation(f"Invalid value for '{field}': {value!r}")
    # 2000.7 must not match year 2000
    if python_type is int and isinstance(value, float) and not value.is_integer():
        raise InvalidCriteriaOperation(f"Invalid value for '{field}': {value!r}")
    try:
        coerced = python_type(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidCriteriaOperation(f"Invalid value for '{field}': {value!r}") from None
    if python_type is float and not math.isfinite(coerced):
        raise InvalidCriteriaOperation(f"Invalid value for '{field}': {value!r}")
    return coerced


def _coerce_list(value, python_type, field):
    if not isinstance(value, (list, tuple, set)):
        raise InvalidCriteriaOperation(f"Operation 'in' on '{field}' expects a list value")
    return [_coerce(v, python_type, field) for v in value]


def _text_clause(column, op, value, field):
    if op == "in":
        values = [v.lower() for v in _coerce_list(value, str, field)]
        return func.lower(column).in_(values) if values else false()

    value = _coerce(value, str, field)
    if op == "eq":
        return func.lower(column) == value.lower()
    if op == "ne":
        return func.lower(column) != value.lower()
    if op == "cn":
        return column.icontains(value, autoescape=True)
    if op == "nc":
        return not_(column.icontains(value, autoescape=True))
    if op == "bw":
        return column.istartswith(value, autoescape=True)
    return column.iendswith(value, autoescape=True)


def _number_clause(column, op, value, python_type, field):
    if op == "in":
        values = _coerce_list(value, python_type, field)
        return column.in_(values) if values else false()

    value = _coerce(value, python_type, field)
    if op == "eq":
        return column == value
    if op == "ne":
        return column != value
    if op == "gt":
        return column > value
    if op == "ge":
        return column >= value
    if op == "lt":
        return column < value
    return column <= value


def _actor_clause(op, value, field):
    if op == "nu":
        return not_(Movie.actors.any())
    if op == "nn":
        return Movie.actors.any()
    if op == "in":
        ids = _coerce_list(value, int, field)
        return Movie.actors.any(Actor.actor_id.in_(ids)) if ids else false()

    actor_id = _coerce(value, int, field)
    if op == "eq":
        return Movie.actors.any(Actor.actor_id == actor_id)
    return not_(Movie.actors.any(Actor.actor_id == actor_id))


def criterion_to_clause(criterion):
    """Build the atomic clause for one criterion."""
    field = criterion.field
    if not isinstance(field, str) or field not in FIELDS:
        raise InvalidCriteriaField(f"Unknown search field: {field!r}")

    kind, column, python_type, allowed_ops = FIELDS[field]
    op = criterion.operation
    if not isinstance(op, str) or op.lower() not in allowed_ops:
        raise InvalidCriteriaOperation(f"Operation {op!r} is not supported on field '{field}'")
    op = op.lower()

    if kind == "set":
        return _actor_clause(op, criterion.value, field)
    if op == "nu":
        return column.is_(None)
    if op == "nn":
        return column.is_not(None)
    if kind == "text":
        return _text_clause(column, op, criterion.value, field)
    return _number_clause(column, op, criterion.value, python_type, field)


def build_predicate(criteria: Optional[List[SearchCriterion]], data_option=DataOption.ALL):
    """Fold all criteria into one predicate; empty input matches everything."""
    clauses = [criterion_to_clause(c) for c in (criteria or [])]
    if not clauses:
        return true()
    if DataOption.parse(data_option) is DataOption.ANY:
        return or_(*clauses)
    return and_(*clauses)


def search_query(criteria, data_option=DataOption.ALL):
    """Movie query filtered by ``criteria`` in the fixed search ordering."""
    return Movie.query.filter(build_predicate(criteria, data_option)).order_by(*MOVIE_ORDERING)
