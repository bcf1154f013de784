# moviepedia/errors.py
"""Exception taxonomy shared by the services and the HTTP layer.

Every error carries the HTTP status the API answers with and a short
machine-readable code. Services raise them; ``create_app`` registers a
single handler that turns them into JSON responses.
"""


class MoviePediaError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message=None):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self):
        return {"error": self.code, "message": self.message}


# ---------------- NOT FOUND ----------------
class NotFound(MoviePediaError):
    status_code = 404
    code = "not_found"


class DirectorNotFound(NotFound):
    code = "director_not_found"


class MovieNotFound(NotFound):
    code = "movie_not_found"


class ActorNotFound(NotFound):
    code = "actor_not_found"


class UserNotFound(NotFound):
    code = "user_not_found"


class ReviewNotFound(NotFound):
    code = "review_not_found"


class RatingNotFound(NotFound):
    code = "rating_not_found"


class RefreshTokenNotFound(NotFound):
    code = "refresh_token_not_found"


# ---------------- VALIDATION ----------------
class ValidationError(MoviePediaError):
    status_code = 400
    code = "validation_error"


class InvalidCriteriaField(ValidationError):
    code = "invalid_criteria_field"


class InvalidCriteriaOperation(ValidationError):
    code = "invalid_criteria_operation"


class InvalidRating(ValidationError):
    code = "invalid_rating"


# ---------------- CONFLICT / INTEGRITY ----------------
class Conflict(MoviePediaError):
    status_code = 409
    code = "conflict"


class InconsistentState(MoviePediaError):
    """A stored aggregate is missing something it must always have."""

    status_code = 500
    code = "inconsistent_state"


# ---------------- AUTH ----------------
class AuthFailure(MoviePediaError):
    status_code = 401
    code = "auth_failure"


class InvalidToken(AuthFailure):
    code = "invalid_token"


class TokenExpired(AuthFailure):
    code = "token_expired"


class RefreshTokenExpired(AuthFailure):
    code = "refresh_token_expired"


class InvalidCredentials(AuthFailure):
    code = "invalid_credentials"


class AuthenticationRequired(AuthFailure):
    code = "authentication_required"


class PermissionDenied(AuthFailure):
    status_code = 403
    code = "permission_denied"
