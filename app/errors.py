"""
Typed domain errors.

Services raise these at the point a rule is violated; the exception
handler registered in ``app.main`` turns them into JSON responses.
Store failures are wrapped with a context string via ``wrap_errors`` so
callers only ever see an ``AppError``.
"""
import uuid
from contextlib import asynccontextmanager

from sqlalchemy.exc import IntegrityError, NoResultFound, SQLAlchemyError


class AppError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, code: str | None = None) -> None:
        self.message = message or self.message
        self.code = code or self.code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Resource not found"


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    message = "Unauthorized access"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    message = "Access forbidden"


class BadRequestError(AppError):
    status_code = 400
    code = "BAD_REQUEST"
    message = "Bad request"


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    message = "Validation failed"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    message = "Resource already exists"


class InternalError(AppError):
    pass


def parse_id(value, error: AppError | None = None) -> uuid.UUID:
    """
    Return *value* as a ``uuid.UUID``.

    Raises *error* (``BadRequestError`` by default) when the value is not
    a well-formed identifier.
    """
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise error or BadRequestError() from None


@asynccontextmanager
async def wrap_errors(context: str):
    """
    Translate store failures raised inside the block.

    ``AppError`` passes through untouched, ``NoResultFound`` becomes
    ``NotFoundError``, a unique or foreign-key violation becomes
    ``ConflictError`` and any other SQLAlchemy error becomes an
    ``InternalError`` whose message is prefixed with *context*.
    """
    try:
        yield
    except AppError:
        raise
    except NoResultFound as exc:
        raise NotFoundError() from exc
    except IntegrityError as exc:
        raise ConflictError(f"{context}: conflicting write") from exc
    except SQLAlchemyError as exc:
        raise InternalError(f"{context}: {exc}") from exc
