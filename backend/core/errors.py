"""
Stockroom Domain Errors

Flat error taxonomy raised by services and turned into JSON responses by a
single FastAPI exception handler. Messages are user-facing (French).
"""

from contextlib import asynccontextmanager

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


class StockroomError(Exception):
    """Base error carrying a user-facing message and an HTTP status."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(StockroomError):
    status_code = 400


class PermissionDeniedError(StockroomError):
    status_code = 403


class NotFoundError(StockroomError):
    status_code = 404


class ConflictError(StockroomError):
    status_code = 409


class InsufficientStockError(ConflictError):
    pass


class CategoryCycleError(ConflictError):
    def __init__(self, category_id):
        super().__init__("Cycle détecté dans l'arborescence des catégories")
        self.category_id = category_id


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when the IntegrityError comes from a unique constraint (SQLSTATE 23505)."""
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code == "23505":
        return True
    return "UNIQUE constraint failed" in str(orig or exc)


@asynccontextmanager
async def db_errors(db: AsyncSession, action: str, conflict_message: str | None = None):
    """
    Scope for a service write. Rolls back on any failure and maps database
    errors to StockroomError.

    The client sees "Erreur lors de {action}" only; the driver error and SQL
    go to the log. `conflict_message` is used instead when a unique constraint
    is violated.
    """
    try:
        yield
    except StockroomError:
        await db.rollback()
        raise
    except IntegrityError as exc:
        await db.rollback()
        if conflict_message and is_unique_violation(exc):
            logger.info("db.unique_violation", action=action)
            raise ConflictError(conflict_message) from exc
        logger.warning("db.integrity_error", action=action, error=str(exc))
        raise StockroomError(f"Erreur lors de {action}", status_code=400) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("db.error", action=action, error=str(exc))
        raise StockroomError(f"Erreur lors de {action}") from exc
