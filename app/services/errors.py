from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

logger = logging.getLogger(__name__)


class InspectionError(Exception):
    pass


class NotFoundError(InspectionError):
    pass


class ConflictError(InspectionError):
    pass


class ValidationError(InspectionError):
    pass


class PersistenceError(InspectionError):
    pass


class AttachmentError(InspectionError):
    pass


def commit_or_raise(session: Session, *, conflict_message: str | None = None) -> None:
    """Commit, or roll back and raise a service error so nothing is half-applied."""
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        if conflict_message is not None:
            raise ConflictError(conflict_message) from exc
        logger.warning("integrity error on commit: %s", exc.orig)
        raise PersistenceError("failed to save changes") from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.warning("database error on commit: %s", exc)
        raise PersistenceError("failed to save changes") from exc
