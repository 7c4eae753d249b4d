"""Commit helpers that turn storage collisions into domain errors."""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from phone_assets.core.exceptions import PersistenceConflict

logger = logging.getLogger(__name__)


def commit_or_conflict(db: Session, message: str = "Concurrent update detected, please retry") -> None:
    """Commit, rolling back and raising PersistenceConflict on lock/uniqueness collisions."""
    try:
        db.commit()
    except StaleDataError as e:
        db.rollback()
        logger.info("Optimistic lock collision: %s", e)
        raise PersistenceConflict(message)
    except IntegrityError as e:
        db.rollback()
        logger.info("Integrity collision: %s", e.orig)
        raise PersistenceConflict(message)
