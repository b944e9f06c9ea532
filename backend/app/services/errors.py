"""
Erreurs métier du cycle de vie des prestations.

Chaque type porte le code HTTP vers lequel les routers le traduisent.
NotFound / Unauthorized / InvalidState / ValidationFailed sont des issues normales
destinées à l'utilisateur ; StoreFailure signale une erreur d'E/S non classifiée.
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class AchievementError(Exception):
    status_code = 500


class NotFoundError(AchievementError):
    status_code = 404


class UnauthorizedError(AchievementError):
    status_code = 403


class InvalidStateError(AchievementError):
    status_code = 400


class ValidationFailedError(AchievementError):
    status_code = 400


class StoreFailureError(AchievementError):
    status_code = 500


@contextmanager
def store_errors(db, action: str):
    """
    Traduit une erreur SQLAlchemy en StoreFailureError après rollback de la session.
    Aucune nouvelle tentative : la politique de retry appartient à l'appelant.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Échec de stockage (%s) : %s", action, exc)
        raise StoreFailureError(f"Erreur de stockage : {action}.") from exc
