"""
Cache des jetons révoqués (logout).

Associe un jeton à sa date d'expiration. Un jeton révoqué mais expiré est traité
comme inconnu : il serait de toute façon refusé par la vérification d'expiration.
La purge périodique est planifiée par app.scheduler.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from app.services.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenRevocationCache:
    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._entries: Dict[str, datetime] = {}
        self._lock = ReadWriteLock()
        self._clock = clock or _utcnow

    def add(self, token: str, expires_at: datetime) -> None:
        """Révoque un jeton jusqu'à expires_at (écrase une entrée existante)."""
        with self._lock.write():
            self._entries[token] = expires_at

    def is_revoked(self, token: str) -> bool:
        """
        True uniquement si le jeton est présent ET pas encore expiré.
        Une entrée expirée est évincée au passage et rapportée comme non révoquée.
        """
        with self._lock.read():
            expires_at = self._entries.get(token)
        if expires_at is None:
            return False

        if self._clock() < expires_at:
            return True

        with self._lock.write():
            # Une autre requête a pu ré-ajouter le jeton entre-temps
            current = self._entries.get(token)
            if current is not None and self._clock() >= current:
                del self._entries[token]
        return False

    def purge_expired(self) -> int:
        """Supprime toutes les entrées expirées. Retourne le nombre d'entrées supprimées."""
        now = self._clock()
        with self._lock.write():
            expired = [token for token, expires_at in self._entries.items() if now >= expires_at]
            for token in expired:
                del self._entries[token]
        if expired:
            logger.info("Purge des jetons révoqués : %d entrée(s) expirée(s) supprimée(s)", len(expired))
        return len(expired)

    def size(self) -> int:
        with self._lock.read():
            return len(self._entries)
