"""
Cache en mémoire de l'historique des statuts, par prestation.

Les lectures retournent une copie : un appelant ne voit jamais les ajouts
postérieurs à sa lecture, et ne peut pas altérer le cache.

Seules les prestations encore ouvertes (draft, submitted) y restent : le service
retire une prestation dès qu'elle atteint un statut terminal, et son historique
est alors relu dans le journal. La taille suit donc le nombre de prestations en cours.
"""

import uuid
from typing import Dict, List

from app.schemas.achievement import StatusHistoryEntry
from app.services.rwlock import ReadWriteLock


class StatusHistoryCache:
    def __init__(self):
        self._history: Dict[uuid.UUID, List[StatusHistoryEntry]] = {}
        self._lock = ReadWriteLock()

    def append(self, entry: StatusHistoryEntry) -> None:
        with self._lock.write():
            self._history.setdefault(entry.achievement_id, []).append(entry)

    def append_if_tracked(self, entry: StatusHistoryEntry) -> bool:
        """
        Ajoute l'entrée seulement si la prestation est déjà suivie.
        Garantit qu'une liste en cache est toujours complète depuis le statut draft.
        """
        with self._lock.write():
            entries = self._history.get(entry.achievement_id)
            if entries is None:
                return False
            entries.append(entry)
            return True

    def is_tracked(self, achievement_id: uuid.UUID) -> bool:
        with self._lock.read():
            return achievement_id in self._history

    def read(self, achievement_id: uuid.UUID) -> List[StatusHistoryEntry]:
        with self._lock.read():
            return list(self._history.get(achievement_id, ()))

    def clear(self, achievement_id: uuid.UUID) -> None:
        with self._lock.write():
            self._history.pop(achievement_id, None)

    def size(self) -> int:
        """Nombre total d'entrées, toutes prestations confondues."""
        with self._lock.read():
            return sum(len(entries) for entries in self._history.values())
