"""
Réconciliation des documents orphelins.

La création écrit le document avant la référence, sans transaction commune :
un échec entre les deux laisse un document que plus aucune référence ne désigne.
Ce balayage supprime ces documents une fois passé un délai de grâce, pour ne pas
toucher une création encore en cours.

Les candidats sont parcourus par lots (pagination par identifiant) : ni la liste
des identifiants ni la clause IN envoyée à la base relationnelle ne dépendent de
la taille totale de la base documentaire. Avec since, seuls les documents créés
depuis le balayage précédent sont examinés.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from app.services.document_store import DocumentStore
from app.services.reference_store import ReferenceStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500


def sweep_orphan_documents(
    references: ReferenceStore,
    documents: DocumentStore,
    grace: timedelta,
    now: datetime = None,
    since: Optional[datetime] = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> int:
    """Supprime les documents plus anciens que le délai de grâce et non référencés. Retourne le nombre supprimé."""
    cutoff = (now or datetime.now()) - grace
    deleted = 0
    after_id = None

    while True:
        candidates = documents.ids_created_before(cutoff, since=since, after_id=after_id, limit=batch_size)
        if not candidates:
            break

        referenced = references.existing_document_refs(candidates)
        orphans = [doc_id for doc_id in candidates if doc_id not in referenced]
        if orphans:
            deleted += documents.delete_many(orphans)

        if len(candidates) < batch_size:
            break
        after_id = candidates[-1]

    if deleted:
        logger.info("Réconciliation : %d document(s) orphelin(s) supprimé(s)", deleted)
    return deleted
