"""
Planificateur APScheduler pour les tâches de maintenance de l'API.

- Purge des jetons révoqués expirés (toutes les TOKEN_REVOCATION_SWEEP_MINUTES)
- Suppression des documents orphelins (toutes les ORPHAN_SWEEP_MINUTES)
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import settings
from app.database import DocumentSessionLocal, SessionLocal
from app.services.token_revocation import TokenRevocationCache

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


# Borne basse de la fenêtre du prochain balayage (None : premier balayage complet)
_orphan_sweep_since: Optional[datetime] = None


def _purge_revoked_tokens(revocation_cache: TokenRevocationCache) -> None:
    """Tâche planifiée : évince les jetons dont l'expiration est passée."""
    try:
        revocation_cache.purge_expired()
    except Exception as exc:
        logger.error("Erreur lors de la purge des jetons révoqués : %s", exc, exc_info=True)


def _sweep_orphan_documents() -> None:
    """
    Tâche planifiée : supprime les documents sans référence plus vieux que le délai de grâce.
    Après un balayage réussi, le suivant ne reprend que les documents créés depuis
    (avec un recouvrement d'un délai de grâce). Un échec conserve l'ancienne fenêtre.
    Import local pour éviter les imports circulaires.
    """
    global _orphan_sweep_since
    from app.services.document_store import DocumentStore
    from app.services.reconciliation_service import sweep_orphan_documents
    from app.services.reference_store import ReferenceStore

    grace = timedelta(minutes=settings.ORPHAN_GRACE_MINUTES)
    now = datetime.now()
    db = SessionLocal()
    document_db = DocumentSessionLocal()
    try:
        sweep_orphan_documents(
            ReferenceStore(db),
            DocumentStore(document_db),
            grace=grace,
            now=now,
            since=_orphan_sweep_since,
            batch_size=settings.ORPHAN_SWEEP_BATCH_SIZE,
        )
        _orphan_sweep_since = now - 2 * grace
    except Exception as exc:
        logger.error("Erreur lors de la réconciliation des documents : %s", exc, exc_info=True)
    finally:
        document_db.close()
        db.close()


def start_scheduler(revocation_cache: TokenRevocationCache) -> None:
    """Démarre le planificateur en arrière-plan (appelé au démarrage de l'API)."""
    scheduler.add_job(
        _purge_revoked_tokens,
        trigger="interval",
        minutes=settings.TOKEN_REVOCATION_SWEEP_MINUTES,
        args=[revocation_cache],
        id="revoked_tokens_purge",
        replace_existing=True,
    )
    scheduler.add_job(
        _sweep_orphan_documents,
        trigger="interval",
        minutes=settings.ORPHAN_SWEEP_MINUTES,
        id="orphan_documents_sweep",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        "Scheduler démarré : purge des jetons toutes les %d min, réconciliation toutes les %d min.",
        settings.TOKEN_REVOCATION_SWEEP_MINUTES,
        settings.ORPHAN_SWEEP_MINUTES,
    )


def stop_scheduler() -> None:
    """Arrête le planificateur proprement (appelé à l'arrêt de l'API)."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler arrêté.")
