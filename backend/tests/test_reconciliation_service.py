"""
Tests de la réconciliation des documents orphelins et des tâches planifiées.
"""

import uuid
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

from app.services.reconciliation_service import sweep_orphan_documents
from fakes import FakeDocumentStore, FakeReferenceStore

NOW = datetime(2024, 3, 1, 12, 0, 0)
GRACE = timedelta(minutes=30)


def test_orphelin_ancien_supprime():
    """Document écrit mais jamais référencé (création interrompue) → supprimé après le délai de grâce."""
    references, documents = FakeReferenceStore(), FakeDocumentStore()
    orphan = documents.insert(uuid.uuid4(), {"achievement_type": "competition", "title": "Orphelin"})
    kept = documents.insert(uuid.uuid4(), {"achievement_type": "competition", "title": "Référencé"})
    references.insert(uuid.uuid4(), kept)

    deleted = sweep_orphan_documents(references, documents, GRACE, now=NOW)

    assert deleted == 1
    assert orphan not in documents.documents
    assert kept in documents.documents


def test_orphelin_recent_conserve():
    """Un document plus récent que le délai de grâce peut appartenir à une création en cours."""
    references, documents = FakeReferenceStore(), FakeDocumentStore()
    recent = documents.insert(uuid.uuid4(), {"achievement_type": "competition", "title": "En cours"})

    deleted = sweep_orphan_documents(references, documents, GRACE, now=datetime(2024, 3, 1, 9, 10))

    assert deleted == 0
    assert recent in documents.documents


def test_aucun_candidat():
    references, documents = MagicMock(), MagicMock()
    documents.ids_created_before.return_value = []

    assert sweep_orphan_documents(references, documents, GRACE, now=NOW) == 0
    references.existing_document_refs.assert_not_called()
    documents.delete_many.assert_not_called()


def test_borne_de_grace():
    references, documents = MagicMock(), MagicMock()
    documents.ids_created_before.return_value = []

    sweep_orphan_documents(references, documents, GRACE, now=NOW)

    documents.ids_created_before.assert_called_once_with(NOW - GRACE, since=None, after_id=None, limit=500)


def test_balayage_par_lots():
    """Chaque lot interroge la base relationnelle avec au plus batch_size identifiants."""
    references, documents = FakeReferenceStore(), FakeDocumentStore()
    orphans = [documents.insert(uuid.uuid4(), {"title": f"Orphelin {n}"}) for n in range(5)]
    kept = documents.insert(uuid.uuid4(), {"title": "Référencé"})
    references.insert(uuid.uuid4(), kept)

    sizes = []
    original = references.existing_document_refs

    def recording(refs):
        refs = list(refs)
        sizes.append(len(refs))
        return original(refs)

    references.existing_document_refs = recording

    deleted = sweep_orphan_documents(references, documents, GRACE, now=NOW, batch_size=2)

    assert deleted == 5
    assert all(orphan not in documents.documents for orphan in orphans)
    assert kept in documents.documents
    assert max(sizes) == 2
    assert sum(sizes) == 6
    # 3 lots pleins puis un lot vide
    assert documents.ids_calls == 4


def test_fenetre_depuis_le_balayage_precedent():
    """Avec since, un orphelin plus ancien que la fenêtre n'est pas examiné."""
    references, documents = FakeReferenceStore(), FakeDocumentStore()
    old = documents.insert(uuid.uuid4(), {"title": "Ancien"})
    recent = documents.insert(uuid.uuid4(), {"title": "Récent"})
    since = documents.documents[recent].created_at

    deleted = sweep_orphan_documents(references, documents, GRACE, now=NOW, since=since)

    assert deleted == 1
    assert old in documents.documents
    assert recent not in documents.documents


# ============================================================
# Tâches planifiées
# ============================================================

def test_job_reconciliation_ferme_les_sessions():
    from app.scheduler import _sweep_orphan_documents

    db, document_db = MagicMock(), MagicMock()
    with patch("app.scheduler.SessionLocal", return_value=db), \
         patch("app.scheduler.DocumentSessionLocal", return_value=document_db), \
         patch("app.services.reconciliation_service.sweep_orphan_documents") as mock_sweep:
        _sweep_orphan_documents()

    mock_sweep.assert_called_once()
    db.close.assert_called_once()
    document_db.close.assert_called_once()


def test_job_reconciliation_erreur_journalisee():
    """Une erreur dans le job ne remonte pas au scheduler."""
    from app.scheduler import _sweep_orphan_documents

    db, document_db = MagicMock(), MagicMock()
    with patch("app.scheduler.SessionLocal", return_value=db), \
         patch("app.scheduler.DocumentSessionLocal", return_value=document_db), \
         patch("app.services.reconciliation_service.sweep_orphan_documents", side_effect=RuntimeError("boom")):
        _sweep_orphan_documents()

    db.close.assert_called_once()


def test_job_reconciliation_fenetre_glissante():
    """Premier balayage complet ; le suivant repart de la fenêtre précédente ; un échec ne l'avance pas."""
    import app.scheduler as scheduler_module

    with patch("app.scheduler.SessionLocal", return_value=MagicMock()), \
         patch("app.scheduler.DocumentSessionLocal", return_value=MagicMock()), \
         patch("app.scheduler._orphan_sweep_since", None), \
         patch("app.services.reconciliation_service.sweep_orphan_documents") as mock_sweep:
        scheduler_module._sweep_orphan_documents()
        assert mock_sweep.call_args.kwargs["since"] is None
        first_window = scheduler_module._orphan_sweep_since
        assert first_window is not None

        scheduler_module._sweep_orphan_documents()
        assert mock_sweep.call_args.kwargs["since"] == first_window
        second_window = scheduler_module._orphan_sweep_since

        mock_sweep.side_effect = RuntimeError("boom")
        scheduler_module._sweep_orphan_documents()
        assert mock_sweep.call_args.kwargs["since"] == second_window
        assert scheduler_module._orphan_sweep_since == second_window


def test_job_purge_des_jetons():
    from app.scheduler import _purge_revoked_tokens

    cache = MagicMock()
    _purge_revoked_tokens(cache)
    cache.purge_expired.assert_called_once()


def test_start_scheduler_enregistre_les_deux_jobs():
    from app.scheduler import start_scheduler

    cache = MagicMock()
    with patch("app.scheduler.scheduler") as mock_scheduler:
        start_scheduler(cache)

    job_ids = {c.kwargs["id"] for c in mock_scheduler.add_job.call_args_list}
    assert job_ids == {"revoked_tokens_purge", "orphan_documents_sweep"}
    mock_scheduler.start.assert_called_once()
