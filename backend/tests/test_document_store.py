"""
Tests unitaires du store documentaire (session SQLAlchemy mockée).
"""

import uuid
from datetime import datetime
from unittest.mock import MagicMock

from app.models.document import AchievementDocument
from app.services.document_store import DocumentStore


# --- Helpers ---

def make_document_mock(attachments=None):
    document = MagicMock()
    document.attachments = attachments if attachments is not None else []
    return document


CONTENT = {
    "achievement_type": "competition",
    "title": "Hackathon",
    "description": None,
    "details": {"competition_level": "national"},
    "tags": ["code"],
    "points": 10.0,
    "custom_fields": {},
}


def test_insert_attribue_un_identifiant():
    db = MagicMock()
    student_id = uuid.uuid4()

    document_id = DocumentStore(db).insert(student_id, CONTENT)

    added = db.add.call_args[0][0]
    assert isinstance(added, AchievementDocument)
    assert added.id == document_id
    assert len(document_id) == 32
    assert added.student_id == student_id
    assert added.attachments == []
    assert added.details == {"competition_level": "national"}
    db.commit.assert_called_once()


def test_insert_valeurs_par_defaut():
    db = MagicMock()

    DocumentStore(db).insert(uuid.uuid4(), {"achievement_type": "publication", "title": "Article"})

    added = db.add.call_args[0][0]
    assert added.details == {}
    assert added.tags == []
    assert added.custom_fields == {}


def test_get_many_sans_identifiants_sans_requete():
    db = MagicMock()

    assert DocumentStore(db).get_many([]) == {}
    db.execute.assert_not_called()


def test_get_many_indexe_par_identifiant():
    db = MagicMock()
    doc_a, doc_b = MagicMock(id="a"), MagicMock(id="b")
    db.execute.return_value.scalars.return_value.all.return_value = [doc_a, doc_b]

    result = DocumentStore(db).get_many(["a", "b", "a"])

    assert result == {"a": doc_a, "b": doc_b}
    db.execute.assert_called_once()


def test_update_remplace_les_champs_fournis():
    db = MagicMock()
    document = make_document_mock(attachments=[{"file_name": "x.pdf"}])
    db.get.return_value = document

    result = DocumentStore(db).update("abc", {"title": "Nouveau", "tags": []})

    assert result is document
    assert document.title == "Nouveau"
    assert document.tags == []
    assert document.attachments == [{"file_name": "x.pdf"}]
    db.commit.assert_called_once()


def test_update_document_inexistant():
    db = MagicMock()
    db.get.return_value = None

    assert DocumentStore(db).update("abc", CONTENT) is None
    db.commit.assert_not_called()


def test_tombstone():
    db = MagicMock()
    document = make_document_mock()
    document.deleted_at = None
    db.get.return_value = document

    assert DocumentStore(db).tombstone("abc") is True
    assert document.deleted_at is not None


def test_tombstone_document_inexistant():
    db = MagicMock()
    db.get.return_value = None

    assert DocumentStore(db).tombstone("abc") is False


def test_append_attachment_nouvelle_liste():
    """La liste est réassignée (et non modifiée en place) pour que la colonne JSON soit persistée."""
    db = MagicMock()
    existing = [{"file_name": "a.pdf"}]
    document = make_document_mock(attachments=existing)
    db.execute.return_value.scalar.return_value = document

    assert DocumentStore(db).append_attachment("abc", {"file_name": "b.pdf"}) is True

    assert document.attachments == [{"file_name": "a.pdf"}, {"file_name": "b.pdf"}]
    assert document.attachments is not existing
    db.commit.assert_called_once()


def test_append_attachment_document_inexistant():
    db = MagicMock()
    db.execute.return_value.scalar.return_value = None

    assert DocumentStore(db).append_attachment("abc", {"file_name": "b.pdf"}) is False
    db.rollback.assert_called_once()


def test_delete_many_vide_sans_requete():
    db = MagicMock()

    assert DocumentStore(db).delete_many([]) == 0
    db.execute.assert_not_called()


def test_delete_many():
    db = MagicMock()
    db.execute.return_value.rowcount = 2

    assert DocumentStore(db).delete_many(["a", "b"]) == 2
    db.commit.assert_called_once()


def test_ids_created_before_lot_borne():
    """Fenêtre [since, cutoff[, reprise après after_id, triée par identifiant, au plus limit lignes."""
    db = MagicMock()
    db.execute.return_value.scalars.return_value.all.return_value = ["a", "b"]

    ids = DocumentStore(db).ids_created_before(
        datetime(2024, 3, 1, 12), since=datetime(2024, 3, 1, 10), after_id="0f", limit=2
    )

    assert ids == ["a", "b"]
    statement = str(db.execute.call_args[0][0])
    assert "achievement_documents.created_at < " in statement
    assert "achievement_documents.created_at >= " in statement
    assert "achievement_documents.id > " in statement
    assert "ORDER BY achievement_documents.id" in statement
    assert "LIMIT" in statement


def test_ids_created_before_sans_borne_basse():
    db = MagicMock()
    db.execute.return_value.scalars.return_value.all.return_value = []

    DocumentStore(db).ids_created_before(datetime(2024, 3, 1, 12))

    statement = str(db.execute.call_args[0][0])
    assert "created_at >= " not in statement
    assert "LIMIT" not in statement
