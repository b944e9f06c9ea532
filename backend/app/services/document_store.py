"""
Accès à la base documentaire (contenu flexible des prestations).

Le document est identifié par une chaîne opaque attribuée ici à l'insertion.
La suppression est logique (deleted_at) ; seule la réconciliation des orphelins
supprime physiquement des documents.
"""

import uuid
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.models.document import AchievementDocument
from app.services.errors import store_errors

logger = logging.getLogger(__name__)

# Champs remplaçables par une modification de contenu
EDITABLE_FIELDS = ("achievement_type", "title", "description", "details", "tags", "points", "custom_fields")


class DocumentStore:
    def __init__(self, db: Session):
        self.db = db

    def insert(self, student_id: uuid.UUID, content: dict) -> str:
        """Insère un document et retourne son identifiant."""
        now = datetime.now()
        document_id = uuid.uuid4().hex
        document = AchievementDocument(
            id=document_id,
            student_id=student_id,
            attachments=[],
            created_at=now,
            updated_at=now,
            **{field: content.get(field) for field in EDITABLE_FIELDS},
        )
        if document.details is None:
            document.details = {}
        if document.tags is None:
            document.tags = []
        if document.custom_fields is None:
            document.custom_fields = {}

        with store_errors(self.db, "création du document"):
            self.db.add(document)
            self.db.commit()
        return document_id

    def get_by_id(self, document_id: str) -> Optional[AchievementDocument]:
        with store_errors(self.db, "lecture du document"):
            return self.db.get(AchievementDocument, document_id)

    def get_many(self, document_ids: Iterable[str]) -> Dict[str, AchievementDocument]:
        """Lecture groupée : une seule requête pour tout un lot d'identifiants."""
        ids = list(dict.fromkeys(document_ids))
        if not ids:
            return {}
        with store_errors(self.db, "lecture groupée des documents"):
            documents = self.db.execute(
                select(AchievementDocument).where(AchievementDocument.id.in_(ids))
            ).scalars().all()
        return {d.id: d for d in documents}

    def update(self, document_id: str, content: dict) -> Optional[AchievementDocument]:
        """Remplace les champs de contenu ; l'identifiant, le propriétaire et les pièces jointes sont conservés."""
        with store_errors(self.db, "modification du document"):
            document = self.db.get(AchievementDocument, document_id)
            if document is None:
                return None
            for field in EDITABLE_FIELDS:
                if field in content:
                    setattr(document, field, content[field])
            document.updated_at = datetime.now()
            self.db.commit()
            self.db.refresh(document)
        return document

    def tombstone(self, document_id: str) -> bool:
        with store_errors(self.db, "suppression du document"):
            document = self.db.get(AchievementDocument, document_id)
            if document is None:
                return False
            now = datetime.now()
            document.deleted_at = now
            document.updated_at = now
            self.db.commit()
        return True

    def append_attachment(self, document_id: str, attachment: dict) -> bool:
        """
        Ajoute une pièce jointe en fin de liste.
        La ligne est verrouillée (SELECT ... FOR UPDATE) pour ne perdre aucun ajout concurrent.
        """
        with store_errors(self.db, "ajout de la pièce jointe"):
            document = self.db.execute(
                select(AchievementDocument)
                .where(AchievementDocument.id == document_id)
                .with_for_update()
            ).scalar()
            if document is None:
                self.db.rollback()
                return False
            # Nouvelle liste pour que SQLAlchemy détecte la modification de la colonne JSON
            document.attachments = [*(document.attachments or []), attachment]
            document.updated_at = datetime.now()
            self.db.commit()
        return True

    def ids_created_before(
        self,
        cutoff: datetime,
        since: Optional[datetime] = None,
        after_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[str]:
        """
        Identifiants des documents créés avant cutoff (et depuis since), triés.
        after_id et limit paginent par clé : le lot suivant reprend après le dernier identifiant.
        """
        stmt = select(AchievementDocument.id).where(AchievementDocument.created_at < cutoff)
        if since is not None:
            stmt = stmt.where(AchievementDocument.created_at >= since)
        if after_id is not None:
            stmt = stmt.where(AchievementDocument.id > after_id)
        stmt = stmt.order_by(AchievementDocument.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        with store_errors(self.db, "lecture des documents anciens"):
            return list(self.db.execute(stmt).scalars().all())

    def delete_many(self, document_ids: Iterable[str]) -> int:
        ids = list(document_ids)
        if not ids:
            return 0
        with store_errors(self.db, "suppression des documents orphelins"):
            result = self.db.execute(
                delete(AchievementDocument).where(AchievementDocument.id.in_(ids))
            )
            self.db.commit()
        return result.rowcount
