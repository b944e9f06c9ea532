"""
Service métier du cycle de vie des prestations étudiantes.

Machine à états :
    draft → submitted → verified | rejected
    draft → deleted
Aucune transition ne sort de verified, rejected ou deleted.

Chaque transition réussie ajoute exactement une entrée au journal des statuts
(base relationnelle) puis la reflète dans le StatusHistoryCache, qui ne garde que
les prestations en cours (retirées dès un statut terminal).

Cohérence entre les deux bases : à la création, le document est écrit AVANT la
référence, sans transaction commune. Un échec entre les deux laisse un document
orphelin, supprimé plus tard par la réconciliation (reconciliation_service).
De même, la mise à jour du statut et l'entrée de journal sont deux écritures distinctes.
Le service ne fait aucune nouvelle tentative : une erreur de stockage remonte
immédiatement en StoreFailureError.
"""

import math
import uuid
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, List, Optional

from pydantic import ValidationError

from app.models.achievement import AchievementReference
from app.models.student import Lecturer, Student
from app.schemas.achievement import (
    STATUS_DELETED,
    STATUS_DRAFT,
    STATUS_REJECTED,
    STATUS_SUBMITTED,
    STATUS_VERIFIED,
    AchievementContent,
    AchievementDocumentResponse,
    AchievementFilters,
    AchievementHistoryResponse,
    AchievementListItem,
    AchievementListResponse,
    AchievementReferenceResponse,
    AchievementView,
    Attachment,
    AttachmentCreate,
    PaginationMetadata,
)
from app.security import Principal
from app.services.document_store import DocumentStore
from app.services.errors import (
    InvalidStateError,
    NotFoundError,
    StoreFailureError,
    UnauthorizedError,
    ValidationFailedError,
)
from app.services.history_cache import StatusHistoryCache
from app.services.identity_service import IdentityResolver
from app.services.reference_store import ReferenceFilter, ReferenceRow, ReferenceStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

# Statuts sans transition sortante : leur historique quitte le cache
TERMINAL_STATUSES = frozenset({STATUS_VERIFIED, STATUS_REJECTED, STATUS_DELETED})


def clamp_pagination(page: Optional[int], limit: Optional[int]) -> tuple:
    """Pages indexées à partir de 1 ; limit par défaut 10, borné à [1, 100]."""
    page = max(page or 1, 1)
    if limit is None:
        limit = DEFAULT_PAGE_SIZE
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    return page, limit


def build_list_items(documents: DocumentStore, rows: List[ReferenceRow]) -> List[AchievementListItem]:
    """
    Construit les lignes de liste et leur détail documentaire (lecture groupée).
    Un document absent, illisible ou une panne de la base documentaire laisse
    le détail vide : jamais d'échec de la liste entière.
    """
    try:
        docs = documents.get_many(row.reference.document_ref for row in rows)
    except StoreFailureError:
        logger.warning("Détails indisponibles pour %d prestation(s) : base documentaire en erreur", len(rows))
        return [_list_item(row, None) for row in rows]

    items = []
    for row in rows:
        ref = row.reference
        details = None
        doc = docs.get(ref.document_ref)
        if doc is None:
            logger.warning("Document %s introuvable pour la prestation %s", ref.document_ref, ref.id)
        else:
            try:
                details = AchievementDocumentResponse.model_validate(doc)
            except ValidationError:
                logger.warning("Document %s illisible pour la prestation %s", ref.document_ref, ref.id)
        items.append(_list_item(row, details))
    return items


def _list_item(row: ReferenceRow, details: Optional[AchievementDocumentResponse]) -> AchievementListItem:
    return AchievementListItem(
        **AchievementReferenceResponse.model_validate(row.reference).model_dump(),
        student_number=row.student_number,
        student_name=row.student_name,
        program_study=row.program_study,
        details=details,
    )


class AchievementService:
    def __init__(
        self,
        references: ReferenceStore,
        documents: DocumentStore,
        identities: IdentityResolver,
        history_cache: StatusHistoryCache,
    ):
        self.references = references
        self.documents = documents
        self.identities = identities
        self.history_cache = history_cache

    # ============================================================
    # Écritures (étudiant propriétaire)
    # ============================================================

    def create(self, principal: Principal, content: AchievementContent) -> AchievementReferenceResponse:
        """
        Crée une prestation en brouillon pour l'étudiant appelant.

        Étapes :
        1. Résoudre le profil étudiant de l'appelant
        2. Écrire le document (obtention de son identifiant)
        3. Écrire la référence en statut draft
        4. Journaliser l'entrée draft (changed_by NULL : création système)
        """
        student = self._require_student(principal)

        document_ref = self.documents.insert(student.id, content.model_dump(mode="json"))
        reference = self.references.insert(student.id, document_ref)

        entry = self.references.append_history(reference.id, STATUS_DRAFT)
        self.history_cache.append(entry)

        logger.info("Prestation créée : %s (document %s), étudiant %s", reference.id, document_ref, student.id)
        return AchievementReferenceResponse.model_validate(reference)

    def update(
        self, principal: Principal, achievement_id: uuid.UUID, content: AchievementContent
    ) -> AchievementReferenceResponse:
        """Remplace le contenu d'une prestation en brouillon."""
        student = self._require_student(principal)
        reference = self._require_reference(achievement_id)
        self._require_owner(reference, student)
        self._require_status(reference, {STATUS_DRAFT}, "Seules les prestations en brouillon peuvent être modifiées.")

        with self._status_locked(achievement_id, {STATUS_DRAFT}):
            document = self.documents.update(reference.document_ref, content.model_dump(mode="json"))
            if document is None:
                raise NotFoundError("Détail de la prestation introuvable.")

        return AchievementReferenceResponse.model_validate(self._require_reference(achievement_id))

    def submit(self, principal: Principal, achievement_id: uuid.UUID) -> AchievementReferenceResponse:
        """Soumet un brouillon à la vérification de l'enseignant référent."""
        student = self._require_student(principal)
        reference = self._require_reference(achievement_id)
        self._require_owner(reference, student)
        self._require_status(
            reference, {STATUS_DRAFT}, "La prestation doit être en brouillon pour être soumise."
        )

        return self._transition(
            reference,
            STATUS_SUBMITTED,
            changed_by=principal.user_id,
            submitted_at=datetime.now(),
        )

    def delete(self, principal: Principal, achievement_id: uuid.UUID) -> None:
        """
        Suppression logique d'un brouillon : référence → deleted, puis document marqué supprimé.
        Le document n'est marqué qu'une fois la transition conditionnelle acquise :
        une soumission concurrente gagnante laisse le document intact.
        """
        student = self._require_student(principal)
        reference = self._require_reference(achievement_id)
        self._require_owner(reference, student)
        self._require_status(
            reference, {STATUS_DRAFT}, "Seules les prestations en brouillon peuvent être supprimées."
        )

        self._transition(reference, STATUS_DELETED, changed_by=principal.user_id)
        if not self.documents.tombstone(reference.document_ref):
            logger.warning(
                "Document %s introuvable lors de la suppression de la prestation %s",
                reference.document_ref,
                achievement_id,
            )

    def add_attachment(
        self, principal: Principal, achievement_id: uuid.UUID, data: AttachmentCreate
    ) -> Attachment:
        """
        Ajoute une pièce jointe à une prestation en brouillon ou rejetée.
        Le statut n'est jamais modifié : une prestation rejetée reste rejetée.
        """
        student = self._require_student(principal)
        reference = self._require_reference(achievement_id)
        self._require_owner(reference, student)
        self._require_status(
            reference,
            {STATUS_DRAFT, STATUS_REJECTED},
            "Les pièces jointes ne peuvent être ajoutées qu'aux prestations en brouillon ou rejetées.",
        )

        attachment = Attachment(
            file_name=data.file_name,
            file_url=data.file_url,
            file_type=data.file_type,
            uploaded_at=datetime.now(),
        )
        with self._status_locked(achievement_id, {STATUS_DRAFT, STATUS_REJECTED}):
            if not self.documents.append_attachment(reference.document_ref, attachment.model_dump(mode="json")):
                raise NotFoundError("Détail de la prestation introuvable.")

        logger.info("Pièce jointe %s ajoutée à la prestation %s", data.file_name, achievement_id)
        return attachment

    # ============================================================
    # Vérification (enseignant référent)
    # ============================================================

    def verify(self, principal: Principal, achievement_id: uuid.UUID) -> AchievementReferenceResponse:
        lecturer = self._require_lecturer(principal)
        reference = self._require_reference(achievement_id)
        self._require_status(
            reference, {STATUS_SUBMITTED}, "La prestation doit être soumise pour être vérifiée."
        )
        self._require_advisor(reference, lecturer, "vérifier")

        return self._transition(
            reference,
            STATUS_VERIFIED,
            changed_by=principal.user_id,
            verified_by=lecturer.id,
            verified_at=datetime.now(),
        )

    def reject(
        self, principal: Principal, achievement_id: uuid.UUID, rejection_note: str
    ) -> AchievementReferenceResponse:
        # Validée avant tout accès aux bases
        note = (rejection_note or "").strip()
        if not note:
            raise ValidationFailedError("La note de rejet est obligatoire.")

        lecturer = self._require_lecturer(principal)
        reference = self._require_reference(achievement_id)
        self._require_status(
            reference, {STATUS_SUBMITTED}, "La prestation doit être soumise pour être rejetée."
        )
        self._require_advisor(reference, lecturer, "rejeter")

        return self._transition(
            reference,
            STATUS_REJECTED,
            changed_by=principal.user_id,
            history_note=note,
            rejection_note=note,
        )

    # ============================================================
    # Lectures
    # ============================================================

    def get(self, principal: Principal, achievement_id: uuid.UUID) -> AchievementView:
        """Vue fusionnée ; accessible au propriétaire, à son enseignant référent ou à un administrateur."""
        reference = self._require_reference(achievement_id)
        self._authorize_read(principal, reference, allow_admin=True)

        document = self.documents.get_by_id(reference.document_ref)
        if document is None:
            raise NotFoundError("Détail de la prestation introuvable.")

        return AchievementView(
            reference=AchievementReferenceResponse.model_validate(reference),
            detail=AchievementDocumentResponse.model_validate(document),
        )

    def get_history(self, principal: Principal, achievement_id: uuid.UUID) -> AchievementHistoryResponse:
        """Historique ordonné des statuts ; propriétaire ou enseignant référent uniquement."""
        reference = self._require_reference(achievement_id)
        self._authorize_read(principal, reference, allow_admin=False)

        if self.history_cache.is_tracked(achievement_id):
            timeline = self.history_cache.read(achievement_id)
        else:
            timeline = self.references.get_history(achievement_id)

        return AchievementHistoryResponse(achievement_id=achievement_id, timeline=timeline)

    def list_achievements(
        self,
        principal: Principal,
        filters: AchievementFilters,
        page: Optional[int] = 1,
        limit: Optional[int] = DEFAULT_PAGE_SIZE,
    ) -> AchievementListResponse:
        """
        Liste paginée des prestations visibles par l'appelant
        (les siennes, celles de ses étudiants suivis, ou toutes pour un administrateur).
        Tri imposé : created_at décroissant.
        """
        student_ids = self.identities.resolve_scope(principal, filters.student_id)
        filt = ReferenceFilter(
            student_ids=student_ids,
            status=filters.status,
            date_from=filters.date_from,
            date_to=filters.date_to,
        )
        return self._list(filt, page, limit)

    def list_for_admin(
        self,
        principal: Principal,
        filters: AchievementFilters,
        page: Optional[int] = 1,
        limit: Optional[int] = DEFAULT_PAGE_SIZE,
    ) -> AchievementListResponse:
        """Liste administrateur : tous les étudiants, tri paramétrable (created_at, updated_at, status)."""
        if not principal.is_admin:
            raise UnauthorizedError("Accès réservé aux administrateurs.")

        filt = ReferenceFilter(
            student_ids=[filters.student_id] if filters.student_id else None,
            status=filters.status,
            date_from=filters.date_from,
            date_to=filters.date_to,
            sort_by=filters.sort_by,
            sort_order=filters.sort_order,
        )
        return self._list(filt, page, limit)

    # ============================================================
    # Helpers internes
    # ============================================================

    def _list(self, filt: ReferenceFilter, page: Optional[int], limit: Optional[int]) -> AchievementListResponse:
        page, limit = clamp_pagination(page, limit)

        if filt.student_ids is not None and not filt.student_ids:
            return AchievementListResponse(
                achievements=[],
                pagination=PaginationMetadata(page=page, limit=limit, total=0, total_pages=0),
            )

        rows, total = self.references.list(filt, page, limit)
        return AchievementListResponse(
            achievements=build_list_items(self.documents, rows),
            pagination=PaginationMetadata(
                page=page,
                limit=limit,
                total=total,
                total_pages=math.ceil(total / limit),
            ),
        )

    def _transition(
        self,
        reference: AchievementReference,
        new_status: str,
        changed_by: Optional[uuid.UUID],
        history_note: Optional[str] = None,
        **extra_fields,
    ) -> AchievementReferenceResponse:
        """
        Applique une transition validée : UPDATE conditionné au statut lu,
        puis une entrée de journal, puis le reflet dans le cache d'historique.
        """
        previous_status = reference.status
        achievement_id = reference.id

        updated = self.references.update_status(
            achievement_id, new_status, expected_status=previous_status, **extra_fields
        )
        if not updated:
            raise InvalidStateError("Le statut de la prestation a changé entre-temps.")

        entry = self.references.append_history(
            achievement_id, new_status, changed_by=changed_by, rejection_note=history_note
        )
        if new_status in TERMINAL_STATUSES:
            # Plus aucune transition possible : l'historique est relu dans le journal
            self.history_cache.clear(achievement_id)
        else:
            self.history_cache.append_if_tracked(entry)

        logger.info("Prestation %s : %s → %s (par %s)", achievement_id, previous_status, new_status, changed_by)
        return AchievementReferenceResponse.model_validate(self._require_reference(achievement_id))

    @contextmanager
    def _status_locked(self, achievement_id: uuid.UUID, allowed_statuses: set):
        """
        Tient la ligne de référence verrouillée pendant une écriture documentaire.
        Une transition concurrente attend la fin du bloc ; touch() valide et libère.
        """
        if not self.references.lock_status(achievement_id, allowed_statuses):
            raise InvalidStateError("Le statut de la prestation a changé entre-temps.")
        try:
            yield
        except Exception:
            self.references.release()
            raise
        self.references.touch(achievement_id)

    def _authorize_read(self, principal: Principal, reference: AchievementReference, allow_admin: bool) -> None:
        """Étudiant propriétaire, puis enseignant référent, puis administrateur (si autorisé)."""
        student = self.identities.resolve_student(principal)
        if student is not None:
            if student.id != reference.student_id:
                raise UnauthorizedError("Vous ne pouvez consulter que vos propres prestations.")
            return

        lecturer = self.identities.resolve_lecturer(principal)
        if lecturer is not None:
            owner = self.identities.get_student(reference.student_id)
            if owner is None or owner.advisor_id != lecturer.id:
                raise UnauthorizedError("Vous ne pouvez consulter que les prestations de vos étudiants suivis.")
            return

        if allow_admin and principal.is_admin:
            return
        raise UnauthorizedError("Accès refusé.")

    def _require_student(self, principal: Principal) -> Student:
        student = self.identities.resolve_student(principal)
        if student is None:
            raise NotFoundError("Profil étudiant introuvable pour cet utilisateur.")
        return student

    def _require_lecturer(self, principal: Principal) -> Lecturer:
        lecturer = self.identities.resolve_lecturer(principal)
        if lecturer is None:
            raise NotFoundError("Profil enseignant introuvable pour cet utilisateur.")
        return lecturer

    def _require_reference(self, achievement_id: uuid.UUID) -> AchievementReference:
        reference = self.references.get_by_id(achievement_id)
        if reference is None:
            raise NotFoundError("Prestation introuvable.")
        return reference

    @staticmethod
    def _require_owner(reference: AchievementReference, student: Student) -> None:
        if reference.student_id != student.id:
            raise UnauthorizedError("Cette prestation n'appartient pas à cet étudiant.")

    @staticmethod
    def _require_status(reference: AchievementReference, allowed: Iterable[str], message: str) -> None:
        if reference.status not in allowed:
            raise InvalidStateError(message)

    def _require_advisor(self, reference: AchievementReference, lecturer: Lecturer, action: str) -> None:
        """Relation de suivi réévaluée à chaque appel (jamais mise en cache)."""
        owner = self.identities.get_student(reference.student_id)
        if owner is None:
            raise NotFoundError("Étudiant introuvable.")
        if owner.advisor_id != lecturer.id:
            raise UnauthorizedError(f"Vous ne pouvez {action} que les prestations de vos étudiants suivis.")
