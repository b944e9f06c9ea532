"""
Accès à la base relationnelle pour les références de prestations.

Gère :
- les références (insertion, lecture, mise à jour atomique du statut)
- le journal des statuts (append-only)
- les listes filtrées/paginées et les agrégats statistiques

Chaque écriture est une instruction unique commitée immédiatement : il n'y a pas
de transaction englobant plusieurs appels (voir AchievementService).
"""

import uuid
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, NamedTuple, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.models.achievement import AchievementReference, AchievementStatusLog
from app.models.student import Student
from app.models.user import User
from app.schemas.achievement import STATUS_DELETED, STATUS_DRAFT, StatusHistoryEntry
from app.services.errors import store_errors

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    "created_at": AchievementReference.created_at,
    "updated_at": AchievementReference.updated_at,
    "status": AchievementReference.status,
}


@dataclass
class ReferenceFilter:
    """Prédicat commun aux listes, comptages et statistiques."""
    student_ids: Optional[List[uuid.UUID]] = None  # None = aucune restriction
    status: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None                 # inclusif (jusqu'à la fin de la journée)
    exclude_deleted: bool = False
    sort_by: str = "created_at"
    sort_order: str = "desc"


class ReferenceRow(NamedTuple):
    reference: AchievementReference
    student_number: Optional[str]
    student_name: Optional[str]
    program_study: Optional[str]


class ReferenceStore:
    def __init__(self, db: Session):
        self.db = db

    # --- Références ---

    def insert(self, student_id: uuid.UUID, document_ref: str) -> AchievementReference:
        """Crée la référence en statut draft."""
        now = datetime.now()
        reference = AchievementReference(
            id=uuid.uuid4(),
            student_id=student_id,
            document_ref=document_ref,
            status=STATUS_DRAFT,
            created_at=now,
            updated_at=now,
        )
        with store_errors(self.db, "création de la référence"):
            self.db.add(reference)
            self.db.commit()
            self.db.refresh(reference)
        return reference

    def get_by_id(self, achievement_id: uuid.UUID) -> Optional[AchievementReference]:
        with store_errors(self.db, "lecture de la référence"):
            return self.db.get(AchievementReference, achievement_id)

    def update_status(
        self,
        achievement_id: uuid.UUID,
        new_status: str,
        expected_status: str,
        **extra_fields,
    ) -> bool:
        """
        Passe la référence de expected_status à new_status en une seule instruction UPDATE.
        Retourne False si le statut a changé entre la lecture et l'écriture (aucune ligne touchée).
        """
        values = {"status": new_status, "updated_at": datetime.now(), **extra_fields}
        with store_errors(self.db, "mise à jour du statut"):
            result = self.db.execute(
                update(AchievementReference)
                .where(
                    AchievementReference.id == achievement_id,
                    AchievementReference.status == expected_status,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        return result.rowcount == 1

    def lock_status(self, achievement_id: uuid.UUID, allowed_statuses: Iterable[str]) -> bool:
        """
        Verrouille la ligne (SELECT ... FOR UPDATE) si son statut est parmi allowed_statuses.
        Retourne False sans verrou sinon. Le verrou est tenu jusqu'au prochain
        commit (touch) ou rollback (release) de la session.
        """
        with store_errors(self.db, "verrouillage de la référence"):
            locked = self.db.execute(
                select(AchievementReference.id)
                .where(
                    AchievementReference.id == achievement_id,
                    AchievementReference.status.in_(list(allowed_statuses)),
                )
                .with_for_update()
            ).first()
            if locked is None:
                self.db.rollback()
                return False
        return True

    def release(self) -> None:
        """Libère un verrou pris par lock_status sans rien écrire."""
        self.db.rollback()

    def touch(self, achievement_id: uuid.UUID) -> None:
        """Met à jour updated_at après une modification du document (libère le verrou éventuel)."""
        with store_errors(self.db, "mise à jour de la référence"):
            self.db.execute(
                update(AchievementReference)
                .where(AchievementReference.id == achievement_id)
                .values(updated_at=datetime.now())
                .execution_options(synchronize_session=False)
            )
            self.db.commit()

    def list(self, filt: ReferenceFilter, page: int, limit: int) -> Tuple[List[ReferenceRow], int]:
        """
        Retourne une page de références avec les infos de l'étudiant, et le total
        (requête de comptage séparée sur le même prédicat).
        """
        total = self.count(filt)

        sort_column = _SORT_COLUMNS.get(filt.sort_by, AchievementReference.created_at)
        order = sort_column.asc() if filt.sort_order == "asc" else sort_column.desc()

        with store_errors(self.db, "liste des prestations"):
            rows = self.db.execute(
                select(
                    AchievementReference,
                    Student.student_number,
                    User.full_name,
                    Student.program_study,
                )
                .outerjoin(Student, Student.id == AchievementReference.student_id)
                .outerjoin(User, User.id == Student.user_id)
                .where(*self._conditions(filt))
                .order_by(order)
                .limit(limit)
                .offset((page - 1) * limit)
            ).all()

        return [ReferenceRow(*row) for row in rows], total

    def count(self, filt: ReferenceFilter) -> int:
        with store_errors(self.db, "comptage des prestations"):
            return self.db.execute(
                select(func.count())
                .select_from(AchievementReference)
                .where(*self._conditions(filt))
            ).scalar() or 0

    # --- Journal des statuts ---

    def append_history(
        self,
        achievement_id: uuid.UUID,
        status: str,
        changed_by: Optional[uuid.UUID] = None,
        rejection_note: Optional[str] = None,
    ) -> StatusHistoryEntry:
        log = AchievementStatusLog(
            achievement_id=achievement_id,
            status=status,
            changed_by=changed_by,
            rejection_note=rejection_note,
            created_at=datetime.now(),
        )
        with store_errors(self.db, "journalisation du statut"):
            self.db.add(log)
            self.db.commit()
            self.db.refresh(log)
        return StatusHistoryEntry.model_validate(log)

    def get_history(self, achievement_id: uuid.UUID) -> List[StatusHistoryEntry]:
        with store_errors(self.db, "lecture de l'historique"):
            logs = self.db.execute(
                select(AchievementStatusLog)
                .where(AchievementStatusLog.achievement_id == achievement_id)
                .order_by(AchievementStatusLog.id)
            ).scalars().all()
        return [StatusHistoryEntry.model_validate(log) for log in logs]

    # --- Agrégats ---

    def status_distribution(self, filt: ReferenceFilter) -> List[Tuple[str, int]]:
        count = func.count().label("count")
        with store_errors(self.db, "distribution par statut"):
            rows = self.db.execute(
                select(AchievementReference.status, count)
                .where(*self._conditions(filt))
                .group_by(AchievementReference.status)
                .order_by(count.desc())
            ).all()
        return [(status, n) for status, n in rows]

    def period_distribution(self, filt: ReferenceFilter) -> List[Tuple[str, int]]:
        period = func.to_char(AchievementReference.created_at, "YYYY-MM").label("period")
        with store_errors(self.db, "distribution par période"):
            rows = self.db.execute(
                select(period, func.count())
                .where(*self._conditions(filt))
                .group_by(period)
                .order_by(period.desc())
            ).all()
        return [(p, n) for p, n in rows]

    def top_students(self, filt: ReferenceFilter, limit: int = 10) -> List[tuple]:
        """(student_id, student_number, full_name, program_study, count) triés par nombre décroissant."""
        count = func.count().label("count")
        with store_errors(self.db, "classement des étudiants"):
            rows = self.db.execute(
                select(
                    AchievementReference.student_id,
                    Student.student_number,
                    User.full_name,
                    Student.program_study,
                    count,
                )
                .join(Student, Student.id == AchievementReference.student_id)
                .outerjoin(User, User.id == Student.user_id)
                .where(*self._conditions(filt))
                .group_by(
                    AchievementReference.student_id,
                    Student.student_number,
                    User.full_name,
                    Student.program_study,
                )
                .order_by(count.desc())
                .limit(limit)
            ).all()
        return [tuple(row) for row in rows]

    def document_refs(self, filt: ReferenceFilter) -> List[str]:
        with store_errors(self.db, "lecture des références documentaires"):
            return list(self.db.execute(
                select(AchievementReference.document_ref).where(*self._conditions(filt))
            ).scalars().all())

    def existing_document_refs(self, document_refs: Iterable[str]) -> set:
        """Sous-ensemble des identifiants documentaires effectivement référencés."""
        refs = list(document_refs)
        if not refs:
            return set()
        with store_errors(self.db, "vérification des références documentaires"):
            return set(self.db.execute(
                select(AchievementReference.document_ref)
                .where(AchievementReference.document_ref.in_(refs))
            ).scalars().all())

    @staticmethod
    def _conditions(filt: ReferenceFilter) -> list:
        conditions = []
        if filt.student_ids is not None:
            conditions.append(AchievementReference.student_id.in_(filt.student_ids))
        if filt.status:
            conditions.append(AchievementReference.status == filt.status)
        if filt.exclude_deleted:
            conditions.append(AchievementReference.status != STATUS_DELETED)
        if filt.date_from:
            conditions.append(AchievementReference.created_at >= datetime.combine(filt.date_from, time.min))
        if filt.date_to:
            conditions.append(
                AchievementReference.created_at < datetime.combine(filt.date_to + timedelta(days=1), time.min)
            )
        return conditions
