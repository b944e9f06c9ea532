"""
Résolution de l'identité de l'appelant (étudiant / enseignant) et des relations de suivi.

Ordre de résolution pour les chemins multi-rôles : étudiant, puis enseignant,
puis administrateur. Un même utilisateur n'est jamais à la fois étudiant et enseignant.
"""

import uuid
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.student import Lecturer, Student
from app.models.user import User
from app.schemas.statistics import StudentProfile
from app.security import Principal
from app.services.errors import UnauthorizedError, store_errors

logger = logging.getLogger(__name__)


class IdentityResolver:
    def __init__(self, db: Session):
        self.db = db

    def resolve_student(self, principal: Principal) -> Optional[Student]:
        """Profil étudiant lié à l'utilisateur, ou None."""
        with store_errors(self.db, "résolution de l'étudiant"):
            return self.db.execute(
                select(Student).where(Student.user_id == principal.user_id)
            ).scalar()

    def resolve_lecturer(self, principal: Principal) -> Optional[Lecturer]:
        """Profil enseignant lié à l'utilisateur, ou None."""
        with store_errors(self.db, "résolution de l'enseignant"):
            return self.db.execute(
                select(Lecturer).where(Lecturer.user_id == principal.user_id)
            ).scalar()

    def get_student(self, student_id: uuid.UUID) -> Optional[Student]:
        with store_errors(self.db, "lecture de l'étudiant"):
            return self.db.get(Student, student_id)

    def advisee_ids(self, lecturer_id: uuid.UUID) -> List[uuid.UUID]:
        with store_errors(self.db, "liste des étudiants suivis"):
            return list(self.db.execute(
                select(Student.id).where(Student.advisor_id == lecturer_id)
            ).scalars().all())

    def all_student_ids(self) -> List[uuid.UUID]:
        with store_errors(self.db, "liste des étudiants"):
            return list(self.db.execute(select(Student.id)).scalars().all())

    def get_student_profile(self, student_id: uuid.UUID) -> Optional[StudentProfile]:
        """Profil étudiant enrichi du nom complet de l'utilisateur."""
        with store_errors(self.db, "lecture du profil étudiant"):
            row = self.db.execute(
                select(Student, User.full_name)
                .outerjoin(User, User.id == Student.user_id)
                .where(Student.id == student_id)
            ).first()
        if row is None:
            return None
        student, full_name = row
        return StudentProfile(
            id=student.id,
            user_id=student.user_id,
            student_number=student.student_number,
            full_name=full_name,
            program_study=student.program_study,
            academic_year=student.academic_year,
            advisor_id=student.advisor_id,
        )

    def resolve_scope(
        self,
        principal: Principal,
        requested_student_id: Optional[uuid.UUID] = None,
    ) -> Optional[List[uuid.UUID]]:
        """
        Ensemble des étudiants visibles par l'appelant.

        - étudiant : lui-même (requested_student_id ignoré)
        - enseignant : ses étudiants suivis (requested_student_id ignoré)
        - administrateur : l'étudiant demandé, ou None = tous les étudiants

        L'accès administrateur est une capacité vérifiée (rôle admin du jeton),
        pas un simple repli : tout autre appelant non résolu est refusé.
        """
        student = self.resolve_student(principal)
        if student is not None:
            return [student.id]

        lecturer = self.resolve_lecturer(principal)
        if lecturer is not None:
            return self.advisee_ids(lecturer.id)

        if principal.is_admin:
            return [requested_student_id] if requested_student_id else None

        raise UnauthorizedError("Accès refusé : aucun profil étudiant ou enseignant pour cet utilisateur.")
