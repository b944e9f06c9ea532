"""
Statistiques de prestations et rapport par étudiant.

Les agrégats par statut, période et étudiant sont calculés par la base relationnelle ;
les répartitions par type et par niveau de compétition lisent les documents
(lecture groupée) et sont comptées en mémoire.
"""

import uuid
import logging
from collections import Counter
from typing import Iterable, List, Optional

from app.schemas.statistics import (
    AchievementStatistics,
    LevelDistribution,
    StatisticsFilters,
    StatsByPeriod,
    StatsByType,
    StatusDistribution,
    StudentReportResponse,
    TopStudent,
)
from app.security import Principal
from app.services.achievement_service import build_list_items
from app.services.document_store import DocumentStore
from app.services.errors import NotFoundError, UnauthorizedError
from app.services.identity_service import IdentityResolver
from app.services.reference_store import ReferenceFilter, ReferenceStore

logger = logging.getLogger(__name__)

TOP_STUDENTS_LIMIT = 10
RECENT_ACHIEVEMENTS_LIMIT = 10


def _sorted_counts(counter: Counter) -> list:
    """Nombre décroissant, puis libellé croissant à égalité."""
    return sorted(counter.items(), key=lambda item: (-item[1], item[0]))


class StatisticsService:
    def __init__(self, references: ReferenceStore, documents: DocumentStore, identities: IdentityResolver):
        self.references = references
        self.documents = documents
        self.identities = identities

    def get_statistics(self, principal: Principal, filters: StatisticsFilters) -> AchievementStatistics:
        """Statistiques sur les étudiants visibles par l'appelant (voir IdentityResolver.resolve_scope)."""
        student_ids = self.identities.resolve_scope(principal, filters.student_id)
        return self._compute(student_ids, filters)

    def get_student_report(self, principal: Principal, student_id: uuid.UUID) -> StudentReportResponse:
        """
        Rapport d'un étudiant : profil, statistiques et 10 dernières prestations
        (hors supprimées). Autorisé pour l'étudiant lui-même, son enseignant référent
        ou un administrateur.
        """
        profile = self.identities.get_student_profile(student_id)
        if profile is None:
            raise NotFoundError("Étudiant introuvable.")

        self._authorize_report(principal, profile.id, profile.advisor_id)

        statistics = self._compute([profile.id], StatisticsFilters())

        rows, _ = self.references.list(
            ReferenceFilter(student_ids=[profile.id], exclude_deleted=True),
            page=1,
            limit=RECENT_ACHIEVEMENTS_LIMIT,
        )
        return StudentReportResponse(
            student=profile,
            statistics=statistics,
            recent_achievements=build_list_items(self.documents, rows),
        )

    def _authorize_report(
        self, principal: Principal, student_id: uuid.UUID, advisor_id: Optional[uuid.UUID]
    ) -> None:
        student = self.identities.resolve_student(principal)
        if student is not None:
            if student.id != student_id:
                raise UnauthorizedError("Vous ne pouvez consulter que votre propre rapport.")
            return

        lecturer = self.identities.resolve_lecturer(principal)
        if lecturer is not None:
            if advisor_id != lecturer.id:
                raise UnauthorizedError("Vous ne pouvez consulter que les rapports de vos étudiants suivis.")
            return

        if not principal.is_admin:
            raise UnauthorizedError("Accès refusé.")

    def _compute(self, student_ids: Optional[List[uuid.UUID]], filters) -> AchievementStatistics:
        if student_ids is not None and not student_ids:
            return AchievementStatistics()

        filt = ReferenceFilter(
            student_ids=student_ids,
            status=filters.status,
            date_from=filters.date_from,
            date_to=filters.date_to,
        )
        # La répartition par statut ignore le filtre de statut
        status_filt = ReferenceFilter(
            student_ids=student_ids,
            date_from=filters.date_from,
            date_to=filters.date_to,
        )

        total = self.references.count(filt)
        by_status = self.references.status_distribution(status_filt)
        by_period = self.references.period_distribution(filt)
        top = self.references.top_students(filt, limit=TOP_STUDENTS_LIMIT)

        by_type, by_level = self._tally_documents(self.references.document_refs(filt))

        return AchievementStatistics(
            total_achievements=total,
            by_type=[StatsByType(type=t, count=n) for t, n in by_type],
            by_period=[StatsByPeriod(period=p, count=n) for p, n in by_period],
            top_students=[
                TopStudent(
                    student_id=sid,
                    student_number=number,
                    student_name=name,
                    program_study=program,
                    count=n,
                )
                for sid, number, name, program, n in top
            ],
            level_distribution=[LevelDistribution(level=lvl, count=n) for lvl, n in by_level],
            status_distribution=[StatusDistribution(status=s, count=n) for s, n in by_status],
        )

    def _tally_documents(self, document_refs: Iterable[str]):
        documents = self.documents.get_many(document_refs)

        types = Counter()
        levels = Counter()
        for document in documents.values():
            if document.achievement_type:
                types[document.achievement_type] += 1
            level = (document.details or {}).get("competition_level")
            if level:
                levels[level] += 1

        return _sorted_counts(types), _sorted_counts(levels)
