"""
Router des rapports : statistiques globales et rapport par étudiant.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException

from app.dependencies import get_current_principal, get_statistics_filters, get_statistics_service
from app.schemas.statistics import AchievementStatistics, StatisticsFilters, StudentReportResponse
from app.security import Principal
from app.services.errors import AchievementError
from app.services.statistics_service import StatisticsService

router = APIRouter(prefix="/api/v1/reports", tags=["Rapports"])


@router.get("/statistics", response_model=AchievementStatistics, summary="Statistiques des prestations")
def get_statistics(
    filters: StatisticsFilters = Depends(get_statistics_filters),
    principal: Principal = Depends(get_current_principal),
    service: StatisticsService = Depends(get_statistics_service),
):
    try:
        return service.get_statistics(principal, filters)
    except AchievementError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/student/{student_id}", response_model=StudentReportResponse, summary="Rapport d'un étudiant")
def get_student_report(
    student_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    service: StatisticsService = Depends(get_statistics_service),
):
    """
    Profil, statistiques et 10 dernières prestations (hors supprimées) d'un étudiant.
    Accessible à l'étudiant lui-même, à son enseignant référent ou à un administrateur.
    """
    try:
        return service.get_student_report(principal, student_id)
    except AchievementError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
