"""
Router d'administration : vue sur toutes les prestations.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query

from app.dependencies import get_achievement_filters, get_achievement_service, require_admin
from app.schemas.achievement import AchievementFilters, AchievementListResponse, AchievementView
from app.security import Principal
from app.services.achievement_service import AchievementService
from app.services.errors import AchievementError

router = APIRouter(prefix="/api/v1/admin", tags=["Administration"])


@router.get("/achievements", response_model=AchievementListResponse, summary="Lister toutes les prestations")
def list_all_achievements(
    page: int = Query(1),
    limit: int = Query(10),
    filters: AchievementFilters = Depends(get_achievement_filters),
    principal: Principal = Depends(require_admin),
    service: AchievementService = Depends(get_achievement_service),
):
    """
    Filtres : status, student_id, date_from, date_to.
    Tri : sort_by (created_at, updated_at, status), sort_order (asc, desc).
    """
    try:
        return service.list_for_admin(principal, filters, page=page, limit=limit)
    except AchievementError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/achievements/{achievement_id}", response_model=AchievementView, summary="Détail d'une prestation")
def get_achievement_detail(
    achievement_id: uuid.UUID,
    principal: Principal = Depends(require_admin),
    service: AchievementService = Depends(get_achievement_service),
):
    try:
        return service.get(principal, achievement_id)
    except AchievementError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
