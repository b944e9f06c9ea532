"""
Router des prestations étudiantes.
Cycle de vie : création (brouillon), modification, soumission, vérification/rejet
par l'enseignant référent, suppression logique, pièces jointes, historique.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query

from app.dependencies import (
    get_achievement_filters,
    get_achievement_service,
    get_current_principal,
    get_statistics_filters,
    get_statistics_service,
)
from app.schemas.achievement import (
    AchievementContent,
    AchievementFilters,
    AchievementHistoryResponse,
    AchievementListResponse,
    AchievementReferenceResponse,
    AchievementView,
    Attachment,
    AttachmentCreate,
    RejectRequest,
)
from app.schemas.statistics import AchievementStatistics, StatisticsFilters
from app.security import Principal
from app.services.achievement_service import AchievementService
from app.services.errors import AchievementError
from app.services.statistics_service import StatisticsService

router = APIRouter(prefix="/api/v1/achievements", tags=["Prestations"])


@router.post("", response_model=AchievementReferenceResponse, status_code=201, summary="Créer une prestation")
def create_achievement(
    data: AchievementContent,
    principal: Principal = Depends(get_current_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    """
    Crée une prestation en brouillon pour l'étudiant connecté.
    Le contenu est stocké dans la base documentaire, la référence (statut) dans la base relationnelle.
    """
    try:
        return service.create(principal, data)
    except AchievementError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("", response_model=AchievementListResponse, summary="Lister les prestations")
def list_achievements(
    page: int = Query(1),
    limit: int = Query(10),
    filters: AchievementFilters = Depends(get_achievement_filters),
    principal: Principal = Depends(get_current_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    """
    Liste paginée, du plus récent au plus ancien.
    - étudiant : ses propres prestations
    - enseignant : celles de ses étudiants suivis
    - administrateur : toutes (filtre student_id optionnel)
    """
    try:
        return service.list_achievements(principal, filters, page=page, limit=limit)
    except AchievementError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


# Déclarée avant /{achievement_id} pour ne pas être capturée par le paramètre de chemin
@router.get("/statistics", response_model=AchievementStatistics, summary="Statistiques des prestations")
def get_statistics(
    filters: StatisticsFilters = Depends(get_statistics_filters),
    principal: Principal = Depends(get_current_principal),
    service: StatisticsService = Depends(get_statistics_service),
):
    """Total, répartitions par type, période, niveau et statut, top 10 des étudiants."""
    try:
        return service.get_statistics(principal, filters)
    except AchievementError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/{achievement_id}", response_model=AchievementView, summary="Détail d'une prestation")
def get_achievement(
    achievement_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    """Référence et contenu fusionnés. Accessible au propriétaire, à son enseignant référent ou à un administrateur."""
    try:
        return service.get(principal, achievement_id)
    except AchievementError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.put("/{achievement_id}", response_model=AchievementReferenceResponse, summary="Modifier une prestation")
def update_achievement(
    achievement_id: uuid.UUID,
    data: AchievementContent,
    principal: Principal = Depends(get_current_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    """Remplace le contenu d'un brouillon. Les pièces jointes sont conservées."""
    try:
        return service.update(principal, achievement_id, data)
    except AchievementError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.delete("/{achievement_id}", status_code=204, summary="Supprimer une prestation")
def delete_achievement(
    achievement_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    """Suppression logique d'un brouillon (document marqué supprimé, statut → deleted)."""
    try:
        service.delete(principal, achievement_id)
    except AchievementError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{achievement_id}/submit", response_model=AchievementReferenceResponse, summary="Soumettre")
def submit_achievement(
    achievement_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    try:
        return service.submit(principal, achievement_id)
    except AchievementError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{achievement_id}/verify", response_model=AchievementReferenceResponse, summary="Vérifier")
def verify_achievement(
    achievement_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    """Réservé à l'enseignant référent de l'étudiant ; la prestation doit être soumise."""
    try:
        return service.verify(principal, achievement_id)
    except AchievementError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{achievement_id}/reject", response_model=AchievementReferenceResponse, summary="Rejeter")
def reject_achievement(
    achievement_id: uuid.UUID,
    data: RejectRequest,
    principal: Principal = Depends(get_current_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    """Réservé à l'enseignant référent ; une note de rejet non vide est obligatoire."""
    try:
        return service.reject(principal, achievement_id, data.rejection_note)
    except AchievementError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get(
    "/{achievement_id}/history",
    response_model=AchievementHistoryResponse,
    summary="Historique des statuts",
)
def get_achievement_history(
    achievement_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    """Entrées du journal dans l'ordre d'écriture. Propriétaire ou enseignant référent."""
    try:
        return service.get_history(principal, achievement_id)
    except AchievementError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post(
    "/{achievement_id}/attachments",
    response_model=Attachment,
    status_code=201,
    summary="Ajouter une pièce jointe",
)
def add_attachment(
    achievement_id: uuid.UUID,
    data: AttachmentCreate,
    principal: Principal = Depends(get_current_principal),
    service: AchievementService = Depends(get_achievement_service),
):
    """
    Enregistre un fichier déjà téléversé (jpeg, png, pdf, doc, docx ; 10 Mo max).
    Autorisé sur un brouillon ou une prestation rejetée ; le statut n'est pas modifié
    (une prestation rejetée reste rejetée).
    """
    try:
        return service.add_attachment(principal, achievement_id, data)
    except AchievementError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
