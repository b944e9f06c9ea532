"""
Schémas Pydantic pour les prestations étudiantes.

Note : le contenu (titre, détails de compétition, pièces jointes, champs personnalisés)
vit dans la base documentaire ; le statut et la propriété vivent dans la référence.
"""

import uuid
import datetime as dt
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from app.config import settings

STATUS_DRAFT = "draft"
STATUS_SUBMITTED = "submitted"
STATUS_VERIFIED = "verified"
STATUS_REJECTED = "rejected"
STATUS_DELETED = "deleted"

VALID_STATUSES = {STATUS_DRAFT, STATUS_SUBMITTED, STATUS_VERIFIED, STATUS_REJECTED, STATUS_DELETED}
VALID_COMPETITION_LEVELS = {"international", "national", "regional", "local"}
ALLOWED_ATTACHMENT_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}
SORTABLE_FIELDS = {"created_at", "updated_at", "status"}


class CompetitionDetails(BaseModel):
    """Métadonnées de compétition ; les clés supplémentaires sont conservées telles quelles."""
    competition_name: Optional[str] = None
    competition_level: Optional[str] = None  # international, national, regional, local
    organizer: Optional[str] = None
    event_date: Optional[dt.date] = None
    location: Optional[str] = None
    rank: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    @field_validator("competition_level")
    @classmethod
    def valid_level(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if v not in VALID_COMPETITION_LEVELS:
            raise ValueError(f"Niveau invalide. Valeurs acceptées : {VALID_COMPETITION_LEVELS}")
        return v


class AchievementContent(BaseModel):
    """Corps de requête pour créer ou modifier une prestation (contenu documentaire)."""
    achievement_type: str
    title: str
    description: Optional[str] = None
    details: CompetitionDetails = CompetitionDetails()
    tags: List[str] = []
    points: Optional[float] = None
    custom_fields: Dict[str, Any] = {}

    @field_validator("achievement_type", "title")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le champ ne peut pas être vide.")
        return v.strip()

    @field_validator("points")
    @classmethod
    def points_positive(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("Les points ne peuvent pas être négatifs.")
        return v


class AttachmentCreate(BaseModel):
    """Descripteur d'un fichier déjà téléversé (le stockage du fichier est externe)."""
    file_name: str
    file_url: str
    file_type: str
    file_size: Optional[int] = None

    @field_validator("file_name", "file_url")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le champ ne peut pas être vide.")
        return v.strip()

    @field_validator("file_type")
    @classmethod
    def allowed_type(cls, v: str) -> str:
        if v not in ALLOWED_ATTACHMENT_TYPES:
            raise ValueError("Type de fichier non autorisé.")
        return v

    @field_validator("file_size")
    @classmethod
    def max_size(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v > settings.MAX_ATTACHMENT_SIZE_BYTES:
            raise ValueError("Fichier trop volumineux (10 Mo maximum).")
        return v


class Attachment(BaseModel):
    file_name: str
    file_url: str
    file_type: str
    uploaded_at: datetime


class RejectRequest(BaseModel):
    # Pas de validateur : une note vide est refusée par le service (ValidationFailed).
    rejection_note: str = ""


class AchievementReferenceResponse(BaseModel):
    id: uuid.UUID
    student_id: uuid.UUID
    document_ref: str
    status: str
    submitted_at: Optional[datetime]
    verified_at: Optional[datetime]
    verified_by: Optional[uuid.UUID]
    rejection_note: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AchievementDocumentResponse(BaseModel):
    id: str
    student_id: uuid.UUID
    achievement_type: str
    title: str
    description: Optional[str]
    details: Dict[str, Any] = {}
    attachments: List[Attachment] = []
    tags: List[str] = []
    points: Optional[float] = None
    custom_fields: Dict[str, Any] = {}
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AchievementView(BaseModel):
    """Vue fusionnée référence + document (lecture unitaire)."""
    reference: AchievementReferenceResponse
    detail: Optional[AchievementDocumentResponse]


class AchievementListItem(AchievementReferenceResponse):
    """Ligne de liste : référence + infos étudiant + détail (absent si indisponible)."""
    student_number: Optional[str] = None
    student_name: Optional[str] = None
    program_study: Optional[str] = None
    details: Optional[AchievementDocumentResponse] = None


class PaginationMetadata(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class AchievementListResponse(BaseModel):
    achievements: List[AchievementListItem]
    pagination: PaginationMetadata


class AchievementFilters(BaseModel):
    """Filtres de listage (statut, étudiant, période, tri)."""
    status: Optional[str] = None
    student_id: Optional[uuid.UUID] = None
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    sort_by: str = "created_at"
    sort_order: str = "desc"

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in VALID_STATUSES:
            raise ValueError(f"Statut invalide. Valeurs acceptées : {VALID_STATUSES}")
        return v

    @field_validator("sort_by")
    @classmethod
    def valid_sort_by(cls, v: str) -> str:
        if v not in SORTABLE_FIELDS:
            raise ValueError(f"Tri invalide. Valeurs acceptées : {SORTABLE_FIELDS}")
        return v

    @field_validator("sort_order")
    @classmethod
    def valid_sort_order(cls, v: str) -> str:
        v = v.lower()
        if v not in {"asc", "desc"}:
            raise ValueError("L'ordre de tri doit être 'asc' ou 'desc'.")
        return v


class StatusHistoryEntry(BaseModel):
    """Entrée du journal des statuts, immuable une fois écrite."""
    id: int
    achievement_id: uuid.UUID
    status: str
    changed_by: Optional[uuid.UUID] = None
    rejection_note: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, frozen=True)


class AchievementHistoryResponse(BaseModel):
    achievement_id: uuid.UUID
    timeline: List[StatusHistoryEntry]
