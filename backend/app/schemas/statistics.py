"""
Schémas Pydantic pour les statistiques et rapports de prestations.
"""

import uuid
import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, field_validator

from app.schemas.achievement import VALID_STATUSES, AchievementListItem


class StatisticsFilters(BaseModel):
    status: Optional[str] = None
    student_id: Optional[uuid.UUID] = None  # pris en compte pour l'administrateur uniquement
    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in VALID_STATUSES:
            raise ValueError(f"Statut invalide. Valeurs acceptées : {VALID_STATUSES}")
        return v


class StatsByType(BaseModel):
    type: str
    count: int


class StatsByPeriod(BaseModel):
    period: str  # YYYY-MM
    count: int


class TopStudent(BaseModel):
    student_id: uuid.UUID
    student_number: Optional[str] = None
    student_name: Optional[str] = None
    program_study: Optional[str] = None
    count: int


class LevelDistribution(BaseModel):
    level: str
    count: int


class StatusDistribution(BaseModel):
    status: str
    count: int


class AchievementStatistics(BaseModel):
    total_achievements: int = 0
    by_type: List[StatsByType] = []
    by_period: List[StatsByPeriod] = []
    top_students: List[TopStudent] = []
    level_distribution: List[LevelDistribution] = []
    status_distribution: List[StatusDistribution] = []


class StudentProfile(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    student_number: str
    full_name: Optional[str] = None
    program_study: Optional[str] = None
    academic_year: Optional[str] = None
    advisor_id: Optional[uuid.UUID] = None


class StudentReportResponse(BaseModel):
    student: StudentProfile
    statistics: AchievementStatistics
    recent_achievements: List[AchievementListItem]
