"""
Modèles SQLAlchemy pour les références de prestations et leur journal de statuts.
La référence est la source de vérité pour le statut et la propriété ;
le contenu détaillé vit dans la base documentaire (voir document.py).
"""

import uuid
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base


class AchievementReference(Base):
    __tablename__ = "achievement_references"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id"), nullable=False)
    document_ref = Column(String(32), unique=True, nullable=False)  # immuable après création
    status = Column(String(20), nullable=False, default="draft")    # draft, submitted, verified, rejected, deleted
    submitted_at = Column(DateTime, nullable=True)
    verified_at = Column(DateTime, nullable=True)
    verified_by = Column(UUID(as_uuid=True), ForeignKey("lecturers.id"), nullable=True)
    rejection_note = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_achievement_references_student_created", "student_id", "created_at"),
    )


class AchievementStatusLog(Base):
    """Journal append-only : une ligne par statut atteint."""
    __tablename__ = "achievement_status_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)  # ordre d'insertion
    achievement_id = Column(
        UUID(as_uuid=True), ForeignKey("achievement_references.id"), nullable=False, index=True
    )
    status = Column(String(20), nullable=False)
    changed_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)  # NULL = création système
    rejection_note = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
