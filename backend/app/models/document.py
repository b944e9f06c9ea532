"""
Modèle du document de prestation, stocké dans la base documentaire.

Le schéma est volontairement souple : détails de compétition, pièces jointes,
tags et champs personnalisés sont des colonnes JSON.
"""

from sqlalchemy import JSON, Column, DateTime, Float, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from app.database import DocumentBase


class AchievementDocument(DocumentBase):
    __tablename__ = "achievement_documents"

    id = Column(String(32), primary_key=True)  # attribué par le DocumentStore
    student_id = Column(UUID(as_uuid=True), nullable=False, index=True)  # copie dénormalisée
    achievement_type = Column(String(50), nullable=False)  # competition, publication, certification, ...
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    details = Column(JSON, nullable=False, default=dict)       # competition_level, organizer, event_date, ...
    attachments = Column(JSON, nullable=False, default=list)   # append-only
    tags = Column(JSON, nullable=False, default=list)
    points = Column(Float, nullable=True)
    custom_fields = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True)  # tombstone
