"""
Modèles SQLAlchemy pour les profils étudiant et enseignant.
Un étudiant est suivi par un enseignant référent (advisor_id).
"""

import uuid
from sqlalchemy import Column, DateTime, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base


class Lecturer(Base):
    __tablename__ = "lecturers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    lecturer_number = Column(String(20), unique=True, nullable=False)
    department = Column(String(100), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Student(Base):
    __tablename__ = "students"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    student_number = Column(String(20), unique=True, nullable=False)  # matricule
    program_study = Column(String(100), nullable=True)
    academic_year = Column(String(10), nullable=True)
    advisor_id = Column(UUID(as_uuid=True), ForeignKey("lecturers.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
