"""
Configuration des connexions aux deux bases de données.

- Base relationnelle PostgreSQL : références de prestations, journal des statuts, comptes.
- Base documentaire : détails flexibles des prestations (colonnes JSON), possédée séparément.

Chaque base a son propre moteur, sa propre fabrique de sessions et sa propre metadata.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from app.config import settings


def _engine_options(url: str) -> dict:
    """Applique le statement_timeout côté serveur pour PostgreSQL uniquement."""
    if url.startswith("postgresql") and settings.STATEMENT_TIMEOUT_MS > 0:
        return {"connect_args": {"options": f"-c statement_timeout={settings.STATEMENT_TIMEOUT_MS}"}}
    return {}


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

document_engine = create_engine(
    settings.DOCUMENT_DATABASE_URL, **_engine_options(settings.DOCUMENT_DATABASE_URL)
)

DocumentSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=document_engine)

DocumentBase = declarative_base()


def get_db():
    """Dépendance FastAPI : fournit une session BDD relationnelle et la ferme après usage."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_document_db():
    """Dépendance FastAPI : fournit une session sur la base documentaire."""
    db = DocumentSessionLocal()
    try:
        yield db
    finally:
        db.close()
