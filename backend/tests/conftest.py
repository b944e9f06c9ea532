"""
Configuration partagée pour tous les tests.
Override les dépendances get_db / get_document_db pour éviter toute connexion réelle à PostgreSQL.
"""

import uuid
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app.database import get_db, get_document_db
from app.dependencies import get_achievement_service, get_statistics_service
from app.main import app
from app.security import Principal, Role, create_access_token


@pytest.fixture
def client():
    """Client HTTP de test avec les deux BDD mockées."""
    mock_db = MagicMock()
    mock_document_db = MagicMock()
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_document_db] = lambda: mock_document_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def achievement_service():
    """Service des prestations mocké, injecté dans les routers."""
    service = MagicMock()
    app.dependency_overrides[get_achievement_service] = lambda: service
    return service


@pytest.fixture
def statistics_service():
    service = MagicMock()
    app.dependency_overrides[get_statistics_service] = lambda: service
    return service


def make_headers(role: Role = Role.STUDENT, user_id: uuid.UUID = None) -> dict:
    token = create_access_token(Principal(user_id=user_id or uuid.uuid4(), role=role))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student_headers():
    return make_headers(Role.STUDENT)


@pytest.fixture
def lecturer_headers():
    return make_headers(Role.LECTURER)


@pytest.fixture
def admin_headers():
    return make_headers(Role.ADMIN)
