"""
Tests unitaires des jetons JWT et de la résolution d'identité.
"""

import uuid
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from jose import jwt

from app.config import settings
from app.security import (
    Principal,
    Role,
    create_access_token,
    decode_access_token,
    principal_from_claims,
    token_expiration,
)
from app.services.errors import UnauthorizedError
from app.services.identity_service import IdentityResolver


# ============================================================
# Jetons
# ============================================================

def test_jeton_decode_en_principal():
    principal = Principal(user_id=uuid.uuid4(), role=Role.LECTURER)

    claims = decode_access_token(create_access_token(principal))

    assert principal_from_claims(claims) == principal
    assert token_expiration(claims).tzinfo is not None


def test_jeton_expire_refuse():
    token = create_access_token(Principal(user_id=uuid.uuid4(), role=Role.STUDENT), timedelta(seconds=-1))

    with pytest.raises(ValueError):
        decode_access_token(token)


def test_jeton_mauvaise_signature():
    token = jwt.encode({"sub": str(uuid.uuid4()), "role": "admin"}, "autre-secret", algorithm=settings.ALGORITHM)

    with pytest.raises(ValueError):
        decode_access_token(token)


@pytest.mark.parametrize("claims", [
    {"role": "student"},
    {"sub": str(uuid.uuid4())},
    {"sub": "pas-un-uuid", "role": "student"},
    {"sub": str(uuid.uuid4()), "role": "superuser"},
])
def test_claims_invalides(claims):
    with pytest.raises(ValueError):
        principal_from_claims(claims)


# ============================================================
# IdentityResolver.resolve_scope
# ============================================================

def make_resolver(student=None, lecturer=None, advisees=None):
    resolver = IdentityResolver(MagicMock())
    resolver.resolve_student = MagicMock(return_value=student)
    resolver.resolve_lecturer = MagicMock(return_value=lecturer)
    resolver.advisee_ids = MagicMock(return_value=advisees or [])
    return resolver


def test_scope_etudiant_ignore_le_filtre():
    student = MagicMock(id=uuid.uuid4())
    resolver = make_resolver(student=student)

    scope = resolver.resolve_scope(Principal(user_id=uuid.uuid4(), role=Role.STUDENT), uuid.uuid4())

    assert scope == [student.id]


def test_scope_enseignant():
    advisees = [uuid.uuid4(), uuid.uuid4()]
    resolver = make_resolver(lecturer=MagicMock(id=uuid.uuid4()), advisees=advisees)

    assert resolver.resolve_scope(Principal(user_id=uuid.uuid4(), role=Role.LECTURER)) == advisees


def test_scope_admin():
    resolver = make_resolver()
    admin = Principal(user_id=uuid.uuid4(), role=Role.ADMIN)
    student_id = uuid.uuid4()

    assert resolver.resolve_scope(admin) is None
    assert resolver.resolve_scope(admin, student_id) == [student_id]


def test_scope_sans_profil_ni_role_admin():
    resolver = make_resolver()

    with pytest.raises(UnauthorizedError):
        resolver.resolve_scope(Principal(user_id=uuid.uuid4(), role=Role.STUDENT))


def test_resolve_student_par_user_id():
    db = MagicMock()
    student = MagicMock()
    db.execute.return_value.scalar.return_value = student

    assert IdentityResolver(db).resolve_student(Principal(user_id=uuid.uuid4(), role=Role.STUDENT)) is student
