"""
Dépendances FastAPI partagées : authentification de l'appelant et fabriques de services.

Les caches (jetons révoqués, historique des statuts) sont créés une seule fois
dans le lifespan de l'application et lus depuis app.state.
"""

import uuid
from datetime import date
from typing import Optional

from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.database import get_db, get_document_db
from app.schemas.achievement import AchievementFilters
from app.schemas.statistics import StatisticsFilters
from app.security import Principal, decode_access_token, principal_from_claims
from app.services.achievement_service import AchievementService
from app.services.document_store import DocumentStore
from app.services.history_cache import StatusHistoryCache
from app.services.identity_service import IdentityResolver
from app.services.reference_store import ReferenceStore
from app.services.statistics_service import StatisticsService
from app.services.token_revocation import TokenRevocationCache

bearer_scheme = HTTPBearer(auto_error=False)


def get_revocation_cache(request: Request) -> TokenRevocationCache:
    return request.app.state.revocation_cache


def get_history_cache(request: Request) -> StatusHistoryCache:
    return request.app.state.history_cache


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentification requise.")
    return credentials.credentials


def get_token_claims(
    token: str = Depends(get_bearer_token),
    revocation_cache: TokenRevocationCache = Depends(get_revocation_cache),
) -> dict:
    """Claims d'un jeton valide et non révoqué."""
    try:
        claims = decode_access_token(token)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

    if revocation_cache.is_revoked(token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Jeton révoqué.")
    return claims


def get_current_principal(claims: dict = Depends(get_token_claims)) -> Principal:
    try:
        return principal_from_claims(claims)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Accès réservé aux administrateurs.")
    return principal


def get_achievement_service(
    db: Session = Depends(get_db),
    document_db: Session = Depends(get_document_db),
    history_cache: StatusHistoryCache = Depends(get_history_cache),
) -> AchievementService:
    return AchievementService(
        ReferenceStore(db),
        DocumentStore(document_db),
        IdentityResolver(db),
        history_cache,
    )


def get_statistics_service(
    db: Session = Depends(get_db),
    document_db: Session = Depends(get_document_db),
) -> StatisticsService:
    return StatisticsService(ReferenceStore(db), DocumentStore(document_db), IdentityResolver(db))


def _validated_filters(model, **values):
    """Construit un schéma de filtres depuis la query string ; 422 si une valeur est invalide."""
    try:
        return model(**values)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        )


def get_achievement_filters(
    status_filter: Optional[str] = Query(None, alias="status"),
    student_id: Optional[uuid.UUID] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
) -> AchievementFilters:
    return _validated_filters(
        AchievementFilters,
        status=status_filter,
        student_id=student_id,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
    )


def get_statistics_filters(
    status_filter: Optional[str] = Query(None, alias="status"),
    student_id: Optional[uuid.UUID] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
) -> StatisticsFilters:
    return _validated_filters(
        StatisticsFilters,
        status=status_filter,
        student_id=student_id,
        date_from=date_from,
        date_to=date_to,
    )
