"""
Jetons d'accès JWT et identité typée de l'appelant.

L'émission des jetons (login) appartient au service de comptes ; ce module sait
seulement les vérifier et les décoder en un Principal validé une seule fois.
"""

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict

from app.config import settings


class Role(str, Enum):
    STUDENT = "student"
    LECTURER = "lecturer"
    ADMIN = "admin"


class Principal(BaseModel):
    """Appelant authentifié : identifiant utilisateur + rôle déclaré dans le jeton."""
    user_id: uuid.UUID
    role: Role

    model_config = ConfigDict(frozen=True)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def create_access_token(principal: Principal, expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {
        "sub": str(principal.user_id),
        "role": principal.role.value,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Vérifie signature et expiration. Lève ValueError si le jeton est invalide."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as exc:
        raise ValueError("Jeton invalide ou expiré.") from exc


def principal_from_claims(claims: dict) -> Principal:
    """Construit le Principal depuis les claims ; lève ValueError si incomplets."""
    try:
        return Principal(user_id=uuid.UUID(str(claims["sub"])), role=Role(claims["role"]))
    except (KeyError, ValueError) as exc:
        raise ValueError("Claims du jeton invalides.") from exc


def token_expiration(claims: dict) -> datetime:
    """Date d'expiration (UTC) d'un jeton déjà décodé."""
    return datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
