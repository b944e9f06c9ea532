"""
Router d'authentification : déconnexion par révocation du jeton courant.
La connexion (émission des jetons) est assurée par le service de comptes.
"""

import logging

from fastapi import APIRouter, Depends

from app.dependencies import get_bearer_token, get_revocation_cache, get_token_claims
from app.security import token_expiration
from app.services.token_revocation import TokenRevocationCache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["Authentification"])


@router.post("/logout", summary="Se déconnecter")
def logout(
    token: str = Depends(get_bearer_token),
    claims: dict = Depends(get_token_claims),
    revocation_cache: TokenRevocationCache = Depends(get_revocation_cache),
):
    """Révoque le jeton présenté jusqu'à son expiration ; il est refusé (401) par la suite."""
    revocation_cache.add(token, token_expiration(claims))
    logger.info("Jeton révoqué pour l'utilisateur %s", claims.get("sub"))
    return {"message": "Déconnexion réussie."}
