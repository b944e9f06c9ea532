"""
Point d'entrée principal de l'API de gestion des prestations étudiantes.
Démarrage : uvicorn app.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import app.models  # noqa: F401 (enregistre tous les modèles dans les metadata avant les routers)
from app.routers import achievements, admin, auth, reports
from app.scheduler import start_scheduler, stop_scheduler
from app.services.history_cache import StatusHistoryCache
from app.services.token_revocation import TokenRevocationCache

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Cycle de vie de l'application :
    crée les caches partagés (jetons révoqués, historique des statuts)
    puis démarre et arrête le scheduler APScheduler.
    """
    app.state.revocation_cache = TokenRevocationCache()
    app.state.history_cache = StatusHistoryCache()
    start_scheduler(app.state.revocation_cache)
    yield
    stop_scheduler()


app = FastAPI(
    title="Achievements API",
    description="API de gestion des prestations étudiantes (soumission, vérification, rapports)",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# CORS : tous les ports localhost en développement (à restreindre en production).
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)


app.include_router(auth.router)
app.include_router(achievements.router)
app.include_router(reports.router)
app.include_router(admin.router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte toutes les exceptions non gérées pour que la réponse 500
    passe par CORSMiddleware et reste au format JSON.
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que l'API est opérationnelle."""
    return {"status": "ok", "service": "Achievements API", "version": "0.1.0"}
