"""
Application FastAPI principale.
"""
import logging
import os
from pathlib import Path
from dotenv import load_dotenv

# Charger le .env situé dans le dossier backend/ avant de construire le moteur SQL
_env_path = Path(__file__).parent.parent / ".env"
load_dotenv(_env_path)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

from tarification.api import router
from tarification.core.errors import TarificationError
from tarification.database import engine, init_db
from tarification.services.seed import seed_referentiels

logger = logging.getLogger("tarification")
if not logger.handlers:
    logging.basicConfig(level=os.environ.get("TARIFICATION_LOG_LEVEL", "INFO").upper())

app = FastAPI(title="Tarification Cotisations API", version="0.1.0")


# Initialiser la base de données au démarrage
@app.on_event("startup")
def on_startup():
    try:
        init_db()
    except Exception as e:
        logger.warning("[STARTUP] init_db warning: %s", e)
        return
    if os.environ.get("TARIFICATION_SEED", "1") == "0":
        return
    try:
        with Session(engine) as session:
            seed_referentiels(session)
    except Exception as e:
        logger.warning("[STARTUP] seed warning: %s", e)


@app.exception_handler(TarificationError)
async def tarification_exception_handler(request: Request, exc: TarificationError):
    logger.info("[API] %s %s -> %s %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump()
    )


# CORS pour le frontend
_extra_origins = [o.strip() for o in os.environ.get("ALLOWED_ORIGINS", "").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        *_extra_origins,
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api", tags=["api"])


@app.get("/health")
async def health():
    return {"status": "ok"}
