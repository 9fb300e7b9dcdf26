"""
Configuration de la base de données.
"""
import logging
import os
from sqlmodel import SQLModel, create_engine, Session

# Import des modèles pour enregistrer les tables dans SQLModel.metadata
from tarification import models  # noqa: F401

logger = logging.getLogger(__name__)

# Si DATABASE_URL est défini (PostgreSQL), on l'utilise.
# Sinon on reste sur SQLite en local.
_POSTGRES_URL = os.environ.get("DATABASE_URL", "")


def build_database_url(raw_url: str) -> str:
    """Convertit une URL postgres:// en URL SQLAlchemy pg8000 (driver pur Python)."""
    if not raw_url:
        return "sqlite:///./tarification.db"
    if raw_url.startswith("sqlite"):
        return raw_url
    base = raw_url
    for prefix in ("postgresql://", "postgres://"):
        if base.startswith(prefix):
            base = base.replace(prefix, "postgresql+pg8000://", 1)
            break
    return base + ("&" if "?" in base else "?") + "ssl_context=true"


DATABASE_URL = build_database_url(_POSTGRES_URL)

# check_same_thread uniquement pour SQLite
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, connect_args=_connect_args)


def init_db(bind=None):
    """Crée les tables manquantes (sans supprimer l'existant)."""
    SQLModel.metadata.create_all(bind or engine, checkfirst=True)
    logger.info("[INIT_DB] Tables verifiees sur %s", (bind or engine).url.get_backend_name())


def get_session():
    """Retourne une session de base de données."""
    with Session(engine) as session:
        yield session
