"""
Fixtures partagées : base SQLite en mémoire et client HTTP.
"""
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from tarification import models  # noqa: F401
from tarification.database import get_session
from tarification.main import app
from tarification.models import TarifCotisation, Utilisateur


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(engine):
    def _session_test():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _session_test
    # Pas de context manager : l'événement startup (base locale, seed) n'est pas déclenché
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def tarif(session):
    tarif = TarifCotisation(libelle="Adhesion annuelle", montant_base=100.0)
    session.add(tarif)
    session.commit()
    session.refresh(tarif)
    return tarif


@pytest.fixture
def usager(session):
    usager = Utilisateur(
        nom="Martin",
        prenom="Lea",
        date_naissance=date(2000, 6, 15),
        commune_id=12,
        quotient_familial=850,
        famille_id=7,
    )
    session.add(usager)
    session.commit()
    session.refresh(usager)
    return usager
