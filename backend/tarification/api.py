"""
Routes API FastAPI.
"""
from datetime import date
from typing import List, Optional, Dict, Any
from fastapi import APIRouter, HTTPException, Query, Depends
from fastapi.responses import Response
from sqlmodel import Session

from tarification.database import get_session
from tarification.models import ArbreDecision
from tarification.schemas import (
    ArbreCreate,
    ArbreUpdate,
    ArbreResponse,
    ArbreStatut,
    SimulationRequest,
    EvaluationResponse,
    BornesTarif,
    OperationComptableCreate,
    CotisationCreate,
    CotisationResponse,
)
from tarification.services import arbre_lifecycle, referentiels
from tarification.services.cotisation_pricing import creer_cotisation, simuler_arbre
from tarification.services.reduction_export import generer_export_excel
from tarification.services.reduction_ledger import export_reductions_par_operation, get_reductions_cotisation

router = APIRouter()


def _arbre_response(arbre: ArbreDecision) -> ArbreResponse:
    return ArbreResponse(
        id=arbre.id,
        tarif_cotisation_id=arbre.tarif_cotisation_id,
        mode_affichage=arbre.mode_affichage,
        arbre_json=arbre.get_document(),
        version=arbre.version,
        verrouille=arbre.verrouille,
        date_verrouillage=arbre.date_verrouillage,
        structure_id=arbre.structure_id,
    )


def _verifier_periode(date_debut: date, date_fin: date) -> None:
    if date_fin < date_debut:
        raise HTTPException(status_code=400, detail="date_fin doit etre posterieure a date_debut")


# ==================== REFERENTIELS ====================

@router.get("/arbres-decision/types-condition")
async def list_types_condition(session: Session = Depends(get_session)):
    return referentiels.get_types_condition(session)


@router.get("/arbres-decision/tags")
async def list_tags(structure_id: Optional[int] = None, session: Session = Depends(get_session)):
    return referentiels.get_tags_disponibles(session, structure_id)


@router.get("/arbres-decision/operations-reduction")
async def list_operations_reduction(structure_id: Optional[int] = None, session: Session = Depends(get_session)):
    return referentiels.get_operations_comptables(session, structure_id)


@router.post("/arbres-decision/operations-reduction", status_code=201)
async def create_operation_reduction(data: OperationComptableCreate, session: Session = Depends(get_session)):
    operation = referentiels.creer_operation_comptable(session, data)
    session.commit()
    session.refresh(operation)
    return operation


# ==================== EXPORT COMPTABLE ====================

@router.get("/arbres-decision/reductions/export")
async def export_reductions(
    date_debut: date = Query(...),
    date_fin: date = Query(...),
    structure_id: Optional[int] = None,
    session: Session = Depends(get_session),
) -> List[Dict[str, Any]]:
    _verifier_periode(date_debut, date_fin)
    return export_reductions_par_operation(session, date_debut, date_fin, structure_id)


@router.get("/arbres-decision/reductions/export-excel")
async def export_reductions_excel(
    date_debut: date = Query(...),
    date_fin: date = Query(...),
    structure_id: Optional[int] = None,
    session: Session = Depends(get_session),
):
    _verifier_periode(date_debut, date_fin)
    lignes = export_reductions_par_operation(session, date_debut, date_fin, structure_id)
    contenu = generer_export_excel(lignes, date_debut, date_fin)
    return Response(
        content=contenu,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="Reductions_{date_debut}_{date_fin}.xlsx"'}
    )


# ==================== ARBRES ====================

@router.get("/arbres-decision/tarif/{tarif_id}", response_model=Optional[ArbreResponse])
async def get_arbre_tarif(tarif_id: int, session: Session = Depends(get_session)):
    """Arbre du tarif (null si le tarif n'en a pas encore)."""
    return arbre_lifecycle.get_arbre_by_tarif(session, tarif_id)


@router.post("/arbres-decision/tarif/{tarif_id}", response_model=ArbreResponse, status_code=201)
async def create_arbre(tarif_id: int, data: ArbreCreate, session: Session = Depends(get_session)):
    arbre = arbre_lifecycle.creer_arbre(
        session, tarif_id,
        mode_affichage=data.mode_affichage,
        document=data.arbre_json,
        structure_id=data.structure_id,
    )
    session.commit()
    session.refresh(arbre)
    return _arbre_response(arbre)


@router.put("/arbres-decision/{arbre_id}", response_model=ArbreResponse)
async def update_arbre(arbre_id: int, data: ArbreUpdate, session: Session = Depends(get_session)):
    arbre = arbre_lifecycle.modifier_arbre(
        session, arbre_id,
        mode_affichage=data.mode_affichage,
        document=data.arbre_json,
    )
    session.commit()
    session.refresh(arbre)
    return _arbre_response(arbre)


@router.delete("/arbres-decision/{arbre_id}")
async def delete_arbre(arbre_id: int, session: Session = Depends(get_session)):
    arbre_lifecycle.supprimer_arbre(session, arbre_id)
    session.commit()
    return {"success": True}


@router.post("/arbres-decision/{arbre_id}/simuler", response_model=EvaluationResponse)
async def simulate_arbre(arbre_id: int, data: SimulationRequest, session: Session = Depends(get_session)):
    """Évalue l'arbre pour un usager existant ou un profil saisi, sans verrouiller."""
    if data.utilisateur_id is None and data.utilisateur is None:
        raise HTTPException(status_code=400, detail="utilisateur_id ou utilisateur requis")
    return simuler_arbre(
        session, arbre_id,
        utilisateur_id=data.utilisateur_id,
        utilisateur=data.utilisateur,
        date_cotisation=data.date_cotisation,
        montant_base=data.montant_base,
    )


@router.get("/arbres-decision/{arbre_id}/statut", response_model=ArbreStatut)
async def get_statut_arbre(arbre_id: int, session: Session = Depends(get_session)):
    arbre = arbre_lifecycle.get_arbre(session, arbre_id)
    return ArbreStatut(
        id=arbre.id,
        verrouille=arbre.verrouille,
        date_verrouillage=arbre.date_verrouillage,
        version=arbre.version,
        modifiable=not arbre.verrouille,
    )


@router.post("/arbres-decision/{arbre_id}/verrouiller", response_model=ArbreResponse)
async def lock_arbre(arbre_id: int, session: Session = Depends(get_session)):
    arbre = arbre_lifecycle.verrouiller_arbre(session, arbre_id)
    session.commit()
    session.refresh(arbre)
    return _arbre_response(arbre)


@router.post("/arbres-decision/{arbre_id}/dupliquer", response_model=ArbreResponse)
async def duplicate_arbre(arbre_id: int, session: Session = Depends(get_session)):
    arbre = arbre_lifecycle.dupliquer_arbre(session, arbre_id)
    session.commit()
    session.refresh(arbre)
    return _arbre_response(arbre)


@router.get("/arbres-decision/{arbre_id}/bornes", response_model=BornesTarif)
async def get_bornes_arbre(arbre_id: int, montant_base: float = Query(..., ge=0),
                           session: Session = Depends(get_session)):
    arbre_lifecycle.get_arbre(session, arbre_id)
    return arbre_lifecycle.calculer_bornes_tarif(session, arbre_id, montant_base)


# ==================== COTISATIONS ====================

@router.post("/cotisations", response_model=CotisationResponse, status_code=201)
async def create_cotisation(data: CotisationCreate, session: Session = Depends(get_session)):
    """Tarife la cotisation, verrouille l'arbre et journalise les réductions (une transaction)."""
    if data.date_fin < data.date_debut:
        raise HTTPException(status_code=400, detail="date_fin doit etre posterieure a date_debut")
    try:
        resultat = creer_cotisation(
            session,
            utilisateur_id=data.utilisateur_id,
            tarif_id=data.tarif_cotisation_id,
            date_debut=data.date_debut,
            date_fin=data.date_fin,
            date_paiement=data.date_paiement,
            structure_id=data.structure_id,
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    cotisation = resultat["cotisation"]
    session.refresh(cotisation)
    return CotisationResponse(
        id=cotisation.id,
        utilisateur_id=cotisation.utilisateur_id,
        tarif_cotisation_id=cotisation.tarif_cotisation_id,
        arbre_id=cotisation.arbre_id,
        arbre_version=cotisation.arbre_version,
        montant_base=cotisation.montant_base,
        montant_reductions=cotisation.montant_reductions,
        montant_final=cotisation.montant_final,
        reductions=resultat["reductions"],
        chemin=resultat["chemin"],
    )


@router.get("/cotisations/{cotisation_id}/reductions")
async def list_reductions_cotisation(cotisation_id: int, session: Session = Depends(get_session)):
    return get_reductions_cotisation(session, cotisation_id)
