"""
Cycle de vie des arbres : création, modification, verrouillage, réouverture.

Un arbre est modifiable tant qu'il n'a tarifé aucune cotisation réelle.
Les fonctions ne font que `flush()` : l'appelant porte la transaction
(commit côté API, ou dans la transaction de création de cotisation).
"""
import logging
from datetime import datetime
from typing import Dict, Optional

from sqlmodel import Session, select

from tarification.core.errors import ArbreDejaExistant, ArbreVerrouille, RessourceNonTrouvee
from tarification.models import DOCUMENT_VIDE, ArbreDecision, ModeAffichage, TarifCotisation
from tarification.schemas import ArbreDocument
from tarification.services.arbre_engine import calculer_bornes, charger_document
from tarification.services.referentiels import get_types_condition

logger = logging.getLogger(__name__)


def _document_stockable(document: ArbreDocument) -> Dict:
    return document.model_dump(mode="json", exclude_none=True)


def get_arbre(session: Session, arbre_id: int) -> ArbreDecision:
    arbre = session.get(ArbreDecision, arbre_id)
    if not arbre:
        raise RessourceNonTrouvee("Arbre non trouve", {"arbre_id": arbre_id})
    return arbre


def _exiger_modifiable(arbre: ArbreDecision) -> None:
    if arbre.verrouille:
        raise ArbreVerrouille(details={
            "verrouille": True,
            "date_verrouillage": arbre.date_verrouillage.isoformat() if arbre.date_verrouillage else None,
            "version": arbre.version,
        })


def get_arbre_by_tarif(session: Session, tarif_id: int) -> Optional[Dict]:
    """Arbre d'un tarif accompagné des types de condition actifs (None si absent)."""
    arbre = session.exec(
        select(ArbreDecision).where(ArbreDecision.tarif_cotisation_id == tarif_id)
    ).first()
    if not arbre:
        return None
    data = arbre.model_dump()
    data["arbre_json"] = arbre.get_document()
    data["types_condition_disponibles"] = [t.model_dump() for t in get_types_condition(session)]
    return data


def creer_arbre(session: Session, tarif_id: int, mode_affichage: Optional[ModeAffichage] = None,
                document: Optional[ArbreDocument] = None,
                structure_id: Optional[int] = None) -> ArbreDecision:
    """Crée l'arbre d'un tarif ; un tarif ne peut en porter qu'un."""
    if not session.get(TarifCotisation, tarif_id):
        raise RessourceNonTrouvee("Tarif non trouve", {"tarif_id": tarif_id})

    existant = session.exec(
        select(ArbreDecision).where(ArbreDecision.tarif_cotisation_id == tarif_id)
    ).first()
    if existant:
        raise ArbreDejaExistant(details={"arbre_id": existant.id, "tarif_id": tarif_id})

    arbre = ArbreDecision(
        tarif_cotisation_id=tarif_id,
        mode_affichage=mode_affichage or ModeAffichage.MINIMUM,
        version=1,
        verrouille=False,
        structure_id=structure_id,
    )
    arbre.set_document(_document_stockable(document) if document else dict(DOCUMENT_VIDE, noeuds=[]))
    session.add(arbre)
    session.flush()
    logger.info("[ARBRE] Arbre %s cree pour le tarif %s", arbre.id, tarif_id)
    return arbre


def modifier_arbre(session: Session, arbre_id: int, mode_affichage: Optional[ModeAffichage] = None,
                   document: Optional[ArbreDocument] = None) -> ArbreDecision:
    """
    Remplace le document d'un arbre non verrouillé.
    La version n'est incrémentée que si le contenu du document change.
    """
    arbre = get_arbre(session, arbre_id)
    _exiger_modifiable(arbre)

    if document is not None:
        nouveau = _document_stockable(document)
        # Comparaison structurelle des noeuds, le champ "version" du document suit arbre.version
        if nouveau["noeuds"] != _document_stockable(charger_document(arbre))["noeuds"]:
            arbre.version += 1
            nouveau["version"] = arbre.version
            arbre.set_document(nouveau)
            logger.info("[ARBRE] Arbre %s modifie -> version %s", arbre.id, arbre.version)

    if mode_affichage is not None:
        arbre.mode_affichage = mode_affichage

    arbre.updated_at = datetime.now()
    session.add(arbre)
    session.flush()
    return arbre


def supprimer_arbre(session: Session, arbre_id: int) -> None:
    arbre = get_arbre(session, arbre_id)
    _exiger_modifiable(arbre)
    session.delete(arbre)
    session.flush()
    logger.info("[ARBRE] Arbre %s supprime", arbre_id)


def verrouiller_arbre(session: Session, arbre_id: int) -> ArbreDecision:
    """Verrouille l'arbre (idempotent). Appelé à la première cotisation réelle."""
    arbre = get_arbre(session, arbre_id)
    if not arbre.verrouille:
        arbre.verrouille = True
        arbre.date_verrouillage = datetime.now()
        session.add(arbre)
        session.flush()
        logger.info("[ARBRE] Arbre %s verrouille (version %s)", arbre.id, arbre.version)
    return arbre


def est_modifiable(session: Session, arbre_id: int) -> bool:
    arbre = session.get(ArbreDecision, arbre_id)
    return not arbre.verrouille if arbre else False


def dupliquer_arbre(session: Session, arbre_id: int) -> ArbreDecision:
    """
    Ouvre une nouvelle version d'un arbre verrouillé.

    L'arbre est déverrouillé sur place (même ligne, version + 1) : un tarif
    ne porte qu'un arbre. Un arbre non verrouillé est retourné tel quel.
    """
    arbre = get_arbre(session, arbre_id)
    if not arbre.verrouille:
        return arbre

    document = arbre.get_document()
    document["version"] = arbre.version + 1
    arbre.set_document(document)
    arbre.version += 1
    arbre.verrouille = False
    arbre.date_verrouillage = None
    arbre.updated_at = datetime.now()
    session.add(arbre)
    session.flush()
    logger.warning(
        "[ARBRE] Arbre %s deverrouille pour edition (version %s) ; les cotisations deja tarifees "
        "referencent la version %s", arbre.id, arbre.version, arbre.version - 1,
    )
    return arbre


def calculer_bornes_tarif(session: Session, arbre_id: int, montant_base: float) -> Dict[str, float]:
    """Bornes {min, max} du prix ; sans arbre, le prix est la base."""
    arbre = session.get(ArbreDecision, arbre_id)
    if not arbre:
        return {"min": montant_base, "max": montant_base}
    return calculer_bornes(charger_document(arbre), montant_base)

