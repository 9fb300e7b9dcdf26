"""
Tarification d'une cotisation réelle et simulation d'arbre.
"""
import logging
from datetime import date
from typing import Any, Dict, Optional

from sqlmodel import Session, select

from tarification.core.errors import RessourceNonTrouvee
from tarification.models import ArbreDecision, Cotisation, StatutCotisation, TarifCotisation, Utilisateur, UtilisateurTag
from tarification.schemas import ContexteEvaluation, ProfilUtilisateur
from tarification.services.arbre_engine import evaluer_arbre
from tarification.services.arbre_lifecycle import get_arbre, verrouiller_arbre
from tarification.services.reduction_ledger import enregistrer_reductions

logger = logging.getLogger(__name__)


def charger_profil(session: Session, utilisateur_id: int) -> ProfilUtilisateur:
    """Profil d'un usager enregistré, tags compris."""
    utilisateur = session.get(Utilisateur, utilisateur_id)
    if not utilisateur:
        raise RessourceNonTrouvee("Utilisateur non trouve", {"utilisateur_id": utilisateur_id})
    tag_ids = session.exec(
        select(UtilisateurTag.tag_id).where(UtilisateurTag.utilisateur_id == utilisateur_id)
    ).all()
    return ProfilUtilisateur(
        id=utilisateur.id,
        commune_id=utilisateur.commune_id,
        quotient_familial=utilisateur.quotient_familial,
        date_naissance=utilisateur.date_naissance,
        famille_id=utilisateur.famille_id,
        tags=list(tag_ids),
        statut_social=utilisateur.statut_social,
    )


def simuler_arbre(session: Session, arbre_id: int, utilisateur_id: Optional[int] = None,
                  utilisateur: Optional[Dict[str, Any]] = None, date_cotisation: Optional[date] = None,
                  montant_base: Optional[float] = None) -> Dict:
    """
    Évalue un arbre sans rien enregistrer ni verrouiller.

    L'usager est soit un usager existant (`utilisateur_id`), soit un profil saisi
    dont les champs `_anciennete`, `_nb_inscrits`, `_tags` deviennent des surcharges.
    Sans `montant_base`, le montant du tarif de l'arbre est utilisé.
    """
    arbre = get_arbre(session, arbre_id)

    surcharges = {}
    if utilisateur_id is not None:
        profil = charger_profil(session, utilisateur_id)
    else:
        profil, surcharges = ProfilUtilisateur.depuis_simulation(utilisateur or {})

    if montant_base is None:
        tarif = session.get(TarifCotisation, arbre.tarif_cotisation_id)
        montant_base = tarif.montant_base if tarif else 0.0

    contexte = ContexteEvaluation(
        date_cotisation=date_cotisation or date.today(),
        montant_base=montant_base,
        structure_id=arbre.structure_id,
        **surcharges,
    )
    resultat = evaluer_arbre(session, arbre_id, profil, contexte)
    resultat["montant_base"] = montant_base
    resultat["montant_final"] = max(0.0, round(montant_base - resultat["total_reductions"], 2))
    return resultat


def creer_cotisation(session: Session, utilisateur_id: int, tarif_id: int, date_debut: date,
                     date_fin: date, date_paiement: Optional[date] = None,
                     structure_id: Optional[int] = None) -> Dict:
    """
    Tarife et crée une cotisation.

    Dans la même transaction : évaluation de l'arbre du tarif, création de la
    cotisation, verrouillage de l'arbre, écriture des réductions. Le commit
    reste à la charge de l'appelant.
    """
    tarif = session.get(TarifCotisation, tarif_id)
    if not tarif:
        raise RessourceNonTrouvee("Tarif non trouve", {"tarif_id": tarif_id})
    profil = charger_profil(session, utilisateur_id)

    arbre = session.exec(
        select(ArbreDecision).where(ArbreDecision.tarif_cotisation_id == tarif_id)
    ).first()

    resultat = {"reductions": [], "chemin": [], "total_reductions": 0.0, "trace": []}
    if arbre:
        contexte = ContexteEvaluation(
            date_cotisation=date_debut,
            montant_base=tarif.montant_base,
            structure_id=structure_id or tarif.structure_id,
        )
        resultat = evaluer_arbre(session, arbre.id, profil, contexte)

    cotisation = Cotisation(
        utilisateur_id=utilisateur_id,
        tarif_cotisation_id=tarif_id,
        arbre_id=arbre.id if arbre else None,
        arbre_version=arbre.version if arbre else None,
        date_debut=date_debut,
        date_fin=date_fin,
        date_paiement=date_paiement,
        statut=StatutCotisation.ACTIVE,
        montant_base=tarif.montant_base,
        montant_reductions=resultat["total_reductions"],
        montant_final=max(0.0, round(tarif.montant_base - resultat["total_reductions"], 2)),
        structure_id=structure_id or tarif.structure_id,
    )
    session.add(cotisation)
    session.flush()

    if arbre:
        verrouiller_arbre(session, arbre.id)
        enregistrer_reductions(session, cotisation.id, resultat["reductions"], tarif.montant_base)

    logger.info(
        "[COTISATION] Cotisation %s : base %.2f, reductions %.2f, final %.2f",
        cotisation.id, cotisation.montant_base, cotisation.montant_reductions, cotisation.montant_final,
    )
    return {"cotisation": cotisation, **resultat}
