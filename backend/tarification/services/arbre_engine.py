"""
Moteur d'évaluation cumulative des arbres de décision tarifaires.

Chaque noeud de premier niveau est évalué indépendamment : il retient au plus
une branche (la première qui matche, ou la branche de repli), dont la réduction
s'ajoute au total, puis ses noeuds enfants sont évalués de la même façon.
Les réductions de tous les noeuds et de tous les niveaux se cumulent.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from sqlmodel import Session

from tarification.core.errors import RessourceNonTrouvee
from tarification.core.normalize import est_condition_par_defaut
from tarification.models import ArbreDecision, TypeCalcul
from tarification.schemas import (
    ArbreDocument,
    Branche,
    ContexteEvaluation,
    Noeud,
    ProfilUtilisateur,
    ReductionBranche,
)
from tarification.services.condition_matchers import TYPES_CONDITION, match_condition_avec_details

logger = logging.getLogger(__name__)

CENTIME = Decimal("0.01")


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value or 0))


def calculer_montant_reduction(reduction: Optional[ReductionBranche], montant_base: float) -> Decimal:
    """
    Montant d'une réduction :
      - fixe        : la valeur telle quelle
      - pourcentage : base * valeur / 100, arrondi au centime (demi supérieur)
    """
    if reduction is None:
        return Decimal("0")
    valeur = _decimal(reduction.valeur)
    if reduction.type_calcul == TypeCalcul.POURCENTAGE:
        return (_decimal(montant_base) * valeur / 100).quantize(CENTIME, rounding=ROUND_HALF_UP)
    return valeur


# ==================== RÉSOLUTION DE BRANCHE ====================

def trouver_branche(noeud: Noeud, utilisateur: ProfilUtilisateur, contexte: ContexteEvaluation,
                    session: Optional[Session] = None) -> Tuple[Optional[Branche], List[Dict]]:
    """
    Retourne (branche retenue | None, branches testées).

    Les branches sont testées dans l'ordre ; la première qui matche gagne.
    Si aucune ne matche et que la dernière est une branche par défaut
    (`autre` / `default`), c'est elle qui est retenue.
    """
    branches_testees = []
    if not noeud.branches:
        return None, branches_testees

    for branche in noeud.branches:
        resultat = match_condition_avec_details(
            noeud.type, branche.condition_normalisee, utilisateur, contexte, session
        )
        branches_testees.append({
            "id": branche.id,
            "code": branche.code,
            "libelle": branche.libelle,
            "condition": branche.condition,
            "match": resultat["match"],
            "details": resultat["details"],
        })
        if resultat["match"]:
            return branche, branches_testees

    derniere = noeud.branches[-1]
    if est_condition_par_defaut(derniere.condition):
        return derniere, branches_testees

    return None, branches_testees


# ==================== ÉVALUATION D'UN NOEUD ====================

def evaluer_noeud(noeud: Noeud, utilisateur: ProfilUtilisateur, contexte: ContexteEvaluation,
                  trace: List[Dict], session: Optional[Session] = None) -> Optional[Dict]:
    """
    Évalue un noeud puis, récursivement, les enfants de la branche retenue.

    Ajoute une entrée à `trace` dans tous les cas.
    Retourne {"reductions", "chemin", "total_reductions"} ou None si aucune branche n'est retenue.
    """
    trace_noeud = {
        "noeud_id": noeud.id,
        "noeud_type": noeud.type,
        "branches_testees": [],
        "branche_selectionnee": None,
        "reduction": None,
        "enfants": [],
    }

    if noeud.type not in TYPES_CONDITION:
        logger.warning("[EVAL] Noeud %s ignore : type de condition inconnu '%s'", noeud.id, noeud.type)
        trace_noeud["details"] = f"Type inconnu: {noeud.type}"
        trace.append(trace_noeud)
        return None

    branche, branches_testees = trouver_branche(noeud, utilisateur, contexte, session)
    trace_noeud["branches_testees"] = branches_testees

    if branche is None:
        trace.append(trace_noeud)
        return None

    trace_noeud["branche_selectionnee"] = {
        "id": branche.id,
        "code": branche.code,
        "libelle": branche.libelle,
    }

    reductions = []
    chemin = [{
        "noeud_id": noeud.id,
        "noeud_type": noeud.type,
        "branche_id": branche.id,
        "branche_code": branche.code,
        "branche_libelle": branche.libelle,
    }]
    total = Decimal("0")

    if branche.reduction is not None:
        montant = calculer_montant_reduction(branche.reduction, contexte.montant_base)
        reductions.append({
            "operation_id": branche.reduction.operation_id,
            "type_source": noeud.type,
            "branche_code": branche.code,
            "branche_libelle": branche.libelle,
            "type_calcul": branche.reduction.type_calcul.value,
            "valeur": branche.reduction.valeur,
            "montant_reduction": float(montant),
        })
        total += montant
        trace_noeud["reduction"] = {
            "type_calcul": branche.reduction.type_calcul.value,
            "valeur": branche.reduction.valeur,
            "montant": float(montant),
        }

    for enfant in branche.enfants:
        trace_enfant = []
        resultat_enfant = evaluer_noeud(enfant, utilisateur, contexte, trace_enfant, session)
        trace_noeud["enfants"].extend(trace_enfant)
        if resultat_enfant:
            chemin.extend(resultat_enfant["chemin"])
            reductions.extend(resultat_enfant["reductions"])
            total += _decimal(resultat_enfant["total_reductions"])

    trace.append(trace_noeud)
    return {"reductions": reductions, "chemin": chemin, "total_reductions": float(total)}


# ==================== PARCOURS DE L'ARBRE ====================

def evaluer_document(document: ArbreDocument, utilisateur: ProfilUtilisateur,
                     contexte: ContexteEvaluation, session: Optional[Session] = None) -> Dict:
    """
    Évalue tous les noeuds de premier niveau (ordre croissant, stable) et cumule leurs résultats.

    Returns:
        {
            "reductions": [...],        # une entrée par branche retenue portant une réduction
            "chemin": [...],            # une entrée par branche retenue
            "total_reductions": float,
            "trace": [...]              # une entrée par noeud de premier niveau
        }
    """
    resultat = {"reductions": [], "chemin": [], "total_reductions": 0.0, "trace": []}
    if not document.noeuds:
        return resultat

    total = Decimal("0")
    noeuds = sorted(document.noeuds, key=lambda n: n.ordre or 0)

    for noeud in noeuds:
        resultat_noeud = evaluer_noeud(noeud, utilisateur, contexte, resultat["trace"], session)
        if resultat_noeud:
            resultat["chemin"].extend(resultat_noeud["chemin"])
            resultat["reductions"].extend(resultat_noeud["reductions"])
            total += _decimal(resultat_noeud["total_reductions"])

    resultat["total_reductions"] = float(total)
    return resultat


def charger_document(arbre: ArbreDecision) -> ArbreDocument:
    return ArbreDocument.model_validate(arbre.get_document())


def evaluer_arbre(session: Session, arbre_id: int, utilisateur: ProfilUtilisateur,
                  contexte: Optional[ContexteEvaluation] = None) -> Dict:
    """Charge l'arbre `arbre_id` et l'évalue pour l'usager."""
    arbre = session.get(ArbreDecision, arbre_id)
    if not arbre:
        raise RessourceNonTrouvee(f"Arbre de decision {arbre_id} non trouve")

    contexte = contexte or ContexteEvaluation()
    resultat = evaluer_document(charger_document(arbre), utilisateur, contexte, session)
    logger.debug(
        "[EVAL] Arbre %s v%s : %d reduction(s), total %.2f",
        arbre.id, arbre.version, len(resultat["reductions"]), resultat["total_reductions"],
    )
    return resultat


# ==================== BORNES DU TARIF ====================

def reduction_max_noeud(noeud: Noeud, montant_base: float) -> Decimal:
    """Plus forte réduction possible d'un noeud : meilleure branche, enfants compris."""
    maximum = Decimal("0")
    for branche in noeud.branches:
        montant_branche = calculer_montant_reduction(branche.reduction, montant_base)
        for enfant in branche.enfants:
            montant_branche += reduction_max_noeud(enfant, montant_base)
        maximum = max(maximum, montant_branche)
    return maximum


def calculer_bornes(document: ArbreDocument, montant_base: float) -> Dict[str, float]:
    """Prix minimum (toutes réductions maximales cumulées) et maximum (base) du tarif."""
    if not document.noeuds:
        return {"min": montant_base, "max": montant_base}
    reduction_max = sum((reduction_max_noeud(n, montant_base) for n in document.noeuds), Decimal("0"))
    minimum = max(Decimal("0"), _decimal(montant_base) - reduction_max)
    return {"min": float(minimum), "max": montant_base}
