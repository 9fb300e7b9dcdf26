"""
Prédicats des conditions de branches.

Chaque type de condition expose deux variantes :
  - `match_<type>(...)` -> bool
  - `match_<type>_avec_details(...)` -> {"match": bool, "details": str}

Une donnée usager manquante n'est jamais une erreur : la condition
ne matche pas et `details` explique pourquoi.
"""
import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlmodel import Session, select, func

from tarification.core.normalize import (
    ConditionCanonique,
    ConditionCommune,
    ConditionNumerique,
    ConditionParDefaut,
    ConditionTag,
    format_number,
)
from tarification.models import (
    CommunauteCommunesMembre,
    Cotisation,
    StatutCotisation,
    TagUtilisateur,
    Utilisateur,
)
from tarification.schemas import ContexteEvaluation, ProfilUtilisateur

logger = logging.getLogger(__name__)

TYPES_CONDITION = ("COMMUNE", "QF", "AGE", "FIDELITE", "MULTI_INSCRIPTIONS", "TAG", "STATUT_SOCIAL")


def _resultat(match: bool, details: str) -> Dict:
    return {"match": match, "details": details}


def calculer_age(date_naissance: date, date_reference: date) -> int:
    """Âge en années révolues à la date de référence."""
    age = date_reference.year - date_naissance.year
    if (date_reference.month, date_reference.day) < (date_naissance.month, date_naissance.day):
        age -= 1
    return age


def comparer(mesure: float, condition: ConditionNumerique, nom: str) -> Tuple[bool, str]:
    """
    Compare une mesure à une condition numérique.
    Retourne (match, description de la condition).
    """
    op = condition.operateur
    valeur = condition.valeur
    bmin, bmax = condition.min, condition.max

    if op in ("<", "<=", ">", ">=", "="):
        texte = f"{nom} {op} {format_number(valeur)}"
        if valeur is None:
            return False, texte
        if op == "<":
            return mesure < valeur, texte
        if op == "<=":
            return mesure <= valeur, texte
        if op == ">":
            return mesure > valeur, texte
        if op == ">=":
            return mesure >= valeur, texte
        return mesure == valeur, texte

    if op == "entre":
        texte = f"{format_number(bmin)} <= {nom} <= {format_number(bmax)}"
        if bmin is None or bmax is None:
            return False, texte
        return bmin <= mesure <= bmax, texte

    # Sans opérateur : intervalle inclusif, bornes optionnelles
    if bmin is not None and bmax is not None:
        return bmin <= mesure <= bmax, f"{format_number(bmin)} <= {nom} <= {format_number(bmax)}"
    if bmin is not None:
        return mesure >= bmin, f"{nom} >= {format_number(bmin)}"
    if bmax is not None:
        return mesure <= bmax, f"{nom} <= {format_number(bmax)}"
    return False, ""


def _verdict(match: bool) -> str:
    return "OK" if match else "NON"


# ==================== COMMUNE ====================

def match_commune_avec_details(condition: ConditionCommune, utilisateur: ProfilUtilisateur,
                               session: Optional[Session] = None) -> Dict:
    commune_id = utilisateur.commune_id
    if commune_id is None:
        return _resultat(False, "Commune non definie (commune_id: null)")

    if condition.mode == "communaute":
        if session is None:
            return _resultat(False, f"Communaute {condition.communaute_id} non verifiable (aucune source de donnees)")
        membre = session.exec(
            select(CommunauteCommunesMembre).where(
                CommunauteCommunesMembre.communaute_id == condition.communaute_id,
                CommunauteCommunesMembre.commune_id == commune_id,
            )
        ).first()
        match = membre is not None
        return _resultat(
            match,
            f"Commune {commune_id} {'fait partie' if match else 'ne fait pas partie'} "
            f"de la communaute {condition.communaute_id}",
        )

    if condition.mode == "communes":
        match = commune_id in condition.commune_ids
        liste = ", ".join(str(i) for i in condition.commune_ids)
        return _resultat(match, f"Commune {commune_id} {'dans' if match else 'hors de'} la liste [{liste}]")

    if condition.mode == "commune":
        match = commune_id == condition.commune_id
        return _resultat(match, f"Commune {commune_id} {'=' if match else '!='} {condition.commune_id}")

    return _resultat(False, "Condition commune invalide")


def match_commune(condition, utilisateur, session=None) -> bool:
    return match_commune_avec_details(condition, utilisateur, session)["match"]


# ==================== QF ====================

def match_qf_avec_details(condition: ConditionNumerique, utilisateur: ProfilUtilisateur) -> Dict:
    qf = utilisateur.quotient_familial
    if qf is None:
        return _resultat(False, "QF non defini (quotient_familial: null)")
    match, texte = comparer(qf, condition, "QF")
    return _resultat(match, f"QF={format_number(qf)}, condition: {texte} => {_verdict(match)}")


def match_qf(condition, utilisateur) -> bool:
    return match_qf_avec_details(condition, utilisateur)["match"]


# ==================== AGE ====================

def match_age_avec_details(condition: ConditionNumerique, utilisateur: ProfilUtilisateur,
                           date_reference: date) -> Dict:
    if utilisateur.date_naissance is None:
        return _resultat(False, "Date de naissance non definie")
    age = calculer_age(utilisateur.date_naissance, date_reference)
    match, texte = comparer(age, condition, "age")
    return _resultat(match, f"Age={age} ans, condition: {texte} => {_verdict(match)}")


def match_age(condition, utilisateur, date_reference) -> bool:
    return match_age_avec_details(condition, utilisateur, date_reference)["match"]


# ==================== FIDELITE ====================

def calculer_anciennete(session: Session, utilisateur_id: int, date_reference: date) -> Optional[int]:
    """Années complètes depuis la première cotisation (None si aucune cotisation)."""
    premiere = session.exec(
        select(Cotisation)
        .where(Cotisation.utilisateur_id == utilisateur_id)
        .order_by(Cotisation.date_debut)
    ).first()
    if premiere is None:
        return None
    return int((date_reference - premiere.date_debut).days // 365.25)


def match_fidelite_avec_details(condition: ConditionNumerique, utilisateur: ProfilUtilisateur,
                                contexte: ContexteEvaluation, session: Optional[Session] = None) -> Dict:
    if contexte.anciennete is not None:
        anciennete = contexte.anciennete
    else:
        if utilisateur.id is None:
            return _resultat(False, "ID utilisateur non defini (simulation)")
        if session is None:
            return _resultat(False, "Anciennete non calculable (aucune source de donnees)")
        anciennete = calculer_anciennete(session, utilisateur.id, contexte.date_cotisation)
        if anciennete is None:
            return _resultat(False, "Aucune cotisation trouvee")

    match, texte = comparer(anciennete, condition, "anciennete")
    return _resultat(match, f"Anciennete={anciennete} ans, condition: {texte} => {_verdict(match)}")


def match_fidelite(condition, utilisateur, contexte, session=None) -> bool:
    return match_fidelite_avec_details(condition, utilisateur, contexte, session)["match"]


# ==================== MULTI_INSCRIPTIONS ====================

def compter_inscriptions_actives(session: Session, famille_id: int, date_reference: date) -> int:
    """Cotisations actives (non échues à la date de référence) des membres d'une famille."""
    return session.exec(
        select(func.count(Cotisation.id))
        .join(Utilisateur, Utilisateur.id == Cotisation.utilisateur_id)
        .where(
            Utilisateur.famille_id == famille_id,
            Cotisation.statut == StatutCotisation.ACTIVE,
            Cotisation.date_fin >= date_reference,
        )
    ).one()


def match_multi_inscriptions_avec_details(condition: ConditionNumerique, utilisateur: ProfilUtilisateur,
                                          contexte: ContexteEvaluation,
                                          session: Optional[Session] = None) -> Dict:
    if contexte.nb_inscrits is not None:
        nb_inscrits = contexte.nb_inscrits
    else:
        if utilisateur.famille_id is None:
            return _resultat(False, "Pas de famille definie (famille_id: null)")
        if session is None:
            return _resultat(False, "Inscriptions non comptables (aucune source de donnees)")
        nb_inscrits = compter_inscriptions_actives(session, utilisateur.famille_id, contexte.date_cotisation)

    match, texte = comparer(nb_inscrits, condition, "nb_inscrits")
    return _resultat(match, f"Nb inscrits famille={nb_inscrits}, condition: {texte} => {_verdict(match)}")


def match_multi_inscriptions(condition, utilisateur, contexte, session=None) -> bool:
    return match_multi_inscriptions_avec_details(condition, utilisateur, contexte, session)["match"]


# ==================== TAG ====================

def _libelles_tags(session: Optional[Session], tag_ids: List[int]) -> List[str]:
    if not tag_ids:
        return []
    if session is None:
        return [str(i) for i in tag_ids]
    tags = session.exec(select(TagUtilisateur).where(TagUtilisateur.id.in_(tag_ids))).all()
    return [t.libelle for t in tags]


def match_tag_avec_details(condition: ConditionTag, utilisateur: ProfilUtilisateur,
                           contexte: ContexteEvaluation, session: Optional[Session] = None) -> Dict:
    tags_usager = contexte.tags if contexte.tags is not None else utilisateur.tags

    if not condition.tags:
        # Ancien format : liste de statuts sociaux
        if condition.statuts is not None:
            statut = utilisateur.statut_social
            if not statut:
                return _resultat(False, "Statut social non defini")
            match = statut in condition.statuts
            return _resultat(
                match,
                f"Statut \"{statut}\" {'dans' if match else 'hors de'} [{', '.join(condition.statuts)}]",
            )
        return _resultat(False, "Aucun tag a verifier")

    present = any(tag_id in tags_usager for tag_id in condition.tags)
    if condition.mode == "contient":
        match = present
    elif condition.mode == "ne_contient_pas":
        match = not present
    else:
        match = False

    libelle_mode = "contient" if condition.mode == "contient" else "ne contient pas"
    noms_usager = ", ".join(_libelles_tags(session, tags_usager)) or "aucun"
    noms_condition = ", ".join(_libelles_tags(session, condition.tags)) or "aucun"
    return _resultat(
        match,
        f"Tags utilisateur: [{noms_usager}], condition: {libelle_mode} [{noms_condition}] => {_verdict(match)}",
    )


def match_tag(condition, utilisateur, contexte, session=None) -> bool:
    return match_tag_avec_details(condition, utilisateur, contexte, session)["match"]


# ==================== DISPATCH ====================

def match_condition_avec_details(type_noeud: str, condition: Optional[ConditionCanonique],
                                 utilisateur: ProfilUtilisateur, contexte: ContexteEvaluation,
                                 session: Optional[Session] = None) -> Dict:
    """Évalue une condition canonique selon le type de son noeud."""
    if condition is None:
        if type_noeud not in TYPES_CONDITION:
            logger.warning("[EVAL] Type de condition inconnu: %s", type_noeud)
            return _resultat(False, f"Type inconnu: {type_noeud}")
        return _resultat(False, "Pas de condition definie")

    if isinstance(condition, ConditionParDefaut):
        return _resultat(True, "Branche par defaut")

    if type_noeud == "COMMUNE":
        return match_commune_avec_details(condition, utilisateur, session)
    if type_noeud == "QF":
        return match_qf_avec_details(condition, utilisateur)
    if type_noeud == "AGE":
        return match_age_avec_details(condition, utilisateur, contexte.date_cotisation)
    if type_noeud == "FIDELITE":
        return match_fidelite_avec_details(condition, utilisateur, contexte, session)
    if type_noeud == "MULTI_INSCRIPTIONS":
        return match_multi_inscriptions_avec_details(condition, utilisateur, contexte, session)
    if type_noeud in ("TAG", "STATUT_SOCIAL"):
        return match_tag_avec_details(condition, utilisateur, contexte, session)

    logger.warning("[EVAL] Type de condition inconnu: %s", type_noeud)
    return _resultat(False, f"Type inconnu: {type_noeud}")


def match_condition(type_noeud, condition, utilisateur, contexte, session=None) -> bool:
    return match_condition_avec_details(type_noeud, condition, utilisateur, contexte, session)["match"]
