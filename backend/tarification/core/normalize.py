"""
Normalisation des conditions de branches et des valeurs numériques.

Les arbres enregistrés mélangent deux générations de noms de champs
(ex. `min`/`max` et `borne_min`/`borne_max`). Chaque condition brute est
convertie ici en une forme canonique par type de noeud ; le moteur
n'évalue que cette forme canonique.
"""
import re
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel


TYPES_PAR_DEFAUT = ("autre", "default")

OPERATEURS = ("<", "<=", ">", ">=", "=", "entre")


def to_number(value: Any) -> Optional[float]:
    """
    Convertit une valeur en nombre :
    - accepte int/float, ou une chaîne au format français ("12,5", "1 200 €")
    - retourne None si la conversion est impossible
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    s = str(value).strip()
    if not s:
        return None
    s = s.replace("€", "").replace(" ", "").replace("\xa0", "")
    s = s.replace(",", ".")
    s = re.sub(r'[^\d.\-]', '', s)

    try:
        return float(s)
    except (ValueError, TypeError):
        return None


def format_number(value: Optional[float]) -> str:
    """Affiche 12.0 en "12" et 12.5 en "12.5" (messages de trace)."""
    if value is None:
        return "?"
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def _premier_defini(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _normaliser_operateur(op: Any) -> Optional[str]:
    if op is None:
        return None
    op = str(op).strip()
    if op == "==":
        return "="
    return op if op in OPERATEURS else None


# ==================== FORMES CANONIQUES ====================

class ConditionParDefaut(BaseModel):
    """Branche de repli (`type` = autre / default) : matche toujours."""
    pass


class ConditionCommune(BaseModel):
    """
    mode:
      - "communaute" : appartenance à une communauté de communes
      - "communes"   : liste explicite de communes
      - "commune"    : une commune précise
      - None         : condition invalide (ne matche jamais)
    """
    mode: Optional[str] = None
    communaute_id: Optional[int] = None
    commune_ids: List[int] = []
    commune_id: Optional[int] = None


class ConditionNumerique(BaseModel):
    """
    Comparaison d'une mesure (QF, âge, ancienneté, nb inscrits).
    Si `operateur` est absent, [min, max] est un intervalle inclusif
    dont chaque borne est optionnelle.
    """
    operateur: Optional[str] = None
    valeur: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None


class ConditionTag(BaseModel):
    mode: str = "contient"
    tags: List[int] = []
    statuts: Optional[List[str]] = None


ConditionCanonique = Union[ConditionParDefaut, ConditionCommune, ConditionNumerique, ConditionTag]


# ==================== NORMALISATION PAR TYPE ====================

def _normaliser_commune(raw: Dict[str, Any]) -> ConditionCommune:
    ids = [int(to_number(i)) for i in (raw.get("ids") or []) if to_number(i) is not None]
    # id (format actuel) ou ids[0] (ancien format)
    communaute_id = to_number(raw.get("id")) or (ids[0] if ids else None)
    commune_id = to_number(raw.get("commune_id"))

    if raw.get("type") == "communaute" and communaute_id:
        return ConditionCommune(mode="communaute", communaute_id=int(communaute_id))
    if raw.get("type") == "communes" and raw.get("ids"):
        return ConditionCommune(mode="communes", commune_ids=ids)
    if commune_id:
        return ConditionCommune(mode="commune", commune_id=int(commune_id))
    return ConditionCommune()


def _normaliser_qf(raw: Dict[str, Any]) -> ConditionNumerique:
    return ConditionNumerique(
        min=to_number(_premier_defini(raw, "borne_min", "min")),
        max=to_number(_premier_defini(raw, "borne_max", "max")),
    )


def _normaliser_age(raw: Dict[str, Any]) -> ConditionNumerique:
    return ConditionNumerique(
        operateur=_normaliser_operateur(raw.get("operateur")),
        valeur=to_number(raw.get("valeur")),
        min=to_number(raw.get("min")),
        max=to_number(raw.get("max")),
    )


def _normaliser_comptage(raw: Dict[str, Any], champ_valeur: str, prefixe: str) -> ConditionNumerique:
    """FIDELITE et MULTI_INSCRIPTIONS : {operateur, <valeur>} ou bornes min/max."""
    if raw.get("operateur") and raw.get(champ_valeur) is not None:
        return ConditionNumerique(
            operateur=_normaliser_operateur(raw["operateur"]) or ">=",
            valeur=to_number(raw[champ_valeur]),
        )
    return ConditionNumerique(
        min=to_number(_premier_defini(raw, f"{prefixe}_min", "min")),
        max=to_number(_premier_defini(raw, f"{prefixe}_max", "max")),
    )


def _normaliser_multi_inscriptions(raw: Dict[str, Any]) -> ConditionNumerique:
    condition = _normaliser_comptage(raw, "nombre", "nb_inscrits")
    # Ancien format : une borne max seule n'a jamais été prise en compte
    if condition.operateur is None and condition.min is None:
        condition.max = None
    return condition


def _normaliser_tag(raw: Dict[str, Any]) -> ConditionTag:
    tags = [int(to_number(t)) for t in (raw.get("tags") or []) if to_number(t) is not None]
    statuts = raw.get("statuts")
    return ConditionTag(
        mode=raw.get("mode") or "contient",
        tags=tags,
        statuts=[str(s) for s in statuts] if isinstance(statuts, list) else None,
    )


NORMALISEURS = {
    "COMMUNE": _normaliser_commune,
    "QF": _normaliser_qf,
    "AGE": _normaliser_age,
    "FIDELITE": lambda raw: _normaliser_comptage(raw, "annees", "annees"),
    "MULTI_INSCRIPTIONS": _normaliser_multi_inscriptions,
    "TAG": _normaliser_tag,
    "STATUT_SOCIAL": _normaliser_tag,
}


def est_condition_par_defaut(raw: Optional[Dict[str, Any]]) -> bool:
    return bool(raw) and raw.get("type") in TYPES_PAR_DEFAUT


def normaliser_condition(type_noeud: str, raw: Optional[Dict[str, Any]]) -> Optional[ConditionCanonique]:
    """
    Convertit une condition brute en sa forme canonique.
    Retourne None si la condition est absente ou si le type de noeud est inconnu.
    """
    if not raw:
        return None
    if est_condition_par_defaut(raw):
        return ConditionParDefaut()
    normaliseur = NORMALISEURS.get(type_noeud)
    if normaliseur is None:
        return None
    return normaliseur(raw)
