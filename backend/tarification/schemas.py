"""
Modèles Pydantic : document d'arbre, profil usager, contexte d'évaluation et API.
"""
from __future__ import annotations

from typing import List, Optional, Dict, Any, Tuple, Union
from datetime import date, datetime
from pydantic import BaseModel, Field, AliasChoices, PrivateAttr, field_validator, model_validator

from tarification.core.normalize import ConditionCanonique, normaliser_condition, to_number
from tarification.models import ModeAffichage, TypeCalcul


# ==================== DOCUMENT D'ARBRE ====================

class ReductionBranche(BaseModel):
    """Réduction portée par une branche."""
    operation_id: Optional[int] = None
    type_calcul: TypeCalcul = TypeCalcul.FIXE
    valeur: float = 0.0

    @field_validator("valeur", mode="before")
    @classmethod
    def _valeur_numerique(cls, v):
        return to_number(v) or 0.0


class Branche(BaseModel):
    """Option d'un noeud ; ses `enfants` ne sont évalués que si elle est retenue."""
    id: Optional[Union[int, str]] = None
    code: Optional[str] = None
    libelle: Optional[str] = None
    condition: Optional[Dict[str, Any]] = None
    reduction: Optional[ReductionBranche] = None
    enfants: List[Noeud] = []

    _condition_normalisee: Optional[ConditionCanonique] = PrivateAttr(default=None)

    @property
    def condition_normalisee(self) -> Optional[ConditionCanonique]:
        return self._condition_normalisee


class Noeud(BaseModel):
    """Une dimension d'éligibilité (COMMUNE, QF, AGE, FIDELITE, MULTI_INSCRIPTIONS, TAG)."""
    id: Optional[Union[int, str]] = None
    type: str
    ordre: Optional[float] = 0
    branches: List[Branche] = []

    @model_validator(mode="after")
    def _normaliser_conditions(self):
        # La forme de la condition dépend du type du noeud parent
        for branche in self.branches:
            branche._condition_normalisee = normaliser_condition(self.type, branche.condition)
        return self


class ArbreDocument(BaseModel):
    """Document JSON stocké dans ArbreDecision.arbre_json."""
    version: int = 1
    noeuds: List[Noeud] = Field(default_factory=list, validation_alias=AliasChoices("noeuds", "nodes"))


Branche.model_rebuild()
Noeud.model_rebuild()
ArbreDocument.model_rebuild()


def _vide(v) -> bool:
    return v is None or (isinstance(v, str) and not v.strip())


def _entier_ou_none(v):
    if _vide(v):
        return None
    nombre = to_number(v)
    return int(nombre) if nombre is not None else v


# ==================== PROFIL & CONTEXTE ====================

class ProfilUtilisateur(BaseModel):
    """Données usager utilisées par les conditions (sans aucune surcharge de simulation)."""
    id: Optional[int] = None
    commune_id: Optional[int] = None
    quotient_familial: Optional[float] = None
    date_naissance: Optional[date] = None
    famille_id: Optional[int] = None
    tags: List[int] = []
    statut_social: Optional[str] = None

    # Un formulaire de simulation envoie "" pour une donnée absente
    @field_validator("id", "commune_id", "famille_id", mode="before")
    @classmethod
    def _entiers(cls, v):
        return _entier_ou_none(v)

    @field_validator("quotient_familial", mode="before")
    @classmethod
    def _quotient(cls, v):
        if _vide(v):
            return None
        nombre = to_number(v)
        return nombre if nombre is not None else v

    @field_validator("date_naissance", "statut_social", mode="before")
    @classmethod
    def _chaine_vide(cls, v):
        return None if _vide(v) else v

    @field_validator("tags", mode="before")
    @classmethod
    def _ids_tags(cls, v):
        # Accepte [1, 2] ou [{"id": 1, "libelle": ...}, ...]
        if not v:
            return []
        return [t.get("id") if isinstance(t, dict) else t for t in v]

    @classmethod
    def depuis_simulation(cls, data: Dict[str, Any]) -> Tuple[ProfilUtilisateur, Dict[str, Any]]:
        """
        Sépare un usager de simulation de ses surcharges.
        `_anciennete`, `_nb_inscrits` et `_tags` deviennent des surcharges du contexte.
        """
        data = dict(data or {})
        surcharges = {}
        for cle_simulation, cle_contexte in (("_anciennete", "anciennete"),
                                             ("_nb_inscrits", "nb_inscrits"),
                                             ("_tags", "tags")):
            if cle_simulation in data:
                valeur = data.pop(cle_simulation)
                if cle_contexte == "tags":
                    valeur = valeur or []
                surcharges[cle_contexte] = valeur
        profil = cls.model_validate({k: v for k, v in data.items() if k in cls.model_fields})
        return profil, surcharges


class ContexteEvaluation(BaseModel):
    """
    Contexte d'une évaluation d'arbre.

    `date_cotisation` sert de date de référence pour l'âge, l'ancienneté et les
    inscriptions actives. `montant_base` est le prix du tarif avant réductions ;
    il ne diminue pas au fil des noeuds. Les champs `anciennete`, `nb_inscrits`
    et `tags` remplacent, s'ils sont renseignés, les valeurs calculées.
    """
    date_cotisation: date = Field(default_factory=date.today)
    montant_base: float = 0.0
    structure_id: Optional[int] = None
    anciennete: Optional[int] = None
    nb_inscrits: Optional[int] = None
    tags: Optional[List[int]] = None

    @field_validator("anciennete", "nb_inscrits", mode="before")
    @classmethod
    def _surcharges(cls, v):
        return _entier_ou_none(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _ids_tags(cls, v):
        if v is None:
            return None
        return [t.get("id") if isinstance(t, dict) else t for t in v]


# ==================== API ====================

class ArbreCreate(BaseModel):
    mode_affichage: Optional[ModeAffichage] = None
    arbre_json: Optional[ArbreDocument] = None
    structure_id: Optional[int] = None


class ArbreUpdate(BaseModel):
    mode_affichage: Optional[ModeAffichage] = None
    arbre_json: Optional[ArbreDocument] = None


class ArbreResponse(BaseModel):
    id: int
    tarif_cotisation_id: int
    mode_affichage: ModeAffichage
    arbre_json: Dict[str, Any]
    version: int
    verrouille: bool
    date_verrouillage: Optional[datetime] = None
    structure_id: Optional[int] = None
    types_condition_disponibles: Optional[List[Dict[str, Any]]] = None


class ArbreStatut(BaseModel):
    id: int
    verrouille: bool
    date_verrouillage: Optional[datetime] = None
    version: int
    modifiable: bool


class SimulationRequest(BaseModel):
    """Simulation : un usager existant (utilisateur_id) ou un profil saisi (utilisateur)."""
    utilisateur_id: Optional[int] = None
    utilisateur: Optional[Dict[str, Any]] = None
    date_cotisation: Optional[date] = None
    montant_base: Optional[float] = None


class EvaluationResponse(BaseModel):
    reductions: List[Dict[str, Any]]
    chemin: List[Dict[str, Any]]
    total_reductions: float
    trace: List[Dict[str, Any]]
    montant_base: Optional[float] = None
    montant_final: Optional[float] = None


class BornesTarif(BaseModel):
    min: float
    max: float


class OperationComptableCreate(BaseModel):
    code: str
    libelle: str
    description: Optional[str] = None
    compte_comptable: Optional[str] = None
    journal_code: Optional[str] = "VT"
    structure_id: Optional[int] = None


class CotisationCreate(BaseModel):
    utilisateur_id: int
    tarif_cotisation_id: int
    date_debut: date
    date_fin: date
    date_paiement: Optional[date] = None
    structure_id: Optional[int] = None


class CotisationResponse(BaseModel):
    id: int
    utilisateur_id: int
    tarif_cotisation_id: Optional[int]
    arbre_id: Optional[int]
    arbre_version: Optional[int]
    montant_base: float
    montant_reductions: float
    montant_final: float
    reductions: List[Dict[str, Any]]
    chemin: List[Dict[str, Any]]
