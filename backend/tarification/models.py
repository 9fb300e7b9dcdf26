"""
Modèles SQLModel pour la base de données.
"""
import json
from sqlmodel import SQLModel, Field
from typing import Optional, Dict, Any
from datetime import datetime, date
from enum import Enum


DOCUMENT_VIDE = {"version": 1, "noeuds": []}


class ModeAffichage(str, Enum):
    """Mode d'affichage du tarif côté usager."""
    MINIMUM = "minimum"
    MAXIMUM = "maximum"


class TypeCalcul(str, Enum):
    """Mode de calcul d'une réduction."""
    FIXE = "fixe"
    POURCENTAGE = "pourcentage"


class StatutCotisation(str, Enum):
    """Statut d'une cotisation."""
    ACTIVE  = "active"
    EXPIREE = "expiree"
    ANNULEE = "annulee"


class TarifCotisation(SQLModel, table=True):
    """Tarif de cotisation (montant avant réductions)."""
    id: Optional[int] = Field(default=None, primary_key=True)
    libelle: str
    montant_base: float = Field(default=0.0)
    structure_id: Optional[int] = Field(default=None, index=True)
    actif: bool = Field(default=True, index=True)


class ArbreDecision(SQLModel, table=True):
    """Arbre de décision tarifaire (un seul par tarif)."""
    __tablename__ = "arbres_decision_tarif"

    id: Optional[int] = Field(default=None, primary_key=True)
    tarif_cotisation_id: int = Field(foreign_key="tarifcotisation.id", unique=True, index=True)
    mode_affichage: ModeAffichage = Field(default=ModeAffichage.MINIMUM)

    # Document JSON {"version": n, "noeuds": [...]}
    arbre_json: str = Field(default=json.dumps(DOCUMENT_VIDE))

    version: int = Field(default=1)
    verrouille: bool = Field(default=False, index=True)
    date_verrouillage: Optional[datetime] = None
    structure_id: Optional[int] = Field(default=None, index=True)

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def get_document(self) -> Dict[str, Any]:
        """Retourne le document de l'arbre (document vide si illisible)."""
        if not self.arbre_json:
            return dict(DOCUMENT_VIDE, noeuds=[])
        try:
            document = json.loads(self.arbre_json)
        except (ValueError, TypeError):
            return dict(DOCUMENT_VIDE, noeuds=[])
        return document if isinstance(document, dict) else dict(DOCUMENT_VIDE, noeuds=[])

    def set_document(self, document: Dict[str, Any]) -> None:
        self.arbre_json = json.dumps(document, ensure_ascii=False)


class Utilisateur(SQLModel, table=True):
    """Usager (adhérent) de la ludothèque."""
    id: Optional[int] = Field(default=None, primary_key=True)
    nom: str = Field(index=True)
    prenom: Optional[str] = None
    date_naissance: Optional[date] = None
    commune_id: Optional[int] = Field(default=None, index=True)
    quotient_familial: Optional[float] = None
    famille_id: Optional[int] = Field(default=None, index=True)
    statut_social: Optional[str] = None  # Ancien champ, remplacé par les tags
    structure_id: Optional[int] = Field(default=None, index=True)


class TagUtilisateur(SQLModel, table=True):
    """Tag attribuable aux usagers (salarié, bénévole, RSA, étudiant...)."""
    __tablename__ = "tags_utilisateur"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)
    libelle: str
    couleur: Optional[str] = Field(default="#6c757d")
    ordre: int = Field(default=0)
    actif: bool = Field(default=True, index=True)
    structure_id: Optional[int] = Field(default=None, index=True)  # None = global


class UtilisateurTag(SQLModel, table=True):
    """Liaison usager <-> tag."""
    utilisateur_id: int = Field(foreign_key="utilisateur.id", primary_key=True)
    tag_id: int = Field(foreign_key="tags_utilisateur.id", primary_key=True)


class CommunauteCommunesMembre(SQLModel, table=True):
    """Appartenance d'une commune à une communauté de communes."""
    __tablename__ = "communautes_communes_membres"

    id: Optional[int] = Field(default=None, primary_key=True)
    communaute_id: int = Field(index=True)
    commune_id: int = Field(index=True)


class Cotisation(SQLModel, table=True):
    """Cotisation tarifée d'un usager."""
    id: Optional[int] = Field(default=None, primary_key=True)
    utilisateur_id: int = Field(foreign_key="utilisateur.id", index=True)
    tarif_cotisation_id: Optional[int] = Field(default=None, foreign_key="tarifcotisation.id")
    arbre_id: Optional[int] = Field(default=None, foreign_key="arbres_decision_tarif.id")
    arbre_version: Optional[int] = None
    date_debut: date
    date_fin: date
    date_paiement: Optional[date] = Field(default=None, index=True)
    statut: StatutCotisation = Field(default=StatutCotisation.ACTIVE, index=True)
    montant_base: float = Field(default=0.0)
    montant_reductions: float = Field(default=0.0)
    montant_final: float = Field(default=0.0)
    structure_id: Optional[int] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=datetime.now)


class TypeConditionTarif(SQLModel, table=True):
    """Type de condition disponible dans l'éditeur d'arbre (COMMUNE, QF, AGE...)."""
    __tablename__ = "types_condition_tarif"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)
    libelle: str
    description: Optional[str] = None
    icone: Optional[str] = None
    couleur: Optional[str] = None
    config_schema: Optional[str] = None  # JSON schema de la condition
    ordre_affichage: int = Field(default=100)
    actif: bool = Field(default=True, index=True)


class OperationComptableReduction(SQLModel, table=True):
    """Opération comptable servant à ventiler les réductions à l'export."""
    __tablename__ = "operations_comptables_reduction"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)
    libelle: str
    description: Optional[str] = None
    compte_comptable: Optional[str] = None
    journal_code: str = Field(default="VT")
    structure_id: Optional[int] = Field(default=None, index=True)
    actif: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=datetime.now)


class CotisationReduction(SQLModel, table=True):
    """Réduction appliquée à une cotisation (écrite une fois, jamais modifiée)."""
    __tablename__ = "cotisation_reductions"

    id: Optional[int] = Field(default=None, primary_key=True)
    cotisation_id: int = Field(foreign_key="cotisation.id", index=True)
    operation_id: Optional[int] = Field(default=None, foreign_key="operations_comptables_reduction.id", index=True)
    type_source: str = Field(index=True)  # type du noeud (COMMUNE, QF...)
    branche_code: Optional[str] = None
    branche_libelle: Optional[str] = None
    libelle: str
    type_calcul: TypeCalcul = Field(default=TypeCalcul.FIXE)
    valeur: float = Field(default=0.0)
    montant_reduction: float = Field(default=0.0)
    ordre_application: int = Field(default=0)
    base_calcul: Optional[float] = None
    created_at: datetime = Field(default_factory=datetime.now)
