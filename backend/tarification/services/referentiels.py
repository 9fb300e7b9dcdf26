"""
Données de référence lues par l'éditeur d'arbre : types de condition, tags, opérations comptables.
"""
from typing import List, Optional

from sqlmodel import Session, select, or_

from tarification.core.errors import OperationDejaExistante
from tarification.models import OperationComptableReduction, TagUtilisateur, TypeConditionTarif
from tarification.schemas import OperationComptableCreate


def get_types_condition(session: Session) -> List[TypeConditionTarif]:
    """Types de condition actifs, dans l'ordre d'affichage."""
    statement = select(TypeConditionTarif).where(
        TypeConditionTarif.actif == True
    ).order_by(TypeConditionTarif.ordre_affichage)
    return list(session.exec(statement).all())


def get_tags_disponibles(session: Session, structure_id: Optional[int] = None) -> List[TagUtilisateur]:
    """Tags actifs : globaux, plus ceux de la structure si elle est précisée."""
    statement = select(TagUtilisateur).where(TagUtilisateur.actif == True)
    if structure_id:
        statement = statement.where(or_(
            TagUtilisateur.structure_id == None,
            TagUtilisateur.structure_id == structure_id,
        ))
    statement = statement.order_by(TagUtilisateur.ordre, TagUtilisateur.libelle)
    return list(session.exec(statement).all())


def get_operations_comptables(session: Session, structure_id: Optional[int] = None) -> List[OperationComptableReduction]:
    statement = select(OperationComptableReduction).where(OperationComptableReduction.actif == True)
    if structure_id:
        statement = statement.where(or_(
            OperationComptableReduction.structure_id == None,
            OperationComptableReduction.structure_id == structure_id,
        ))
    statement = statement.order_by(OperationComptableReduction.libelle)
    return list(session.exec(statement).all())


def creer_operation_comptable(session: Session, data: OperationComptableCreate) -> OperationComptableReduction:
    existante = session.exec(
        select(OperationComptableReduction).where(OperationComptableReduction.code == data.code)
    ).first()
    if existante:
        raise OperationDejaExistante(f"Une operation '{data.code}' existe deja", {"operation_id": existante.id})

    operation = OperationComptableReduction(
        code=data.code,
        libelle=data.libelle,
        description=data.description,
        compte_comptable=data.compte_comptable,
        journal_code=data.journal_code or "VT",
        structure_id=data.structure_id,
        actif=True,
    )
    session.add(operation)
    session.flush()
    return operation
