"""
Journal des réductions appliquées aux cotisations, et son agrégat pour l'export comptable.
"""
import logging
from datetime import date
from typing import Dict, List, Optional

from sqlmodel import Session, select, func

from tarification.core.errors import RessourceNonTrouvee
from tarification.models import Cotisation, CotisationReduction, OperationComptableReduction, TypeCalcul

logger = logging.getLogger(__name__)


def enregistrer_reductions(session: Session, cotisation_id: int, reductions: List[Dict],
                           montant_base: Optional[float] = None) -> List[CotisationReduction]:
    """
    Écrit les réductions d'une cotisation dans l'ordre reçu (ordre_application à partir de 1).
    Les lignes ne sont jamais modifiées ensuite.
    """
    if not session.get(Cotisation, cotisation_id):
        raise RessourceNonTrouvee("Cotisation non trouvee", {"cotisation_id": cotisation_id})

    created = []
    for reduction in reductions:
        record = CotisationReduction(
            cotisation_id=cotisation_id,
            operation_id=reduction.get("operation_id"),
            type_source=reduction.get("type_source"),
            branche_code=reduction.get("branche_code"),
            branche_libelle=reduction.get("branche_libelle"),
            libelle=reduction.get("branche_libelle") or reduction.get("type_source"),
            type_calcul=TypeCalcul(reduction.get("type_calcul") or TypeCalcul.FIXE.value),
            valeur=reduction.get("valeur") or 0.0,
            montant_reduction=reduction.get("montant_reduction") or 0.0,
            ordre_application=len(created) + 1,
            base_calcul=montant_base,
        )
        session.add(record)
        created.append(record)

    session.flush()
    logger.info("[LEDGER] %d reduction(s) enregistree(s) pour la cotisation %s", len(created), cotisation_id)
    return created


def get_reductions_cotisation(session: Session, cotisation_id: int) -> List[CotisationReduction]:
    statement = select(CotisationReduction).where(
        CotisationReduction.cotisation_id == cotisation_id
    ).order_by(CotisationReduction.ordre_application)
    return list(session.exec(statement).all())


def get_total_reductions(session: Session, cotisation_id: int) -> float:
    total = session.exec(
        select(func.sum(CotisationReduction.montant_reduction)).where(
            CotisationReduction.cotisation_id == cotisation_id
        )
    ).one()
    return round(float(total or 0), 2)


def export_reductions_par_operation(session: Session, date_debut: date, date_fin: date,
                                    structure_id: Optional[int] = None) -> List[Dict]:
    """
    Agrège les réductions des cotisations payées entre deux dates (incluses),
    par (type_source, operation_id).

    Returns:
        [
            {
                "type_source": "QF",
                "operation_id": 3,
                "operation": {"code": ..., "libelle": ..., "compte_comptable": ..., "journal_code": ...} | None,
                "total": 120.5,
                "count": 7
            },
            ...
        ]
    """
    statement = (
        select(
            CotisationReduction.type_source,
            CotisationReduction.operation_id,
            func.sum(CotisationReduction.montant_reduction),
            func.count(CotisationReduction.id),
        )
        .join(Cotisation, Cotisation.id == CotisationReduction.cotisation_id)
        .where(Cotisation.date_paiement >= date_debut, Cotisation.date_paiement <= date_fin)
    )
    if structure_id:
        statement = statement.where(Cotisation.structure_id == structure_id)
    statement = statement.group_by(
        CotisationReduction.type_source, CotisationReduction.operation_id
    ).order_by(CotisationReduction.type_source, CotisationReduction.operation_id)

    lignes = []
    operations = {}
    for type_source, operation_id, total, count in session.exec(statement).all():
        if operation_id is not None and operation_id not in operations:
            operations[operation_id] = session.get(OperationComptableReduction, operation_id)
        operation = operations.get(operation_id)
        lignes.append({
            "type_source": type_source,
            "operation_id": operation_id,
            "operation": {
                "code": operation.code,
                "libelle": operation.libelle,
                "compte_comptable": operation.compte_comptable,
                "journal_code": operation.journal_code,
            } if operation else None,
            "total": round(float(total or 0), 2),
            "count": count,
        })
    return lignes
