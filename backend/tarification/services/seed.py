"""
Seed initial des référentiels (types de condition, opérations comptables).
"""
import json
import logging
from sqlmodel import Session, select

from tarification.core.referentiels import OPERATIONS_REDUCTION_DEFAUT, TYPES_CONDITION_DEFAUT
from tarification.models import OperationComptableReduction, TypeConditionTarif

logger = logging.getLogger(__name__)


def seed_referentiels(session: Session) -> dict:
    """Insère les types de condition et opérations manquants (par code). Retourne les compteurs."""
    types_crees = 0
    for definition in TYPES_CONDITION_DEFAUT:
        existant = session.exec(
            select(TypeConditionTarif).where(TypeConditionTarif.code == definition["code"])
        ).first()
        if existant:
            continue
        session.add(TypeConditionTarif(
            code=definition["code"],
            libelle=definition["libelle"],
            description=definition.get("description"),
            icone=definition.get("icone"),
            couleur=definition.get("couleur"),
            config_schema=json.dumps(definition.get("config_schema")),
            ordre_affichage=definition.get("ordre_affichage", 100),
            actif=True,
        ))
        types_crees += 1

    operations_creees = 0
    for definition in OPERATIONS_REDUCTION_DEFAUT:
        existante = session.exec(
            select(OperationComptableReduction).where(OperationComptableReduction.code == definition["code"])
        ).first()
        if existante:
            continue
        session.add(OperationComptableReduction(
            code=definition["code"],
            libelle=definition["libelle"],
            compte_comptable=definition.get("compte_comptable"),
            journal_code="VT",
            actif=True,
        ))
        operations_creees += 1

    session.commit()
    if types_crees or operations_creees:
        logger.info("[SEED] %d type(s) de condition, %d operation(s) comptable(s) crees",
                    types_crees, operations_creees)
    else:
        logger.info("[SEED] Referentiels deja initialises, skip seed")
    return {"types_condition": types_crees, "operations": operations_creees}
