"""
Erreurs métier du moteur de tarification.
"""
from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Format standard des réponses d'erreur."""
    code: str
    message: str
    details: Dict[str, Any] = {}


class TarificationError(Exception):
    """Erreur de base du moteur de tarification."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(code=self.code, message=self.message, details=self.details)


class RessourceNonTrouvee(TarificationError):
    """Arbre, tarif, utilisateur, cotisation ou opération introuvable."""

    status_code = 404

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class ArbreVerrouille(TarificationError):
    """Modification d'un arbre déjà utilisé pour une cotisation."""

    status_code = 403

    def __init__(self, message: str = "Cet arbre est verrouille et ne peut plus etre modifie",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("ARBRE_VERROUILLE", message, details)


class ArbreDejaExistant(TarificationError):
    """Un tarif ne porte qu'un seul arbre."""

    status_code = 409

    def __init__(self, message: str = "Un arbre existe deja pour ce tarif",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("ARBRE_EXISTANT", message, details)


class OperationDejaExistante(TarificationError):
    """Code d'opération comptable déjà utilisé."""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("OPERATION_EXISTANTE", message, details)
