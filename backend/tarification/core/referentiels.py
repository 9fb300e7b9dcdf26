"""
Référentiels par défaut : types de condition et opérations comptables de réduction.
"""
from typing import Any, Dict, List

_OPERATEURS = ["<", "<=", ">", ">=", "="]

# Types de condition proposés dans l'éditeur d'arbre
TYPES_CONDITION_DEFAUT: List[Dict[str, Any]] = [
    {
        "code": "COMMUNE",
        "libelle": "Commune de residence",
        "description": "Commune, liste de communes ou communaute de communes de l'usager",
        "icone": "bi-geo-alt",
        "couleur": "#0d6efd",
        "ordre_affichage": 10,
        "config_schema": {
            "type": "object",
            "properties": {
                "type": {"type": "string", "enum": ["communaute", "communes", "autre"]},
                "id": {"type": "integer", "description": "ID de la communaute de communes"},
                "ids": {"type": "array", "items": {"type": "integer"}},
                "commune_id": {"type": "integer"},
            },
        },
    },
    {
        "code": "QF",
        "libelle": "Quotient familial",
        "description": "Tranche de quotient familial (bornes incluses)",
        "icone": "bi-cash-stack",
        "couleur": "#198754",
        "ordre_affichage": 20,
        "config_schema": {
            "type": "object",
            "properties": {
                "borne_min": {"type": "number"},
                "borne_max": {"type": "number"},
            },
        },
    },
    {
        "code": "AGE",
        "libelle": "Age",
        "description": "Age de l'usager a la date de cotisation",
        "icone": "bi-person",
        "couleur": "#6f42c1",
        "ordre_affichage": 30,
        "config_schema": {
            "type": "object",
            "properties": {
                "operateur": {"type": "string", "enum": _OPERATEURS + ["entre"]},
                "valeur": {"type": "integer"},
                "min": {"type": "integer"},
                "max": {"type": "integer"},
            },
        },
    },
    {
        "code": "FIDELITE",
        "libelle": "Fidelite",
        "description": "Anciennete en annees depuis la premiere cotisation",
        "icone": "bi-award",
        "couleur": "#fd7e14",
        "ordre_affichage": 40,
        "config_schema": {
            "type": "object",
            "properties": {
                "operateur": {"type": "string", "enum": _OPERATEURS},
                "annees": {"type": "integer"},
            },
        },
    },
    {
        "code": "MULTI_INSCRIPTIONS",
        "libelle": "Inscriptions multiples",
        "description": "Nombre de cotisations actives dans la famille",
        "icone": "bi-people",
        "couleur": "#20c997",
        "ordre_affichage": 50,
        "config_schema": {
            "type": "object",
            "properties": {
                "operateur": {"type": "string", "enum": _OPERATEURS},
                "nombre": {"type": "integer"},
            },
        },
    },
    {
        "code": "TAG",
        "libelle": "Tag utilisateur",
        "description": "Condition basee sur les tags assignes a l'utilisateur",
        "icone": "bi-tags",
        "couleur": "#dc3545",
        "ordre_affichage": 60,
        "config_schema": {
            "type": "object",
            "properties": {
                "mode": {"type": "string", "enum": ["contient", "ne_contient_pas"]},
                "tags": {"type": "array", "items": {"type": "integer"}},
            },
        },
    },
    {
        "code": "STATUT_SOCIAL",
        "libelle": "Statut social (ancien)",
        "description": "Ancien format remplace par TAG, conserve pour les arbres existants",
        "icone": "bi-card-list",
        "couleur": "#6c757d",
        "ordre_affichage": 70,
        "config_schema": {
            "type": "object",
            "properties": {"statuts": {"type": "array", "items": {"type": "string"}}},
        },
    },
]

# Une opération comptable par source de réduction
OPERATIONS_REDUCTION_DEFAUT: List[Dict[str, Any]] = [
    {"code": "REDUC_COMMUNE", "libelle": "Reduction commune", "compte_comptable": "7065"},
    {"code": "REDUC_QF", "libelle": "Reduction quotient familial", "compte_comptable": "7065"},
    {"code": "REDUC_AGE", "libelle": "Reduction age", "compte_comptable": "7065"},
    {"code": "REDUC_FIDELITE", "libelle": "Reduction fidelite", "compte_comptable": "7065"},
    {"code": "REDUC_MULTI", "libelle": "Reduction inscriptions multiples", "compte_comptable": "7065"},
    {"code": "REDUC_TAG", "libelle": "Reduction tag utilisateur", "compte_comptable": "7065"},
]
