"""
Tests de tarification des cotisations et de simulation.
"""
from datetime import date

import pytest

from tarification.core.errors import RessourceNonTrouvee
from tarification.models import ArbreDecision, TagUtilisateur, TarifCotisation, UtilisateurTag
from tarification.schemas import ArbreDocument
from tarification.services.arbre_lifecycle import creer_arbre
from tarification.services.cotisation_pricing import charger_profil, creer_cotisation, simuler_arbre
from tarification.services.reduction_ledger import get_reductions_cotisation

DOCUMENT = {
    "version": 1,
    "noeuds": [
        {"id": "qf", "type": "QF", "ordre": 0, "branches": [
            {"id": "b1", "code": "QF_BAS", "libelle": "QF < 900", "condition": {"borne_max": 900},
             "reduction": {"type_calcul": "pourcentage", "valeur": 25}},
        ]},
        {"id": "fid", "type": "FIDELITE", "ordre": 1, "branches": [
            {"id": "f1", "code": "FIDELE", "libelle": "2 ans et +", "condition": {"operateur": ">=", "annees": 2},
             "reduction": {"type_calcul": "fixe", "valeur": 5}},
        ]},
    ],
}


@pytest.fixture
def arbre(session, tarif):
    arbre = creer_arbre(session, tarif.id, document=ArbreDocument.model_validate(DOCUMENT))
    session.commit()
    session.refresh(arbre)
    return arbre


def test_charger_profil(session, usager):
    tag = TagUtilisateur(code="BENEVOLE", libelle="Benevole")
    session.add(tag)
    session.commit()
    session.add(UtilisateurTag(utilisateur_id=usager.id, tag_id=tag.id))
    session.commit()

    profil = charger_profil(session, usager.id)
    assert profil.quotient_familial == 850
    assert profil.tags == [tag.id]

    with pytest.raises(RessourceNonTrouvee):
        charger_profil(session, 999)


def test_creer_cotisation_verrouille_et_journalise(session, usager, tarif, arbre):
    resultat = creer_cotisation(session, usager.id, tarif.id, date(2025, 9, 1), date(2026, 8, 31),
                                date_paiement=date(2025, 9, 1))
    session.commit()

    cotisation = resultat["cotisation"]
    assert cotisation.montant_base == 100.0
    assert cotisation.montant_reductions == 25.0
    assert cotisation.montant_final == 75.0
    assert cotisation.arbre_id == arbre.id
    assert cotisation.arbre_version == 1

    assert session.get(ArbreDecision, arbre.id).verrouille is True
    lignes = get_reductions_cotisation(session, cotisation.id)
    assert [l.branche_code for l in lignes] == ["QF_BAS"]
    assert lignes[0].base_calcul == 100.0


def test_fidelite_au_renouvellement(session, usager, tarif, arbre):
    creer_cotisation(session, usager.id, tarif.id, date(2023, 9, 1), date(2024, 8, 31))
    resultat = creer_cotisation(session, usager.id, tarif.id, date(2025, 9, 1), date(2026, 8, 31))
    session.commit()

    assert [c["branche_code"] for c in resultat["chemin"]] == ["QF_BAS", "FIDELE"]
    assert resultat["cotisation"].montant_final == 70.0


def test_creer_cotisation_sans_arbre(session, usager):
    tarif = TarifCotisation(libelle="Sans arbre", montant_base=30.0)
    session.add(tarif)
    session.commit()

    resultat = creer_cotisation(session, usager.id, tarif.id, date(2025, 9, 1), date(2026, 8, 31))
    assert resultat["cotisation"].montant_final == 30.0
    assert resultat["cotisation"].arbre_id is None
    assert resultat["reductions"] == []


def test_montant_final_jamais_negatif(session, usager):
    tarif = TarifCotisation(libelle="Petit tarif", montant_base=3.0)
    session.add(tarif)
    session.commit()
    document = ArbreDocument.model_validate({"noeuds": [{"type": "QF", "branches": [
        {"code": "TOUS", "condition": {"type": "autre"}, "reduction": {"valeur": 10}}]}]})
    creer_arbre(session, tarif.id, document=document)

    resultat = creer_cotisation(session, usager.id, tarif.id, date(2025, 9, 1), date(2026, 8, 31))
    assert resultat["cotisation"].montant_reductions == 10.0
    assert resultat["cotisation"].montant_final == 0.0


def test_creer_cotisation_tarif_inconnu(session, usager):
    with pytest.raises(RessourceNonTrouvee):
        creer_cotisation(session, usager.id, 999, date(2025, 9, 1), date(2026, 8, 31))


def test_simulation_ne_verrouille_pas(session, arbre):
    resultat = simuler_arbre(session, arbre.id, utilisateur={
        "quotient_familial": 500,
        "_anciennete": 3,
    })
    assert resultat["total_reductions"] == 30.0
    assert resultat["montant_base"] == 100.0
    assert resultat["montant_final"] == 70.0
    assert session.get(ArbreDecision, arbre.id).verrouille is False


def test_simulation_sans_surcharge(session, arbre):
    """Sans _anciennete ni id, la condition de fidélité ne matche pas"""
    resultat = simuler_arbre(session, arbre.id, utilisateur={"quotient_familial": 500}, montant_base=40.0)
    assert resultat["total_reductions"] == 10.0
    details = resultat["trace"][1]["branches_testees"][0]["details"]
    assert details == "ID utilisateur non defini (simulation)"


def test_simulation_usager_existant(session, usager, arbre):
    resultat = simuler_arbre(session, arbre.id, utilisateur_id=usager.id)
    assert [c["branche_code"] for c in resultat["chemin"]] == ["QF_BAS"]


def test_simulation_champs_vides(session, tarif):
    """Un formulaire de simulation envoie "" pour les données absentes : conditions non remplies"""
    document = ArbreDocument.model_validate({"noeuds": [
        {"id": "com", "type": "COMMUNE", "ordre": 0, "branches": [
            {"code": "LOCAL", "condition": {"commune_id": 12}, "reduction": {"valeur": 5}}]},
        {"id": "age", "type": "AGE", "ordre": 1, "branches": [
            {"code": "JEUNE", "condition": {"operateur": "<", "valeur": 18}, "reduction": {"valeur": 5}}]},
        {"id": "fid", "type": "FIDELITE", "ordre": 2, "branches": [
            {"code": "FIDELE", "condition": {"operateur": ">=", "annees": 1}, "reduction": {"valeur": 5}}]},
    ]})
    arbre = creer_arbre(session, tarif.id, document=document)

    resultat = simuler_arbre(session, arbre.id, utilisateur={
        "date_naissance": "",
        "commune_id": "",
        "quotient_familial": "",
        "famille_id": " ",
        "_anciennete": "",
    })
    assert resultat["total_reductions"] == 0.0
    details = [t["branches_testees"][0]["details"] for t in resultat["trace"]]
    assert details[0] == "Commune non definie (commune_id: null)"
    assert details[1] == "Date de naissance non definie"
    assert details[2] == "ID utilisateur non defini (simulation)"
