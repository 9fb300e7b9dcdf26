"""
Tests des prédicats de conditions.
"""
from datetime import date

from tarification.core.normalize import ConditionCommune, ConditionNumerique, ConditionTag, normaliser_condition
from tarification.models import CommunauteCommunesMembre, Cotisation, TagUtilisateur, Utilisateur
from tarification.schemas import ContexteEvaluation, ProfilUtilisateur
from tarification.services.condition_matchers import (
    calculer_age,
    calculer_anciennete,
    comparer,
    compter_inscriptions_actives,
    match_age_avec_details,
    match_commune,
    match_commune_avec_details,
    match_condition,
    match_condition_avec_details,
    match_fidelite_avec_details,
    match_multi_inscriptions,
    match_qf,
    match_qf_avec_details,
    match_tag,
    match_tag_avec_details,
)


def test_calculer_age_anniversaire():
    naissance = date(2008, 3, 10)
    assert calculer_age(naissance, date(2026, 3, 9)) == 17
    assert calculer_age(naissance, date(2026, 3, 10)) == 18


def test_comparer_operateurs():
    assert comparer(10, ConditionNumerique(operateur="<", valeur=10), "x")[0] is False
    assert comparer(10, ConditionNumerique(operateur="<=", valeur=10), "x")[0] is True
    assert comparer(10, ConditionNumerique(operateur="=", valeur=10), "x")[0] is True
    assert comparer(10, ConditionNumerique(operateur=">", valeur=None), "x")[0] is False
    assert comparer(5, ConditionNumerique(operateur="entre", min=1, max=5), "x")[0] is True
    assert comparer(5, ConditionNumerique(operateur="entre", min=1), "x")[0] is False
    # Sans borne : ne matche jamais
    assert comparer(5, ConditionNumerique(), "x") == (False, "")


def test_qf_bornes_inclusives():
    condition = ConditionNumerique(min=0, max=900)
    assert match_qf(condition, ProfilUtilisateur(quotient_familial=900))
    assert match_qf(condition, ProfilUtilisateur(quotient_familial=0))
    assert not match_qf(condition, ProfilUtilisateur(quotient_familial=900.01))

    resultat = match_qf_avec_details(condition, ProfilUtilisateur(quotient_familial=850))
    assert resultat == {"match": True, "details": "QF=850, condition: 0 <= QF <= 900 => OK"}


def test_qf_non_defini():
    resultat = match_qf_avec_details(ConditionNumerique(min=0), ProfilUtilisateur())
    assert resultat["match"] is False
    assert "QF non defini" in resultat["details"]


def test_age_details():
    usager = ProfilUtilisateur(date_naissance=date(2008, 3, 10))
    condition = ConditionNumerique(operateur=">=", valeur=18)
    resultat = match_age_avec_details(condition, usager, date(2026, 3, 10))
    assert resultat["match"] is True
    assert resultat["details"].startswith("Age=18 ans")

    assert match_age_avec_details(condition, ProfilUtilisateur(), date(2026, 1, 1))["match"] is False


def test_commune_sans_session():
    usager = ProfilUtilisateur(commune_id=12)
    assert match_commune(ConditionCommune(mode="communes", commune_ids=[11, 12]), usager)
    assert match_commune(ConditionCommune(mode="commune", commune_id=12), usager)
    assert not match_commune(ConditionCommune(), usager)

    resultat = match_commune_avec_details(ConditionCommune(mode="communaute", communaute_id=1), usager)
    assert resultat["match"] is False
    assert "non verifiable" in resultat["details"]

    assert not match_commune(ConditionCommune(mode="commune", commune_id=12), ProfilUtilisateur())


def test_commune_communaute(session):
    session.add(CommunauteCommunesMembre(communaute_id=1, commune_id=12))
    session.commit()
    condition = ConditionCommune(mode="communaute", communaute_id=1)
    assert match_commune(condition, ProfilUtilisateur(commune_id=12), session)
    assert not match_commune(condition, ProfilUtilisateur(commune_id=13), session)


def test_fidelite_anciennete(session, usager):
    session.add(Cotisation(utilisateur_id=usager.id, date_debut=date(2022, 9, 1), date_fin=date(2023, 8, 31)))
    session.commit()

    assert calculer_anciennete(session, usager.id, date(2025, 9, 1)) == 3
    assert calculer_anciennete(session, usager.id, date(2024, 8, 1)) == 1

    profil = ProfilUtilisateur(id=usager.id)
    condition = ConditionNumerique(operateur=">=", valeur=3)
    contexte = ContexteEvaluation(date_cotisation=date(2025, 9, 1))
    assert match_fidelite_avec_details(condition, profil, contexte, session)["match"] is True

    contexte = ContexteEvaluation(date_cotisation=date(2024, 9, 1))
    assert match_fidelite_avec_details(condition, profil, contexte, session)["match"] is False


def test_fidelite_sans_cotisation_ni_id(session, usager):
    condition = ConditionNumerique(operateur=">=", valeur=1)
    resultat = match_fidelite_avec_details(condition, ProfilUtilisateur(id=usager.id), ContexteEvaluation(), session)
    assert resultat == {"match": False, "details": "Aucune cotisation trouvee"}

    resultat = match_fidelite_avec_details(condition, ProfilUtilisateur(), ContexteEvaluation(), session)
    assert resultat["match"] is False
    assert "simulation" in resultat["details"]


def test_fidelite_surcharge():
    condition = ConditionNumerique(operateur=">=", valeur=2)
    resultat = match_fidelite_avec_details(condition, ProfilUtilisateur(), ContexteEvaluation(anciennete=2))
    assert resultat["match"] is True


def test_multi_inscriptions_compte_actives(session):
    frere = Utilisateur(nom="A", famille_id=7)
    soeur = Utilisateur(nom="B", famille_id=7)
    voisin = Utilisateur(nom="C", famille_id=8)
    session.add_all([frere, soeur, voisin])
    session.commit()
    session.add_all([
        Cotisation(utilisateur_id=frere.id, date_debut=date(2025, 9, 1), date_fin=date(2026, 8, 31)),
        Cotisation(utilisateur_id=soeur.id, date_debut=date(2025, 9, 1), date_fin=date(2026, 8, 31)),
        # Échue
        Cotisation(utilisateur_id=soeur.id, date_debut=date(2023, 9, 1), date_fin=date(2024, 8, 31)),
        Cotisation(utilisateur_id=voisin.id, date_debut=date(2025, 9, 1), date_fin=date(2026, 8, 31)),
    ])
    session.commit()

    assert compter_inscriptions_actives(session, 7, date(2026, 1, 1)) == 2

    condition = normaliser_condition("MULTI_INSCRIPTIONS", {"nb_inscrits_min": 2})
    contexte = ContexteEvaluation(date_cotisation=date(2026, 1, 1))
    assert match_multi_inscriptions(condition, ProfilUtilisateur(famille_id=7), contexte, session)
    assert not match_multi_inscriptions(condition, ProfilUtilisateur(famille_id=8), contexte, session)
    assert not match_multi_inscriptions(condition, ProfilUtilisateur(), contexte, session)


def test_multi_inscriptions_max_seul_ne_matche_pas():
    condition = normaliser_condition("MULTI_INSCRIPTIONS", {"max": 3})
    assert not match_multi_inscriptions(condition, ProfilUtilisateur(), ContexteEvaluation(nb_inscrits=1))


def test_tag_contient_et_exclusion(session):
    rsa = TagUtilisateur(code="RSA", libelle="RSA")
    session.add(rsa)
    session.commit()

    usager = ProfilUtilisateur(tags=[{"id": rsa.id, "libelle": "RSA"}])
    contexte = ContexteEvaluation()
    assert match_tag(ConditionTag(tags=[rsa.id]), usager, contexte)
    assert not match_tag(ConditionTag(mode="ne_contient_pas", tags=[rsa.id]), usager, contexte)
    assert not match_tag(ConditionTag(mode="inconnu", tags=[rsa.id]), usager, contexte)

    resultat = match_tag_avec_details(ConditionTag(tags=[rsa.id]), usager, contexte, session)
    assert resultat["details"] == "Tags utilisateur: [RSA], condition: contient [RSA] => OK"


def test_tag_surcharge_et_liste_vide():
    usager = ProfilUtilisateur(tags=[1])
    assert not match_tag(ConditionTag(tags=[1]), usager, ContexteEvaluation(tags=[]))
    assert match_tag(ConditionTag(tags=[2]), usager, ContexteEvaluation(tags=[{"id": 2, "libelle": "RSA"}]))
    assert not match_tag(ConditionTag(tags=[]), usager, ContexteEvaluation())


def test_statut_social_ancien_format():
    condition = normaliser_condition("STATUT_SOCIAL", {"statuts": ["RSA"]})
    assert match_tag(condition, ProfilUtilisateur(statut_social="RSA"), ContexteEvaluation())
    assert not match_tag(condition, ProfilUtilisateur(statut_social="salarie"), ContexteEvaluation())
    assert not match_tag(condition, ProfilUtilisateur(), ContexteEvaluation())


def test_dispatch():
    usager = ProfilUtilisateur(quotient_familial=500)
    contexte = ContexteEvaluation()
    assert match_condition("QF", normaliser_condition("QF", {"max": 600}), usager, contexte)
    assert match_condition_avec_details("QF", normaliser_condition("QF", {"type": "autre"}), usager, contexte) == {
        "match": True, "details": "Branche par defaut"
    }
    assert match_condition_avec_details("QF", None, usager, contexte)["details"] == "Pas de condition definie"
    assert match_condition_avec_details("METEO", None, usager, contexte)["details"] == "Type inconnu: METEO"


def test_profil_et_contexte_champs_vides():
    profil, surcharges = ProfilUtilisateur.depuis_simulation({
        "id": "", "commune_id": "12", "quotient_familial": "850,5", "date_naissance": "",
        "statut_social": "", "_nb_inscrits": "", "_anciennete": "3",
    })
    assert profil.id is None
    assert profil.commune_id == 12
    assert profil.quotient_familial == 850.5
    assert profil.date_naissance is None
    assert profil.statut_social is None

    contexte = ContexteEvaluation(**surcharges)
    assert contexte.nb_inscrits is None
    assert contexte.anciennete == 3
