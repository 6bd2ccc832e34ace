"""
Shared fixtures: small raw IPS / IVAC / Annuaire extracts and the collection
built from them.

Expected join result, in IPS order:
    0750001A  École Jean Moulin   Paris        ILE-DE-FRANCE   ips 110    DNB
    0690002B  Collège Voltaire    Lyon         AUVERGNE-...    ips 100    DNB
    9740003C  Collège Les Alizés  Saint-Denis  LA REUNION      ips 85     no DNB
    0130004D  Collège du Port     Marseille    PACA (from IVAC) ips 120.5 DNB, no VA
Dropped: 0330005E (no geo), 0330006F (ips 0), missing uai, 0590007H (lat 0).
"""

import copy

import pytest

from core.data import build_collection

IPS_ROWS = [
    {
        "uai": "0750001A",
        "nom_de_l_etablissement": "École Jean Moulin",
        "nom_de_la_commune": "Paris",
        "departement": "PARIS",
        "code_du_departement": "075",
        "academie": "PARIS",
        "region_academique": "ILE-DE-FRANCE",
        "secteur": "Public",
        "ips": 110,
        "ecart_type_de_l_ips": 30.2,
        "rentree_scolaire": "2024-2025",
    },
    {
        "uai": "0690002B",
        "nom_de_l_etablissement": "Collège Voltaire",
        "nom_de_la_commune": "Lyon",
        "departement": "RHONE",
        "code_du_departement": "069",
        "academie": "LYON",
        "region_academique": "AUVERGNE-RHONE-ALPES",
        "secteur": "Privé sous contrat",
        "ips": 100,
        "ecart_type_de_l_ips": 25.0,
        "rentree_scolaire": "2024-2025",
    },
    {
        "uai": "9740003C",
        "nom_de_l_etablissement": "Collège Les Alizés",
        "nom_de_la_commune": "Saint-Denis",
        "departement": "LA REUNION",
        "code_du_departement": "974",
        "academie": "LA REUNION",
        "region_academique": "LA REUNION",
        "secteur": "Public",
        "ips": 85,
        "ecart_type_de_l_ips": None,
        "rentree_scolaire": "2024-2025",
    },
    {
        "uai": "0130004D",
        "nom_de_l_etablissement": "",
        "nom_de_la_commune": "Marseille",
        "departement": "BOUCHES-DU-RHONE",
        "code_du_departement": "013",
        "academie": "AIX-MARSEILLE",
        "region_academique": "",
        "secteur": "Public",
        "ips": "120.5",
        "ecart_type_de_l_ips": "28.1",
        "rentree_scolaire": "2024-2025",
    },
    {
        "uai": "0330005E",
        "nom_de_l_etablissement": "Collège Sans Adresse",
        "nom_de_la_commune": "Bordeaux",
        "academie": "BORDEAUX",
        "region_academique": "NOUVELLE-AQUITAINE",
        "secteur": "Public",
        "ips": 105,
    },
    {
        "uai": "0330006F",
        "nom_de_l_etablissement": "Collège IPS Zéro",
        "nom_de_la_commune": "Bordeaux",
        "academie": "BORDEAUX",
        "region_academique": "NOUVELLE-AQUITAINE",
        "secteur": "Public",
        "ips": 0,
    },
    {
        "uai": None,
        "nom_de_l_etablissement": "Collège Anonyme",
        "nom_de_la_commune": "Nulle-Part",
        "region_academique": "BRETAGNE",
        "secteur": "Public",
        "ips": 99,
    },
    {
        "uai": "0590007H",
        "nom_de_l_etablissement": "Collège Hors Carte",
        "nom_de_la_commune": "Lille",
        "academie": "LILLE",
        "region_academique": "HAUTS-DE-FRANCE",
        "secteur": "Public",
        "ips": 90,
    },
]

IVAC_ROWS = [
    {
        "uai": "0750001A",
        "nom_de_l_etablissement": "COLLEGE JEAN MOULIN",
        "taux_de_reussite_g": 95,
        "nb_candidats_g": 100,
        "nb_mentions_tb_g": 30,
        "nb_mentions_b_g": 25,
        "nb_mentions_ab_g": 20,
        "va_du_taux_de_reussite_g": 3,
        "note_a_l_ecrit_g": 12.5,
        "region_academique": "ILE-DE-FRANCE",
    },
    {
        "uai": "0690002B",
        "nom_de_l_etablissement": "COLLEGE VOLTAIRE",
        "taux_de_reussite_g": 80,
        "nb_candidats_g": 50,
        "nb_mentions_tb_g": 5,
        "nb_mentions_b_g": 10,
        "nb_mentions_ab_g": 15,
        "va_du_taux_de_reussite_g": -4,
        "note_a_l_ecrit_g": 9.8,
        "region_academique": "AUVERGNE-RHONE-ALPES",
    },
    {
        "uai": "0130004D",
        "nom_de_l_etablissement": "Collège du Port",
        "taux_de_reussite_g": 88.5,
        "nb_candidats_g": "120",
        "nb_mentions_tb_g": 12,
        "nb_mentions_b_g": 30,
        "nb_mentions_ab_g": 40,
        "va_du_taux_de_reussite_g": None,
        "note_a_l_ecrit_g": 11,
        "region_academique": "PROVENCE-ALPES-COTE D'AZUR",
    },
    {
        "uai": "0330005E",
        "nom_de_l_etablissement": "Collège Sans Adresse",
        "taux_de_reussite_g": 70,
        "nb_candidats_g": 60,
        "region_academique": "NOUVELLE-AQUITAINE",
    },
]

ANNUAIRE_ROWS = [
    # Superseded by the later row for the same identifier.
    {"identifiant_de_l_etablissement": "0750001A", "latitude": 1.0, "longitude": 1.0},
    {"identifiant_de_l_etablissement": "0690002B", "latitude": 45.76, "longitude": 4.83},
    {"identifiant_de_l_etablissement": "9740003C", "latitude": -20.88, "longitude": 55.45},
    {"identifiant_de_l_etablissement": "0130004D", "latitude": 43.3, "longitude": 5.37},
    {"identifiant_de_l_etablissement": "0330006F", "latitude": 44.84, "longitude": -0.58},
    {"identifiant_de_l_etablissement": "0590007H", "latitude": 0, "longitude": 3.06},
    {"identifiant_de_l_etablissement": "0750001A", "latitude": 48.85, "longitude": 2.35},
]

EXPECTED_UAIS = ["0750001A", "0690002B", "9740003C", "0130004D"]


@pytest.fixture
def ips_rows():
    return copy.deepcopy(IPS_ROWS)


@pytest.fixture
def ivac_rows():
    return copy.deepcopy(IVAC_ROWS)


@pytest.fixture
def annuaire_rows():
    return copy.deepcopy(ANNUAIRE_ROWS)


@pytest.fixture
def collection(ips_rows, ivac_rows, annuaire_rows):
    return build_collection(ips_rows, ivac_rows, annuaire_rows, generated_at="2026-10-18T06:00:00.000Z")


@pytest.fixture
def frame(collection):
    return collection.frame


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
