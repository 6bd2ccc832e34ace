"""Tests for core/filters.py and filter_colleges in core/data.py."""
from dataclasses import replace

import pandas as pd
import pytest

from core.data import DNB_RANGE_COLUMNS, build_collection, filter_colleges
from core.filters import (
    IPS_MAX,
    IPS_MIN,
    FilterState,
    default_filters,
    has_dnb_filters,
    has_non_region_filters,
    normalize_filters,
    normalize_text,
    reset_filters,
)

ALL = FilterState(location_mode="all")


def _uais(frame, filters):
    return filter_colleges(frame, filters)["uai"].tolist()


class TestNormalizeText:
    def test_strips_accents_and_case(self):
        assert normalize_text("École Île-de-France") == "ecole ile-de-france"

    def test_none(self):
        assert normalize_text(None) == ""


class TestDefaults:
    def test_default_values(self):
        f = default_filters()
        assert f.regions == []
        assert f.academies == []
        assert f.secteur == ""
        assert f.ips_range == (IPS_MIN, IPS_MAX)
        assert f.search == ""
        assert f.location_mode == "metropolitan"
        assert not has_dnb_filters(f)

    def test_reset_restores_defaults(self):
        assert reset_filters() == default_filters()

    def test_has_non_region_filters(self):
        assert not has_non_region_filters(replace(ALL, regions=["BRETAGNE"]))
        assert has_non_region_filters(replace(ALL, secteur="Public"))
        assert has_non_region_filters(replace(ALL, ips_range=(60, 170)))
        assert has_non_region_filters(replace(ALL, note_ecrit_range=(0, 20)))


class TestFilterColleges:
    def test_identity_when_inactive(self, frame):
        pd.testing.assert_frame_equal(filter_colleges(frame, ALL), frame)

    def test_default_ips_range_keeps_out_of_domain_scores(self):
        out = build_collection(
            [{"uai": "LOW", "ips": 45}, {"uai": "MID", "ips": 100}],
            [],
            [
                {"identifiant_de_l_etablissement": "LOW", "latitude": 45, "longitude": 5},
                {"identifiant_de_l_etablissement": "MID", "latitude": 46, "longitude": 5},
            ],
        )
        assert out.total == 2
        pd.testing.assert_frame_equal(filter_colleges(out.frame, ALL), out.frame)
        assert _uais(out.frame, replace(ALL, ips_range=(60, 170))) == ["MID"]

    def test_idempotent(self, frame):
        f = replace(ALL, search="coll", ips_range=(80, 115))
        once = filter_colleges(frame, f)
        pd.testing.assert_frame_equal(filter_colleges(frame, f), once)
        pd.testing.assert_frame_equal(filter_colleges(once, f), once)

    def test_default_is_metropolitan(self, frame):
        assert _uais(frame, default_filters()) == ["0750001A", "0690002B", "0130004D"]

    def test_overseas_only(self, frame):
        assert _uais(frame, replace(ALL, location_mode="drom-com")) == ["9740003C"]

    def test_region_membership(self, frame):
        assert _uais(frame, replace(ALL, regions=["ILE-DE-FRANCE", "LA REUNION"])) == ["0750001A", "9740003C"]

    def test_region_and_location_mode_combine(self, frame):
        assert _uais(frame, replace(default_filters(), regions=["LA REUNION"])) == []

    def test_secteur(self, frame):
        assert _uais(frame, replace(ALL, secteur="Privé sous contrat")) == ["0690002B"]

    def test_academies(self, frame):
        assert _uais(frame, replace(ALL, academies=["LYON", "AIX-MARSEILLE"])) == ["0690002B", "0130004D"]

    def test_ips_range_is_closed(self, frame):
        assert _uais(frame, replace(ALL, ips_range=(100, 110))) == ["0750001A", "0690002B"]

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("ecole", ["0750001A"]),
            ("ÉCOLE", ["0750001A"]),
            ("voltaire", ["0690002B"]),
            ("lyon", ["0690002B"]),
            ("marseille", ["0130004D"]),
            ("alizes", ["9740003C"]),
            ("nowhere", []),
        ],
    )
    def test_search_name_or_commune(self, frame, text, expected):
        assert _uais(frame, replace(ALL, search=text)) == expected

    def test_search_does_not_match_other_fields(self, frame):
        assert _uais(frame, replace(ALL, search="0750001A")) == []

    def test_pass_rate_range_excludes_missing(self, frame):
        assert _uais(frame, replace(ALL, taux_reussite_range=(90, 100))) == ["0750001A"]

    def test_any_dnb_filter_excludes_colleges_without_results(self, frame):
        result = _uais(frame, replace(ALL, nb_candidats_range=(0, 300)))
        assert result == ["0750001A", "0690002B", "0130004D"]

    def test_missing_metric_excluded_even_with_full_range(self, frame):
        # 0130004D has DNB results but no value-added score.
        assert _uais(frame, replace(ALL, valeur_ajoutee_range=(-20, 20))) == ["0750001A", "0690002B"]

    def test_dnb_ranges_combine(self, frame):
        f = replace(ALL, note_ecrit_range=(9, 12), taux_reussite_range=(75, 90))
        assert _uais(frame, f) == ["0690002B", "0130004D"]

    @pytest.mark.parametrize("name", list(DNB_RANGE_COLUMNS))
    def test_active_range_never_lets_out_of_range_through(self, frame, name):
        col = DNB_RANGE_COLUMNS[name]
        lo, hi = 10, 90
        result = filter_colleges(frame, replace(ALL, **{name: (lo, hi)}))
        assert result[col].notna().all()
        assert result[col].between(lo, hi).all()

    def test_empty_frame(self, frame):
        assert filter_colleges(frame.iloc[0:0], ALL).empty

    def test_result_order_follows_collection(self, frame):
        result = _uais(frame, replace(ALL, search="coll"))
        assert result == [u for u in frame["uai"].tolist() if u in result]


class TestNormalizeFilters:
    def test_empty_dict_gives_defaults(self):
        assert normalize_filters({}) == default_filters()

    def test_coerces_and_clamps(self):
        f = normalize_filters(
            {
                "regions": "BRETAGNE,CORSE",
                "ips_range": [200, 10],
                "taux_reussite_range": ["50", 150],
                "location_mode": "all",
                "search": "  jean ",
            }
        )
        assert f.regions == ["BRETAGNE", "CORSE"]
        assert f.ips_range == (IPS_MIN, IPS_MAX)
        assert f.taux_reussite_range == (50, 100)
        assert f.location_mode == "all"
        assert f.search == "jean"

    def test_unknown_location_mode_ignored(self):
        assert normalize_filters({"location_mode": "moon"}).location_mode == "metropolitan"

    def test_unparseable_range_keeps_base(self):
        base = replace(default_filters(), ips_range=(80, 120))
        assert normalize_filters({"ips_range": "oops"}, base=base).ips_range == (80, 120)

    def test_null_dnb_range_is_inactive(self):
        base = replace(default_filters(), note_ecrit_range=(5, 10))
        assert normalize_filters({"note_ecrit_range": None}, base=base).note_ecrit_range is None
