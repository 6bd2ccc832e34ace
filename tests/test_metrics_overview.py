"""Tests for core/metrics_overview.py and the chart helpers it relies on."""
from dataclasses import replace

import pandas as pd

from core.charts import ips_distribution_frame
from core.data import COLLEGE_COLUMNS, filter_colleges
from core.filters import FilterState
from core.metrics_overview import compute_overview, compute_stats

ALL = FilterState(location_mode="all")


def _frame(rows):
    base = {col: None for col in COLLEGE_COLUMNS}
    return pd.DataFrame([{**base, **r} for r in rows], columns=COLLEGE_COLUMNS).astype(
        {"ips": float, "taux_reussite": float, "valeur_ajoutee": float, "note_ecrit": float, "nb_candidats": float}
    )


class TestComputeStats:
    def test_empty_selection(self, frame):
        assert compute_stats(frame.iloc[0:0]) is None

    def test_primary_score_mean_min_max(self):
        stats = compute_stats(_frame([{"uai": "a", "ips": 100}, {"uai": "b", "ips": 110}, {"uai": "c", "ips": 120}]))
        assert stats["avg_ips"] == 110.0
        assert stats["min_ips"] == 100.0
        assert stats["max_ips"] == 120.0
        assert stats["count"] == 3
        assert stats["count_with_dnb"] == 0
        assert stats["total_candidats"] is None
        assert stats["avg_reussite"] is None
        assert stats["avg_valeur_ajoutee"] is None
        assert stats["avg_note_ecrit"] is None

    def test_full_collection(self, frame):
        stats = compute_stats(filter_colleges(frame, ALL))
        assert stats == {
            "count": 4,
            "count_with_dnb": 3,
            "total_candidats": 270,
            "avg_ips": 103.9,
            "avg_reussite": 87.8,
            "avg_valeur_ajoutee": -0.5,
            "avg_note_ecrit": 11.1,
            "min_ips": 85.0,
            "max_ips": 120.5,
        }

    def test_metric_mean_only_over_present_values(self):
        stats = compute_stats(
            _frame(
                [
                    {"uai": "a", "ips": 100, "taux_reussite": 90, "valeur_ajoutee": 4, "nb_candidats": 10},
                    {"uai": "b", "ips": 100, "taux_reussite": 70, "nb_candidats": None},
                    {"uai": "c", "ips": 100, "valeur_ajoutee": 100},
                ]
            )
        )
        assert stats["count_with_dnb"] == 2
        assert stats["avg_reussite"] == 80.0
        # "c" has no pass rate, so its value-added score is not counted.
        assert stats["avg_valeur_ajoutee"] == 4.0
        assert stats["total_candidats"] == 10

    def test_mean_of_zero_is_reported(self):
        stats = compute_stats(_frame([{"uai": "a", "ips": 100, "taux_reussite": 50, "valeur_ajoutee": 0}]))
        assert stats["avg_valeur_ajoutee"] == 0.0


class TestComputeOverview:
    def test_payload(self, frame):
        f = replace(ALL, regions=["ILE-DE-FRANCE"])
        payload = compute_overview(f, filter_colleges(frame, f))
        assert payload["filters"]["regions"] == ["ILE-DE-FRANCE"]
        assert payload["stats"]["count"] == 1
        assert "ips_distribution" in payload["charts"]
        mark = payload["charts"]["ips_distribution"]["mark"]
        assert (mark if isinstance(mark, str) else mark["type"]) == "bar"

    def test_no_chart_for_empty_selection(self, frame):
        payload = compute_overview(ALL, frame.iloc[0:0])
        assert payload["stats"] is None
        assert payload["charts"] == {}


class TestIpsDistribution:
    def test_bins_cover_collection(self, frame):
        dist = ips_distribution_frame(frame)
        assert dist["colleges"].sum() == 4
        assert dist.loc[dist["ips_start"] == 110, "colleges"].item() == 1
        assert dist["color"].str.startswith("rgb(").all()
