from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional

import pandas as pd

from core.charts import ips_distribution_chart, to_vega_spec
from core.data import round_half_up
from core.filters import FilterState


def _mean(series: pd.Series) -> Optional[float]:
    values = series.dropna()
    if values.empty:
        return None
    return round_half_up(values.mean(), 1)


def compute_stats(frame: pd.DataFrame) -> Optional[Dict[str, Any]]:
    """Summary figures for a filtered selection; ``None`` when nothing is selected."""
    if frame.empty:
        return None

    with_dnb = frame[frame["taux_reussite"].notna()]
    total_candidats = None
    if not with_dnb.empty:
        total_candidats = int(with_dnb["nb_candidats"].fillna(0).sum())

    return {
        "count": int(len(frame)),
        "count_with_dnb": int(len(with_dnb)),
        "total_candidats": total_candidats,
        "avg_ips": _mean(frame["ips"]),
        "avg_reussite": _mean(with_dnb["taux_reussite"]),
        "avg_valeur_ajoutee": _mean(with_dnb["valeur_ajoutee"]),
        "avg_note_ecrit": _mean(with_dnb["note_ecrit"]),
        "min_ips": round_half_up(frame["ips"].min(), 1),
        "max_ips": round_half_up(frame["ips"].max(), 1),
    }


def compute_overview(filters: FilterState, frame: pd.DataFrame) -> Dict[str, Any]:
    charts: Dict[str, Any] = {}
    if not frame.empty:
        charts["ips_distribution"] = to_vega_spec(ips_distribution_chart(frame))
    return {"filters": asdict(filters), "stats": compute_stats(frame), "charts": charts}
