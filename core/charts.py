from __future__ import annotations

from typing import Any, Dict, List

import altair as alt
import pandas as pd

from core.colors import ips_color
from core.filters import IPS_MAX, IPS_MIN

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def ips_distribution_frame(frame: pd.DataFrame, step: int = 5) -> pd.DataFrame:
    edges = list(range(IPS_MIN, IPS_MAX + 2 * step, step))
    binned = pd.cut(frame["ips"], bins=edges, right=False, include_lowest=True)
    counts = binned.value_counts(sort=False)
    out = pd.DataFrame({"ips_start": [int(b.left) for b in counts.index], "colleges": counts.to_numpy()})
    out["color"] = out["ips_start"].map(lambda v: ips_color(v + step / 2))
    return out


def ips_distribution_chart(frame: pd.DataFrame) -> alt.Chart:
    dist = ips_distribution_frame(frame)
    return (
        alt.Chart(dist)
        .mark_bar()
        .encode(
            x=alt.X("ips_start:O", title="IPS"),
            y=alt.Y("colleges:Q", title="Collèges"),
            color=alt.Color("color:N", scale=None, legend=None),
            tooltip=[alt.Tooltip("ips_start:O", title="IPS à partir de"), alt.Tooltip("colleges:Q", title="Collèges")],
        )
        .properties(height=180)
    )


def mentions_chart(rows: List[Dict[str, Any]]) -> alt.Chart:
    """Stacked share of DNB mentions, one bar per compared college."""
    df = pd.DataFrame(rows, columns=["college", "mention", "pct"])
    order = ["TB", "B", "AB", "Sans mention"]
    df["mention_order"] = df["mention"].map({m: i for i, m in enumerate(order)})
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            y=alt.Y("college:N", title=None),
            x=alt.X("pct:Q", title="% des candidats", scale=alt.Scale(domain=[0, 100])),
            color=alt.Color(
                "mention:N",
                sort=order,
                scale=alt.Scale(domain=order, range=["#15803d", "#65a30d", "#ca8a04", "#d4d4d8"]),
                title="Mention",
            ),
            order=alt.Order("mention_order:Q"),
            tooltip=["college", "mention", alt.Tooltip("pct:Q", format=".1f")],
        )
        .properties(height=90)
    )
