import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
import pandas as pd
import pydeck as pdk
import streamlit as st

from core.charts import ips_distribution_chart, mentions_chart
from core.colors import format_fr, format_region_name, ips_color_rgb, ips_label
from core.comparison import ComparisonSet, comparison_rows, mentions_rows, select_college, va_label
from core.data import COLLECTION_TTL_SECONDS, college_records, features_to_frame, filter_colleges
from core.filters import (
    DNB_RANGE_DOMAINS,
    IPS_MAX,
    IPS_MIN,
    LOCATION_MODES,
    REGIONS,
    FilterState,
    default_filters,
    has_non_region_filters,
)
from core.metrics_overview import compute_stats
from core.url_state import DEBOUNCE_SECONDS, QuerySync, filters_to_query, query_to_filters

logger = logging.getLogger(__name__)

API_URL = os.environ.get("COLLEGES_API_URL", "http://127.0.0.1:8000/api/colleges")
HTTP_TIMEOUT = float(os.environ.get("COLLEGES_HTTP_TIMEOUT", "60"))

LOCATION_LABELS = {"all": "Toute la France", "metropolitan": "Métropole", "drom-com": "DROM-COM"}
SECTEUR_OPTIONS = ["", "Public", "Privé sous contrat"]
DNB_WIDGETS = {
    "taux_reussite_range": ("Taux de réussite (%)", 1.0),
    "valeur_ajoutee_range": ("Valeur ajoutée", 1.0),
    "note_ecrit_range": ("Note à l'écrit", 0.5),
    "nb_candidats_range": ("Nombre de candidats", 10.0),
}


@dataclass
class LoadResult:
    status: str
    frame: pd.DataFrame = field(default_factory=pd.DataFrame)
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


# ---------- data ----------
@st.cache_data(ttl=COLLECTION_TTL_SECONDS, show_spinner="Chargement des collèges…")
def _fetch_geojson(url: str) -> Dict[str, Any]:
    with httpx.Client(timeout=HTTP_TIMEOUT, follow_redirects=True) as client:
        response = client.get(url)
        response.raise_for_status()
        return response.json()


def fetch_collection(url: str = API_URL) -> LoadResult:
    try:
        geojson = _fetch_geojson(url)
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Could not load colleges from %s: %s", url, exc)
        return LoadResult(status="error", error=str(exc))
    return LoadResult(status="success", frame=features_to_frame(geojson), metadata=geojson.get("metadata") or {})


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;margin-bottom: 8px;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        .winner {color: #15803d;font-weight: 600;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container(border=True)
    container.markdown(f"<div class='card-title'>{title}</div>", unsafe_allow_html=True)
    with container:
        yield container


def format_filter_summary(filters: FilterState) -> str:
    chips = [LOCATION_LABELS[filters.location_mode]]
    if filters.regions:
        chips.append("Régions : " + ", ".join(format_region_name(r) for r in filters.regions))
    if filters.secteur:
        chips.append(f"Secteur : {filters.secteur}")
    if tuple(filters.ips_range) != (IPS_MIN, IPS_MAX):
        chips.append(f"IPS : {format_fr(filters.ips_range[0], 0)}–{format_fr(filters.ips_range[1], 0)}")
    if filters.search:
        chips.append(f"Recherche : {filters.search}")
    for name, (label, _) in DNB_WIDGETS.items():
        bounds = getattr(filters, name)
        if bounds is not None:
            chips.append(f"{label} : {format_fr(bounds[0], 0)}–{format_fr(bounds[1], 0)}")
    return "".join(f"<span class='chip'>{txt}</span>" for txt in chips)


# ---------- session state ----------
def _seed_widgets(filters: FilterState) -> None:
    st.session_state["w_regions"] = list(filters.regions)
    st.session_state["w_academies"] = list(filters.academies)
    st.session_state["w_secteur"] = filters.secteur
    st.session_state["w_location_mode"] = filters.location_mode
    st.session_state["w_ips_range"] = (float(filters.ips_range[0]), float(filters.ips_range[1]))
    st.session_state["w_search"] = filters.search
    for name, (lo, hi) in DNB_RANGE_DOMAINS.items():
        bounds = getattr(filters, name)
        st.session_state[f"w_{name}_on"] = bounds is not None
        st.session_state[f"w_{name}"] = (float(bounds[0]), float(bounds[1])) if bounds else (float(lo), float(hi))


def _init_session() -> None:
    if "query_sync" in st.session_state:
        return
    filters = query_to_filters(st.query_params.to_dict(), default_filters())
    _seed_widgets(filters)
    st.session_state["comparison"] = ComparisonSet()
    st.session_state["comparison_mode"] = False
    st.session_state["selected_uai"] = None
    st.session_state["query_sync"] = QuerySync(
        lambda query: st.query_params.from_dict(query),
        last_written=filters_to_query(filters),
    )


def _filters_from_widgets() -> FilterState:
    dnb = {}
    for name in DNB_RANGE_DOMAINS:
        dnb[name] = tuple(st.session_state[f"w_{name}"]) if st.session_state[f"w_{name}_on"] else None
    return FilterState(
        regions=list(st.session_state["w_regions"]),
        academies=list(st.session_state["w_academies"]),
        secteur=st.session_state["w_secteur"],
        ips_range=tuple(st.session_state["w_ips_range"]),
        search=st.session_state["w_search"].strip(),
        location_mode=st.session_state["w_location_mode"],
        **dnb,
    )


def _reset() -> None:
    _seed_widgets(default_filters())
    st.session_state["comparison"].clear()
    st.session_state["selected_uai"] = None


def _on_select(records_by_label: Dict[str, Dict[str, Any]]) -> None:
    record = records_by_label.get(st.session_state.get("w_selected"))
    current = select_college(
        st.session_state["comparison"], record, comparison_mode=st.session_state["comparison_mode"]
    )
    st.session_state["selected_uai"] = current["uai"] if current else None


@st.fragment(run_every=DEBOUNCE_SECONDS)
def _url_sync() -> None:
    st.session_state["query_sync"].flush()


# ---------- panels ----------
def render_map(filtered: pd.DataFrame, zoom_to_results: bool) -> None:
    if filtered.empty:
        st.info("Aucun collège ne correspond aux filtres.")
        return
    points = filtered.copy()
    points["color"] = points["ips"].map(lambda v: list(ips_color_rgb(v)))
    points["ips_txt"] = points["ips"].map(lambda v: format_fr(v, 1))
    points["reussite_txt"] = points["taux_reussite"].map(lambda v: format_fr(v, 1))
    selected = st.session_state.get("selected_uai")
    points["radius"] = points["uai"].map(lambda u: 900 if u == selected else 350)

    if zoom_to_results:
        view = pdk.ViewState(latitude=float(points["latitude"].mean()), longitude=float(points["longitude"].mean()), zoom=7)
    else:
        view = pdk.ViewState(latitude=46.6, longitude=2.4, zoom=5)
    layer = pdk.Layer(
        "ScatterplotLayer",
        data=points[["uai", "nom", "commune", "longitude", "latitude", "color", "radius", "ips_txt", "reussite_txt"]],
        get_position="[longitude, latitude]",
        get_fill_color="color",
        get_radius="radius",
        radius_min_pixels=2,
        radius_max_pixels=12,
        pickable=True,
    )
    tooltip = {"html": "<b>{nom}</b><br/>{commune}<br/>IPS : {ips_txt}<br/>Réussite DNB : {reussite_txt} %"}
    st.pydeck_chart(pdk.Deck(layers=[layer], initial_view_state=view, tooltip=tooltip, map_style=None))


def render_stats(filtered: pd.DataFrame) -> None:
    stats = compute_stats(filtered)
    if stats is None:
        return
    with card("Sélection"):
        cols = st.columns(4)
        cols[0].metric("Collèges", format_fr(stats["count"], 0))
        cols[1].metric("IPS moyen", format_fr(stats["avg_ips"]), help=ips_label(stats["avg_ips"]))
        cols[2].metric("Réussite DNB moy.", format_fr(stats["avg_reussite"]))
        cols[3].metric("Candidats", format_fr(stats["total_candidats"], 0))
        st.caption(
            f"IPS de {format_fr(stats['min_ips'])} à {format_fr(stats['max_ips'])} · "
            f"{format_fr(stats['count_with_dnb'], 0)} collèges avec résultats DNB · "
            f"valeur ajoutée moy. {format_fr(stats['avg_valeur_ajoutee'])} · "
            f"note écrit moy. {format_fr(stats['avg_note_ecrit'])}"
        )
        st.altair_chart(ips_distribution_chart(filtered), use_container_width=True)


def render_college(record: Dict[str, Any]) -> None:
    with card(record["nom"]):
        st.caption(f"{record['commune']} · {record['departement']} · {format_region_name(record['region'])} · {record['secteur']}")
        cols = st.columns(3)
        cols[0].metric("IPS", format_fr(record["ips"]), help=ips_label(record["ips"]))
        cols[1].metric("Réussite DNB", format_fr(record["taux_reussite"]))
        va = va_label(record)
        cols[2].metric("Valeur ajoutée", va["text"] if va else "–")


def render_comparison(comparison: ComparisonSet) -> None:
    items = comparison.items
    with card(f"Comparaison ({len(items)}/2)"):
        st.toggle("Mode comparaison", key="comparison_mode", help="Chaque collège sélectionné est ajouté à la comparaison.")
        if not items:
            st.caption("Sélectionnez un collège puis un second pour les comparer.")
            return
        cols = st.columns(len(items))
        for col, college in zip(cols, items):
            col.markdown(f"**{college['nom']}**  \n{college['commune']}")
            if col.button("Retirer", key=f"remove_{college['uai']}"):
                comparison.remove(college["uai"])
                st.rerun()
        if len(items) == 2:
            rows = comparison_rows(items[0], items[1])
            table = pd.DataFrame(
                {
                    "Indicateur": [r["label"] for r in rows],
                    items[0]["nom"]: [("✓ " if r["winner"] == 1 else "") + r["values"][0] for r in rows],
                    items[1]["nom"]: [("✓ " if r["winner"] == 2 else "") + r["values"][1] for r in rows],
                }
            )
            st.dataframe(table, hide_index=True, use_container_width=True)
            mention_rows = mentions_rows(items)
            if mention_rows:
                st.altair_chart(mentions_chart(mention_rows), use_container_width=True)
        if st.button("Vider la comparaison"):
            comparison.clear()
            st.rerun()


# ---------- UI setup ----------
st.set_page_config(page_title="Carte des collèges", layout="wide")
inject_base_styles()
_init_session()
st.title("Carte des collèges : IPS et résultats au DNB")

result = fetch_collection()
if result.status == "error":
    st.error(f"Impossible de charger les données des collèges ({result.error}).")
    st.stop()

data = result.frame
meta = result.metadata
st.caption(
    f"{format_fr(meta.get('total'), 0)} collèges · IPS {meta.get('ips_year', '')} · "
    f"DNB session {meta.get('dnb_session', '')}"
)

# ----- Sidebar: filters -----
with st.sidebar:
    st.markdown("### Filtres")
    st.radio("Zone", options=list(LOCATION_MODES), format_func=LOCATION_LABELS.get, key="w_location_mode", horizontal=True)
    st.multiselect("Régions académiques", options=REGIONS, format_func=format_region_name, key="w_regions")
    academy_source = data[data["region"].isin(st.session_state["w_regions"])] if st.session_state["w_regions"] else data
    academy_options = sorted(set(academy_source["academie"].dropna().astype(str)) | set(st.session_state["w_academies"]))
    st.multiselect("Académies", options=academy_options, key="w_academies")
    st.selectbox("Secteur", options=SECTEUR_OPTIONS, format_func=lambda s: s or "Tous", key="w_secteur")
    st.slider("IPS", min_value=float(IPS_MIN), max_value=float(IPS_MAX), step=1.0, key="w_ips_range")
    st.text_input("Nom ou commune", key="w_search")

    st.markdown("---")
    st.markdown("### Résultats au DNB")
    for name, (label, step) in DNB_WIDGETS.items():
        lo, hi = DNB_RANGE_DOMAINS[name]
        st.checkbox(label, key=f"w_{name}_on")
        st.slider(
            label,
            min_value=float(lo),
            max_value=float(hi),
            step=step,
            key=f"w_{name}",
            disabled=not st.session_state[f"w_{name}_on"],
            label_visibility="collapsed",
        )

    st.markdown("---")
    st.button("Réinitialiser", on_click=_reset)

filters = _filters_from_widgets()
st.session_state["query_sync"].push(filters)
_url_sync()

filtered = filter_colleges(data, filters)
st.markdown(f"<div class='chip-row'>{format_filter_summary(filters)}</div>", unsafe_allow_html=True)

map_col, side_col = st.columns([3, 2])
with map_col:
    render_map(filtered, zoom_to_results=bool(filters.regions) or has_non_region_filters(filters))
with side_col:
    records: List[Dict[str, Any]] = college_records(filtered)
    records_by_label = {f"{r['nom']} – {r['commune']} ({r['uai']})": r for r in records}
    st.selectbox(
        "Collège",
        options=list(records_by_label),
        index=None,
        placeholder="Rechercher un collège…",
        key="w_selected",
        on_change=_on_select,
        args=(records_by_label,),
    )
    selected_uai = st.session_state.get("selected_uai")
    selected = next((r for r in records if r["uai"] == selected_uai), None)
    if selected is not None:
        render_college(selected)
    render_comparison(st.session_state["comparison"])
    render_stats(filtered)
