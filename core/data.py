from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import httpx
import numpy as np
import pandas as pd

from core.filters import DROM_COM_REGIONS, IPS_MAX, IPS_MIN, FilterState, has_dnb_filters, normalize_text
from core.sources import (
    ANNUAIRE_QUERY,
    DNB_SESSION,
    HTTP_TIMEOUT,
    IPS_QUERY,
    IPS_YEAR,
    IVAC_QUERY,
    fetch_dataset,
)

logger = logging.getLogger(__name__)

COLLECTION_TTL_SECONDS = 24 * 60 * 60

# Source schemas: (string columns, numeric columns) as served by the explore API.
IPS_SCHEMA = (
    [
        "uai",
        "nom_de_l_etablissement",
        "nom_de_la_commune",
        "departement",
        "code_du_departement",
        "academie",
        "region_academique",
        "secteur",
        "rentree_scolaire",
    ],
    ["ips", "ecart_type_de_l_ips"],
)
IVAC_SCHEMA = (
    ["uai", "nom_de_l_etablissement", "region_academique"],
    [
        "taux_de_reussite_g",
        "nb_candidats_g",
        "nb_mentions_tb_g",
        "nb_mentions_b_g",
        "nb_mentions_ab_g",
        "va_du_taux_de_reussite_g",
        "note_a_l_ecrit_g",
    ],
)
ANNUAIRE_SCHEMA = (["identifiant_de_l_etablissement"], ["latitude", "longitude"])

# Join identifiers are matched exactly, so they are never trimmed.
KEY_COLUMNS = {"uai", "identifiant_de_l_etablissement"}

IVAC_COLUMNS = {
    "nom_de_l_etablissement": "ivac_nom",
    "region_academique": "ivac_region",
    "taux_de_reussite_g": "taux_reussite",
    "nb_mentions_tb_g": "mentions_tb",
    "nb_mentions_b_g": "mentions_b",
    "nb_mentions_ab_g": "mentions_ab",
    "nb_candidats_g": "nb_candidats",
    "va_du_taux_de_reussite_g": "valeur_ajoutee",
    "note_a_l_ecrit_g": "note_ecrit",
}

STRING_PROPERTIES = ["uai", "nom", "commune", "departement", "code_departement", "region", "academie", "secteur"]
DNB_PROPERTIES = [
    "taux_reussite",
    "mentions_tb",
    "mentions_b",
    "mentions_ab",
    "nb_candidats",
    "valeur_ajoutee",
    "note_ecrit",
]
COUNT_PROPERTIES = {"mentions_tb", "mentions_b", "mentions_ab", "nb_candidats"}
PROPERTY_COLUMNS = STRING_PROPERTIES + ["ips", "ecart_type_ips"] + DNB_PROPERTIES
COLLEGE_COLUMNS = PROPERTY_COLUMNS + ["longitude", "latitude"]

# FilterState range field -> frame column
DNB_RANGE_COLUMNS = {
    "taux_reussite_range": "taux_reussite",
    "valeur_ajoutee_range": "valeur_ajoutee",
    "note_ecrit_range": "note_ecrit",
    "nb_candidats_range": "nb_candidats",
}


def numericize(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce").astype(float)
    return df


def coerce_str_safe(df: pd.DataFrame, cols: Iterable[str], *, strip: bool = True) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            series = df[col].astype("string")
            if strip:
                series = series.str.strip()
            series = series.replace({"nan": pd.NA, "None": pd.NA, "null": pd.NA, "": pd.NA})
            df[col] = series
    return df


def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    """Round half away from zero; ``None`` for missing values."""
    if value is None or pd.isna(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(str(value)).quantize(q, rounding=ROUND_HALF_UP))


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def source_frame(rows: List[Dict[str, Any]], schema: tuple) -> pd.DataFrame:
    """Project raw API rows onto a source schema, coercing types; never raises on bad values."""
    string_cols, numeric_cols = schema
    df = pd.DataFrame.from_records(rows) if rows else pd.DataFrame()
    for col in string_cols:
        if col not in df.columns:
            df[col] = None
    for col in numeric_cols:
        if col not in df.columns:
            df[col] = np.nan
    df = df[string_cols + numeric_cols].copy()
    df = coerce_str_safe(df, [c for c in string_cols if c not in KEY_COLUMNS])
    df = coerce_str_safe(df, [c for c in string_cols if c in KEY_COLUMNS], strip=False)
    return numericize(df, numeric_cols)


@dataclass(frozen=True)
class CollegeCollection:
    frame: pd.DataFrame
    generated_at: str
    ips_year: str = IPS_YEAR
    dnb_session: str = DNB_SESSION

    @property
    def total(self) -> int:
        return len(self.frame)

    @property
    def metadata(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "ips_year": self.ips_year,
            "dnb_session": self.dnb_session,
            "generated_at": self.generated_at,
        }


def build_collection(
    ips_rows: List[Dict[str, Any]],
    ivac_rows: List[Dict[str, Any]],
    annuaire_rows: List[Dict[str, Any]],
    *,
    generated_at: Optional[str] = None,
) -> CollegeCollection:
    """Join IPS (primary), IVAC (optional results) and Annuaire (required coordinates) on UAI."""
    ips = source_frame(ips_rows, IPS_SCHEMA)
    ivac = source_frame(ivac_rows, IVAC_SCHEMA)
    geo = source_frame(annuaire_rows, ANNUAIRE_SCHEMA)

    ips = ips[ips["uai"].notna() & ips["ips"].notna() & (ips["ips"] != 0)]

    # Last row wins per identifier, as with a keyed lookup table.
    ivac = ivac.dropna(subset=["uai"]).drop_duplicates(subset=["uai"], keep="last").rename(columns=IVAC_COLUMNS)
    geo = (
        geo.dropna(subset=["identifiant_de_l_etablissement"])
        .drop_duplicates(subset=["identifiant_de_l_etablissement"], keep="last")
        .rename(columns={"identifiant_de_l_etablissement": "uai"})
    )
    geo = geo[geo["latitude"].notna() & geo["longitude"].notna() & (geo["latitude"] != 0) & (geo["longitude"] != 0)]

    joined = ips.merge(geo, on="uai", how="inner").merge(ivac, on="uai", how="left")

    out = pd.DataFrame(index=joined.index)
    out["uai"] = joined["uai"]
    out["nom"] = joined["nom_de_l_etablissement"].fillna(joined["ivac_nom"]).fillna("Inconnu")
    out["commune"] = joined["nom_de_la_commune"]
    out["departement"] = joined["departement"]
    out["code_departement"] = joined["code_du_departement"]
    out["region"] = joined["region_academique"].fillna(joined["ivac_region"])
    out["academie"] = joined["academie"]
    out["secteur"] = joined["secteur"]
    for col in STRING_PROPERTIES:
        out[col] = out[col].fillna("").astype(object)

    out["ips"] = joined["ips"].astype(float)
    out["ecart_type_ips"] = joined["ecart_type_de_l_ips"].fillna(0.0).astype(float)
    for col in DNB_PROPERTIES:
        out[col] = joined[col].astype(float)
    out["longitude"] = joined["longitude"].astype(float)
    out["latitude"] = joined["latitude"].astype(float)

    frame = out[COLLEGE_COLUMNS].reset_index(drop=True)
    logger.info(
        "Built college collection: %d colleges (%d IPS rows, %d IVAC rows, %d geo rows)",
        len(frame),
        len(ips_rows),
        len(ivac_rows),
        len(annuaire_rows),
    )
    return CollegeCollection(frame=frame, generated_at=generated_at or utc_timestamp())


async def load_collection(client: Optional[httpx.AsyncClient] = None) -> CollegeCollection:
    """Fetch the three sources concurrently and join them; the first failure aborts the build."""
    if client is None:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT, follow_redirects=True) as owned:
            return await load_collection(owned)

    ips_rows, ivac_rows, annuaire_rows = await asyncio.gather(
        fetch_dataset(client, IPS_QUERY),
        fetch_dataset(client, IVAC_QUERY),
        fetch_dataset(client, ANNUAIRE_QUERY),
    )
    return build_collection(ips_rows, ivac_rows, annuaire_rows)


@dataclass
class CollectionCache:
    """Last built collection and its build time.

    There is no lock around the rebuild: two requests that both see an expired
    entry will both rebuild, and the last one to finish wins.
    """

    value: Optional[CollegeCollection] = None
    built_at: Optional[float] = None
    clock: Callable[[], float] = field(default=time.time, repr=False)

    def is_fresh(self, ttl: float) -> bool:
        return self.value is not None and self.built_at is not None and (self.clock() - self.built_at) < ttl

    async def get_or_build(self, ttl: float, builder: Callable[[], Awaitable[CollegeCollection]]) -> CollegeCollection:
        if self.is_fresh(ttl):
            logger.debug("Serving cached collection built at %s", self.value.generated_at)
            return self.value
        now = self.clock()
        value = await builder()
        self.value = value
        self.built_at = now
        return value

    def invalidate(self) -> None:
        self.value = None
        self.built_at = None


def _json_number(value: object, *, as_int: bool = False) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    out = float(value)  # type: ignore[arg-type]
    if math.isinf(out):
        return None
    if as_int and out.is_integer():
        return int(out)
    return out


def collection_to_geojson(collection: CollegeCollection) -> Dict[str, Any]:
    features = []
    for row in collection.frame.to_dict(orient="records"):
        properties: Dict[str, Any] = {col: str(row[col]) for col in STRING_PROPERTIES}
        properties["ips"] = _json_number(row["ips"])
        properties["ecart_type_ips"] = _json_number(row["ecart_type_ips"]) or 0.0
        for col in DNB_PROPERTIES:
            properties[col] = _json_number(row[col], as_int=col in COUNT_PROPERTIES)
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [float(row["longitude"]), float(row["latitude"])]},
                "properties": properties,
            }
        )
    return {"type": "FeatureCollection", "features": features, "metadata": collection.metadata}


def parse_nullable_number(value: object) -> Optional[float]:
    """Restore a numeric property that may have been stringified; ``None`` when absent or not a number."""
    if value is None or value == "null":
        return None
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if math.isnan(out):
        return None
    return out


def features_to_frame(geojson: Dict[str, Any]) -> pd.DataFrame:
    """Client-side inverse of :func:`collection_to_geojson`."""
    rows = []
    for feature in geojson.get("features") or []:
        props = feature.get("properties") or {}
        coords = (feature.get("geometry") or {}).get("coordinates") or [None, None]
        row: Dict[str, Any] = {col: "" if props.get(col) is None else str(props.get(col)) for col in STRING_PROPERTIES}
        row["ips"] = parse_nullable_number(props.get("ips"))
        row["ecart_type_ips"] = parse_nullable_number(props.get("ecart_type_ips")) or 0.0
        for col in DNB_PROPERTIES:
            row[col] = parse_nullable_number(props.get(col))
        row["longitude"] = parse_nullable_number(coords[0])
        row["latitude"] = parse_nullable_number(coords[1])
        rows.append(row)
    frame = pd.DataFrame(rows, columns=COLLEGE_COLUMNS)
    return numericize(frame, ["ips", "ecart_type_ips", "longitude", "latitude"] + DNB_PROPERTIES)


def frame_row_to_record(row: Dict[str, Any]) -> Dict[str, Any]:
    """Plain dict for one college, NaN replaced by ``None``."""
    return {k: (None if isinstance(v, float) and math.isnan(v) else v) for k, v in row.items()}


def college_records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    return [frame_row_to_record(r) for r in frame.to_dict(orient="records")]


def filter_colleges(frame: pd.DataFrame, filters: FilterState) -> pd.DataFrame:
    """Rows satisfying every active predicate of ``filters``, in collection order."""
    if frame.empty:
        return frame.copy()

    mask = pd.Series(True, index=frame.index)

    # Location
    if filters.regions:
        mask &= frame["region"].isin(filters.regions)
    if filters.location_mode == "metropolitan":
        mask &= ~frame["region"].isin(DROM_COM_REGIONS)
    elif filters.location_mode == "drom-com":
        mask &= frame["region"].isin(DROM_COM_REGIONS)
    if filters.secteur:
        mask &= frame["secteur"] == filters.secteur
    if filters.academies:
        mask &= frame["academie"].isin(filters.academies)

    # The full IPS domain means no constraint.
    if tuple(filters.ips_range) != (IPS_MIN, IPS_MAX):
        lo, hi = filters.ips_range
        mask &= frame["ips"].between(lo, hi)

    # Colleges without DNB results never satisfy an active DNB filter.
    if has_dnb_filters(filters):
        mask &= frame["taux_reussite"].notna()
    for name, col in DNB_RANGE_COLUMNS.items():
        bounds = getattr(filters, name)
        if bounds is not None:
            mask &= frame[col].between(bounds[0], bounds[1])

    # Accent-insensitive search runs last, on the rows still in play.
    if filters.search:
        needle = normalize_text(filters.search)
        candidates = frame.loc[mask]
        if not candidates.empty:
            hit = candidates["nom"].map(normalize_text).str.contains(needle, regex=False) | candidates["commune"].map(
                normalize_text
            ).str.contains(needle, regex=False)
            mask.loc[candidates.index] = hit.astype(bool)

    return frame.loc[mask].reset_index(drop=True)


def list_regions(frame: pd.DataFrame) -> List[str]:
    if frame.empty:
        return []
    return sorted(r for r in frame["region"].dropna().astype(str).unique().tolist() if r)


def list_academies(frame: pd.DataFrame, regions: Optional[List[str]] = None) -> List[str]:
    if frame.empty:
        return []
    subset = frame[frame["region"].isin(regions)] if regions else frame
    return sorted(a for a in subset["academie"].dropna().astype(str).unique().tolist() if a)
