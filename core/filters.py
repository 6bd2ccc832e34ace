from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional, Tuple

Range = Tuple[float, float]

IPS_MIN = 50
IPS_MAX = 170

TAUX_REUSSITE_MIN = 0
TAUX_REUSSITE_MAX = 100
VALEUR_AJOUTEE_MIN = -20
VALEUR_AJOUTEE_MAX = 20
NOTE_ECRIT_MIN = 0
NOTE_ECRIT_MAX = 20
NB_CANDIDATS_MIN = 0
NB_CANDIDATS_MAX = 300

LOCATION_MODES = ("all", "metropolitan", "drom-com")
DEFAULT_LOCATION_MODE = "metropolitan"

# Overseas regions (DROM-COM), as spelled in the source datasets.
DROM_COM_REGIONS: List[str] = [
    "GUADELOUPE",
    "GUYANE",
    "LA REUNION",
    "MARTINIQUE",
    "MAYOTTE",
]

METROPOLITAN_REGIONS: List[str] = [
    "AUVERGNE-RHONE-ALPES",
    "BOURGOGNE-FRANCHE-COMTE",
    "BRETAGNE",
    "CENTRE-VAL DE LOIRE",
    "CORSE",
    "GRAND EST",
    "HAUTS-DE-FRANCE",
    "ILE-DE-FRANCE",
    "NORMANDIE",
    "NOUVELLE-AQUITAINE",
    "OCCITANIE",
    "PAYS DE LA LOIRE",
    "PROVENCE-ALPES-COTE D'AZUR",
]

REGIONS: List[str] = METROPOLITAN_REGIONS + DROM_COM_REGIONS

# (field name, domain) for the four DNB outcome ranges.
DNB_RANGE_DOMAINS = {
    "taux_reussite_range": (TAUX_REUSSITE_MIN, TAUX_REUSSITE_MAX),
    "valeur_ajoutee_range": (VALEUR_AJOUTEE_MIN, VALEUR_AJOUTEE_MAX),
    "note_ecrit_range": (NOTE_ECRIT_MIN, NOTE_ECRIT_MAX),
    "nb_candidats_range": (NB_CANDIDATS_MIN, NB_CANDIDATS_MAX),
}


@dataclass(frozen=True)
class FilterState:
    regions: List[str] = field(default_factory=list)
    academies: List[str] = field(default_factory=list)
    secteur: str = ""
    ips_range: Range = (IPS_MIN, IPS_MAX)
    search: str = ""
    location_mode: str = DEFAULT_LOCATION_MODE
    # DNB filters (None = inactive)
    taux_reussite_range: Optional[Range] = None
    valeur_ajoutee_range: Optional[Range] = None
    note_ecrit_range: Optional[Range] = None
    nb_candidats_range: Optional[Range] = None


def default_filters() -> FilterState:
    return FilterState()


# Reset restores the documented defaults.
reset_filters = default_filters


def normalize_text(value: object) -> str:
    """Lower-case and strip accents (NFD decomposition, combining marks removed)."""
    if value is None:
        return ""
    decomposed = unicodedata.normalize("NFD", str(value))
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def clamp_range(values: Range, lo: float, hi: float) -> Range:
    start, end = (clamp(values[0], lo, hi), clamp(values[1], lo, hi))
    if start > end:
        start, end = end, start
    return (start, end)


def has_dnb_filters(filters: FilterState) -> bool:
    return any(getattr(filters, name) is not None for name in DNB_RANGE_DOMAINS)


def has_non_region_filters(filters: FilterState) -> bool:
    """True when something other than the region selection narrows the map (used for zoom)."""
    return (
        filters.secteur != ""
        or len(filters.academies) > 0
        or tuple(filters.ips_range) != (IPS_MIN, IPS_MAX)
        or filters.search != ""
        or has_dnb_filters(filters)
    )


def _as_str_list(values: Optional[Iterable[object]]) -> List[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = values.split(",")
    return [str(v).strip() for v in values if v is not None and str(v).strip()]


def _as_range(value: object, lo: float, hi: float) -> Optional[Range]:
    if value is None:
        return None
    try:
        start, end = value  # type: ignore[misc]
        return clamp_range((float(start), float(end)), lo, hi)
    except Exception:
        return None


def normalize_filters(raw: dict, *, base: Optional[FilterState] = None) -> FilterState:
    """Build a FilterState from a loosely-typed dict, keeping ``base`` values for unusable keys."""
    base = base or default_filters()

    location_mode = str(raw.get("location_mode") or base.location_mode)
    if location_mode not in LOCATION_MODES:
        location_mode = base.location_mode

    ips_range = _as_range(raw.get("ips_range"), IPS_MIN, IPS_MAX) or base.ips_range

    dnb = {}
    for name, (lo, hi) in DNB_RANGE_DOMAINS.items():
        dnb[name] = _as_range(raw.get(name), lo, hi) if name in raw else getattr(base, name)

    return replace(
        base,
        regions=_as_str_list(raw.get("regions")) if "regions" in raw else list(base.regions),
        academies=_as_str_list(raw.get("academies")) if "academies" in raw else list(base.academies),
        secteur=str(raw.get("secteur") or "").strip() if "secteur" in raw else base.secteur,
        ips_range=ips_range,
        search=str(raw.get("search") or "").strip() if "search" in raw else base.search,
        location_mode=location_mode,
        **dnb,
    )
