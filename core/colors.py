"""Colour scale, labels and French number formatting for the map and panels."""

from __future__ import annotations

import math
from typing import List, Optional, Tuple, Union

Number = Union[int, float]

IPS_SCALE_MIN = 60
IPS_SCALE_SPAN = 100

# Stops used for legends and map layers; must stay in sync with ips_color.
IPS_STOP_VALUES = [60, 80, 100, 115, 135, 160]

REGION_DISPLAY_NAMES = {
    "AUVERGNE-RHONE-ALPES": "Auvergne-Rhône-Alpes",
    "BOURGOGNE-FRANCHE-COMTE": "Bourgogne-Franche-Comté",
    "BRETAGNE": "Bretagne",
    "CENTRE-VAL DE LOIRE": "Centre-Val de Loire",
    "CORSE": "Corse",
    "GRAND EST": "Grand Est",
    "GUADELOUPE": "Guadeloupe",
    "GUYANE": "Guyane",
    "HAUTS-DE-FRANCE": "Hauts-de-France",
    "ILE-DE-FRANCE": "Île-de-France",
    "LA REUNION": "La Réunion",
    "MARTINIQUE": "Martinique",
    "MAYOTTE": "Mayotte",
    "NORMANDIE": "Normandie",
    "NOUVELLE-AQUITAINE": "Nouvelle-Aquitaine",
    "OCCITANIE": "Occitanie",
    "PAYS DE LA LOIRE": "Pays de la Loire",
    "PROVENCE-ALPES-COTE D'AZUR": "Provence-Alpes-Côte d'Azur",
}


def _round(x: float) -> int:
    return int(math.floor(x + 0.5))


def _is_missing(value: Optional[Number]) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def ips_color_rgb(ips: Number) -> Tuple[int, int, int]:
    """Diverging scale: low IPS red/orange, ~105 yellow/green, high IPS teal/blue."""
    t = max(0.0, min(1.0, (ips - IPS_SCALE_MIN) / IPS_SCALE_SPAN))

    if t < 0.35:
        return 220, _round(50 + t * (170 / 0.35)), 40
    if t < 0.5:
        return _round(220 - (t - 0.35) * (40 / 0.15)), 220, 40
    if t < 0.65:
        return (
            _round(180 - (t - 0.5) * (100 / 0.15)),
            _round(220 - (t - 0.5) * (30 / 0.15)),
            _round(40 + (t - 0.5) * (180 / 0.15)),
        )
    return (
        _round(80 - (t - 0.65) * (30 / 0.35)),
        _round(190 - (t - 0.65) * (70 / 0.35)),
        _round(220 + (t - 0.65) * (20 / 0.35)),
    )


def ips_color(ips: Number) -> str:
    r, g, b = ips_color_rgb(ips)
    return f"rgb({r},{g},{b})"


def ips_color_stops() -> List[Union[Number, str]]:
    """Flat ``[value, colour, value, colour, ...]`` list matching :func:`ips_color`."""
    stops: List[Union[Number, str]] = []
    for value in IPS_STOP_VALUES:
        stops.extend([value, ips_color(value)])
    return stops


def ips_label(ips: Optional[Number]) -> str:
    if _is_missing(ips):
        return "–"
    if ips >= 130:
        return "Très favorisé"
    if ips >= 115:
        return "Favorisé"
    if ips >= 100:
        return "Intermédiaire"
    if ips >= 85:
        return "Modeste"
    return "Très modeste"


def format_fr(value: Optional[Number], decimals: int = 1) -> str:
    """French locale rendering (``1 234,5``); ``–`` for missing values."""
    if _is_missing(value):
        return "–"
    text = f"{float(value):,.{decimals}f}"
    return text.replace(",", " ").replace(".", ",")


def format_region_name(region: str) -> str:
    return REGION_DISPLAY_NAMES.get(region, region)
