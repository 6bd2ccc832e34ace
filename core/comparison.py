"""Side-by-side comparison of at most two colleges.

``ComparisonSet`` only changes through ``add``, ``remove`` and ``clear``.
Adding to a full set, or adding a college that is already there, does nothing.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterator, List, Optional

from core.colors import format_fr

College = Dict[str, Any]

MAX_COMPARED = 2

# (property, label, decimals, higher is better)
COMPARED_METRICS = [
    ("ips", "IPS", 1, False),
    ("ecart_type_ips", "Écart-type IPS", 1, False),
    ("taux_reussite", "Taux de réussite (%)", 1, True),
    ("valeur_ajoutee", "Valeur ajoutée", 0, True),
    ("note_ecrit", "Note à l'écrit", 1, True),
    ("nb_candidats", "Candidats", 0, False),
]


class ComparisonSet:
    def __init__(self) -> None:
        self._items: List[College] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[College]:
        return iter(list(self._items))

    @property
    def items(self) -> List[College]:
        return list(self._items)

    @property
    def uais(self) -> List[str]:
        return [c["uai"] for c in self._items]

    @property
    def is_full(self) -> bool:
        return len(self._items) >= MAX_COMPARED

    def contains(self, uai: str) -> bool:
        return any(c["uai"] == uai for c in self._items)

    def add(self, college: College) -> bool:
        if self.is_full or self.contains(college["uai"]):
            return False
        self._items.append(college)
        return True

    def remove(self, uai: str) -> bool:
        kept = [c for c in self._items if c["uai"] != uai]
        changed = len(kept) != len(self._items)
        self._items = kept
        return changed

    def clear(self) -> None:
        self._items = []


def select_college(selection: ComparisonSet, college: Optional[College], *, comparison_mode: bool) -> Optional[College]:
    """Apply the selection policy and return the college that becomes current.

    In comparison mode every newly selected college joins the set. Outside it,
    a second college still joins when exactly one is already in the set, so a
    pair can be built by two successive clicks.
    """
    if college is None:
        return None
    if not selection.contains(college["uai"]):
        if comparison_mode or len(selection) == 1:
            selection.add(college)
    return college


def _missing(value: object) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def mentions_pct(college: College) -> Optional[Dict[str, float]]:
    """Share of candidates per DNB mention, in percent."""
    total = college.get("nb_candidats")
    if _missing(total) or not total or _missing(college.get("mentions_tb")):
        return None

    def share(key: str) -> float:
        value = college.get(key)
        return 0.0 if _missing(value) else float(value) / total * 100

    tb, b, ab = share("mentions_tb"), share("mentions_b"), share("mentions_ab")
    return {"tb": tb, "b": b, "ab": ab, "sans": 100 - tb - b - ab}


def _plain(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def va_label(college: College) -> Optional[Dict[str, str]]:
    va = college.get("valeur_ajoutee")
    if _missing(va):
        return None
    va = float(va) + 0.0  # -0.0 -> 0.0
    if va > 2:
        return {"text": f"+{_plain(va)}", "color": "green", "icon": "trending-up"}
    if va < -2:
        return {"text": _plain(va), "color": "red", "icon": "trending-down"}
    return {"text": f"{'+' if va > 0 else ''}{_plain(va)}", "color": "gray", "icon": "minus"}


def compare_higher(val1: Optional[float], val2: Optional[float]) -> Optional[int]:
    """1 or 2 for the college with the higher value; ``None`` on a tie or missing value."""
    if _missing(val1) or _missing(val2):
        return None
    if val1 > val2:
        return 1
    if val2 > val1:
        return 2
    return None


def is_winner(index: int, winner: Optional[int]) -> bool:
    if winner is None:
        return False
    return winner == index + 1


def comparison_rows(first: College, second: College) -> List[Dict[str, Any]]:
    rows = []
    for key, label, decimals, higher_is_better in COMPARED_METRICS:
        v1, v2 = first.get(key), second.get(key)
        winner = compare_higher(v1, v2) if higher_is_better else None
        rows.append(
            {
                "metric": key,
                "label": label,
                "values": [format_fr(None if _missing(v1) else v1, decimals), format_fr(None if _missing(v2) else v2, decimals)],
                "winner": winner,
            }
        )
    return rows


def mentions_rows(colleges: List[College]) -> List[Dict[str, Any]]:
    """Long-format mention shares for charting; colleges without mention data are skipped."""
    rows = []
    labels = {"tb": "TB", "b": "B", "ab": "AB", "sans": "Sans mention"}
    for college in colleges:
        pct = mentions_pct(college)
        if pct is None:
            continue
        for key, label in labels.items():
            rows.append({"college": college.get("nom") or college["uai"], "mention": label, "pct": round(pct[key], 1)})
    return rows
