"""Two-way mapping between ``FilterState`` and URL query parameters.

Only non-default values are written. Reading is lenient: a value that cannot
be parsed leaves the corresponding filter as it was.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import replace
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional

from core.filters import (
    IPS_MAX,
    IPS_MIN,
    LOCATION_MODES,
    NB_CANDIDATS_MAX,
    NB_CANDIDATS_MIN,
    NOTE_ECRIT_MAX,
    NOTE_ECRIT_MIN,
    TAUX_REUSSITE_MAX,
    TAUX_REUSSITE_MIN,
    VALEUR_AJOUTEE_MAX,
    VALEUR_AJOUTEE_MIN,
    FilterState,
    Range,
    clamp_range,
    default_filters,
)

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.3

# query parameter -> (FilterState field, domain)
RANGE_PARAMS = {
    "ips": ("ips_range", IPS_MIN, IPS_MAX),
    "reussite": ("taux_reussite_range", TAUX_REUSSITE_MIN, TAUX_REUSSITE_MAX),
    "va": ("valeur_ajoutee_range", VALEUR_AJOUTEE_MIN, VALEUR_AJOUTEE_MAX),
    "note": ("note_ecrit_range", NOTE_ECRIT_MIN, NOTE_ECRIT_MAX),
    "candidats": ("nb_candidats_range", NB_CANDIDATS_MIN, NB_CANDIDATS_MAX),
}

_NUMBER = r"-?\d+(?:\.\d+)?"
_RANGE_RE = re.compile(rf"^\s*({_NUMBER})\s*-\s*({_NUMBER})\s*$")

Query = Dict[str, str]


def format_number(value: float) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    # Positional notation only; the range pattern has no exponent form.
    return format(Decimal(repr(value)), "f")


def format_range(values: Range) -> str:
    return f"{format_number(values[0])}-{format_number(values[1])}"


def parse_range(value: str, lo: float, hi: float) -> Optional[Range]:
    """Parse ``"80-120"`` (endpoints may be negative), clamp into ``[lo, hi]`` and order the ends."""
    match = _RANGE_RE.match(value or "")
    if not match:
        return None
    start, end = float(match.group(1)), float(match.group(2))
    return clamp_range((start, end), lo, hi)


def filters_to_query(filters: FilterState) -> Query:
    defaults = default_filters()
    query: Query = {}

    if filters.regions:
        query["regions"] = ",".join(filters.regions)
    if filters.academies:
        query["academies"] = ",".join(filters.academies)
    if filters.secteur:
        query["secteur"] = filters.secteur
    if filters.location_mode != defaults.location_mode:
        query["zone"] = filters.location_mode
    if tuple(filters.ips_range) != tuple(defaults.ips_range):
        query["ips"] = format_range(filters.ips_range)
    if filters.search:
        query["search"] = filters.search

    for param, (name, _, _) in RANGE_PARAMS.items():
        if param == "ips":
            continue
        bounds = getattr(filters, name)
        if bounds is not None:
            query[param] = format_range(bounds)
    return query


def _first(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    return str(value)


def _csv(value: str) -> list:
    return [v for v in value.split(",") if v]


def query_to_filters(query: Mapping[str, Any], current: Optional[FilterState] = None) -> FilterState:
    """Apply query parameters on top of ``current``; unusable values are skipped."""
    current = current or default_filters()
    updates: Dict[str, Any] = {}

    regions = _first(query.get("regions"))
    if regions:
        updates["regions"] = _csv(regions)
    academies = _first(query.get("academies"))
    if academies:
        updates["academies"] = _csv(academies)

    secteur = _first(query.get("secteur"))
    if secteur:
        updates["secteur"] = secteur

    zone = _first(query.get("zone"))
    if zone in LOCATION_MODES:
        updates["location_mode"] = zone

    search = _first(query.get("search"))
    if search:
        updates["search"] = search

    for param, (name, lo, hi) in RANGE_PARAMS.items():
        raw = _first(query.get(param))
        if not raw:
            continue
        parsed = parse_range(raw, lo, hi)
        if parsed is None:
            logger.debug("Ignoring malformed %s=%r", param, raw)
            continue
        updates[name] = parsed

    return replace(current, **updates)


class QuerySync:
    """Debounced writer of filter state to the address bar.

    ``push`` records the latest state and restarts the debounce window;
    ``flush`` hands the query to ``writer`` once ``wait`` seconds passed with
    no newer push. An unchanged query is never written twice.
    """

    def __init__(
        self,
        writer: Callable[[Query], None],
        *,
        wait: float = DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        last_written: Optional[Query] = None,
    ) -> None:
        self._writer = writer
        self.wait = wait
        self._clock = clock
        self._pending: Optional[Query] = None
        self._deadline: Optional[float] = None
        self.last_written: Optional[Query] = dict(last_written) if last_written is not None else None

    @property
    def pending(self) -> Optional[Query]:
        return self._pending

    def push(self, filters: FilterState) -> None:
        query = filters_to_query(filters)
        latest = self._pending if self._pending is not None else self.last_written
        if query == latest:
            return
        self._pending = query
        self._deadline = self._clock() + self.wait

    def flush(self, *, force: bool = False) -> bool:
        if self._pending is None:
            return False
        if not force and self._clock() < self._deadline:
            return False
        query, self._pending, self._deadline = self._pending, None, None
        if query == self.last_written:
            return False
        self._writer(query)
        self.last_written = query
        return True
