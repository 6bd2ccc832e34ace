"""Core (UI-agnostic) college explorer logic.

This package contains:
- remote dataset paging (explore API -> list of dicts)
- the IPS / IVAC / Annuaire join and its TTL cache
- filter state, filtering and summary statistics
- URL query synchronisation and the comparison set
- colour scales, labels and chart helpers (Altair -> Vega-Lite spec dict)
"""
