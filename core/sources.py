"""Paginated access to the data.education.gouv.fr explore API (v2.1).

Each dataset is read page by page until ``total_count`` rows have been
consumed. Pages are requested one after the other; any failure aborts the
whole read.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

BASE_URL = os.environ.get(
    "COLLEGES_SOURCE_BASE_URL",
    "https://data.education.gouv.fr/api/explore/v2.1/catalog/datasets",
)
PAGE_SIZE = 100
HTTP_TIMEOUT = float(os.environ.get("COLLEGES_HTTP_TIMEOUT", "60"))

IPS_YEAR = "2024-2025"
DNB_SESSION = "2024"


class SourceFetchError(RuntimeError):
    """A page of a remote dataset could not be retrieved."""

    def __init__(self, dataset_id: str, message: str) -> None:
        super().__init__(f"{dataset_id}: {message}")
        self.dataset_id = dataset_id


@dataclass(frozen=True)
class DatasetQuery:
    dataset_id: str
    where: Optional[str] = None
    select: Optional[str] = None


IPS_QUERY = DatasetQuery(
    dataset_id="fr-en-ips-colleges-ap2023",
    where=f'rentree_scolaire="{IPS_YEAR}"',
    select=(
        "uai,nom_de_l_etablissement,nom_de_la_commune,departement,code_du_departement,"
        "academie,region_academique,secteur,ips,ecart_type_de_l_ips,rentree_scolaire"
    ),
)

IVAC_QUERY = DatasetQuery(
    dataset_id="fr-en-indicateurs-valeur-ajoutee-colleges",
    where=f"year(session)={DNB_SESSION}",
    select=(
        "uai,nom_de_l_etablissement,taux_de_reussite_g,nb_candidats_g,nb_mentions_tb_g,"
        "nb_mentions_b_g,nb_mentions_ab_g,va_du_taux_de_reussite_g,note_a_l_ecrit_g,region_academique"
    ),
)

ANNUAIRE_QUERY = DatasetQuery(
    dataset_id="fr-en-annuaire-education",
    where='type_etablissement="Collège"',
    select="identifiant_de_l_etablissement,latitude,longitude",
)


def records_url(dataset_id: str) -> str:
    return f"{BASE_URL}/{dataset_id}/records"


async def fetch_all_records(
    client: httpx.AsyncClient,
    dataset_id: str,
    *,
    where: Optional[str] = None,
    select: Optional[str] = None,
    limit: int = PAGE_SIZE,
) -> List[Dict[str, Any]]:
    """Return every row of ``dataset_id`` matching ``where``, in API order."""
    records: List[Dict[str, Any]] = []
    offset = 0
    total_count = float("inf")

    while offset < total_count:
        params: Dict[str, Any] = {"limit": limit, "offset": offset}
        if where:
            params["where"] = where
        if select:
            params["select"] = select

        try:
            response = await client.get(records_url(dataset_id), params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise SourceFetchError(dataset_id, str(exc)) from exc
        except ValueError as exc:
            raise SourceFetchError(dataset_id, f"invalid JSON at offset {offset}") from exc

        try:
            total_count = int(payload["total_count"])
            page = list(payload.get("results") or [])
        except (KeyError, TypeError, ValueError) as exc:
            raise SourceFetchError(dataset_id, f"unexpected page shape at offset {offset}") from exc

        logger.debug("%s: offset=%d got %d rows (total_count=%d)", dataset_id, offset, len(page), total_count)
        records.extend(page)
        offset += limit

    logger.info("Fetched %d rows from %s", len(records), dataset_id)
    return records


async def fetch_dataset(client: httpx.AsyncClient, query: DatasetQuery, *, limit: int = PAGE_SIZE) -> List[Dict[str, Any]]:
    return await fetch_all_records(client, query.dataset_id, where=query.where, select=query.select, limit=limit)
