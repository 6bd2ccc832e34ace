from __future__ import annotations

from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, Field

from core.filters import DEFAULT_LOCATION_MODE, IPS_MAX, IPS_MIN


class FilterStateModel(BaseModel):
    regions: List[str] = Field(default_factory=list)
    academies: List[str] = Field(default_factory=list)
    secteur: str = ""
    ips_range: Tuple[float, float] = (IPS_MIN, IPS_MAX)
    search: str = ""
    location_mode: Literal["all", "metropolitan", "drom-com"] = DEFAULT_LOCATION_MODE
    taux_reussite_range: Optional[Tuple[float, float]] = None
    valeur_ajoutee_range: Optional[Tuple[float, float]] = None
    note_ecrit_range: Optional[Tuple[float, float]] = None
    nb_candidats_range: Optional[Tuple[float, float]] = None


class CollegePropertiesModel(BaseModel):
    uai: str
    nom: str
    commune: str
    departement: str
    code_departement: str
    region: str
    academie: str
    secteur: str
    ips: float
    ecart_type_ips: float
    taux_reussite: Optional[float] = None
    mentions_tb: Optional[int] = None
    mentions_b: Optional[int] = None
    mentions_ab: Optional[int] = None
    nb_candidats: Optional[int] = None
    valeur_ajoutee: Optional[float] = None
    note_ecrit: Optional[float] = None


class PointModel(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: Tuple[float, float]


class CollegeFeatureModel(BaseModel):
    type: Literal["Feature"] = "Feature"
    geometry: PointModel
    properties: CollegePropertiesModel


class CollectionMetadataModel(BaseModel):
    total: int
    ips_year: str
    dnb_session: str
    generated_at: str


class CollegeCollectionModel(BaseModel):
    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: List[CollegeFeatureModel]
    metadata: CollectionMetadataModel


class MetaListResponse(BaseModel):
    values: List[str]


class ErrorResponse(BaseModel):
    error: str
    type: str
