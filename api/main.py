from __future__ import annotations

import logging
import math
from typing import Awaitable, Callable, List, Optional

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.schemas import CollegeCollectionModel, ErrorResponse, FilterStateModel, MetaListResponse
from core.data import (
    COLLECTION_TTL_SECONDS,
    CollectionCache,
    CollegeCollection,
    collection_to_geojson,
    filter_colleges,
    list_academies,
    list_regions,
    load_collection,
)
from core.filters import has_dnb_filters, has_non_region_filters, normalize_filters
from core.metrics_overview import compute_overview
from core.sources import SourceFetchError

logger = logging.getLogger(__name__)

Builder = Callable[[], Awaitable[CollegeCollection]]

CACHE_CONTROL = f"public, max-age={COLLECTION_TTL_SECONDS}"
ERROR_RESPONSES = {500: {"model": ErrorResponse}, 502: {"model": ErrorResponse}}


def _json(data: object, **kwargs) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
            },
        ),
        **kwargs,
    )


def _error(exc: Exception, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


async def _collection(request: Request) -> CollegeCollection:
    cache: CollectionCache = request.app.state.collection_cache
    return await cache.get_or_build(COLLECTION_TTL_SECONDS, request.app.state.collection_builder)


def create_app(builder: Optional[Builder] = None, cache: Optional[CollectionCache] = None) -> FastAPI:
    app = FastAPI(title="College Explorer API", version="0.1.0")
    app.state.collection_cache = cache or CollectionCache()
    app.state.collection_builder = builder or load_collection

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:8501", "http://127.0.0.1:8501"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        cache: CollectionCache = app.state.collection_cache
        return {"status": "ok", "cached": cache.value is not None}

    @app.get("/api/colleges", responses={200: {"model": CollegeCollectionModel}, **ERROR_RESPONSES})
    async def colleges(request: Request):
        try:
            collection = await _collection(request)
            return _json(collection_to_geojson(collection), headers={"Cache-Control": CACHE_CONTROL})
        except SourceFetchError as exc:
            logger.exception("colleges: upstream fetch failed")
            return _error(exc, 502)
        except Exception as exc:
            logger.exception("colleges failed")
            return _error(exc, 500)

    @app.post("/api/colleges/filter", responses=ERROR_RESPONSES)
    async def colleges_filter(request: Request, filters: FilterStateModel):
        try:
            collection = await _collection(request)
            f = normalize_filters(filters.model_dump())
            filtered = filter_colleges(collection.frame, f)
            payload = compute_overview(f, filtered)
            payload["has_dnb_filters"] = has_dnb_filters(f)
            payload["has_non_region_filters"] = has_non_region_filters(f)
            payload["features"] = collection_to_geojson(
                CollegeCollection(frame=filtered, generated_at=collection.generated_at)
            )["features"]
            return _json(payload)
        except SourceFetchError as exc:
            logger.exception("colleges_filter: upstream fetch failed")
            return _error(exc, 502)
        except Exception as exc:
            logger.exception("colleges_filter failed")
            return _error(exc, 500)

    @app.get("/meta/regions", response_model=MetaListResponse, responses=ERROR_RESPONSES)
    async def meta_regions(request: Request):
        try:
            collection = await _collection(request)
            return _json({"values": list_regions(collection.frame)})
        except Exception as exc:
            logger.exception("meta_regions failed")
            return _error(exc, 502 if isinstance(exc, SourceFetchError) else 500)

    @app.get("/meta/academies", response_model=MetaListResponse, responses=ERROR_RESPONSES)
    async def meta_academies(request: Request, regions: List[str] = Query(default=[])):
        try:
            collection = await _collection(request)
            return _json({"values": list_academies(collection.frame, regions or None)})
        except Exception as exc:
            logger.exception("meta_academies failed")
            return _error(exc, 502 if isinstance(exc, SourceFetchError) else 500)

    return app


app = create_app()
