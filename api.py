"""
School Pipeline — FastAPI Server
=================================

HTTP surface over the ingestion and query core.

Endpoints:
    POST /schools/ingest        Parse + validate a listing, replace the record set
    POST /schools/ingest/file   Same, from an uploaded text file
    POST /schools/filter        Filter the current record set
    GET  /schools/search        Relevance search over the current record set
    GET  /health                Health check / readiness probe

Run:
    uvicorn api:app --reload              # Dev (http://localhost:8000)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field

from school_pipeline import __version__
from school_pipeline.config import Settings
from school_pipeline.geocoder import CachedGeocoder
from school_pipeline.models import (
    FilterCriteria,
    FilterSummary,
    SchoolRecord,
    SearchResult,
    ValidationIssue,
    ValidationSummary,
)
from school_pipeline.pipeline import SchoolDataPipeline
from school_pipeline.query import QueryEngine, filter_summary

load_dotenv()

MAX_UPLOAD_BYTES = 1_048_576


# ─── Service State ───────────────────────────────────────────────────


class SchoolDataService:
    """Owns the pipeline, the query engine and the current record set."""

    def __init__(self, pipeline: SchoolDataPipeline, query_engine: QueryEngine):
        self.pipeline = pipeline
        self.query_engine = query_engine
        self.records: list[SchoolRecord] = []
        self.color_legend: dict[str, str] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "SchoolDataService":
        return cls(
            SchoolDataPipeline.from_settings(settings),
            QueryEngine(settings.filter_cache_ttl, settings.search_cache_ttl),
        )

    async def ingest(self, document: str) -> tuple[ValidationSummary, dict[str, str]]:
        parsed, summary = await self.pipeline.run(document)
        self.records = summary.valid_records
        self.color_legend = parsed.color_legend
        self.query_engine.invalidate()
        return summary, parsed.color_legend


_service: SchoolDataService | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the service (geocoder, caches) once on startup."""
    global _service  # noqa: PLW0603
    _service = SchoolDataService.from_settings(Settings.from_env())
    yield
    _service = None


app = FastAPI(
    title="School Pipeline API",
    description=(
        "Parses a school listing into validated, geocoded records and serves "
        "filter and relevance-search queries over them."
    ),
    version=__version__,
    lifespan=lifespan,
)


# ─── Request / Response Schemas ─────────────────────────────────────


class IngestRequest(BaseModel):
    document: str = Field(
        ...,
        min_length=1,
        description="The markdown school listing to parse and validate.",
    )


class RecordReport(BaseModel):
    id: str
    name: str
    is_valid: bool
    issues: list[ValidationIssue]


class IngestResponse(BaseModel):
    total: int
    valid_count: int
    invalid_count: int
    geocoding_error_count: int
    success_rate: int
    color_legend: dict[str, str]
    results: list[RecordReport]


class FilterResponse(BaseModel):
    count: int
    summary: FilterSummary
    records: list[SchoolRecord]


class SearchResponse(BaseModel):
    query: str
    count: int
    results: list[SearchResult]


class HealthResponse(BaseModel):
    status: str
    version: str
    records_loaded: int
    geocoding_cache: Optional[dict[str, int]] = None


# ─── Helpers ─────────────────────────────────────────────────────────


def _get_service() -> SchoolDataService:
    if _service is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    return _service


def _build_ingest_response(
    summary: ValidationSummary, legend: dict[str, str]
) -> IngestResponse:
    return IngestResponse(
        total=summary.total,
        valid_count=summary.valid_count,
        invalid_count=summary.invalid_count,
        geocoding_error_count=summary.geocoding_error_count,
        success_rate=summary.success_rate,
        color_legend=legend,
        results=[
            RecordReport(
                id=r.record.id,
                name=r.record.name,
                is_valid=r.is_valid,
                issues=r.issues,
            )
            for r in summary.per_record_results
        ],
    )


# ─── Endpoints ───────────────────────────────────────────────────────


@app.post(
    "/schools/ingest",
    summary="Parse and validate a school listing",
    tags=["Ingestion"],
    responses={503: {"description": "Service not yet initialised"}},
)
async def ingest_document(request: IngestRequest) -> IngestResponse:
    """Replace the served record set with the valid records of the document."""
    service = _get_service()
    summary, legend = await service.ingest(request.document)
    return _build_ingest_response(summary, legend)


@app.post(
    "/schools/ingest/file",
    summary="Parse and validate an uploaded school listing",
    tags=["Ingestion"],
    responses={
        413: {"description": "File too large (max 1 MB)"},
        400: {"description": "File is not valid UTF-8 text"},
        422: {"description": "File is empty"},
        503: {"description": "Service not yet initialised"},
    },
)
async def ingest_file(file: UploadFile) -> IngestResponse:
    if file.size and file.size > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large (max 1 MB)")

    content = await file.read()
    try:
        document = content.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="File must be UTF-8 encoded text")

    if not document.strip():
        raise HTTPException(status_code=422, detail="File is empty")

    service = _get_service()
    summary, legend = await service.ingest(document)
    return _build_ingest_response(summary, legend)


@app.post(
    "/schools/filter",
    summary="Filter the current record set",
    tags=["Query"],
    responses={503: {"description": "Service not yet initialised"}},
)
async def filter_schools(criteria: FilterCriteria) -> FilterResponse:
    service = _get_service()
    records = service.query_engine.filter(service.records, criteria)
    return FilterResponse(
        count=len(records),
        summary=filter_summary(criteria),
        records=list(records),
    )


@app.get(
    "/schools/search",
    summary="Relevance search over the current record set",
    tags=["Query"],
    responses={503: {"description": "Service not yet initialised"}},
)
async def search_schools(q: str = Query("", description="Search text")) -> SearchResponse:
    service = _get_service()
    results = service.query_engine.search(service.records, q)
    return SearchResponse(query=q, count=len(results), results=results)


@app.get(
    "/health",
    summary="Health check",
    tags=["System"],
    responses={503: {"description": "Service not yet initialised"}},
)
def health_check() -> HealthResponse:
    service = _get_service()
    geocoder = service.pipeline.geocoder
    return HealthResponse(
        status="healthy",
        version=__version__,
        records_loaded=len(service.records),
        geocoding_cache=geocoder.cache_stats() if isinstance(geocoder, CachedGeocoder) else None,
    )
