# bulkexport/observability/metrics.py
from fastapi import APIRouter
from starlette.responses import Response

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter(tags=["observability"])

exports_counter = Counter(
    "bulkexport_exports_total",
    "Aantal exports per uitkomst",
    ["result"],  # success|cancelled|error
)

aborts_counter = Counter(
    "bulkexport_aborts_total",
    "Aantal afgebroken multipart uploads",
)

parts_counter = Counter(
    "bulkexport_parts_uploaded_total",
    "Aantal succesvol geuploade parts",
)

part_size_hist = Histogram(
    "bulkexport_part_bytes",
    "Grootte van geuploade parts",
    buckets=(1e5, 3e5, 1e6, 3e6, 5.3e6, 1e7, 3e7, 1e8),
)

export_duration_hist = Histogram(
    "bulkexport_export_duration_seconds",
    "Duur van een volledige export",
    buckets=(0.5, 1, 5, 15, 60, 300, 900, 3600),
)


@router.get("/metrics", include_in_schema=True)
def metrics() -> Response:
    # Prometheus expects text/plain; version=0.0.4
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
