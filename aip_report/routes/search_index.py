from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Query, Request

from aip_report.routes._deps import analytics_from_request, trace_id_from_request
from aip_report.schemas import success_envelope

router = APIRouter(prefix="/api/v1", tags=["search-index"])


@router.get("/search-index/transfers/{transfer_uuid}")
def search_transfer(
    transfer_uuid: str,
    request: Request,
    limit: int = Query(default=0),
):
    data = analytics_from_request(request).search_transfer(transfer_uuid, limit=limit)
    return success_envelope(data, trace_id_from_request(request))


@router.get("/search-index/status")
def search_index_status(request: Request):
    stats = analytics_from_request(request).service_stats()
    return success_envelope(asdict(stats), trace_id_from_request(request))


@router.get("/internal/probes")
def probe_metrics(request: Request):
    probes = analytics_from_request(request).metrics.snapshot()
    return success_envelope({"probes": probes}, trace_id_from_request(request))
