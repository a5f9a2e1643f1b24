from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Query, Request

from aip_report.routes._deps import analytics_from_request, trace_id_from_request
from aip_report.schemas import success_envelope

router = APIRouter(prefix="/api/v1", tags=["aips"])


@router.get("/aips")
def list_aips(
    request: Request,
    limit: int = Query(default=0),
    cursor: str = Query(default=""),
):
    analytics = analytics_from_request(request)
    result = analytics.list_aips(limit=limit, cursor=cursor)
    data = {
        "index": analytics.config.aip_index,
        "limit": result.limit,
        "count": len(result.items),
        "next_cursor": result.next_cursor,
        "items": [asdict(item) for item in result.items],
    }
    return success_envelope(data, trace_id_from_request(request))


@router.get("/aips/{aip_uuid}/stats")
def aip_stats(
    aip_uuid: str,
    request: Request,
    limit: int = Query(default=0, description="page size used while scanning"),
):
    analytics = analytics_from_request(request)
    stats = analytics.aip_stats(aip_uuid, page_size=limit)
    data = {
        "index": analytics.config.aip_index,
        "aip_uuid": stats.aip_uuid,
        "stats": stats.model_dump(mode="json"),
    }
    return success_envelope(data, trace_id_from_request(request))
