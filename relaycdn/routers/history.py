import asyncio
import logging

from fastapi import APIRouter, Depends, Query, Request, Response

from relaycdn.auth import resolve_client_id
from relaycdn.errors import InvalidRequest
from relaycdn.models import HistoryCleanupRequest, HistoryCreateRequest
from relaycdn.reconcile import purge_dead_records
from relaycdn.services import Services, get_services

logger = logging.getLogger("relaycdn.routers.history")

router = APIRouter(prefix="/history", tags=["History"])


@router.get("")
async def list_history(
    response: Response,
    limit: int = Query(100, ge=1, le=100),
    verify: bool = False,
    services: Services = Depends(get_services),
):
    """
    Return the most recent uploads, newest first.

    With ``verify=true`` every listed URL is checked against the object store
    first and records whose object is gone are purged.
    """
    if verify:
        result = await asyncio.to_thread(
            purge_dead_records, services.ledger, services.store, limit
        )
        records = result.live_records
    else:
        records = services.ledger.list(limit)

    response.headers["Cache-Control"] = "no-store"
    return {
        "records": [record.model_dump() for record in records],
        "count": len(records),
    }


@router.post("")
async def add_history(
    body: HistoryCreateRequest,
    request: Request,
    services: Services = Depends(get_services),
):
    record = services.uploads.complete(
        resolve_client_id(request), body.url, body.filename, body.size
    )
    return {"success": True, "record": record.model_dump()}


@router.post("/cleanup")
async def cleanup_history(
    body: HistoryCleanupRequest,
    services: Services = Depends(get_services),
):
    if not isinstance(body.urls, list) or not all(isinstance(url, str) for url in body.urls):
        raise InvalidRequest("Invalid request: urls array required")

    removed = services.ledger.remove_urls(body.urls)
    if removed:
        logger.info("History cleanup removed %d records", removed)
    return {"success": True, "removed": removed}
