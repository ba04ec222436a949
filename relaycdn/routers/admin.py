import asyncio
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from relaycdn.admin import AdminOperations
from relaycdn.auth import get_admin, require_admin, resolve_client_id
from relaycdn.errors import AuthFailure
from relaycdn.models import AdminAuthRequest, AdminDeleteRequest

logger = logging.getLogger("relaycdn.routers.admin")

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/authenticate")
async def authenticate(
    body: AdminAuthRequest,
    request: Request,
    admin: AdminOperations = Depends(get_admin),
):
    if admin.authenticate(body.secret):
        return {"success": True, "message": "Authentication successful"}

    client_id = resolve_client_id(request)
    logger.warning("Failed admin login from %s", client_id, extra={"client_id": client_id})
    return JSONResponse(
        status_code=401,
        content={"success": False, "message": AuthFailure.default_detail},
    )


@router.delete("/object")
async def delete_object(
    body: AdminDeleteRequest,
    admin: AdminOperations = Depends(require_admin),
):
    result = await asyncio.to_thread(admin.delete_one, body.url)
    if result.status == "not_found":
        return JSONResponse(
            status_code=404,
            content={
                "success": False,
                "message": "File not found in object store",
                "removed_records": result.removed_records,
            },
        )
    return {
        "success": True,
        "message": "File deleted successfully",
        "removed_records": result.removed_records,
    }


@router.post("/clear-all")
async def clear_all(admin: AdminOperations = Depends(require_admin)):
    result = await asyncio.to_thread(admin.delete_all)
    if result.partial:
        return JSONResponse(
            status_code=207,
            content={
                "success": False,
                "message": "Some files could not be deleted",
                "deleted": result.deleted,
                "failed_urls": result.failed_urls,
            },
        )
    return {
        "success": True,
        "message": "All files deleted successfully",
        "deleted": result.deleted,
    }
