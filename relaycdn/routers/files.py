import asyncio

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse

from relaycdn.services import Services, get_services
from relaycdn.storage import to_store_url

router = APIRouter(tags=["Files"])


def _store_url(services: Services, request: Request) -> str:
    return to_store_url(str(request.url), services.store.base_url)


@router.get("/cdn/{path:path}")
@router.get("/d/{path:path}")
async def download(path: str, request: Request, services: Services = Depends(get_services)):
    return RedirectResponse(_store_url(services, request), status_code=307)


@router.head("/cdn/{path:path}")
@router.head("/d/{path:path}")
async def exists(path: str, request: Request, services: Services = Depends(get_services)):
    try:
        info = await asyncio.to_thread(services.store.head, _store_url(services, request))
    except Exception:
        return Response(status_code=404)
    return Response(
        status_code=200,
        headers={
            "Content-Type": info.content_type,
            "Content-Length": str(info.size),
        },
    )
