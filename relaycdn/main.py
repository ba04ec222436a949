from contextlib import asynccontextmanager
import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from relaycdn.auth import resolve_client_id
from relaycdn.config import Settings, load_settings
from relaycdn.errors import FileTooLarge, RelayError
from relaycdn.logging_config import setup_logging
from relaycdn.models import UploadAuthorizeRequest
from relaycdn.quota import epoch_millis
from relaycdn.reconcile import start_reconcile_scheduler
from relaycdn.routers import admin, files, history
from relaycdn.services import build_services
from relaycdn.storage import ObjectStore

logger = logging.getLogger("relaycdn")


def create_app(
    settings: Settings | None = None,
    store: ObjectStore | None = None,
    clock=epoch_millis,
) -> FastAPI:
    settings = settings or load_settings()
    services = build_services(settings, store=store, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not settings.admin_password:
            logger.warning("ADMIN_PASSWORD is not set; admin routes are disabled")

        scheduler = None
        if settings.reconcile_interval_minutes > 0:
            try:
                scheduler = start_reconcile_scheduler(
                    services.ledger, services.store, settings.reconcile_interval_minutes
                )
            except Exception:
                # Serving uploads does not depend on the background job.
                logger.exception("Failed to start history reconciliation scheduler")
        app.state.scheduler = scheduler
        yield
        if scheduler is not None:
            scheduler.shutdown(wait=False)

    app = FastAPI(title="relaycdn", lifespan=lifespan)
    app.state.services = services

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/upload-authorize")
    async def upload_authorize(body: UploadAuthorizeRequest, request: Request):
        client_id = resolve_client_id(request)
        ticket = services.uploads.authorize(client_id, body.filename, body.declared_size)
        return ticket.model_dump()

    @app.put("/upload/{token}")
    async def upload(token: str, request: Request):
        client_id = resolve_client_id(request)

        # Bad, expired or spent tickets are refused before any body is read
        claims = services.uploads.read_ticket(token)
        limit = min(settings.max_file_bytes, claims.maximum_size_in_bytes)

        cl = request.headers.get("content-length")
        if cl and cl.isdigit() and int(cl) > limit:
            raise FileTooLarge()

        content = bytearray()
        async for chunk in request.stream():
            content.extend(chunk)
            if len(content) > limit:
                raise FileTooLarge()

        record = await asyncio.to_thread(
            services.uploads.relay,
            token,
            bytes(content),
            request.headers.get("content-type"),
            client_id,
        )
        return {"success": True, "record": record.model_dump()}

    app.include_router(history.router)
    app.include_router(admin.router)
    app.include_router(files.router)
    return app


def create_default_app() -> FastAPI:
    """Entry point for ``uvicorn relaycdn.main:create_default_app --factory``."""
    setup_logging()
    return create_app()
