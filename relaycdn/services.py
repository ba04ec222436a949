from dataclasses import dataclass
import logging

from fastapi import Request

from relaycdn.admin import AdminOperations
from relaycdn.config import Settings
from relaycdn.ledger import HistoryLedger
from relaycdn.quota import QuotaLimiter, epoch_millis
from relaycdn.storage import HttpObjectStore, MemoryObjectStore, ObjectStore
from relaycdn.uploads import UploadOrchestrator

logger = logging.getLogger("relaycdn.services")


@dataclass
class Services:
    """Stateful collaborators built once per application and shared by handlers."""

    settings: Settings
    store: ObjectStore
    ledger: HistoryLedger
    upload_limiter: QuotaLimiter
    daily_quota: QuotaLimiter
    uploads: UploadOrchestrator
    admin: AdminOperations


def build_store(settings: Settings) -> ObjectStore:
    if settings.object_store_base_url:
        return HttpObjectStore(
            settings.object_store_base_url,
            token=settings.object_store_token,
            timeout=settings.object_store_timeout_seconds,
        )
    logger.warning("OBJECT_STORE_BASE_URL is not set; using the in-memory object store")
    return MemoryObjectStore()


def build_services(settings: Settings, store: ObjectStore | None = None, clock=epoch_millis) -> Services:
    store = store or build_store(settings)
    ledger = HistoryLedger(cap=settings.history_cap)
    upload_limiter = QuotaLimiter(
        "upload rate limit",
        window_seconds=settings.upload_rate_window_seconds,
        max_uploads=settings.upload_rate_limit_per_hour,
        clock=clock,
    )
    daily_quota = QuotaLimiter(
        "daily quota",
        window_seconds=settings.quota_window_seconds,
        max_uploads=settings.daily_quota_uploads,
        max_bytes=settings.daily_quota_bytes,
        clock=clock,
    )
    uploads = UploadOrchestrator(
        store=store,
        ledger=ledger,
        upload_limiter=upload_limiter,
        daily_quota=daily_quota,
        ticket_secret=settings.ticket_secret,
        max_file_bytes=settings.max_file_bytes,
        public_base_url=settings.public_base_url,
        ticket_ttl_seconds=settings.ticket_ttl_seconds,
        clock=clock,
    )
    admin = AdminOperations(store=store, ledger=ledger, admin_password=settings.admin_password)
    return Services(
        settings=settings,
        store=store,
        ledger=ledger,
        upload_limiter=upload_limiter,
        daily_quota=daily_quota,
        uploads=uploads,
        admin=admin,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
