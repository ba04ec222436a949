from dataclasses import dataclass, field
import logging
from typing import Iterable

from apscheduler.schedulers.background import BackgroundScheduler

from relaycdn.ledger import HistoryLedger
from relaycdn.models import UploadRecord
from relaycdn.storage import ObjectStore, to_store_url

logger = logging.getLogger("relaycdn.reconcile")


@dataclass
class ReconcileResult:
    live_records: list[UploadRecord] = field(default_factory=list)
    dead_urls: list[str] = field(default_factory=list)


def reconcile(records: Iterable[UploadRecord], store: ObjectStore) -> ReconcileResult:
    """
    Check the store for every record, one at a time.

    A lookup that raises for any reason marks the URL dead; nothing is retried
    and the ledger is not touched here.
    """
    result = ReconcileResult()
    for record in records:
        try:
            store.head(to_store_url(record.url, store.base_url))
        except Exception as exc:
            logger.debug("Existence check failed for %s: %s", record.url, exc)
            result.dead_urls.append(record.url)
        else:
            result.live_records.append(record)
    return result


def purge_dead_records(ledger: HistoryLedger, store: ObjectStore, limit: int | None = None) -> ReconcileResult:
    records = ledger.list(limit if limit is not None else ledger.cap)
    result = reconcile(records, store)
    if result.dead_urls:
        removed = ledger.remove_urls(result.dead_urls)
        logger.info("Reconciliation purged %d stale history records", removed)
    return result


def start_reconcile_scheduler(
    ledger: HistoryLedger,
    store: ObjectStore,
    interval_minutes: int,
) -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        purge_dead_records,
        "interval",
        minutes=interval_minutes,
        args=[ledger, store],
        id="reconcile-history",
    )
    scheduler.start()
    logger.info("Scheduled history reconciliation every %d minutes", interval_minutes)
    return scheduler
