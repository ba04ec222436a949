from dataclasses import dataclass, field
import logging

from relaycdn.errors import AdminNotConfigured, InvalidRequest, ObjectNotFound, StoreError
from relaycdn.ledger import HistoryLedger
from relaycdn.storage import ObjectStore, to_store_url

logger = logging.getLogger("relaycdn.admin")


@dataclass
class DeleteResult:
    url: str
    status: str
    removed_records: int


@dataclass
class ClearAllResult:
    deleted: int = 0
    failed_urls: list[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failed_urls)


class AdminOperations:
    def __init__(self, store: ObjectStore, ledger: HistoryLedger, admin_password: str | None):
        self.store = store
        self.ledger = ledger
        self._admin_password = admin_password

    @property
    def configured(self) -> bool:
        return bool(self._admin_password)

    def authenticate(self, supplied: str | None) -> bool:
        # Plain comparison, no lockout or backoff on repeated failures.
        if not self._admin_password:
            raise AdminNotConfigured()
        return supplied == self._admin_password

    def delete_one(self, url: str | None) -> DeleteResult:
        """
        Delete ``url`` from the store, then drop matching history records.

        The store deletion is attempted even when no record matches, since the
        object may be orphaned. A store-side "not found" still purges the
        ledger; any other store failure propagates with the ledger untouched.
        """
        if not url:
            raise InvalidRequest("URL is required")

        status = "deleted"
        try:
            self.store.delete(to_store_url(url, self.store.base_url))
        except ObjectNotFound:
            status = "not_found"
        except StoreError:
            logger.exception("Failed to delete %s from object store", url)
            raise

        removed = self.ledger.remove_urls([url])
        logger.info("Admin delete: url=%s status=%s removed_records=%d", url, status, removed)
        return DeleteResult(url=url, status=status, removed_records=removed)

    def delete_all(self) -> ClearAllResult:
        snapshot = self.ledger.list(self.ledger.cap)
        result = ClearAllResult()
        for record in snapshot:
            try:
                self.store.delete(to_store_url(record.url, self.store.base_url))
            except ObjectNotFound:
                pass
            except Exception:
                logger.exception("Failed to delete %s", record.url)
                result.failed_urls.append(record.url)
                continue
            result.deleted += 1

        self.ledger.clear()
        logger.info(
            "Admin clear-all: deleted=%d failed=%d", result.deleted, len(result.failed_urls)
        )
        return result
