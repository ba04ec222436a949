from dataclasses import dataclass
import logging
from pathlib import PurePosixPath
import secrets

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from relaycdn.errors import FileTooLarge, InvalidRequest, InvalidTicket, QuotaExceeded
from relaycdn.ledger import HistoryLedger
from relaycdn.models import UploadRecord, UploadTicket
from relaycdn.quota import QuotaLimiter, coerce_size, epoch_millis
from relaycdn.storage import ObjectStore

logger = logging.getLogger("relaycdn.uploads")

MAX_FILENAME_LENGTH = 255
UPLOAD_PREFIX = "cdn"
TICKET_SALT = "relaycdn-upload-ticket"


def clean_filename(raw: str | None) -> str:
    """Strip path components from a client filename; collisions are allowed."""
    if not raw or not raw.strip():
        raise InvalidRequest("Filename is required")

    name = PurePosixPath(raw.strip()).name
    name = name.split("\\")[-1]

    if not name or name in (".", ".."):
        raise InvalidRequest("Invalid filename")
    if len(name) > MAX_FILENAME_LENGTH:
        raise InvalidRequest("Filename too long")
    return name


@dataclass
class TicketClaims:
    pathname: str
    filename: str
    maximum_size_in_bytes: int
    client_id: str | None
    nonce: str


class UploadOrchestrator:
    """
    Issues upload tickets and turns ticketed bytes into history records.

    A ticket is good for one relay. Spent nonces are kept in memory until the
    ticket would have expired anyway, so the set stays bounded by the number
    of tickets redeemed within one TTL.
    """

    def __init__(
        self,
        store: ObjectStore,
        ledger: HistoryLedger,
        upload_limiter: QuotaLimiter,
        daily_quota: QuotaLimiter,
        ticket_secret: str,
        max_file_bytes: int,
        public_base_url: str = "",
        ticket_ttl_seconds: int = 3600,
        clock=epoch_millis,
    ):
        self.store = store
        self.ledger = ledger
        self.upload_limiter = upload_limiter
        self.daily_quota = daily_quota
        self.max_file_bytes = max_file_bytes
        self.public_base_url = public_base_url.rstrip("/")
        self.ticket_ttl_seconds = ticket_ttl_seconds
        self._clock = clock
        self._serializer = URLSafeTimedSerializer(ticket_secret, salt=TICKET_SALT)
        # nonce -> epoch ms after which the ticket is expired regardless
        self._spent: dict[str, int] = {}

    def authorize(self, client_id: str | None, filename: str | None, declared_size) -> UploadTicket:
        name = clean_filename(filename)
        size = coerce_size(declared_size)
        if size > self.max_file_bytes:
            raise FileTooLarge(
                f"File too large: {size} bytes exceeds the {self.max_file_bytes} byte limit"
            )

        admission = self.upload_limiter.admit(client_id, size)
        if not admission:
            raise QuotaExceeded("Rate limit exceeded. Try again later.")

        pathname = f"{UPLOAD_PREFIX}/{name}"
        token = self._serializer.dumps(
            {
                "pathname": pathname,
                "filename": name,
                "max": self.max_file_bytes,
                "client": client_id,
                "nonce": secrets.token_urlsafe(16),
            }
        )
        logger.info(
            "Upload ticket issued: pathname=%s size=%d", pathname, size,
            extra={"client_id": client_id, "pathname": pathname},
        )
        return UploadTicket(
            token=token,
            pathname=pathname,
            upload_url=f"{self.public_base_url}/upload/{token}",
            maximum_size_in_bytes=self.max_file_bytes,
            expires_at=self._clock() + self.ticket_ttl_seconds * 1000,
        )

    def read_ticket(self, token: str) -> TicketClaims:
        """Verify a ticket's signature, age and that it has not been redeemed."""
        try:
            data = self._serializer.loads(token, max_age=self.ticket_ttl_seconds)
        except SignatureExpired as exc:
            raise InvalidTicket("Upload ticket expired") from exc
        except BadSignature as exc:
            raise InvalidTicket() from exc

        nonce = data.get("nonce")
        if not nonce:
            raise InvalidTicket()
        self._prune_spent()
        if nonce in self._spent:
            raise InvalidTicket("Upload ticket already used")

        return TicketClaims(
            pathname=data["pathname"],
            filename=data["filename"],
            maximum_size_in_bytes=int(data["max"]),
            client_id=data.get("client"),
            nonce=nonce,
        )

    def _prune_spent(self) -> None:
        now = self._clock()
        for nonce in [n for n, expiry in self._spent.items() if expiry <= now]:
            del self._spent[nonce]

    def _spend(self, claims: TicketClaims) -> None:
        self._spent[claims.nonce] = self._clock() + self.ticket_ttl_seconds * 1000

    def relay(
        self,
        token: str,
        content: bytes,
        content_type: str | None = None,
        client_id: str | None = None,
    ) -> UploadRecord:
        """Push ticketed bytes to the store and record the completed upload."""
        claims = self.read_ticket(token)
        if len(content) > claims.maximum_size_in_bytes:
            raise FileTooLarge()

        self._spend(claims)
        client_id = client_id or claims.client_id
        self._admit_daily(client_id, len(content))

        # Store errors propagate; neither the ticket nor the quota is refunded.
        url = self.store.upload(claims.pathname, content, content_type)
        logger.info(
            "Upload completed: %s (%d bytes)", url, len(content),
            extra={"client_id": client_id, "url": url},
        )
        return self._record(client_id, url, claims.filename, len(content))

    def complete(self, client_id: str | None, url: str | None, filename: str | None, size) -> UploadRecord:
        if not url or not filename:
            raise InvalidRequest("Missing required fields")

        upload_size = coerce_size(size)
        self._admit_daily(client_id, upload_size)
        return self._record(client_id, url, filename, upload_size)

    def _admit_daily(self, client_id: str | None, size: int) -> None:
        if not self.daily_quota.admit(client_id, size):
            raise QuotaExceeded()

    def _record(self, client_id: str | None, url: str, filename: str, size: int) -> UploadRecord:
        record = UploadRecord(
            url=url,
            filename=filename,
            size=size,
            timestamp=self._clock(),
            client_id=client_id,
        )
        self.ledger.append(record)
        return record
