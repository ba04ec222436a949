import pytest
from itsdangerous import URLSafeTimedSerializer

from relaycdn.errors import FileTooLarge, InvalidRequest, InvalidTicket, QuotaExceeded, StoreError
from relaycdn.ledger import HistoryLedger
from relaycdn.quota import QuotaLimiter
from relaycdn.storage import MemoryObjectStore
from relaycdn.uploads import TICKET_SALT, UploadOrchestrator, clean_filename

from conftest import HOUR_MS, MIB, STORE_BASE_URL


@pytest.fixture
def store():
    return MemoryObjectStore(STORE_BASE_URL)


@pytest.fixture
def orchestrator(store, clock):
    return UploadOrchestrator(
        store=store,
        ledger=HistoryLedger(),
        upload_limiter=QuotaLimiter("upload rate limit", 3600, max_uploads=3, clock=clock),
        daily_quota=QuotaLimiter(
            "daily quota", 86400, max_uploads=100, max_bytes=10 * MIB, clock=clock
        ),
        ticket_secret="secret",
        max_file_bytes=5 * MIB,
        public_base_url="http://relay.test",
        clock=clock,
    )


class TestCleanFilename:
    def test_strips_path_components(self):
        assert clean_filename("../../etc/passwd") == "passwd"
        assert clean_filename("C:\\Users\\me\\photo.png") == "photo.png"

    def test_keeps_unusual_but_harmless_names(self):
        assert clean_filename("my report (final).pdf") == "my report (final).pdf"

    @pytest.mark.parametrize("raw", [None, "", "   ", "..", "dir/.."])
    def test_rejects_empty_and_dot_names(self, raw):
        with pytest.raises(InvalidRequest):
            clean_filename(raw)

    def test_rejects_long_names(self):
        with pytest.raises(InvalidRequest):
            clean_filename("a" * 256)


class TestAuthorize:
    def test_issues_ticket_scoped_to_pathname(self, orchestrator, clock):
        ticket = orchestrator.authorize("1.2.3.4", "photo.png", 1024)

        assert ticket.pathname == "cdn/photo.png"
        assert ticket.maximum_size_in_bytes == 5 * MIB
        assert ticket.upload_url == f"http://relay.test/upload/{ticket.token}"
        assert ticket.expires_at == clock.now + HOUR_MS

        claims = orchestrator.read_ticket(ticket.token)
        assert claims.pathname == "cdn/photo.png"
        assert claims.client_id == "1.2.3.4"

    def test_rate_limit_rejects_with_quota_exceeded(self, orchestrator):
        for _ in range(3):
            orchestrator.authorize("1.2.3.4", "a.txt", 0)
        with pytest.raises(QuotaExceeded) as exc:
            orchestrator.authorize("1.2.3.4", "a.txt", 0)
        assert exc.value.status_code == 429

    def test_oversized_declared_file_rejected_before_quota(self, orchestrator):
        with pytest.raises(FileTooLarge) as exc:
            orchestrator.authorize("1.2.3.4", "big.iso", 5 * MIB + 1)
        assert exc.value.status_code == 413
        assert orchestrator.upload_limiter.usage("1.2.3.4") is None

    def test_invalid_filename_consumes_nothing(self, orchestrator):
        with pytest.raises(InvalidRequest):
            orchestrator.authorize("1.2.3.4", "", 10)
        assert orchestrator.upload_limiter.usage("1.2.3.4") is None


class TestReadTicket:
    def test_tampered_token_rejected(self, orchestrator):
        ticket = orchestrator.authorize("1.2.3.4", "a.txt", 1)
        with pytest.raises(InvalidTicket):
            orchestrator.read_ticket(ticket.token + "x")

    def test_token_signed_with_other_secret_rejected(self, orchestrator):
        forged = URLSafeTimedSerializer("other", salt=TICKET_SALT).dumps(
            {"pathname": "cdn/x", "filename": "x", "max": 1, "client": None}
        )
        with pytest.raises(InvalidTicket):
            orchestrator.read_ticket(forged)

    def test_expired_token_rejected(self, orchestrator):
        ticket = orchestrator.authorize("1.2.3.4", "a.txt", 1)
        orchestrator.ticket_ttl_seconds = -1
        with pytest.raises(InvalidTicket, match="expired"):
            orchestrator.read_ticket(ticket.token)


class TestComplete:
    def test_appends_record(self, orchestrator, clock):
        record = orchestrator.complete("1.2.3.4", "https://x/cdn/a.txt", "a.txt", "42")

        assert record.size == 42
        assert record.timestamp == clock.now
        assert record.client_id == "1.2.3.4"
        assert orchestrator.ledger.list()[0] == record

    @pytest.mark.parametrize("url,filename", [(None, "a.txt"), ("https://x/a", None), ("", "")])
    def test_missing_fields_have_no_side_effects(self, orchestrator, url, filename):
        with pytest.raises(InvalidRequest):
            orchestrator.complete("1.2.3.4", url, filename, 10)
        assert len(orchestrator.ledger) == 0
        assert orchestrator.daily_quota.usage("1.2.3.4") is None

    def test_daily_quota_denial_skips_ledger(self, orchestrator):
        orchestrator.complete("1.2.3.4", "https://x/a", "a", 8 * MIB)
        with pytest.raises(QuotaExceeded):
            orchestrator.complete("1.2.3.4", "https://x/b", "b", 3 * MIB)
        assert len(orchestrator.ledger) == 1


class TestRelay:
    def test_relay_stores_bytes_and_records_upload(self, orchestrator, store):
        ticket = orchestrator.authorize("1.2.3.4", "hello.txt", 5)
        record = orchestrator.relay(ticket.token, b"hello", "text/plain")

        assert record.url == f"{STORE_BASE_URL}/cdn/hello.txt"
        assert record.size == 5
        assert store.objects[record.url] == (b"hello", "text/plain")
        assert orchestrator.ledger.list() == [record]

    def test_relay_rejects_body_over_ticket_cap(self, orchestrator, store):
        ticket = orchestrator.authorize("1.2.3.4", "big.bin", 1)
        with pytest.raises(FileTooLarge):
            orchestrator.relay(ticket.token, b"x" * (5 * MIB + 1))
        assert store.objects == {}

    def test_store_failure_does_not_refund_or_record(self, orchestrator, store):
        ticket = orchestrator.authorize("1.2.3.4", "a.txt", 1)
        store.failing_urls.add(f"{STORE_BASE_URL}/cdn/a.txt")

        with pytest.raises(StoreError):
            orchestrator.relay(ticket.token, b"a")
        assert len(orchestrator.ledger) == 0
        assert orchestrator.upload_limiter.usage("1.2.3.4").upload_count == 1

    def test_ticket_is_single_use(self, orchestrator, store):
        ticket = orchestrator.authorize("1.2.3.4", "hello.txt", 5)
        orchestrator.relay(ticket.token, b"hello")

        with pytest.raises(InvalidTicket, match="already used"):
            orchestrator.relay(ticket.token, b"hello again")
        with pytest.raises(InvalidTicket):
            orchestrator.read_ticket(ticket.token)
        assert len(orchestrator.ledger) == 1
        assert store.objects[f"{STORE_BASE_URL}/cdn/hello.txt"][0] == b"hello"

    def test_spent_tickets_forgotten_after_ttl(self, orchestrator, clock):
        first = orchestrator.authorize("1.2.3.4", "a.txt", 1)
        orchestrator.relay(first.token, b"a")
        assert len(orchestrator._spent) == 1

        clock.advance(HOUR_MS + 1)
        second = orchestrator.authorize("1.2.3.4", "b.txt", 1)
        orchestrator.read_ticket(second.token)
        assert orchestrator._spent == {}

    def test_daily_quota_denial_stores_nothing(self, orchestrator, store):
        orchestrator.complete("1.2.3.4", "https://x/a", "a", 4 * MIB)
        orchestrator.complete("1.2.3.4", "https://x/b", "b", 4 * MIB)
        ticket = orchestrator.authorize("1.2.3.4", "c.bin", 3 * MIB)

        with pytest.raises(QuotaExceeded):
            orchestrator.relay(ticket.token, b"x" * (3 * MIB))
        assert store.objects == {}
        assert len(orchestrator.ledger) == 2

    def test_signed_ticket_without_nonce_rejected(self, orchestrator):
        legacy = URLSafeTimedSerializer("secret", salt=TICKET_SALT).dumps(
            {"pathname": "cdn/x", "filename": "x", "max": 1, "client": None}
        )
        with pytest.raises(InvalidTicket):
            orchestrator.read_ticket(legacy)
