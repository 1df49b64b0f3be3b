"""
Blockchain synchronization service.

Keeps the notice tables consistent with the notice contract:

    client -> stage (validated, ``pending``) -> contract call -> ``/confirm``
    (``submitted``) -> NoticeServed / LegalNoticeCreated events -> reconcile
    (``confirmed``, ``served_notices`` row)

Event processing is idempotent, so a range can be replayed after a failed
poll or through a historical sync without double-matching staged rows.
"""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

import config
from db import serialize_row, transaction
from logging_config import get_logger
from tron_client import ContractEvent, TronGridClient, is_valid_tron_address

logger = get_logger(__name__)

NOTICE_SERVED = "NoticeServed"
LEGAL_NOTICE_CREATED = "LegalNoticeCreated"
SYNC_STATE_KEY = "last_processed_block"


class NoticeValidationError(ValueError):
    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"Validation failed: {', '.join(self.errors)}")


class BatchStagingError(ValueError):
    pass


class StagingNotFoundError(LookupError):
    pass


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    server_agency: str | None = None


@dataclass
class StagedNotice:
    staging_id: int
    contract_params: dict[str, Any]


@dataclass
class SyncSummary:
    from_block: int
    to_block: int
    notices_served: int = 0
    confirmed: int = 0
    unmatched: int = 0
    notices_created: int = 0
    orphaned: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "from_block": self.from_block,
            "to_block": self.to_block,
            "notices_served": self.notices_served,
            "confirmed": self.confirmed,
            "unmatched": self.unmatched,
            "notices_created": self.notices_created,
            "orphaned": self.orphaned,
            "failed": self.failed,
        }


def build_contract_params(data: dict[str, Any], issuing_agency: str) -> dict[str, Any]:
    # Ordered to match the contract's serveNotice arguments.
    return {
        "recipient": data.get("recipient_address"),
        "encryptedIPFS": data.get("encrypted_ipfs"),
        "encryptionKey": data.get("encryption_key"),
        "issuingAgency": issuing_agency,
        "noticeType": data.get("notice_type"),
        "caseNumber": data.get("case_number") or "",
        "caseDetails": data.get("case_details") or "",
        "legalRights": data.get("legal_rights") or "",
        "sponsorFees": bool(data.get("sponsor_fees") or False),
        "metadataURI": data.get("metadata_uri") or "",
    }


def _utc_from_epoch(seconds: Any) -> datetime | None:
    try:
        value = int(seconds)
    except (TypeError, ValueError):
        return None
    if value <= 0:
        return None
    # Contract timestamps are seconds; tolerate millisecond values.
    if value > 10**11:
        value //= 1000
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    except (OverflowError, OSError, ValueError):
        return None


class BlockchainSyncService:
    def __init__(
        self,
        client: TronGridClient | None = None,
        address_validator: Callable[[Any], bool] = is_valid_tron_address,
        poll_interval: float | None = None,
        confirmation_blocks: int | None = None,
    ) -> None:
        self.client = client
        self.address_validator = address_validator
        self.poll_interval = poll_interval if poll_interval is not None else config.SYNC_POLL_INTERVAL_SECONDS
        self.confirmation_blocks = (
            confirmation_blocks if confirmation_blocks is not None else config.SYNC_CONFIRMATION_BLOCKS
        )
        self.enabled = False
        self.last_processed_block = 0
        self.init_error: str | None = None
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    def initialize(self) -> bool:
        if self.client is None:
            logger.warning("blockchain_sync_disabled", reason=self.init_error or "no TRON client configured")
            return False
        try:
            with transaction() as cur:
                last_block = self._load_last_processed_block(cur)
            if not last_block:
                head = self.client.get_current_block_number()
                last_block = max(0, head - config.SYNC_LOOKBACK_BLOCKS)
            self.last_processed_block = last_block
            self.enabled = True
        except Exception as exc:
            self.init_error = str(exc)
            logger.exception("blockchain_sync_init_failed")
            return False
        logger.info(
            "blockchain_sync_initialized",
            contract=self.client.contract_address,
            last_processed_block=self.last_processed_block,
        )
        return True

    @staticmethod
    def _load_last_processed_block(cur) -> int:
        cur.execute("SELECT value FROM sync_state WHERE key = %s", (SYNC_STATE_KEY,))
        row = cur.fetchone()
        if row and row["value"]:
            return int(row["value"])
        cur.execute("SELECT MAX(block_number) AS last_block FROM served_notices WHERE block_number IS NOT NULL")
        row = cur.fetchone()
        return int(row["last_block"]) if row and row["last_block"] else 0

    @staticmethod
    def _save_last_processed_block(cur, block_number: int) -> None:
        cur.execute(
            """
            INSERT INTO sync_state (key, value, updated_at)
            VALUES (%s, %s, NOW())
            ON CONFLICT (key)
            DO UPDATE SET value = EXCLUDED.value, updated_at = NOW()
            """,
            (SYNC_STATE_KEY, str(block_number)),
        )

    # ------------------------------------------------------------------
    # Validation and staging
    # ------------------------------------------------------------------

    def _validate(self, cur, data: dict[str, Any]) -> ValidationResult:
        errors: list[str] = []

        cur.execute(
            "SELECT agency, status FROM process_servers WHERE wallet_address = %s",
            (data.get("server_address"),),
        )
        server = cur.fetchone()
        if not server:
            errors.append("Process server not registered")
        elif server["status"] != "approved":
            errors.append("Process server not approved")
        elif server["agency"] != data.get("issuing_agency"):
            errors.append(
                f'Agency mismatch: Database has "{server["agency"]}", provided "{data.get("issuing_agency")}"'
            )

        recipient = data.get("recipient_address")
        if not recipient:
            errors.append("Invalid recipient address")
        elif not self.address_validator(recipient):
            errors.append("Invalid recipient address format")

        if not data.get("encrypted_ipfs"):
            errors.append("Missing encrypted IPFS hash")
        if not data.get("encryption_key"):
            errors.append("Missing encryption key")
        if not data.get("notice_type"):
            errors.append("Missing notice type")

        return ValidationResult(
            valid=not errors,
            errors=errors,
            server_agency=server["agency"] if server else None,
        )

    def validate_notice_data(self, data: dict[str, Any]) -> ValidationResult:
        with transaction() as cur:
            return self._validate(cur, data)

    @staticmethod
    def _insert_staged(cur, data: dict[str, Any], agency: str, batch_id: str | None = None) -> StagedNotice:
        cur.execute(
            """
            INSERT INTO staged_notices (
                batch_id,
                recipient_address,
                encrypted_ipfs,
                encryption_key,
                issuing_agency,
                notice_type,
                case_number,
                case_details,
                legal_rights,
                sponsor_fees,
                metadata_uri,
                server_address,
                status,
                created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, 'pending', NOW())
            RETURNING id, issuing_agency
            """,
            (
                batch_id,
                data.get("recipient_address"),
                data.get("encrypted_ipfs"),
                data.get("encryption_key"),
                agency,
                data.get("notice_type"),
                data.get("case_number") or "",
                data.get("case_details") or "",
                data.get("legal_rights") or "",
                bool(data.get("sponsor_fees") or False),
                data.get("metadata_uri") or "",
                data.get("server_address"),
            ),
        )
        row = cur.fetchone()
        return StagedNotice(
            staging_id=row["id"],
            contract_params=build_contract_params(data, row["issuing_agency"]),
        )

    def stage_notice(self, data: dict[str, Any]) -> StagedNotice:
        with transaction() as cur:
            validation = self._validate(cur, data)
            if not validation.valid:
                raise NoticeValidationError(validation.errors)
            # The registered agency is authoritative, not the submitted one.
            staged = self._insert_staged(cur, data, validation.server_agency)
        logger.info(
            "notice_staged",
            staging_id=staged.staging_id,
            recipient=data.get("recipient_address"),
            server=data.get("server_address"),
        )
        return staged

    def stage_batch(self, notices: Any, server_address: str | None) -> dict[str, Any]:
        if not isinstance(notices, list) or not notices:
            raise BatchStagingError("Notices array required")
        if len(notices) > config.BATCH_MAX_NOTICES:
            raise BatchStagingError(f"Maximum {config.BATCH_MAX_NOTICES} notices per batch")

        with transaction() as cur:
            cur.execute(
                "SELECT agency FROM process_servers WHERE wallet_address = %s AND status = %s",
                (server_address, "approved"),
            )
            server = cur.fetchone()
            if not server:
                raise BatchStagingError("Process server not found or not approved")
            agency = server["agency"]

            prepared: list[dict[str, Any]] = []
            errors: list[str] = []
            for index, notice in enumerate(notices):
                if not isinstance(notice, dict):
                    errors.append(f"Notice {index}: must be an object")
                    continue
                payload = dict(notice, issuing_agency=agency, server_address=server_address)
                result = self._validate(cur, payload)
                errors.extend(f"Notice {index}: {err}" for err in result.errors)
                prepared.append(payload)
            if errors:
                raise NoticeValidationError(errors)

            batch_id = uuid.uuid4().hex
            staged = [self._insert_staged(cur, payload, agency, batch_id) for payload in prepared]

        logger.info("notice_batch_staged", batch_id=batch_id, server=server_address, count=len(staged))
        return {
            "batch_id": batch_id,
            "staging_ids": [item.staging_id for item in staged],
            "contract_params": [item.contract_params for item in staged],
            "total_fee": len(staged) * config.FEE_PER_NOTICE_SUN,
        }

    def confirm_submission(
        self,
        staging_id: int,
        transaction_hash: str,
        alert_id: Any = None,
        document_id: Any = None,
    ) -> dict[str, Any]:
        with transaction() as cur:
            cur.execute(
                """
                UPDATE staged_notices
                SET
                    transaction_hash = %s,
                    alert_id = COALESCE(%s, alert_id),
                    document_id = COALESCE(%s, document_id),
                    status = 'submitted',
                    submitted_at = NOW()
                WHERE id = %s
                AND status IN ('pending', 'submitted')
                RETURNING id, status, transaction_hash
                """,
                (
                    transaction_hash,
                    str(alert_id) if alert_id is not None else None,
                    str(document_id) if document_id is not None else None,
                    staging_id,
                ),
            )
            row = cur.fetchone()
        if not row:
            raise StagingNotFoundError(f"Staged notice {staging_id} not found or already confirmed")
        logger.info("notice_submitted", staging_id=staging_id, tx_hash=transaction_hash)
        return dict(row)

    def get_notice_status(self, staging_id: int) -> dict[str, Any]:
        with transaction() as cur:
            cur.execute(
                """
                SELECT
                    id,
                    status,
                    alert_id,
                    document_id,
                    notice_id,
                    transaction_hash,
                    block_number,
                    created_at,
                    submitted_at,
                    confirmed_at
                FROM staged_notices
                WHERE id = %s
                """,
                (staging_id,),
            )
            row = cur.fetchone()
        if not row:
            return {"status": "not_found"}
        return serialize_row(row)

    def expire_stale_notices(self, max_age_minutes: int | None = None) -> int:
        age = max_age_minutes if max_age_minutes is not None else config.STAGING_EXPIRY_MINUTES
        with transaction() as cur:
            cur.execute(
                """
                UPDATE staged_notices
                SET status = 'expired'
                WHERE status = 'pending'
                AND created_at < NOW() - (%s * INTERVAL '1 minute')
                RETURNING id
                """,
                (age,),
            )
            expired = len(cur.fetchall())
        if expired:
            logger.info("staged_notices_expired", count=expired, max_age_minutes=age)
        return expired

    # ------------------------------------------------------------------
    # Event reconciliation
    # ------------------------------------------------------------------

    def process_notice_served_event(self, event: ContractEvent) -> int | None:
        """
        Confirm the staged notice behind a NoticeServed event.

        Returns the staging id, or None when no staged row matches.
        """
        alert_id = str(event.result.get("alertId", ""))
        document_id = str(event.result.get("documentId", ""))
        recipient = event.result.get("recipient")
        tx_hash = event.transaction_id

        with transaction() as cur:
            cur.execute(
                """
                SELECT id FROM staged_notices
                WHERE transaction_hash = %s AND alert_id = %s AND status = 'confirmed'
                LIMIT 1
                """,
                (tx_hash, alert_id),
            )
            already = cur.fetchone()
            if already:
                return already["id"]

            cur.execute(
                """
                UPDATE staged_notices
                SET
                    alert_id = %s,
                    document_id = %s,
                    block_number = %s,
                    status = 'confirmed',
                    confirmed_at = NOW()
                WHERE id = (
                    SELECT id FROM staged_notices
                    WHERE transaction_hash = %s AND recipient_address = %s
                    AND status IN ('pending', 'submitted')
                    ORDER BY created_at ASC
                    LIMIT 1
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING id
                """,
                (alert_id, document_id, event.block_number, tx_hash, recipient),
            )
            row = cur.fetchone()
            match = "transaction_hash"

            if row is None:
                # Client never reported its tx hash: newest pending row for
                # this recipient inside the match window.
                cur.execute(
                    """
                    UPDATE staged_notices
                    SET
                        alert_id = %s,
                        document_id = %s,
                        transaction_hash = %s,
                        block_number = %s,
                        status = 'confirmed',
                        confirmed_at = NOW()
                    WHERE id = (
                        SELECT id FROM staged_notices
                        WHERE recipient_address = %s
                        AND status = 'pending'
                        AND transaction_hash IS NULL
                        AND created_at >= NOW() - (%s * INTERVAL '1 minute')
                        ORDER BY created_at DESC
                        LIMIT 1
                        FOR UPDATE SKIP LOCKED
                    )
                    RETURNING id
                    """,
                    (
                        alert_id,
                        document_id,
                        tx_hash,
                        event.block_number,
                        recipient,
                        config.STAGING_MATCH_WINDOW_MINUTES,
                    ),
                )
                row = cur.fetchone()
                match = "recipient_window"

            cur.execute(
                """
                UPDATE served_notices
                SET
                    alert_id = %s,
                    document_id = %s,
                    status = 'delivered',
                    updated_at = NOW()
                WHERE recipient_address = %s
                AND transaction_hash = %s
                """,
                (alert_id, document_id, recipient, tx_hash),
            )

            if row is None:
                # Keep the token ids so a later LegalNoticeCreated row can use them.
                cur.execute(
                    """
                    INSERT INTO transaction_hashes (
                        tx_hash,
                        recipient_address,
                        alert_id,
                        document_id
                    ) VALUES (%s, %s, %s, %s)
                    ON CONFLICT (tx_hash, recipient_address) DO UPDATE
                    SET
                        alert_id = COALESCE(transaction_hashes.alert_id, EXCLUDED.alert_id),
                        document_id = COALESCE(transaction_hashes.document_id, EXCLUDED.document_id)
                    """,
                    (tx_hash, recipient, alert_id, document_id),
                )

        if row is None:
            logger.warning(
                "notice_served_without_staging_row",
                alert_id=alert_id,
                document_id=document_id,
                recipient=recipient,
                tx_hash=tx_hash,
            )
            return None
        logger.info(
            "notice_confirmed",
            staging_id=row["id"],
            alert_id=alert_id,
            document_id=document_id,
            tx_hash=tx_hash,
            match=match,
        )
        return row["id"]

    def process_legal_notice_created_event(self, event: ContractEvent) -> str:
        """
        Upsert the served_notices row for a LegalNoticeCreated event.

        Returns "staged" when the row was built from a confirmed staging
        record and "chain" when only on-chain data was available.
        """
        notice_id = str(event.result.get("noticeId", ""))
        server = event.result.get("server")
        recipient = event.result.get("recipient")
        blockchain_ts = _utc_from_epoch(event.result.get("timestamp"))
        tx_hash = event.transaction_id

        with transaction() as cur:
            cur.execute(
                """
                SELECT id, alert_id, document_id, issuing_agency, notice_type, case_number
                FROM staged_notices
                WHERE recipient_address = %s
                AND server_address = %s
                AND status = 'confirmed'
                AND transaction_hash = %s
                AND (notice_id IS NULL OR notice_id = %s)
                ORDER BY id ASC
                LIMIT 1
                """,
                (recipient, server, tx_hash, notice_id),
            )
            staged = cur.fetchone()

            if staged:
                cur.execute(
                    """
                    INSERT INTO served_notices (
                        notice_id,
                        alert_id,
                        document_id,
                        server_address,
                        recipient_address,
                        issuing_agency,
                        notice_type,
                        case_number,
                        transaction_hash,
                        block_number,
                        status,
                        source,
                        created_at,
                        blockchain_timestamp
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, 'delivered', 'staged', NOW(), %s)
                    ON CONFLICT (notice_id) DO UPDATE
                    SET
                        alert_id = EXCLUDED.alert_id,
                        document_id = EXCLUDED.document_id,
                        issuing_agency = EXCLUDED.issuing_agency,
                        notice_type = EXCLUDED.notice_type,
                        case_number = EXCLUDED.case_number,
                        source = 'staged',
                        blockchain_timestamp = EXCLUDED.blockchain_timestamp,
                        updated_at = NOW()
                    """,
                    (
                        notice_id,
                        staged["alert_id"],
                        staged["document_id"],
                        server,
                        recipient,
                        staged["issuing_agency"],
                        staged["notice_type"],
                        staged["case_number"],
                        tx_hash,
                        event.block_number,
                        blockchain_ts,
                    ),
                )
                cur.execute(
                    "UPDATE staged_notices SET notice_id = %s WHERE id = %s",
                    (notice_id, staged["id"]),
                )
                cur.execute(
                    """
                    INSERT INTO transaction_hashes (
                        tx_hash,
                        case_number,
                        recipient_address,
                        alert_id,
                        document_id
                    ) VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (tx_hash, recipient_address) DO UPDATE
                    SET
                        case_number = EXCLUDED.case_number,
                        alert_id = EXCLUDED.alert_id,
                        document_id = EXCLUDED.document_id
                    """,
                    (tx_hash, staged["case_number"], recipient, staged["alert_id"], staged["document_id"]),
                )
                source = "staged"
            else:
                cur.execute(
                    """
                    SELECT alert_id, document_id
                    FROM transaction_hashes
                    WHERE tx_hash = %s AND recipient_address = %s
                    """,
                    (tx_hash, recipient),
                )
                known = cur.fetchone() or {}
                cur.execute(
                    """
                    INSERT INTO served_notices (
                        notice_id,
                        alert_id,
                        document_id,
                        server_address,
                        recipient_address,
                        transaction_hash,
                        block_number,
                        status,
                        source,
                        created_at,
                        blockchain_timestamp
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, 'delivered', 'chain', NOW(), %s)
                    ON CONFLICT (notice_id) DO UPDATE
                    SET
                        alert_id = COALESCE(served_notices.alert_id, EXCLUDED.alert_id),
                        document_id = COALESCE(served_notices.document_id, EXCLUDED.document_id),
                        transaction_hash = COALESCE(served_notices.transaction_hash, EXCLUDED.transaction_hash),
                        block_number = COALESCE(served_notices.block_number, EXCLUDED.block_number),
                        blockchain_timestamp = EXCLUDED.blockchain_timestamp,
                        updated_at = NOW()
                    """,
                    (
                        notice_id,
                        known.get("alert_id"),
                        known.get("document_id"),
                        server,
                        recipient,
                        tx_hash,
                        event.block_number,
                        blockchain_ts,
                    ),
                )
                source = "chain"

        if source == "chain":
            logger.warning(
                "legal_notice_without_staging_row",
                notice_id=notice_id,
                server=server,
                recipient=recipient,
                tx_hash=tx_hash,
            )
        else:
            logger.info("notice_served_recorded", notice_id=notice_id, staging_id=staged["id"], tx_hash=tx_hash)
        return source

    def _process_range(self, from_block: int, to_block: int) -> SyncSummary:
        summary = SyncSummary(from_block=from_block, to_block=to_block)

        # NoticeServed first: LegalNoticeCreated looks up rows it confirms.
        served_events = self.client.get_contract_events(NOTICE_SERVED, from_block, to_block)
        for event in served_events:
            summary.notices_served += 1
            try:
                staging_id = self.process_notice_served_event(event)
            except Exception:
                summary.failed += 1
                logger.exception("event_processing_failed", event_name=event.event_name, tx_hash=event.transaction_id)
                continue
            if staging_id is None:
                summary.unmatched += 1
            else:
                summary.confirmed += 1

        created_events = self.client.get_contract_events(LEGAL_NOTICE_CREATED, from_block, to_block)
        for event in created_events:
            summary.notices_created += 1
            try:
                source = self.process_legal_notice_created_event(event)
            except Exception:
                summary.failed += 1
                logger.exception("event_processing_failed", event_name=event.event_name, tx_hash=event.transaction_id)
                continue
            if source == "chain":
                summary.orphaned += 1
        return summary

    def process_recent_events(self) -> SyncSummary | None:
        if not self.enabled:
            return None
        with self._lock:
            head = self.client.get_current_block_number()
            # The events index trails the node; stay behind the head.
            safe_block = head - self.confirmation_blocks
            if safe_block <= self.last_processed_block:
                return None
            summary = self._process_range(self.last_processed_block + 1, safe_block)
            with transaction() as cur:
                self._save_last_processed_block(cur, safe_block)
            self.last_processed_block = safe_block
        if summary.notices_served or summary.notices_created:
            logger.info("blockchain_events_processed", **summary.as_dict())
        return summary

    def sync_historical_events(self, from_block: int, to_block: int) -> SyncSummary:
        if self.client is None:
            raise RuntimeError("Blockchain sync is not configured")
        if from_block < 0 or to_block < from_block:
            raise ValueError("from_block must be >= 0 and <= to_block")
        logger.info("historical_sync_started", from_block=from_block, to_block=to_block)
        with self._lock:
            summary = self._process_range(from_block, to_block)
        logger.info("historical_sync_complete", **summary.as_dict())
        return summary

    # ------------------------------------------------------------------
    # Polling loop
    # ------------------------------------------------------------------

    def _tick(self) -> None:
        try:
            self.process_recent_events()
        except Exception:
            logger.exception("blockchain_poll_failed", last_processed_block=self.last_processed_block)
        try:
            self.expire_stale_notices()
        except Exception:
            logger.exception("staging_expiry_failed")

    def _poll_loop(self) -> None:
        while not self._stop_event.wait(self.poll_interval):
            self._tick()

    def start_event_listeners(self) -> bool:
        if not self.enabled:
            return False
        if self._thread and self._thread.is_alive():
            return False
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._poll_loop, name="blockchain-sync", daemon=True)
        self._thread.start()
        logger.info("blockchain_listener_started", interval_seconds=self.poll_interval)
        return True

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def sync_status(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "running": self.is_running,
            "contract": self.client.contract_address if self.client else None,
            "last_processed_block": self.last_processed_block,
            "confirmation_blocks": self.confirmation_blocks,
            "error": self.init_error,
        }


def create_sync_service() -> BlockchainSyncService:
    client: TronGridClient | None = None
    init_error: str | None = None
    if not config.SYNC_ENABLED:
        init_error = "SYNC_ENABLED is off"
    else:
        try:
            client = TronGridClient()
        except Exception as exc:  # noqa: BLE001
            init_error = str(exc)
    service = BlockchainSyncService(client=client)
    service.init_error = init_error
    return service
