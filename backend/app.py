from typing import Any

import psycopg2
from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from werkzeug.security import check_password_hash

import config
from blockchain_sync import (
    BatchStagingError,
    NoticeValidationError,
    StagingNotFoundError,
    create_sync_service,
)
from db import serialize_row, transaction
from email_service import send_registration_notice, send_status_change_notice
from logging_config import configure_logging, get_logger
from schema import ensure_schema
from session_utils import create_session_token, verify_session_token
from tron_client import TronApiError, is_valid_tron_address

configure_logging(config.LOG_ENVIRONMENT)
logger = get_logger(__name__)

app = Flask(__name__)
CORS(app, origins=config.CORS_ORIGINS)

SYNC_SERVICE = create_sync_service()

PROCESS_SERVER_STATUSES = ("pending", "approved", "rejected", "suspended")
RECENT_NOTICES_DEFAULT_LIMIT = 10
RECENT_NOTICES_MAX_LIMIT = 100


def _extract_session() -> tuple[dict[str, Any] | None, tuple[dict[str, str], int] | None]:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None, ({"error": "Missing bearer session token"}, 401)
    token = auth_header.split(" ", 1)[1].strip()
    try:
        payload = verify_session_token(token)
        return payload, None
    except ValueError as exc:
        return None, ({"error": str(exc)}, 401)


def _require_admin() -> tuple[dict[str, Any] | None, tuple[dict[str, str], int] | None]:
    session, err = _extract_session()
    if err:
        return None, err
    if session.get("role") != "admin":
        return None, ({"error": "Admin access required"}, 403)
    return session, None


def _clamp_limit(raw: Any, default: int, maximum: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return max(1, min(value, maximum))


def _db_error(event: str, exc: psycopg2.Error, **context: Any):
    logger.error(event, error=str(exc), **context)
    return jsonify({"success": False, "error": "Database error"}), 500


@app.errorhandler(Exception)
def handle_unexpected_error(exc: Exception):
    if isinstance(exc, HTTPException):
        return jsonify({"success": False, "error": exc.description}), exc.code
    logger.exception("unhandled_request_error", path=request.path, method=request.method)
    return jsonify({"success": False, "error": "Internal server error"}), 500


@app.route("/api/notices/stage", methods=["POST"])
def stage_notice():
    data = request.json or {}
    try:
        staged = SYNC_SERVICE.stage_notice(data)
    except NoticeValidationError as exc:
        return jsonify({"success": False, "error": str(exc), "errors": exc.errors}), 400
    except psycopg2.Error as exc:
        return _db_error("stage_notice_failed", exc)
    return jsonify(
        {
            "success": True,
            "stagingId": staged.staging_id,
            "contractParams": staged.contract_params,
            "message": "Notice staged. Submit the transaction with these parameters.",
        }
    )


@app.route("/api/notices/stage/<int:staging_id>/status", methods=["GET"])
def staged_notice_status(staging_id: int):
    try:
        status = SYNC_SERVICE.get_notice_status(staging_id)
    except psycopg2.Error as exc:
        return _db_error("notice_status_failed", exc, staging_id=staging_id)
    return jsonify({"success": True, **status})


@app.route("/api/notices/confirm", methods=["POST"])
def confirm_notice():
    data = request.json or {}
    staging_id = data.get("staging_id")
    tx_hash = data.get("transaction_hash")
    tx_hash = tx_hash.strip() if isinstance(tx_hash, str) else ""
    if staging_id is None or not tx_hash:
        return jsonify({"success": False, "error": "staging_id and transaction_hash are required"}), 400
    try:
        staging_id = int(staging_id)
    except (TypeError, ValueError):
        return jsonify({"success": False, "error": "staging_id must be an integer"}), 400

    try:
        row = SYNC_SERVICE.confirm_submission(
            staging_id,
            tx_hash,
            alert_id=data.get("alert_id"),
            document_id=data.get("document_id"),
        )
    except StagingNotFoundError as exc:
        return jsonify({"success": False, "error": str(exc)}), 404
    except psycopg2.Error as exc:
        return _db_error("confirm_notice_failed", exc, staging_id=staging_id)
    return jsonify(
        {
            "success": True,
            "stagingId": row["id"],
            "status": row["status"],
            "transactionHash": row["transaction_hash"],
            "message": "Transaction recorded; awaiting on-chain confirmation.",
        }
    )


@app.route("/api/notices/validate-agency", methods=["GET"])
def validate_agency():
    server_address = (request.args.get("server_address") or "").strip()
    if not server_address:
        return jsonify({"success": False, "error": "server_address is required"}), 400

    try:
        with transaction() as cur:
            cur.execute(
                "SELECT agency, name, server_id, status FROM process_servers WHERE wallet_address = %s",
                (server_address,),
            )
            server = cur.fetchone()
    except psycopg2.Error as exc:
        return _db_error("validate_agency_failed", exc, server=server_address)

    if not server:
        return jsonify({"success": False, "registered": False, "error": "Process server not registered"})
    if server["status"] != "approved":
        return jsonify(
            {
                "success": False,
                "registered": True,
                "approved": False,
                "error": "Process server not approved",
                "status": server["status"],
            }
        )
    return jsonify(
        {
            "success": True,
            "registered": True,
            "approved": True,
            "agency": server["agency"],
            "name": server["name"],
            "server_id": server["server_id"],
        }
    )


@app.route("/api/notices/batch/stage", methods=["POST"])
def stage_notice_batch():
    data = request.json or {}
    try:
        batch = SYNC_SERVICE.stage_batch(data.get("notices"), data.get("server_address"))
    except NoticeValidationError as exc:
        return jsonify({"success": False, "error": str(exc), "errors": exc.errors}), 400
    except BatchStagingError as exc:
        return jsonify({"success": False, "error": str(exc)}), 400
    except psycopg2.Error as exc:
        return _db_error("stage_batch_failed", exc)
    count = len(batch["staging_ids"])
    return jsonify(
        {
            "success": True,
            "stagingIds": batch["staging_ids"],
            "batchId": batch["batch_id"],
            "contractParams": batch["contract_params"],
            "totalFee": batch["total_fee"],
            "message": f"{count} notices staged for batch submission.",
        }
    )


@app.route("/api/notices/recent", methods=["GET"])
def recent_notices():
    server_address = (request.args.get("server_address") or "").strip()
    recipient_address = (request.args.get("recipient_address") or "").strip()
    if not server_address and not recipient_address:
        return jsonify({"success": False, "error": "server_address or recipient_address is required"}), 400
    limit = _clamp_limit(request.args.get("limit"), RECENT_NOTICES_DEFAULT_LIMIT, RECENT_NOTICES_MAX_LIMIT)

    if server_address:
        where, value = "sn.server_address = %s", server_address
    else:
        where, value = "sn.recipient_address = %s", recipient_address

    try:
        with transaction() as cur:
            cur.execute(
                f"""
                SELECT
                    sn.notice_id,
                    sn.alert_id,
                    sn.document_id,
                    sn.server_address,
                    sn.recipient_address,
                    sn.issuing_agency,
                    sn.notice_type,
                    sn.case_number,
                    sn.transaction_hash,
                    sn.block_number,
                    sn.status,
                    sn.source,
                    sn.created_at,
                    sn.blockchain_timestamp,
                    ps.agency AS server_agency,
                    ps.name AS server_name
                FROM served_notices sn
                LEFT JOIN process_servers ps ON ps.wallet_address = sn.server_address
                WHERE {where}
                ORDER BY sn.created_at DESC
                LIMIT %s
                """,
                (value, limit),
            )
            rows = cur.fetchall()
    except psycopg2.Error as exc:
        return _db_error("recent_notices_failed", exc)
    notices = [serialize_row(r) for r in rows]
    return jsonify({"success": True, "notices": notices, "count": len(notices)})


@app.route("/api/notices/<notice_id>/views", methods=["POST"])
def record_notice_view(notice_id: str):
    data = request.json or {}
    viewer = (data.get("viewer_address") or "").strip()
    view_type = (data.get("view_type") or "view").strip()
    if not viewer:
        return jsonify({"success": False, "error": "viewer_address is required"}), 400

    try:
        with transaction() as cur:
            cur.execute(
                "SELECT recipient_address, document_id FROM served_notices WHERE notice_id = %s",
                (notice_id,),
            )
            notice = cur.fetchone()
            if not notice:
                return jsonify({"success": False, "error": "Notice not found"}), 404
            if (notice["recipient_address"] or "").lower() != viewer.lower():
                return jsonify({"success": False, "error": "Only the recipient can view this notice"}), 403

            cur.execute(
                """
                INSERT INTO notice_views (
                    notice_id,
                    document_id,
                    viewer_address,
                    view_type,
                    viewed_at,
                    ip_address,
                    user_agent
                ) VALUES (%s, %s, %s, %s, NOW(), %s, %s)
                RETURNING id, viewed_at
                """,
                (
                    notice_id,
                    data.get("document_id") or notice["document_id"],
                    viewer,
                    view_type,
                    request.remote_addr,
                    request.headers.get("User-Agent", ""),
                ),
            )
            view = cur.fetchone()
    except psycopg2.Error as exc:
        return _db_error("record_view_failed", exc, notice_id=notice_id)

    logger.info("notice_viewed", notice_id=notice_id, viewer=viewer, view_type=view_type)
    return jsonify({"success": True, "viewId": view["id"], "viewedAt": serialize_row(view)["viewed_at"]})


@app.route("/api/notices/<notice_id>/views", methods=["GET"])
def list_notice_views(notice_id: str):
    try:
        with transaction() as cur:
            cur.execute(
                """
                SELECT id, document_id, viewer_address, view_type, viewed_at, ip_address
                FROM notice_views
                WHERE notice_id = %s
                ORDER BY viewed_at DESC
                """,
                (notice_id,),
            )
            rows = cur.fetchall()
    except psycopg2.Error as exc:
        return _db_error("list_views_failed", exc, notice_id=notice_id)

    counts: dict[str, int] = {}
    for row in rows:
        counts[row["view_type"]] = counts.get(row["view_type"], 0) + 1
    return jsonify(
        {
            "success": True,
            "views": [serialize_row(r) for r in rows],
            "totalViews": len(rows),
            "countsByType": counts,
        }
    )


@app.route("/api/process-servers", methods=["GET"])
def list_process_servers():
    status = (request.args.get("status") or "").strip().lower()
    if status and status not in PROCESS_SERVER_STATUSES:
        return jsonify({"success": False, "error": "Invalid status filter"}), 400

    query = """
        SELECT wallet_address, name, agency, email, phone, server_id, status,
               jurisdiction, license_number, created_at, updated_at
        FROM process_servers
    """
    params: tuple[Any, ...] = ()
    if status:
        query += " WHERE status = %s"
        params = (status,)
    query += " ORDER BY created_at DESC"

    try:
        with transaction() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
    except psycopg2.Error as exc:
        return _db_error("list_servers_failed", exc)
    return jsonify({"success": True, "servers": [serialize_row(r) for r in rows]})


@app.route("/api/process-servers/search", methods=["GET"])
def search_process_servers():
    q = (request.args.get("q") or "").strip()
    status = (request.args.get("status") or "").strip().lower()
    jurisdiction = (request.args.get("jurisdiction") or "").strip()
    if status and status not in PROCESS_SERVER_STATUSES:
        return jsonify({"success": False, "error": "Invalid status filter"}), 400

    clauses: list[str] = []
    params: list[Any] = []
    if q:
        clauses.append(
            """(
                LOWER(ps.name) LIKE LOWER(%s)
                OR LOWER(ps.agency) LIKE LOWER(%s)
                OR LOWER(ps.email) LIKE LOWER(%s)
                OR ps.wallet_address LIKE %s
                OR ps.server_id LIKE %s
            )"""
        )
        params.extend([f"%{q}%"] * 5)
    if status:
        clauses.append("ps.status = %s")
        params.append(status)
    if jurisdiction:
        clauses.append("ps.jurisdiction = %s")
        params.append(jurisdiction)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

    try:
        with transaction() as cur:
            cur.execute(
                f"""
                SELECT
                    ps.wallet_address,
                    ps.name,
                    ps.agency,
                    ps.email,
                    ps.server_id,
                    ps.status,
                    ps.jurisdiction,
                    ps.created_at,
                    COUNT(DISTINCT sn.notice_id) AS total_notices
                FROM process_servers ps
                LEFT JOIN served_notices sn ON sn.server_address = ps.wallet_address
                {where}
                GROUP BY ps.id
                ORDER BY ps.created_at DESC
                """,
                tuple(params),
            )
            rows = cur.fetchall()
    except psycopg2.Error as exc:
        return _db_error("search_servers_failed", exc)

    servers = []
    for row in rows:
        server = serialize_row(row)
        server["display_server_id"] = server.get("server_id") or "Pending"
        servers.append(server)
    return jsonify({"success": True, "servers": servers, "total": len(servers)})


@app.route("/api/process-servers/<wallet_address>", methods=["GET"])
def get_process_server(wallet_address: str):
    try:
        with transaction() as cur:
            cur.execute(
                """
                SELECT wallet_address, name, agency, email, phone, server_id, status,
                       jurisdiction, license_number, created_at, updated_at
                FROM process_servers
                WHERE wallet_address = %s
                """,
                (wallet_address,),
            )
            server = cur.fetchone()
            if not server:
                return jsonify({"success": False, "error": "Process server not found"}), 404

            cur.execute(
                """
                SELECT notice_id, recipient_address, notice_type, case_number,
                       transaction_hash, status, created_at
                FROM served_notices
                WHERE server_address = %s
                ORDER BY created_at DESC
                LIMIT 10
                """,
                (wallet_address,),
            )
            activity = cur.fetchall()

            cur.execute(
                """
                SELECT
                    COUNT(*) AS total_notices,
                    COUNT(DISTINCT recipient_address) AS unique_recipients,
                    MAX(created_at) AS last_served_at
                FROM served_notices
                WHERE server_address = %s
                """,
                (wallet_address,),
            )
            stats = cur.fetchone()
    except psycopg2.Error as exc:
        return _db_error("get_server_failed", exc, server=wallet_address)

    return jsonify(
        {
            "success": True,
            "server": serialize_row(server),
            "recentActivity": [serialize_row(r) for r in activity],
            "statistics": serialize_row(stats),
        }
    )


@app.route("/api/process-servers", methods=["POST"])
def register_process_server():
    data = request.json or {}
    wallet_address = str(data.get("wallet_address") or "").strip()
    if not wallet_address:
        return jsonify({"success": False, "error": "wallet_address is required"}), 400
    if not is_valid_tron_address(wallet_address):
        return jsonify({"success": False, "error": "Invalid TRON wallet address"}), 400

    try:
        with transaction() as cur:
            cur.execute(
                "SELECT agency, status FROM process_servers WHERE wallet_address = %s FOR UPDATE",
                (wallet_address,),
            )
            existing = cur.fetchone()
            # A changed agency flows into every later notice, so it needs re-approval.
            agency_changed = bool(existing and data.get("agency") and data.get("agency") != existing["agency"])
            cur.execute(
                """
                INSERT INTO process_servers (
                    wallet_address,
                    name,
                    agency,
                    email,
                    phone,
                    server_id,
                    jurisdiction,
                    license_number,
                    status,
                    created_at,
                    updated_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, 'pending', NOW(), NOW())
                ON CONFLICT (wallet_address) DO UPDATE
                SET
                    name = COALESCE(EXCLUDED.name, process_servers.name),
                    agency = COALESCE(EXCLUDED.agency, process_servers.agency),
                    email = COALESCE(EXCLUDED.email, process_servers.email),
                    phone = COALESCE(EXCLUDED.phone, process_servers.phone),
                    server_id = COALESCE(EXCLUDED.server_id, process_servers.server_id),
                    jurisdiction = COALESCE(EXCLUDED.jurisdiction, process_servers.jurisdiction),
                    license_number = COALESCE(EXCLUDED.license_number, process_servers.license_number),
                    status = COALESCE(%s, process_servers.status),
                    updated_at = NOW()
                RETURNING wallet_address, name, agency, email, phone, server_id, status,
                          jurisdiction, license_number, created_at, updated_at,
                          (xmax = 0) AS inserted
                """,
                (
                    wallet_address,
                    data.get("name"),
                    data.get("agency"),
                    data.get("email"),
                    data.get("phone"),
                    data.get("server_id"),
                    data.get("jurisdiction"),
                    data.get("license_number"),
                    "pending" if agency_changed else None,
                ),
            )
            server = dict(cur.fetchone())
    except psycopg2.Error as exc:
        return _db_error("register_server_failed", exc, server=wallet_address)

    inserted = bool(server.pop("inserted", False))
    if inserted:
        logger.info("process_server_registered", server=wallet_address, agency=server.get("agency"))
        send_registration_notice(server)
    elif agency_changed:
        logger.warning(
            "process_server_agency_changed",
            server=wallet_address,
            previous_agency=existing["agency"],
            agency=server.get("agency"),
        )
        send_registration_notice(server)
    else:
        logger.info("process_server_updated", server=wallet_address)
    return jsonify({"success": True, "created": inserted, "server": serialize_row(server)}), (201 if inserted else 200)


@app.route("/api/process-servers/<wallet_address>/status", methods=["PUT"])
def update_process_server_status(wallet_address: str):
    session, err = _require_admin()
    if err:
        return jsonify(err[0]), err[1]

    data = request.json or {}
    status = (data.get("status") or "").strip().lower()
    if status not in PROCESS_SERVER_STATUSES:
        return jsonify({"success": False, "error": f"status must be one of {', '.join(PROCESS_SERVER_STATUSES)}"}), 400

    try:
        with transaction() as cur:
            cur.execute(
                """
                UPDATE process_servers
                SET status = %s, notes = COALESCE(%s, notes), updated_at = NOW()
                WHERE wallet_address = %s
                RETURNING wallet_address, name, agency, email, status, updated_at
                """,
                (status, data.get("notes"), wallet_address),
            )
            server = cur.fetchone()
    except psycopg2.Error as exc:
        return _db_error("update_server_status_failed", exc, server=wallet_address)
    if not server:
        return jsonify({"success": False, "error": "Process server not found"}), 404

    logger.info("process_server_status_changed", server=wallet_address, status=status, admin=session.get("wallet"))
    send_status_change_notice(dict(server))
    return jsonify({"success": True, "server": serialize_row(server)})


@app.route("/api/transactions/batch", methods=["POST"])
def record_batch_transaction():
    data = request.json or {}
    tx_hash = (data.get("tx_hash") or "").strip()
    recipients = data.get("recipients")
    if not tx_hash:
        return jsonify({"success": False, "error": "tx_hash is required"}), 400
    if not isinstance(recipients, list) or not recipients:
        return jsonify({"success": False, "error": "recipients array required"}), 400
    if any(not isinstance(item, dict) or not item.get("recipient_address") for item in recipients):
        return jsonify({"success": False, "error": "Each recipient needs recipient_address"}), 400

    try:
        with transaction() as cur:
            for item in recipients:
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
                        case_number = COALESCE(EXCLUDED.case_number, transaction_hashes.case_number),
                        alert_id = COALESCE(EXCLUDED.alert_id, transaction_hashes.alert_id),
                        document_id = COALESCE(EXCLUDED.document_id, transaction_hashes.document_id)
                    """,
                    (
                        tx_hash,
                        data.get("case_number"),
                        item["recipient_address"],
                        str(item["alert_id"]) if item.get("alert_id") is not None else None,
                        str(item["document_id"]) if item.get("document_id") is not None else None,
                    ),
                )
    except psycopg2.Error as exc:
        return _db_error("record_batch_tx_failed", exc, tx_hash=tx_hash)

    logger.info("batch_transaction_recorded", tx_hash=tx_hash, recipients=len(recipients))
    return jsonify({"success": True, "txHash": tx_hash, "recorded": len(recipients)})


def _transactions_where(column_clause: str, params: tuple[Any, ...]):
    try:
        with transaction() as cur:
            cur.execute(
                f"""
                SELECT tx_hash, case_number, recipient_address, alert_id, document_id, created_at
                FROM transaction_hashes
                WHERE {column_clause}
                ORDER BY created_at DESC
                """,
                params,
            )
            rows = cur.fetchall()
    except psycopg2.Error as exc:
        return _db_error("lookup_transactions_failed", exc)
    return jsonify({"success": True, "transactions": [serialize_row(r) for r in rows]})


@app.route("/api/transactions/notice/<notice_id>", methods=["GET"])
def transactions_for_notice(notice_id: str):
    return _transactions_where("alert_id = %s OR document_id = %s", (notice_id, notice_id))


@app.route("/api/transactions/case/<case_number>", methods=["GET"])
def transactions_for_case(case_number: str):
    return _transactions_where("case_number = %s", (case_number,))


@app.route("/api/blockchain-sync/status", methods=["GET"])
def blockchain_sync_status():
    return jsonify({"success": True, **SYNC_SERVICE.sync_status()})


@app.route("/api/blockchain-sync/historical", methods=["POST"])
def blockchain_sync_historical():
    _, err = _require_admin()
    if err:
        return jsonify(err[0]), err[1]

    data = request.json or {}
    try:
        from_block = int(data.get("from_block"))
        to_block = int(data.get("to_block"))
    except (TypeError, ValueError):
        return jsonify({"success": False, "error": "from_block and to_block must be integers"}), 400

    try:
        summary = SYNC_SERVICE.sync_historical_events(from_block, to_block)
    except ValueError as exc:
        return jsonify({"success": False, "error": str(exc)}), 400
    except TronApiError as exc:
        logger.error("historical_sync_failed", error=str(exc))
        return jsonify({"success": False, "error": str(exc)}), 502
    except RuntimeError as exc:
        return jsonify({"success": False, "error": str(exc)}), 503
    return jsonify({"success": True, **summary.as_dict()})


@app.route("/api/blockchain-sync/expire-stale", methods=["POST"])
def blockchain_sync_expire_stale():
    _, err = _require_admin()
    if err:
        return jsonify(err[0]), err[1]

    data = request.json or {}
    max_age = data.get("max_age_minutes")
    try:
        max_age = int(max_age) if max_age is not None else None
    except (TypeError, ValueError):
        return jsonify({"success": False, "error": "max_age_minutes must be an integer"}), 400

    try:
        expired = SYNC_SERVICE.expire_stale_notices(max_age)
    except psycopg2.Error as exc:
        return _db_error("expire_stale_failed", exc)
    return jsonify({"success": True, "expired": expired})


@app.route("/api/admin/login", methods=["POST"])
def admin_login():
    data = request.json or {}
    wallet_address = str(data.get("wallet_address") or "").strip()
    password = str(data.get("password", ""))
    if not wallet_address or not password:
        return jsonify({"error": "wallet_address and password are required"}), 400

    try:
        with transaction() as cur:
            cur.execute(
                "SELECT id, role, password_hash, is_active FROM admin_users WHERE wallet_address = %s",
                (wallet_address,),
            )
            admin = cur.fetchone()
            if not admin or not admin["is_active"]:
                return jsonify({"error": "Invalid credentials"}), 401
            if not check_password_hash(admin["password_hash"], password):
                logger.warning("admin_login_rejected", wallet=wallet_address)
                return jsonify({"error": "Invalid credentials"}), 401
            cur.execute("UPDATE admin_users SET last_login_at = NOW() WHERE id = %s", (admin["id"],))
    except psycopg2.Error as exc:
        return _db_error("admin_login_failed", exc)

    session_token = create_session_token(wallet_address, role=admin["role"])
    logger.info("admin_login", wallet=wallet_address)
    return jsonify(
        {
            "message": "Login successful",
            "session_token": session_token,
            "wallet_address": wallet_address,
            "role": admin["role"],
        }
    )


@app.route("/health")
def health():
    return jsonify(
        {
            "status": "ok",
            "blockchain_sync": "running" if SYNC_SERVICE.is_running else ("ready" if SYNC_SERVICE.enabled else "unavailable"),
            "blockchain_error": SYNC_SERVICE.init_error,
            "contract": SYNC_SERVICE.client.contract_address if SYNC_SERVICE.client else None,
        }
    )


if __name__ == "__main__":
    ensure_schema()
    if SYNC_SERVICE.initialize():
        SYNC_SERVICE.start_event_listeners()
    app.run(debug=True, use_reloader=False)
