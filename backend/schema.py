from werkzeug.security import generate_password_hash

import config
from db import get_connection, release_connection
from logging_config import get_logger

logger = get_logger(__name__)


def ensure_schema() -> None:
    conn = get_connection()
    cur = conn.cursor()
    try:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS process_servers (
                id SERIAL PRIMARY KEY,
                wallet_address TEXT UNIQUE NOT NULL,
                name TEXT,
                agency TEXT,
                email TEXT,
                phone TEXT,
                server_id TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                jurisdiction TEXT,
                license_number TEXT,
                notes TEXT,
                created_at TIMESTAMP DEFAULT NOW(),
                updated_at TIMESTAMP DEFAULT NOW()
            );

            CREATE TABLE IF NOT EXISTS staged_notices (
                id SERIAL PRIMARY KEY,
                batch_id TEXT,
                recipient_address TEXT NOT NULL,
                encrypted_ipfs TEXT NOT NULL,
                encryption_key TEXT NOT NULL,
                issuing_agency TEXT NOT NULL,
                notice_type TEXT NOT NULL,
                case_number TEXT DEFAULT '',
                case_details TEXT DEFAULT '',
                legal_rights TEXT DEFAULT '',
                sponsor_fees BOOLEAN DEFAULT FALSE,
                metadata_uri TEXT DEFAULT '',
                server_address TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                transaction_hash TEXT,
                alert_id TEXT,
                document_id TEXT,
                notice_id TEXT,
                block_number BIGINT,
                created_at TIMESTAMP DEFAULT NOW(),
                submitted_at TIMESTAMP,
                confirmed_at TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS served_notices (
                id SERIAL PRIMARY KEY,
                notice_id TEXT UNIQUE NOT NULL,
                alert_id TEXT,
                document_id TEXT,
                server_address TEXT,
                recipient_address TEXT,
                issuing_agency TEXT,
                notice_type TEXT,
                case_number TEXT,
                transaction_hash TEXT,
                block_number BIGINT,
                status TEXT NOT NULL DEFAULT 'delivered',
                source TEXT NOT NULL DEFAULT 'staged',
                blockchain_timestamp TIMESTAMP,
                created_at TIMESTAMP DEFAULT NOW(),
                updated_at TIMESTAMP DEFAULT NOW()
            );

            CREATE TABLE IF NOT EXISTS notice_views (
                id SERIAL PRIMARY KEY,
                notice_id TEXT NOT NULL,
                document_id TEXT,
                viewer_address TEXT NOT NULL,
                view_type TEXT NOT NULL,
                viewed_at TIMESTAMP NOT NULL DEFAULT NOW(),
                ip_address TEXT,
                user_agent TEXT
            );

            CREATE TABLE IF NOT EXISTS transaction_hashes (
                id SERIAL PRIMARY KEY,
                tx_hash TEXT NOT NULL,
                case_number TEXT,
                recipient_address TEXT,
                alert_id TEXT,
                document_id TEXT,
                created_at TIMESTAMP DEFAULT NOW(),
                UNIQUE (tx_hash, recipient_address)
            );

            CREATE TABLE IF NOT EXISTS sync_state (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT NOW()
            );

            CREATE TABLE IF NOT EXISTS admin_users (
                id SERIAL PRIMARY KEY,
                wallet_address TEXT UNIQUE NOT NULL,
                name TEXT,
                role TEXT NOT NULL DEFAULT 'admin',
                password_hash TEXT NOT NULL,
                is_active BOOLEAN DEFAULT TRUE,
                last_login_at TIMESTAMP,
                created_at TIMESTAMP DEFAULT NOW()
            );
            """
        )

        cur.execute("ALTER TABLE staged_notices ADD COLUMN IF NOT EXISTS batch_id TEXT;")
        cur.execute("ALTER TABLE staged_notices ADD COLUMN IF NOT EXISTS notice_id TEXT;")
        cur.execute("ALTER TABLE staged_notices ADD COLUMN IF NOT EXISTS submitted_at TIMESTAMP;")
        cur.execute("ALTER TABLE served_notices ADD COLUMN IF NOT EXISTS source TEXT NOT NULL DEFAULT 'staged';")
        cur.execute("ALTER TABLE served_notices ADD COLUMN IF NOT EXISTS blockchain_timestamp TIMESTAMP;")
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_staged_notices_recipient_status
            ON staged_notices (recipient_address, status, created_at);
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_staged_notices_tx
            ON staged_notices (transaction_hash)
            WHERE transaction_hash IS NOT NULL;
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_served_notices_server ON served_notices (server_address);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_served_notices_recipient ON served_notices (recipient_address);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_notice_views_notice ON notice_views (notice_id);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_tx_hashes_case ON transaction_hashes (case_number);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_tx_hashes_alert ON transaction_hashes (alert_id);")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_tx_hashes_document ON transaction_hashes (document_id);")

        if config.ADMIN_WALLET_ADDRESS and config.ADMIN_PASSWORD:
            cur.execute(
                """
                INSERT INTO admin_users (wallet_address, name, role, password_hash)
                VALUES (%s, 'Bootstrap admin', 'admin', %s)
                ON CONFLICT (wallet_address) DO NOTHING;
                """,
                (config.ADMIN_WALLET_ADDRESS, generate_password_hash(config.ADMIN_PASSWORD)),
            )
        conn.commit()
        logger.info("schema_ready")
    except Exception:
        conn.rollback()
        raise
    finally:
        cur.close()
        release_connection(conn)
