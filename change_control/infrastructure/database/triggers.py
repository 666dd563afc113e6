"""
Database-level append-only enforcement for audit_records.

The ORM listeners in immutability.py stop mutations that go through a Session. These
triggers also stop SQL that never reaches a listener. Violations surface as a DBAPI
error from the driver.
"""

import logging

from sqlalchemy import text

logger = logging.getLogger(__name__)

_SQLITE_INSTALL = (
    """
    CREATE TRIGGER IF NOT EXISTS trg_audit_records_no_update
    BEFORE UPDATE ON audit_records
    BEGIN
        SELECT RAISE(ABORT, 'audit_records is append-only: UPDATE not permitted');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_audit_records_no_delete
    BEFORE DELETE ON audit_records
    BEGIN
        SELECT RAISE(ABORT, 'audit_records is append-only: DELETE not permitted');
    END
    """,
)

_POSTGRES_INSTALL = (
    """
    CREATE OR REPLACE FUNCTION audit_records_reject_mutation() RETURNS trigger AS $$
    BEGIN
        RAISE EXCEPTION 'audit_records is append-only: % not permitted', TG_OP;
    END;
    $$ LANGUAGE plpgsql
    """,
    "DROP TRIGGER IF EXISTS trg_audit_records_immutable ON audit_records",
    """
    CREATE TRIGGER trg_audit_records_immutable
    BEFORE UPDATE OR DELETE ON audit_records
    FOR EACH ROW EXECUTE FUNCTION audit_records_reject_mutation()
    """,
)

_INSTALL = {"sqlite": _SQLITE_INSTALL, "postgresql": _POSTGRES_INSTALL}


def install_immutability_triggers(connection) -> None:
    """Install the audit_records triggers on a sync connection. Idempotent."""
    statements = _INSTALL.get(connection.dialect.name)
    if statements is None:
        logger.warning(
            "immutability_triggers_unsupported",
            extra={"dialect": connection.dialect.name},
        )
        return
    # One statement per execute; neither sqlite3 nor asyncpg prepared statements accept batches.
    for sql in statements:
        connection.execute(text(sql))
    logger.info("immutability_triggers_installed", extra={"dialect": connection.dialect.name})

