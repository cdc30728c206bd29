"""Database-level immutability for signed and append-only records.

Application code never updates or deletes audit events, decision history,
documents or pseudonym mappings; these triggers make the database refuse it
too. Decisions are refused once they reach SIGNED or VOIDED.

PostgreSQL only. On other dialects this revision is a no-op.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-17
"""

from alembic import op

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None

APPEND_ONLY_TABLES = (
    "jc_audit_events",
    "jc_decision_history",
    "jc_documents",
    "jc_pseudonym_map",
)


def _is_postgresql() -> bool:
    return op.get_bind().dialect.name == "postgresql"


def upgrade() -> None:
    if not _is_postgresql():
        return

    op.execute("""
        CREATE OR REPLACE FUNCTION jc_prevent_modification()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION 'Table % is append-only: % is not allowed',
                TG_TABLE_NAME, TG_OP
                USING ERRCODE = 'restrict_violation';
        END;
        $$ LANGUAGE plpgsql;
    """)

    for table in APPEND_ONLY_TABLES:
        op.execute(f"""
            CREATE TRIGGER {table}_immutable
            BEFORE UPDATE OR DELETE ON {table}
            FOR EACH ROW
            EXECUTE FUNCTION jc_prevent_modification();
        """)
        op.execute(f"COMMENT ON TABLE {table} IS 'Append-only. UPDATE and DELETE are refused by trigger.'")

    op.execute("""
        CREATE OR REPLACE FUNCTION jc_prevent_sealed_decision_modification()
        RETURNS TRIGGER AS $$
        BEGIN
            IF OLD.state IN ('SIGNED', 'VOIDED') THEN
                RAISE EXCEPTION 'Decision % is % and cannot be modified',
                    OLD.id, OLD.state
                    USING ERRCODE = 'restrict_violation';
            END IF;
            IF TG_OP = 'DELETE' THEN
                RETURN OLD;
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER jc_decisions_sealed
        BEFORE UPDATE OR DELETE ON jc_decisions
        FOR EACH ROW
        EXECUTE FUNCTION jc_prevent_sealed_decision_modification();
    """)


def downgrade() -> None:
    if not _is_postgresql():
        return

    op.execute("DROP TRIGGER IF EXISTS jc_decisions_sealed ON jc_decisions")
    op.execute("DROP FUNCTION IF EXISTS jc_prevent_sealed_decision_modification()")
    for table in APPEND_ONLY_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS {table}_immutable ON {table}")
        op.execute(f"COMMENT ON TABLE {table} IS NULL")
    op.execute("DROP FUNCTION IF EXISTS jc_prevent_modification()")
