"""Initial judicial-core schema.

Creates every jc_ table. The audit table is created here too so a single
database deployment works out of the box; a separate audit database runs the
same revision.

Revision ID: 0001
Revises:
Create Date: 2026-10-17
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "jc_subjects",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("role", sa.String(30), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("judicial_unit", sa.String(255), nullable=True),
        sa.Column("subject_matter", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, comment="ACTIVE | SUSPENDED | INACTIVE"),
        *_timestamps(),
    )
    op.create_index("ix_jc_subjects_role", "jc_subjects", ["role"])

    op.create_table(
        "jc_cases",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("case_number", sa.String(50), nullable=False, unique=True),
        sa.Column("assigned_judge_id", sa.Uuid(), sa.ForeignKey("jc_subjects.id"), nullable=False),
        sa.Column("assigned_judge_pseudonym", sa.String(20), nullable=True),
        sa.Column("created_by_clerk_id", sa.Uuid(), sa.ForeignKey("jc_subjects.id"), nullable=True),
        sa.Column(
            "procedural_state",
            sa.String(20),
            nullable=False,
            comment="OPENED | IN_PROGRESS | RESOLVED | ARCHIVED | SUSPENDED",
        ),
        sa.Column("judicial_unit", sa.String(255), nullable=False),
        sa.Column("subject_matter", sa.String(100), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_jc_cases_assigned_judge_id", "jc_cases", ["assigned_judge_id"])
    op.create_index("ix_jc_cases_created_by_clerk_id", "jc_cases", ["created_by_clerk_id"])

    op.create_table(
        "jc_documents",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("case_id", sa.Uuid(), sa.ForeignKey("jc_cases.id"), nullable=False),
        sa.Column(
            "bound_decision_id", sa.Uuid(), nullable=False, unique=True, comment="Decision this artifact seals"
        ),
        sa.Column("document_type", sa.String(30), nullable=False),
        sa.Column("path", sa.String(1000), nullable=False),
        sa.Column("content_hash", sa.String(64), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("created_by_id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_jc_documents_case_id", "jc_documents", ["case_id"])

    op.create_table(
        "jc_decisions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("case_id", sa.Uuid(), sa.ForeignKey("jc_cases.id"), nullable=False),
        sa.Column("author_judge_id", sa.Uuid(), sa.ForeignKey("jc_subjects.id"), nullable=False),
        sa.Column("author_pseudonym", sa.String(20), nullable=False),
        sa.Column("decision_type", sa.String(30), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("draft_content", sa.Text(), nullable=False),
        sa.Column("state", sa.String(20), nullable=False, comment="DRAFT | READY_TO_SIGN | SIGNED | VOIDED"),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("document_id", sa.Uuid(), sa.ForeignKey("jc_documents.id"), nullable=True),
        sa.Column("artifact_path", sa.String(1000), nullable=True),
        sa.Column("content_hash", sa.String(64), nullable=True),
        sa.Column("pre_signature_hash", sa.String(64), nullable=True),
        sa.Column("signer_pseudonym", sa.String(20), nullable=True),
        sa.Column("signature_algorithm", sa.String(50), nullable=True),
        sa.Column("certificate_serial", sa.String(100), nullable=True),
        sa.Column("signature_b64", sa.Text(), nullable=True),
        sa.Column("signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("void_reason", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_jc_decisions_case_id", "jc_decisions", ["case_id"])
    op.create_index("ix_jc_decisions_author_judge_id", "jc_decisions", ["author_judge_id"])
    op.create_index("ix_jc_decisions_state", "jc_decisions", ["state"])

    op.create_table(
        "jc_decision_history",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("decision_id", sa.Uuid(), nullable=False),
        sa.Column("previous_version", sa.Integer(), nullable=False),
        sa.Column("previous_title", sa.String(500), nullable=False),
        sa.Column("previous_content", sa.Text(), nullable=False),
        sa.Column("previous_state", sa.String(20), nullable=False),
        sa.Column("modified_by_id", sa.Uuid(), nullable=False),
        sa.Column("change_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_jc_decision_history_decision_id", "jc_decision_history", ["decision_id"])

    op.create_table(
        "jc_case_timeline",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("case_id", sa.Uuid(), sa.ForeignKey("jc_cases.id"), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("reference_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_jc_case_timeline_case_id", "jc_case_timeline", ["case_id"])

    op.create_table(
        "jc_pseudonym_map",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("real_subject_id", sa.Uuid(), nullable=False, unique=True),
        sa.Column("public_code", sa.String(20), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "jc_audit_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("sequence", sa.Integer(), nullable=False, unique=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actor_id", sa.Uuid(), nullable=True),
        sa.Column("actor_role", sa.String(30), nullable=True),
        sa.Column("event_type", sa.String(60), nullable=False),
        sa.Column("severity", sa.String(10), nullable=False),
        sa.Column("module", sa.String(60), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("details", sa.JSON().with_variant(postgresql.JSONB(), "postgresql"), nullable=False),
        sa.Column("case_reference", sa.String(50), nullable=True),
        sa.Column("source_ip", sa.String(64), nullable=True),
        sa.Column("instance_id", sa.String(255), nullable=False),
        sa.Column("previous_hash", sa.String(64), nullable=True),
        sa.Column("hash", sa.String(64), nullable=False),
    )
    op.create_index("ix_jc_audit_events_timestamp", "jc_audit_events", ["timestamp"])
    op.create_index("ix_jc_audit_events_actor_id", "jc_audit_events", ["actor_id"])
    op.create_index("ix_jc_audit_events_event_type", "jc_audit_events", ["event_type"])
    op.create_index("ix_jc_audit_events_severity", "jc_audit_events", ["severity"])
    op.create_index("ix_jc_audit_events_case_reference", "jc_audit_events", ["case_reference"])


def downgrade() -> None:
    op.drop_table("jc_audit_events")
    op.drop_table("jc_pseudonym_map")
    op.drop_table("jc_case_timeline")
    op.drop_table("jc_decision_history")
    op.drop_table("jc_decisions")
    op.drop_table("jc_documents")
    op.drop_table("jc_cases")
    op.drop_table("jc_subjects")
