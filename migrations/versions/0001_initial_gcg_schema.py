"""initial_gcg_schema

Assessments, the four-level hierarchy, responses, revision requests, PIC
assignments, AOIs, notifications and the e-mail log.

Revision ID: 0001_initial_gcg_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0001_initial_gcg_schema"
down_revision = None
branch_labels = None
depends_on = None


def _node_columns():
    """Columns shared by the four hierarchy tables."""
    return [
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("assessment_id", sa.String(length=36), nullable=False),
        sa.Column("client_id", sa.String(length=100), nullable=True, comment="Caller-supplied id at build time"),
        sa.Column("kode", sa.String(length=200), nullable=False),
        sa.Column("nama", sa.String(length=500), nullable=False),
        sa.Column("deskripsi", sa.Text(), nullable=True),
        sa.Column("sort", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["assessment_id"], ["assessments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    ]


def _indexes(table, *columns):
    for column in columns:
        op.create_index(f"ix_{table}_{column}", table, [column])


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "assessments" not in existing_tables:
        op.create_table(
            "assessments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("assessment_date", sa.Date(), nullable=True),
            sa.Column("assessor_id", sa.String(length=36), nullable=True, comment="Named assessor / owner"),
            sa.Column("created_by", sa.String(length=36), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="draft"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        _indexes("assessments", "assessor_id", "created_by", "status")

    if "assessment_kkas" not in existing_tables:
        op.create_table(
            "assessment_kkas",
            *_node_columns(),
            sa.Column("weight", sa.Float(), nullable=False, server_default="1.0"),
        )
        _indexes("assessment_kkas", "assessment_id")

    if "assessment_aspects" not in existing_tables:
        op.create_table(
            "assessment_aspects",
            *_node_columns(),
            sa.Column("kka_id", sa.String(length=36), nullable=False),
            sa.Column("weight", sa.Float(), nullable=False, server_default="1.0"),
            sa.ForeignKeyConstraint(["kka_id"], ["assessment_kkas.id"], ondelete="CASCADE"),
        )
        _indexes("assessment_aspects", "assessment_id", "kka_id")

    if "assessment_parameters" not in existing_tables:
        op.create_table(
            "assessment_parameters",
            *_node_columns(),
            sa.Column("aspect_id", sa.String(length=36), nullable=False),
            sa.Column("weight", sa.Float(), nullable=False, server_default="1.0"),
            sa.ForeignKeyConstraint(["aspect_id"], ["assessment_aspects.id"], ondelete="CASCADE"),
        )
        _indexes("assessment_parameters", "assessment_id", "aspect_id")

    if "assessment_factors" not in existing_tables:
        op.create_table(
            "assessment_factors",
            *_node_columns(),
            sa.Column("parameter_id", sa.String(length=36), nullable=False),
            sa.Column("max_score", sa.Float(), nullable=False, server_default="1.0"),
            sa.ForeignKeyConstraint(["parameter_id"], ["assessment_parameters.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("assessment_id", "kode", name="uq_factor_assessment_kode"),
        )
        _indexes("assessment_factors", "assessment_id", "parameter_id")

    if "responses" not in existing_tables:
        op.create_table(
            "responses",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("assessment_id", sa.String(length=36), nullable=False),
            sa.Column("factor_id", sa.String(length=36), nullable=False),
            sa.Column("score", sa.Float(), nullable=False, server_default="0"),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("created_by", sa.String(length=36), nullable=True),
            sa.Column("updated_by", sa.String(length=36), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["assessment_id"], ["assessments.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["factor_id"], ["assessment_factors.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("assessment_id", "factor_id", name="uq_response_assessment_factor"),
        )
        _indexes("responses", "assessment_id", "factor_id")

    if "assessment_revisions" not in existing_tables:
        op.create_table(
            "assessment_revisions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("assessment_id", sa.String(length=36), nullable=False),
            sa.Column("requested_by", sa.String(length=36), nullable=False),
            sa.Column("note", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["assessment_id"], ["assessments.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        _indexes("assessment_revisions", "assessment_id")

    if "pic_map" not in existing_tables:
        op.create_table(
            "pic_map",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("assessment_id", sa.String(length=36), nullable=False),
            sa.Column("target_type", sa.String(length=20), nullable=False, comment="factor | parameter | aoi"),
            sa.Column("target_id", sa.String(length=36), nullable=False),
            sa.Column("unit_id", sa.String(length=36), nullable=True, comment="Responsible organizational unit"),
            sa.Column("user_id", sa.String(length=36), nullable=True, comment="Directly assigned user"),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="assigned"),
            sa.Column("assigned_by", sa.String(length=36), nullable=True),
            sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["assessment_id"], ["assessments.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("assessment_id", "target_type", "target_id", name="uq_pic_map_assessment_target"),
        )
        _indexes("pic_map", "assessment_id", "target_id", "unit_id", "user_id")

    if "aois" not in existing_tables:
        op.create_table(
            "aois",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("assessment_id", sa.String(length=36), nullable=False),
            sa.Column("kka_id", sa.String(length=36), nullable=True,
                      comment="Set for generated items; one generated AOI per KKA"),
            sa.Column("target_type", sa.String(length=20), nullable=False, comment="kka | parameter | factor"),
            sa.Column("target_id", sa.String(length=36), nullable=False),
            sa.Column("nama", sa.String(length=300), nullable=True),
            sa.Column("recommendation", sa.Text(), nullable=False),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="medium"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="open"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_by", sa.String(length=36), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["assessment_id"], ["assessments.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["kka_id"], ["assessment_kkas.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("assessment_id", "kka_id", name="uq_aoi_assessment_kka"),
        )
        _indexes("aois", "assessment_id", "kka_id", "target_id", "status")

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("assessment_id", sa.String(length=36), nullable=True),
            sa.Column("recipient", sa.String(length=150), nullable=False, comment="User id"),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["assessment_id"], ["assessments.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        _indexes("notifications", "assessment_id", "recipient")

    if "email_logs" not in existing_tables:
        op.create_table(
            "email_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient_email", sa.String(length=255), nullable=False),
            sa.Column("subject", sa.String(length=500), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=True, comment="queued, sent, failed"),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("assessment_id", sa.String(length=36), nullable=True),
            sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        _indexes("email_logs", "recipient_email", "assessment_id")


def downgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    # children first
    for table in (
        "email_logs", "notifications", "aois", "pic_map", "assessment_revisions", "responses",
        "assessment_factors", "assessment_parameters", "assessment_aspects", "assessment_kkas",
        "assessments",
    ):
        if table in existing_tables:
            op.drop_table(table)
