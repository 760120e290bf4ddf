from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_create_insignes"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "insignes",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=True, unique=True),
        sa.Column("client_email", sa.Text(), nullable=True),
        sa.Column("report_text", sa.Text(), nullable=True),
        sa.Column("motto_english", sa.Text(), nullable=True),
        sa.Column("motto_latin", sa.Text(), nullable=True),
    )
    op.create_index("ix_insignes_status", "insignes", ["status"])
    op.create_index("ix_insignes_created_at", "insignes", ["created_at"])

    op.create_table(
        "submission_lookup",
        sa.Column("submission_id", sa.Text(), primary_key=True),
        sa.Column("insigne_id", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_submission_lookup_insigne_id", "submission_lookup", ["insigne_id"])

    op.create_table(
        "answers",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("insigne_id", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    )
    op.create_index("ix_answers_insigne_id_created_at", "answers", ["insigne_id", "created_at"])

    op.create_table(
        "assets",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("insigne_id", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("asset_type", sa.Text(), nullable=True),
        sa.Column("storage_path", sa.Text(), nullable=True),
    )
    op.create_index("ix_assets_insigne_id", "assets", ["insigne_id"])


def downgrade() -> None:
    op.drop_index("ix_assets_insigne_id", table_name="assets")
    op.drop_table("assets")
    op.drop_index("ix_answers_insigne_id_created_at", table_name="answers")
    op.drop_table("answers")
    op.drop_index("ix_submission_lookup_insigne_id", table_name="submission_lookup")
    op.drop_table("submission_lookup")
    op.drop_index("ix_insignes_created_at", table_name="insignes")
    op.drop_index("ix_insignes_status", table_name="insignes")
    op.drop_table("insignes")
