from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, Index, MetaData, Table, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

metadata = MetaData()

JsonDocument = JSON().with_variant(JSONB(), "postgresql")

insignes = Table(
    "insignes",
    metadata,
    Column("id", Text, primary_key=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("status", Text, nullable=False),
    Column("access_token", Text, nullable=True, unique=True),
    Column("client_email", Text, nullable=True),
    Column("report_text", Text, nullable=True),
    Column("motto_english", Text, nullable=True),
    Column("motto_latin", Text, nullable=True),
    Index("ix_insignes_status", "status"),
    Index("ix_insignes_created_at", "created_at"),
)

submission_lookup = Table(
    "submission_lookup",
    metadata,
    Column("submission_id", Text, primary_key=True),
    Column("insigne_id", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Index("ix_submission_lookup_insigne_id", "insigne_id"),
)

answers = Table(
    "answers",
    metadata,
    Column("id", Text, primary_key=True),
    Column("insigne_id", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("payload", JsonDocument, nullable=False),
    Index("ix_answers_insigne_id_created_at", "insigne_id", "created_at"),
)

assets = Table(
    "assets",
    metadata,
    Column("id", Text, primary_key=True),
    Column("insigne_id", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("asset_type", Text, nullable=True),
    Column("storage_path", Text, nullable=True),
    Index("ix_assets_insigne_id", "insigne_id"),
)
