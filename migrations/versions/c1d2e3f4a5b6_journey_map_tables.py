"""journey_map_tables

Creates the journey map tables:
  - journey_maps            : map metadata + JSON document
  - journey_map_versions    : append-only snapshots, unique (map_id, version_number)
  - journey_map_comments    : comments anchored to (section_id, stage_id)
  - journey_map_templates   : system and tenant templates

Tables are created conditionally (IF NOT EXISTS semantics) so the revision
can run against a development database that already received them via
db.create_all().

Revision ID: c1d2e3f4a5b6
Revises:
Create Date: 2026-10-18 09:12:41.118305
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'c1d2e3f4a5b6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Journey maps ──────────────────────────────────────────────────────
    if "journey_maps" not in existing:
        op.create_table(
            "journey_maps",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False,
                      comment="draft | published | archived"),
            sa.Column("persona_id", sa.String(length=64), nullable=True),
            sa.Column("created_by", sa.String(length=150), nullable=True),
            sa.Column("tags", sa.JSON(), nullable=True),
            sa.Column("data", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_journey_maps_tenant_id", "journey_maps", ["tenant_id"])
        op.create_index("ix_journey_maps_created_by", "journey_maps", ["created_by"])
        op.create_index("ix_journey_maps_tenant_status", "journey_maps", ["tenant_id", "status"])

    # ── Versions ──────────────────────────────────────────────────────────
    if "journey_map_versions" not in existing:
        op.create_table(
            "journey_map_versions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("map_id", sa.Integer(), nullable=False),
            sa.Column("version_number", sa.Integer(), nullable=False),
            sa.Column("snapshot", sa.JSON(), nullable=False),
            sa.Column("created_by", sa.String(length=150), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["map_id"], ["journey_maps.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("map_id", "version_number", name="uq_journey_map_version"),
        )
        op.create_index("ix_journey_map_versions_map_id", "journey_map_versions", ["map_id"])

    # ── Comments ──────────────────────────────────────────────────────────
    if "journey_map_comments" not in existing:
        op.create_table(
            "journey_map_comments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("map_id", sa.Integer(), nullable=False),
            sa.Column("section_id", sa.String(length=64), nullable=False),
            sa.Column("stage_id", sa.String(length=64), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("user_name", sa.String(length=150), nullable=True),
            sa.Column("resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["map_id"], ["journey_maps.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_journey_map_comments_map_id", "journey_map_comments", ["map_id"])
        op.create_index(
            "ix_journey_comment_cell", "journey_map_comments", ["map_id", "section_id", "stage_id"],
        )

    # ── Templates ─────────────────────────────────────────────────────────
    if "journey_map_templates" not in existing:
        op.create_table(
            "journey_map_templates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=100), nullable=True),
            sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("data", sa.JSON(), nullable=False),
            sa.Column("created_by", sa.String(length=150), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_journey_map_templates_tenant_id", "journey_map_templates", ["tenant_id"])


def downgrade():
    op.drop_table("journey_map_templates")
    op.drop_table("journey_map_comments")
    op.drop_table("journey_map_versions")
    op.drop_table("journey_maps")
