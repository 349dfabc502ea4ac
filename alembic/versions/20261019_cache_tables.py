"""Create the local cache tables: crime_reports, posts, groups, users.

Revision ID: 3f9c1a7e2b40
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "3f9c1a7e2b40"
down_revision = None
branch_labels = None
depends_on = None

CRIME_TYPES = ("ASSALTO", "FURTO", "AGRESSAO", "VANDALISMO", "ROUBO", "OUTRO")
FEEDBACK = ("NONE", "USEFUL", "NOT_USEFUL")
EPOCH = "1970-01-01 00:00:00"


def upgrade() -> None:
    op.create_table(
        "crime_reports",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("type", sa.Enum(*CRIME_TYPES, name="crimetype"), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("latitude", sa.Float, nullable=False),
        sa.Column("longitude", sa.Float, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("author_display_name", sa.String(200), nullable=True),
        sa.Column("useful_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("not_useful_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("user_feedback", sa.Enum(*FEEDBACK, name="feedback"), nullable=False, server_default="NONE"),
        sa.Column("distance_meters", sa.Integer, nullable=True),
        sa.Column("distance_km", sa.String(16), nullable=True),
        sa.Column("last_synced_at", sa.DateTime, nullable=False, server_default=EPOCH),
    )
    op.create_index("ix_crime_reports_last_synced_at", "crime_reports", ["last_synced_at"])
    op.create_index("ix_crime_reports_created_at", "crime_reports", ["created_at"])

    op.create_table(
        "posts",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("group_id", sa.String(64), nullable=True),
        sa.Column("author_id", sa.String(64), nullable=False),
        sa.Column("author_username", sa.String(200), nullable=True),
        sa.Column("group_name", sa.String(200), nullable=True),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("like_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("dislike_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_liked", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_disliked", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("comment_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_important", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("media_url", sa.String(2000), nullable=True),
        sa.Column("last_synced_at", sa.DateTime, nullable=False, server_default=EPOCH),
    )
    op.create_index("ix_posts_group_id", "posts", ["group_id"])
    op.create_index("ix_posts_author_id", "posts", ["author_id"])
    op.create_index("ix_posts_last_synced_at", "posts", ["last_synced_at"])

    op.create_table(
        "groups",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("creator_username", sa.String(200), nullable=True),
        sa.Column("member_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_member", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, nullable=True),
        sa.Column("last_synced_at", sa.DateTime, nullable=False, server_default=EPOCH),
    )
    op.create_index("ix_groups_name", "groups", ["name"])
    op.create_index("ix_groups_last_synced_at", "groups", ["last_synced_at"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("username", sa.String(200), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=True),
        sa.Column("last_synced_at", sa.DateTime, nullable=False, server_default=EPOCH),
    )
    op.create_index("ix_users_last_synced_at", "users", ["last_synced_at"])


def downgrade() -> None:
    op.drop_table("users")
    op.drop_table("groups")
    op.drop_table("posts")
    op.drop_table("crime_reports")
