"""Create missions, participations, point balances and business profiles"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "202610010001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "business_profiles",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("city", sa.String(length=120), nullable=True),
        sa.Column("category", sa.String(length=64), nullable=True),
        sa.Column(
            "subscription_level",
            sa.String(length=16),
            nullable=False,
            server_default="FREE",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "missions",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("business_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=64), nullable=False, server_default="Other"),
        sa.Column("mission_type", sa.String(length=32), nullable=False),
        sa.Column("reward_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifecycle_status", sa.String(length=16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("current_participants", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("city", sa.String(length=120), nullable=True),
        sa.Column("view_count", sa.Integer(), nullable=True),
        sa.Column("template_key", sa.String(length=200), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "business_id", "template_key", name="uq_missions_business_template"
        ),
        sa.CheckConstraint("reward_points >= 0", name="ck_missions_reward_non_negative"),
        sa.CheckConstraint(
            "current_participants >= 0", name="ck_missions_participants_non_negative"
        ),
        sa.CheckConstraint(
            "(lifecycle_status = 'ACTIVE' AND is_active) "
            "OR (lifecycle_status <> 'ACTIVE' AND NOT is_active)",
            name="ck_missions_active_flag_consistent",
        ),
    )
    op.create_index("ix_missions_business_id", "missions", ["business_id"])
    op.create_index("ix_missions_city_category", "missions", ["city", "category"])
    op.create_index("ix_missions_valid_until", "missions", ["valid_until"])

    op.create_table(
        "participations",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column(
            "mission_id",
            sa.String(length=32),
            sa.ForeignKey("missions.id"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("business_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("points", sa.Integer(), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.UniqueConstraint("mission_id", "user_id", name="uq_participations_mission_user"),
        sa.CheckConstraint(
            "(status = 'APPROVED' AND approved_at IS NOT NULL) "
            "OR (status <> 'APPROVED' AND approved_at IS NULL)",
            name="ck_participations_approved_at_consistent",
        ),
    )
    op.create_index("ix_participations_mission_id", "participations", ["mission_id"])
    op.create_index("ix_participations_business_id", "participations", ["business_id"])
    op.create_index("ix_participations_user_id", "participations", ["user_id"])

    op.create_table(
        "user_point_balances",
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_credited_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("points >= 0", name="ck_point_balances_points_non_negative"),
        sa.CheckConstraint("level >= 1", name="ck_point_balances_level_positive"),
    )


def downgrade() -> None:
    op.drop_table("user_point_balances")
    op.drop_index("ix_participations_user_id", table_name="participations")
    op.drop_index("ix_participations_business_id", table_name="participations")
    op.drop_index("ix_participations_mission_id", table_name="participations")
    op.drop_table("participations")
    op.drop_index("ix_missions_valid_until", table_name="missions")
    op.drop_index("ix_missions_city_category", table_name="missions")
    op.drop_index("ix_missions_business_id", table_name="missions")
    op.drop_table("missions")
    op.drop_table("business_profiles")
