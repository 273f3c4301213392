"""obligations, records and reminder preferences

Revision ID: 202610181200
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610181200"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    kind_enum = sa.Enum("bill", "expense", name="obligationkind")

    op.create_table(
        "obligations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("kind", kind_enum, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("icon", sa.String(length=40)),
        sa.Column("color", sa.String(length=9)),
        sa.Column("day_of_month", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cycle_months", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("fixed_amount", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("stopped", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "kind", "name", name="uq_obligation_user_kind_name"),
        sa.CheckConstraint(
            "day_of_month >= 0 AND day_of_month <= 31", name="ck_obligation_day_range"
        ),
        sa.CheckConstraint("cycle_months >= 0", name="ck_obligation_cycle_positive"),
    )
    op.create_index("ix_obligations_user_kind", "obligations", ["user_id", "kind"])

    op.create_table(
        "records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "obligation_id",
            sa.Integer(),
            sa.ForeignKey("obligations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("kind", kind_enum, nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("amount", sa.String(length=32), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column(
            "bill_record_id",
            sa.Integer(),
            sa.ForeignKey("records.id", ondelete="SET NULL"),
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("month >= 1 AND month <= 12", name="ck_record_month_range"),
    )
    op.create_index("ix_records_user_period", "records", ["user_id", "year", "month"])
    op.create_index(
        "ix_records_obligation_period", "records", ["obligation_id", "year", "month"]
    )

    op.create_table(
        "reminder_preferences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, unique=True),
        sa.Column("push_url", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("remind_hour", sa.Integer(), nullable=False, server_default="9"),
        sa.Column("remind_days_before", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "remind_hour >= 0 AND remind_hour <= 23", name="ck_reminder_hour_range"
        ),
        sa.CheckConstraint(
            "remind_days_before >= 0 AND remind_days_before <= 30",
            name="ck_reminder_days_range",
        ),
    )
    op.create_index(
        "ix_reminder_enabled_hour", "reminder_preferences", ["enabled", "remind_hour"]
    )


def downgrade():
    op.drop_index("ix_reminder_enabled_hour", table_name="reminder_preferences")
    op.drop_table("reminder_preferences")
    op.drop_index("ix_records_obligation_period", table_name="records")
    op.drop_index("ix_records_user_period", table_name="records")
    op.drop_table("records")
    op.drop_index("ix_obligations_user_kind", table_name="obligations")
    op.drop_table("obligations")
