"""Add step assignments and per-user timezone."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "202602020900"
down_revision = "202601150900"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("users", sa.Column("timezone", sa.Text(), nullable=True))

    op.create_table(
        "step_assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("checkin_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("assigned_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("helper_name", sa.Text(), nullable=False),
        sa.Column("helper_contact", sa.Text(), nullable=False),
        sa.Column("contact_type", sa.Text(), nullable=False),
        sa.Column("custom_message", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("response_message", sa.Text(), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notification_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notification_message_id", sa.Text(), nullable=True),
        sa.Column("reminder_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_reminder_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["checkin_id"], ["experiment_checkins.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assigned_by"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("access_token", name="uq_step_assignments_access_token"),
        sa.CheckConstraint("contact_type IN ('whatsapp', 'email')", name="ck_step_assignments_contact_type"),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'declined', 'expired')",
            name="ck_step_assignments_status",
        ),
    )
    op.create_index("ix_step_assignments_checkin_id", "step_assignments", ["checkin_id"], unique=False)
    op.create_index("ix_step_assignments_status", "step_assignments", ["status"], unique=False)
    op.create_index("ix_step_assignments_assigned_by", "step_assignments", ["assigned_by"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_step_assignments_assigned_by", table_name="step_assignments")
    op.drop_index("ix_step_assignments_status", table_name="step_assignments")
    op.drop_index("ix_step_assignments_checkin_id", table_name="step_assignments")
    op.drop_table("step_assignments")
    op.drop_column("users", "timezone")
