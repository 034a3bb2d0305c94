"""activity_ingestion

Revision ID: 0001
Revises:
Create Date: 2026-10-17

Creates the tables the activity-log ingestion path writes to:
users, patient_activity_logs, patient_activity_sets,
patient_activity_set_form_data, offline_mutations.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="patient"),
        sa.Column("therapist_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- patient_activity_logs ---
    op.create_table(
        "patient_activity_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("patient_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("exercise_id", sa.String(100), nullable=True),
        sa.Column("exercise_name", sa.String(255), nullable=False),
        sa.Column("client_mutation_id", sa.String(255), nullable=False),
        sa.Column("activity_type", sa.String(20), nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("performed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("client_created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("patient_id", "client_mutation_id", name="uq_activity_logs_patient_mutation"),
        sa.CheckConstraint(
            "activity_type IN ('reps', 'hold', 'duration', 'distance')", name="ck_activity_logs_activity_type",
        ),
    )
    op.create_index("ix_patient_activity_logs_patient_id", "patient_activity_logs", ["patient_id"])
    op.create_index("idx_activity_logs_performed_at", "patient_activity_logs", ["performed_at"])

    # --- patient_activity_sets ---
    op.create_table(
        "patient_activity_sets",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "activity_log_id", sa.String(36),
            sa.ForeignKey("patient_activity_logs.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("set_number", sa.Integer, nullable=False),
        sa.Column("reps", sa.Integer, nullable=True),
        sa.Column("seconds", sa.Integer, nullable=True),
        sa.Column("distance_feet", sa.Integer, nullable=True),
        sa.Column("side", sa.String(10), nullable=True),
        sa.Column("manual_log", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("partial_rep", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("performed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("set_number > 0", name="ck_activity_sets_set_number_positive"),
        sa.CheckConstraint("reps IS NULL OR reps >= 0", name="ck_activity_sets_reps"),
        sa.CheckConstraint("seconds IS NULL OR seconds >= 0", name="ck_activity_sets_seconds"),
        sa.CheckConstraint("distance_feet IS NULL OR distance_feet >= 0", name="ck_activity_sets_distance"),
        sa.CheckConstraint("side IS NULL OR side IN ('left', 'right', 'both')", name="ck_activity_sets_side"),
    )
    op.create_index("ix_patient_activity_sets_activity_log_id", "patient_activity_sets", ["activity_log_id"])
    op.create_index("idx_activity_sets_set_number", "patient_activity_sets", ["activity_log_id", "set_number"])

    # --- patient_activity_set_form_data ---
    op.create_table(
        "patient_activity_set_form_data",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "activity_set_id", sa.String(36),
            sa.ForeignKey("patient_activity_sets.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("parameter_name", sa.String(100), nullable=False),
        sa.Column("parameter_value", sa.String(255), nullable=False),
        sa.Column("parameter_unit", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_patient_activity_set_form_data_activity_set_id", "patient_activity_set_form_data", ["activity_set_id"],
    )

    # --- offline_mutations (audit ledger) ---
    op.create_table(
        "offline_mutations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("mutation_type", sa.String(40), nullable=False, server_default="create_activity_log"),
        sa.Column("client_mutation_id", sa.String(255), nullable=True),
        sa.Column("mutation_payload", sa.JSON, nullable=False),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_error", sa.Text, nullable=True),
    )
    op.create_index("ix_offline_mutations_user_id", "offline_mutations", ["user_id"])


def downgrade() -> None:
    op.drop_table("offline_mutations")
    op.drop_table("patient_activity_set_form_data")
    op.drop_table("patient_activity_sets")
    op.drop_table("patient_activity_logs")
    op.drop_table("users")
