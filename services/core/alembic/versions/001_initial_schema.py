"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates all tables:
- users
- runs
- run_events
- run_artifacts
- login_sessions
- usage_counters
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RUN_STATUSES = ("queued", "needs_login", "running", "completed", "failed")


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
    )

    # Runs table
    op.create_table(
        "runs",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column(
            "status",
            sa.Enum(*RUN_STATUSES, name="run_status_enum"),
            nullable=False,
            server_default="queued",
        ),
        sa.Column("config_json", sa.JSON, nullable=False),
        sa.Column("nickname", sa.String(80), nullable=True),
        sa.Column("needs_login_url", sa.Text, nullable=True),
        sa.Column("token_estimate", sa.Integer, nullable=True),
        sa.Column("cost_estimate", sa.Numeric(10, 4), nullable=True),
        sa.Column("failure_reason", sa.Text, nullable=True),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column("started_at", sa.DateTime, nullable=True),
        sa.Column("completed_at", sa.DateTime, nullable=True),
        sa.Column(
            "updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_runs_user"),
    )
    op.create_index("idx_runs_user_created", "runs", ["user_id", "created_at"])
    op.create_index("idx_runs_status", "runs", ["status"])

    # Run events table (append-only)
    op.create_table(
        "run_events",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("run_id", sa.BigInteger, nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("payload_json", sa.JSON, nullable=True),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.ForeignKeyConstraint(["run_id"], ["runs.id"], name="fk_run_events_run"),
    )
    op.create_index("idx_run_events_run_type", "run_events", ["run_id", "event_type"])

    # Run artifacts table
    op.create_table(
        "run_artifacts",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("run_id", sa.BigInteger, nullable=False),
        sa.Column("artifact_type", sa.String(128), nullable=False),
        sa.Column("storage_path", sa.String(512), nullable=False),
        sa.Column("content_sha256", sa.String(64), nullable=False),
        sa.Column("bytes", sa.BigInteger, nullable=False),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.ForeignKeyConstraint(["run_id"], ["runs.id"], name="fk_run_artifacts_run"),
        sa.UniqueConstraint("run_id", "artifact_type", name="uq_run_artifact_type"),
    )

    # Login sessions table (encrypted cookies)
    op.create_table(
        "login_sessions",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column(
            "provider", sa.String(32), nullable=False, server_default="browserless"
        ),
        sa.Column("encrypted_payload", sa.Text, nullable=False),
        sa.Column("encryption_algorithm", sa.String(32), nullable=False),
        sa.Column("expires_at", sa.DateTime, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_login_sessions_user"
        ),
    )
    op.create_index(
        "idx_login_sessions_user_active", "login_sessions", ["user_id", "is_active"]
    )

    # Usage counters table (one row per user per month)
    op.create_table(
        "usage_counters",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column("period_start", sa.Date, nullable=False),
        sa.Column("runs_used", sa.Integer, nullable=False, server_default="0"),
        sa.Column("tokens_used", sa.BigInteger, nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_usage_counters_user"
        ),
        sa.UniqueConstraint("user_id", "period_start", name="uq_usage_user_period"),
    )


def downgrade() -> None:
    op.drop_table("usage_counters")
    op.drop_index("idx_login_sessions_user_active", table_name="login_sessions")
    op.drop_table("login_sessions")
    op.drop_table("run_artifacts")
    op.drop_index("idx_run_events_run_type", table_name="run_events")
    op.drop_table("run_events")
    op.drop_index("idx_runs_status", table_name="runs")
    op.drop_index("idx_runs_user_created", table_name="runs")
    op.drop_table("runs")
    op.drop_table("users")
