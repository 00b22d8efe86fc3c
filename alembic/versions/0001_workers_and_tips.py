"""workers and tips

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "workers",
        sa.Column("worker_id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("occupation", sa.String(100), nullable=True),
        sa.Column("phone", sa.String(20), nullable=False, unique=True),
        sa.Column("subscription_plan", sa.String(20), nullable=False, server_default="free"),
        sa.Column("subscription_expiry", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_tips", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("tip_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
    )
    op.create_table(
        "tips",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "worker_id", sa.String(64),
            sa.ForeignKey("workers.worker_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("amount", sa.BigInteger, nullable=False),
        sa.Column("customer_phone", sa.String(20), nullable=False),
        sa.Column("client_reference", sa.String(64), nullable=False, unique=True),
        sa.Column("transaction_id", sa.String(128), nullable=False, unique=True),
        sa.Column("merchant_request_id", sa.String(128), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("mpesa_receipt", sa.String(64), nullable=True),
        sa.Column("result_code", sa.Integer, nullable=True),
        sa.Column("result_desc", sa.String(255), nullable=True),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name="ck_tips_status",
        ),
    )
    op.create_index("ix_tips_worker_id", "tips", ["worker_id"])


def downgrade() -> None:
    op.drop_index("ix_tips_worker_id", table_name="tips")
    op.drop_table("tips")
    op.drop_table("workers")
