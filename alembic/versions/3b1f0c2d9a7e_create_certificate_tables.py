"""create identities, organization profiles and certificate requests

Revision ID: 3b1f0c2d9a7e
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1f0c2d9a7e"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "identities",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("wallet_address", sa.String(length=42), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column(
            "ledger_registered", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "role IN ('student', 'organization')", name="ck_identities_role"
        ),
    )

    op.create_table(
        "organization_profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "identity_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("identities.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("website", sa.String(length=512), nullable=False, server_default=""),
    )

    op.create_table(
        "certificate_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "student_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("identities.id"),
            nullable=False,
        ),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("identities.id"),
            nullable=False,
        ),
        sa.Column(
            "status", sa.String(length=16), nullable=False, server_default="pending"
        ),
        sa.Column(
            "issuance_amount", sa.String(length=78), nullable=False, server_default="0"
        ),
        sa.Column(
            "verification_charge",
            sa.String(length=78),
            nullable=False,
            server_default="0",
        ),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("ipfs_hash", sa.String(length=128), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("usn", sa.String(length=64), nullable=False),
        sa.Column("year_of_graduation", sa.Integer(), nullable=False),
        sa.Column("certificate_type", sa.String(length=128), nullable=False),
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
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'issued')",
            name="ck_certificate_requests_status",
        ),
        sa.CheckConstraint(
            "(ipfs_hash IS NULL) = (issued_at IS NULL)"
            " AND (ipfs_hash IS NOT NULL) = (status = 'issued')",
            name="ck_certificate_requests_issuance_fields",
        ),
    )
    op.create_index(
        "ix_certificate_requests_student_id", "certificate_requests", ["student_id"]
    )
    op.create_index(
        "ix_certificate_requests_organization_id",
        "certificate_requests",
        ["organization_id"],
    )
    op.create_index(
        "ix_certificate_requests_ipfs_hash", "certificate_requests", ["ipfs_hash"]
    )
    op.create_index(
        "uq_certificate_requests_pending_pair",
        "certificate_requests",
        ["student_id", "organization_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index(
        "uq_certificate_requests_pending_pair", table_name="certificate_requests"
    )
    op.drop_index("ix_certificate_requests_ipfs_hash", table_name="certificate_requests")
    op.drop_index(
        "ix_certificate_requests_organization_id", table_name="certificate_requests"
    )
    op.drop_index("ix_certificate_requests_student_id", table_name="certificate_requests")
    op.drop_table("certificate_requests")
    op.drop_table("organization_profiles")
    op.drop_table("identities")
