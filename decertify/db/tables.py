"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in decertify/models/.
Repos convert between rows and dataclasses; nothing outside decertify/repos
touches a Row class.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from decertify.db.engine import Base
from decertify.models.certificate_request import (
    AMOUNT_MAX_DIGITS,
    CERTIFICATE_TYPE_MAX_LEN,
    CONTENT_ID_MAX_LEN,
    USN_MAX_LEN,
)
from decertify.models.identity import EMAIL_MAX_LEN, NAME_MAX_LEN


class IdentityRow(Base):
    __tablename__ = "identities"
    __table_args__ = (
        CheckConstraint("role IN ('student', 'organization')", name="ck_identities_role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    wallet_address: Mapped[str] = mapped_column(String(42), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(NAME_MAX_LEN), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    email: Mapped[str | None] = mapped_column(String(EMAIL_MAX_LEN), nullable=True)
    ledger_registered: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class OrganizationProfileRow(Base):
    __tablename__ = "organization_profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    identity_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("identities.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    website: Mapped[str] = mapped_column(String(512), nullable=False, default="")


class CertificateRequestRow(Base):
    __tablename__ = "certificate_requests"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'issued')",
            name="ck_certificate_requests_status",
        ),
        # ipfs_hash and issued_at are written together, only when issued.
        CheckConstraint(
            "(ipfs_hash IS NULL) = (issued_at IS NULL)"
            " AND (ipfs_hash IS NOT NULL) = (status = 'issued')",
            name="ck_certificate_requests_issuance_fields",
        ),
        # At most one pending request per (student, organization).
        Index(
            "uq_certificate_requests_pending_pair",
            "student_id",
            "organization_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    student_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("identities.id"), nullable=False, index=True
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("identities.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    issuance_amount: Mapped[str] = mapped_column(
        String(AMOUNT_MAX_DIGITS), nullable=False, default="0"
    )
    verification_charge: Mapped[str] = mapped_column(
        String(AMOUNT_MAX_DIGITS), nullable=False, default="0"
    )
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    ipfs_hash: Mapped[str | None] = mapped_column(
        String(CONTENT_ID_MAX_LEN), nullable=True, index=True
    )
    issued_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    usn: Mapped[str] = mapped_column(String(USN_MAX_LEN), nullable=False)
    year_of_graduation: Mapped[int] = mapped_column(Integer, nullable=False)
    certificate_type: Mapped[str] = mapped_column(
        String(CERTIFICATE_TYPE_MAX_LEN), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
