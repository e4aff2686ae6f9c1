"""SQLAlchemy models for the contribution ledger."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from aportes.core.database import Base

MONEY = Numeric(14, 2)


class Institution(Base):
    """School or employer that submits rosters. Managed outside the pipeline."""

    __tablename__ = "institutions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    cuit: Mapped[str | None] = mapped_column(
        String(11), unique=True, nullable=True, comment="Digits only"
    )
    address: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    members: Mapped[list["Member"]] = relationship("Member", back_populates="institution")
    periods: Mapped[list["Period"]] = relationship("Period", back_populates="institution")


class Member(Base):
    """Person covered by an institution's rosters."""

    __tablename__ = "members"
    __table_args__ = (
        UniqueConstraint("institution_id", "full_name", name="uq_members_institution_full_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    institution_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("institutions.id", ondelete="CASCADE"), nullable=False
    )
    full_name: Mapped[str] = mapped_column(String, nullable=False, comment="Upper-case")
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    institution: Mapped["Institution"] = relationship("Institution", back_populates="members")


class Period(Base):
    """Monthly (or FOPID) contribution period of an institution."""

    __tablename__ = "periods"
    __table_args__ = (
        UniqueConstraint(
            "institution_id", "month", "year", "concept", name="uq_periods_institution_month_year_concept"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    institution_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("institutions.id", ondelete="CASCADE"), nullable=False
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    concept: Mapped[str] = mapped_column(String, nullable=False)
    people_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0.00"))
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    institution: Mapped["Institution"] = relationship("Institution", back_populates="periods")
    transfer: Mapped["Transfer | None"] = relationship(
        "Transfer", back_populates="period", uselist=False
    )


class Document(Base):
    """One uploaded PDF, identified by the SHA-256 of its bytes."""

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    storage_path: Mapped[str | None] = mapped_column(String, nullable=True)
    stored_file_name: Mapped[str | None] = mapped_column(String, nullable=True)
    kind: Mapped[str | None] = mapped_column(
        String, nullable=True
    )  # roster | transfer
    pdf_type: Mapped[str | None] = mapped_column(
        String, nullable=True
    )  # SUELDO | FOPID | COMPROBANTE
    parse_status: Mapped[str] = mapped_column(
        String, nullable=False, default="unparsed", index=True
    )  # unparsed | parsed | failed
    parse_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    people_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    period_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("periods.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    lines: Mapped[list["ContributionLine"]] = relationship(
        "ContributionLine", back_populates="document", cascade="all, delete-orphan"
    )


class ContributionLine(Base):
    """One person's fee within a roster document."""

    __tablename__ = "contribution_lines"
    __table_args__ = (
        UniqueConstraint("document_id", "member_id", name="uq_contribution_lines_document_member"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )
    period_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("periods.id", ondelete="SET NULL"), nullable=True, index=True
    )
    member_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("members.id", ondelete="SET NULL"), nullable=True
    )
    raw_name: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fee_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    gross_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )  # pending | matched | rejected
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    document: Mapped["Document"] = relationship("Document", back_populates="lines")


class Transfer(Base):
    """Bank transfer receipt settling a period."""

    __tablename__ = "transfers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    period_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("periods.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    document_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id", ondelete="SET NULL"), nullable=True
    )
    transferred_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    reference: Mapped[str | None] = mapped_column(String, nullable=True)
    operation_number: Mapped[str | None] = mapped_column(String, nullable=True)
    origin_account: Mapped[str | None] = mapped_column(String, nullable=True)
    destination_cbu: Mapped[str | None] = mapped_column(String(22), nullable=True)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    amount_to_transfer: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    total_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    ordering_cuit: Mapped[str | None] = mapped_column(String(11), nullable=True)
    ordering_name: Mapped[str | None] = mapped_column(String, nullable=True)
    ordering_address: Mapped[str | None] = mapped_column(String, nullable=True)
    beneficiary_name: Mapped[str | None] = mapped_column(String, nullable=True)
    beneficiary_cuit: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String, nullable=True)
    operation_type: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    period: Mapped["Period"] = relationship("Period", back_populates="transfer")
