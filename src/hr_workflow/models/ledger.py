"""Journal entry models (append-only posting target)."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_workflow.models.base import Base, UUIDPrimaryKeyMixin, status_check, utcnow


class JournalEntry(Base, UUIDPrimaryKeyMixin):
    """Posted journal entry. Never updated; corrections are reversals."""

    __tablename__ = "journal_entry"
    __entity_type__ = "journal_entry"

    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    entry_type: Mapped[str] = mapped_column(String, nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String, nullable=False)
    source_type: Mapped[str] = mapped_column(String, nullable=False)
    source_id: Mapped[UUID] = mapped_column(nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String, nullable=False)
    reverses_entry_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("journal_entry.id"),
        nullable=True,
    )
    created_by: Mapped[UUID | None] = mapped_column(nullable=True)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
    posted_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("organization_id", "idempotency_key", name="journal_entry_idempotency_key"),
        CheckConstraint(status_check("entry_type", ("expense", "reversal")), name="journal_entry_type_check"),
    )

    lines: Mapped[list[JournalLine]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_no",
    )

    # Entries are posted on insert; the delete guard treats every entry as posted.
    @property
    def status(self) -> str:
        return "posted"


class JournalLine(Base):
    """Debit or credit line of a journal entry."""

    __tablename__ = "journal_line"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    entry_id: Mapped[UUID] = mapped_column(
        ForeignKey("journal_entry.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_no: Mapped[int] = mapped_column(nullable=False)
    account_code: Mapped[str] = mapped_column(String, nullable=False)
    debit: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    credit: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    description: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint("debit >= 0 AND credit >= 0", name="journal_line_non_negative_check"),
        CheckConstraint("(debit = 0) <> (credit = 0)", name="journal_line_one_side_check"),
    )

    entry: Mapped[JournalEntry] = relationship(back_populates="lines")
