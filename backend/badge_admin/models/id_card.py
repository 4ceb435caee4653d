from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, ForeignKey, Date, DateTime, text, func
from typing import Optional
from datetime import date, datetime
from .authz import Base


class IdCard(Base):
    __tablename__ = 'id_cards'
    # Status constants
    STATUS_CREATED = 'created'
    STATUS_READY_TO_PRINT = 'ready_to_print'
    STATUS_PRINTED = 'printed'
    STATUS_LOST = 'lost'
    STATUS_REPLACED = 'replaced'
    STATUS_EXPIRED = 'expired'
    ALL_STATUSES = (STATUS_CREATED, STATUS_READY_TO_PRINT, STATUS_PRINTED, STATUS_LOST, STATUS_REPLACED, STATUS_EXPIRED)
    TERMINAL_STATUSES = (STATUS_LOST, STATUS_REPLACED, STATUS_EXPIRED)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey('employees.id'), nullable=False, index=True)
    template_id: Mapped[int] = mapped_column(ForeignKey('id_templates.id'), nullable=False)
    # bound once inside the creating transaction, never changed afterwards
    verification_code: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_CREATED, index=True)
    issue_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_by_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    printed_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True)
    printed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status_changed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))


class IssuedCode(Base):
    """Ledger of every verification code ever bound; rows outlive hard-deleted cards."""
    __tablename__ = 'issued_codes'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    id_card_id: Mapped[Optional[int]] = mapped_column(ForeignKey('id_cards.id', ondelete='SET NULL'), nullable=True)
    issued_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
