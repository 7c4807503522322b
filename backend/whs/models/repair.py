from __future__ import annotations
from datetime import datetime, date, timezone
from typing import Optional, List
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, Date, DateTime, ForeignKey, UniqueConstraint
from whs.models.authz import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Repair(Base):
    __tablename__ = 'repairs'
    # Operational status axis
    STATUS_PENDING = 'pending'
    STATUS_REPORTED = 'reported'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_FAILED = 'failed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_RESOLVED = 'resolved'
    ALL_STATUSES = (STATUS_PENDING, STATUS_REPORTED, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_FAILED, STATUS_CANCELLED, STATUS_RESOLVED)
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED, STATUS_CANCELLED, STATUS_RESOLVED)
    # Authorization axis, orthogonal to status
    APPROVAL_PENDING = 'pending'
    APPROVAL_APPROVED = 'approved'
    APPROVAL_REJECTED = 'rejected'
    ALL_APPROVAL_STATUSES = (APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED)
    PRIORITIES = ('low', 'medium', 'high', 'urgent')
    REJECTION_REASONS = (
        'insufficient_information',
        'not_repairable',
        'duplicate_request',
        'cost_too_high',
        'policy_violation',
        'missing_documentation',
        'other',
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_number: Mapped[Optional[str]] = mapped_column(String(32), unique=True, nullable=True, index=True)
    reported_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False, index=True)
    approver_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    approved_by: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_REPORTED, index=True)
    approval_status: Mapped[str] = mapped_column(String(16), nullable=False, default=APPROVAL_PENDING, index=True)
    approval_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(String(48), nullable=True)
    # Enrichment fields, settable once approved
    priority: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    estimated_completion_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    actual_completion_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    cost_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    repair_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    items: Mapped[List['RepairItem']] = relationship(
        'RepairItem',
        back_populates='repair',
        cascade='all, delete-orphan',
        order_by='RepairItem.id',
    )

    __mapper_args__ = {'version_id_col': version}
    __table_args__ = (UniqueConstraint('reported_by', 'idempotency_key', name='uq_repair_idempotency'),)

    def item_by_id(self, item_id: int) -> Optional['RepairItem']:
        for item in self.items:
            if item.id == item_id:
                return item
        return None


class RepairItem(Base):
    __tablename__ = 'repair_items'
    STATUS_PENDING = 'pending'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_FAILED = 'failed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_ASSIGNED = 'assigned_repair'
    ALL_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_FAILED, STATUS_CANCELLED, STATUS_ASSIGNED)
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED, STATUS_CANCELLED)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_id: Mapped[int] = mapped_column(ForeignKey('repairs.id', ondelete='CASCADE'), nullable=False, index=True)
    # Immutable pointer into the assignable item source ("dispatch:12", "product:5")
    source_item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    product_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    variant_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    variant_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    is_repairable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_PENDING)
    # Weak user reference: id plus cached display name
    assigned_to_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True, index=True)
    assigned_to_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    repaired: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    repaired_by: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True)
    repaired_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    repair_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    repair: Mapped[Repair] = relationship('Repair', back_populates='items')

    @property
    def is_assigned(self) -> bool:
        return self.assigned_to_id is not None

# Status flow: reported -> in_progress -> completed | failed | resolved (cancelled from any open state).
# Approval flow: pending -> approved | rejected, both final.
