from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, JSON, DateTime, Boolean, func

from .authz import Base


class RepairNotification(Base):
    """Outbox row written in the same transaction as the change it announces.

    Delivery (mail, push, chat) is owned by a separate consumer that drains
    undelivered rows.
    """
    __tablename__ = 'repair_notifications'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    recipient_user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    event: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    repair_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    payload: Mapped[dict] = mapped_column(JSON, default=dict)
    delivered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
