from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Boolean, ForeignKey, DateTime, text
from typing import Optional

from .authz import Base


class DispatchItem(Base):
    """A dispatch receipt line handed to a user; reportable as damaged by its recipient."""
    __tablename__ = 'dispatch_items'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    dispatch_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    recipient_user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey('products.id'), nullable=False)
    variant_id: Mapped[Optional[int]] = mapped_column(ForeignKey('product_variants.id'), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    received_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    returned_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_returned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    product = relationship('Product')
    variant = relationship('ProductVariant')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

    @property
    def available_quantity(self) -> int:
        return self.received_quantity - (self.returned_quantity or 0)
