"""Assignable item source.

Damaged goods come from two places with different shapes: dispatch lines a
user received, and raw inventory (products and their variants). Both are
normalized into `AssignableItem` here so the workflow never branches on
where an item came from.

Source ids: `dispatch:<id>`, `product:<id>` (product without variants),
`variant:<id>`.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload, joinedload

from whs.constants.permissions import RPR_ADMIN
from whs.models.dispatch import DispatchItem
from whs.models.product import Product, ProductVariant
from whs.services.policy import Actor

ORIGIN_DISPATCH = 'dispatch'
ORIGIN_INVENTORY = 'inventory'


@dataclass(frozen=True)
class AssignableItem:
    source_item_id: str
    product_id: int
    variant_id: Optional[int]
    product_name: str
    variant_name: Optional[str]
    available: int
    origin: str
    reference: Optional[str] = None

    def to_json(self):
        return {
            'source_item_id': self.source_item_id,
            'product_id': self.product_id,
            'variant_id': self.variant_id,
            'product_name': self.product_name,
            'variant_name': self.variant_name,
            'available': self.available,
            'origin': self.origin,
            'reference': self.reference,
        }


def _from_dispatch(d: DispatchItem) -> AssignableItem:
    return AssignableItem(
        source_item_id=f'dispatch:{d.id}',
        product_id=d.product_id,
        variant_id=d.variant_id,
        product_name=d.product.name if d.product else f'Product {d.product_id}',
        variant_name=d.variant.name if d.variant else None,
        available=d.available_quantity,
        origin=ORIGIN_DISPATCH,
        reference=d.dispatch_number,
    )


def _from_product(p: Product) -> AssignableItem:
    return AssignableItem(
        source_item_id=f'product:{p.id}',
        product_id=p.id,
        variant_id=None,
        product_name=p.name,
        variant_name=None,
        available=p.stock_quantity,
        origin=ORIGIN_INVENTORY,
        reference=p.sku,
    )


def _from_variant(v: ProductVariant) -> AssignableItem:
    return AssignableItem(
        source_item_id=f'variant:{v.id}',
        product_id=v.product_id,
        variant_id=v.id,
        product_name=v.product.name,
        variant_name=v.name,
        available=v.stock_quantity,
        origin=ORIGIN_INVENTORY,
        reference=v.sku,
    )


class SqlAssignableItemSource:
    def __init__(self, session: Session):
        self.session = session

    def _dispatch_lines(self, actor: Actor) -> List[AssignableItem]:
        rows = self.session.execute(
            select(DispatchItem)
            .options(joinedload(DispatchItem.product), joinedload(DispatchItem.variant))
            .where(DispatchItem.recipient_user_id == actor.user_id, DispatchItem.is_returned.is_(False))
            .order_by(DispatchItem.id.asc())
        ).scalars().all()
        return [_from_dispatch(d) for d in rows if d.available_quantity > 0]

    def _inventory(self) -> List[AssignableItem]:
        products = self.session.execute(
            select(Product)
            .options(selectinload(Product.variants))
            .where(Product.is_active.is_(True))
            .order_by(Product.name.asc(), Product.id.asc())
        ).scalars().all()
        out: List[AssignableItem] = []
        for p in products:
            if p.variants:
                out.extend(_from_variant(v) for v in sorted(p.variants, key=lambda v: v.id) if v.stock_quantity > 0)
            elif p.stock_quantity > 0:
                out.append(_from_product(p))
        return out

    def list_available_items(self, actor: Actor) -> List[AssignableItem]:
        if actor.can(RPR_ADMIN):
            return self._inventory()
        return self._dispatch_lines(actor)

    def available_by_source(self, actor: Actor) -> Dict[str, AssignableItem]:
        return {i.source_item_id: i for i in self.list_available_items(actor)}
