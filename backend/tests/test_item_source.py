from flask import Flask
from whs.services.item_source import SqlAssignableItemSource
from whs.services.policy import Actor
from whs import get_db
from tests.test_utils_seed import ensure_user, ensure_product, create_dispatch_item
from tests.test_lifecycle_helpers import jwt_headers


def _ids(items):
    return [i.source_item_id for i in items]


def test_dispatch_lines_for_regular_users(app_context: Flask):
    user = ensure_user('src1.user@example.com')
    product = ensure_product('SKU-src1', name='Saw src1', variants={'Blue': 2})
    variant = product.variants[0]
    kept = create_dispatch_item(user, product, received=3, returned=1, variant=variant, dispatch_number='DSP-src1-a')
    create_dispatch_item(user, product, received=2, returned=2, dispatch_number='DSP-src1-b')
    create_dispatch_item(user, product, received=2, is_returned=True, dispatch_number='DSP-src1-c')
    items = SqlAssignableItemSource(get_db()).list_available_items(Actor(user_id=user.id, perms=frozenset({'RPR.CREATE'})))
    assert _ids(items) == [f'dispatch:{kept.id}']
    item = items[0]
    assert item.available == 2
    assert item.variant_name == 'Blue'
    assert item.product_name == 'Saw src1'
    assert item.reference == 'DSP-src1-a'
    assert item.origin == 'dispatch'


def test_inventory_for_repair_admins(app_context: Flask):
    admin = ensure_user('src2.admin@example.com')
    plain = ensure_product('SKU-src2-plain', name='src2 Hammer', stock_quantity=4)
    ensure_product('SKU-src2-empty', name='src2 Level', stock_quantity=0)
    varied = ensure_product('SKU-src2-var', name='src2 Vise', stock_quantity=9, variants={'S': 1, 'L': 0})
    items = SqlAssignableItemSource(get_db()).available_by_source(Actor(user_id=admin.id, perms=frozenset({'RPR.ADMIN'})))
    small = next(v for v in varied.variants if v.name == 'S')
    assert items[f'product:{plain.id}'].available == 4
    assert items[f'variant:{small.id}'].variant_name == 'S'
    assert f'product:{varied.id}' not in items
    assert not any(i.product_name == 'src2 Level' for i in items.values())
    assert not any(i.variant_name == 'L' and i.product_id == varied.id for i in items.values())


def test_assignable_items_endpoint(app_context: Flask):
    client = app_context.test_client()
    user = ensure_user('src3.user@example.com')
    product = ensure_product('SKU-src3', name='src3 Router')
    line = create_dispatch_item(user, product, received=1, dispatch_number='DSP-src3')
    resp = client.get('/repairs/assignable-items', headers=jwt_headers(user.id, ['RPR.CREATE']))
    assert resp.status_code == 200
    assert resp.get_json()['data'] == [{
        'source_item_id': f'dispatch:{line.id}', 'product_id': product.id, 'variant_id': None,
        'product_name': 'src3 Router', 'variant_name': None, 'available': 1, 'origin': 'dispatch',
        'reference': 'DSP-src3',
    }]
