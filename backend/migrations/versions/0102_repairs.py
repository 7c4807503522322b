"""inventory sources, repairs, repair items and notification outbox

Revision ID: 0102_repairs
Revises: 0101_authz_audit
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0102_repairs'
down_revision = '0101_authz_audit'
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False, unique=True),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_products_name', 'products', ['name'])
    op.create_index('ix_products_sku', 'products', ['sku'])

    op.create_table('product_variants',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])

    op.create_table('dispatch_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('dispatch_number', sa.String(length=32), nullable=False),
        sa.Column('recipient_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('variant_id', sa.Integer(), sa.ForeignKey('product_variants.id'), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('received_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('returned_quantity', sa.Integer(), nullable=True),
        sa.Column('is_returned', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_dispatch_items_dispatch_number', 'dispatch_items', ['dispatch_number'])
    op.create_index('ix_dispatch_items_recipient_user_id', 'dispatch_items', ['recipient_user_id'])

    op.create_table('repairs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('repair_number', sa.String(length=32), nullable=True, unique=True),
        sa.Column('reported_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('approver_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('approved_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='reported'),
        sa.Column('approval_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('approval_notes', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.String(length=48), nullable=True),
        sa.Column('priority', sa.String(length=16), nullable=True),
        sa.Column('estimated_completion_date', sa.Date(), nullable=True),
        sa.Column('actual_completion_date', sa.Date(), nullable=True),
        sa.Column('cost_cents', sa.Integer(), nullable=True),
        sa.Column('repair_notes', sa.Text(), nullable=True),
        sa.Column('idempotency_key', sa.String(length=64), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('reported_by', 'idempotency_key', name='uq_repair_idempotency'),
    )
    op.create_index('ix_repairs_repair_number', 'repairs', ['repair_number'])
    op.create_index('ix_repairs_reported_by', 'repairs', ['reported_by'])
    op.create_index('ix_repairs_status', 'repairs', ['status'])
    op.create_index('ix_repairs_approval_status', 'repairs', ['approval_status'])

    op.create_table('repair_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('repair_id', sa.Integer(), sa.ForeignKey('repairs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('source_item_id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=True),
        sa.Column('product_name', sa.String(length=128), nullable=True),
        sa.Column('variant_name', sa.String(length=128), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('is_repairable', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('assigned_to_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('assigned_to_name', sa.String(length=128), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('repaired', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('repaired_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('repaired_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('repair_notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_repair_items_repair_id', 'repair_items', ['repair_id'])
    op.create_index('ix_repair_items_product_id', 'repair_items', ['product_id'])
    op.create_index('ix_repair_items_assigned_to_id', 'repair_items', ['assigned_to_id'])

    op.create_table('repair_notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('recipient_user_id', sa.Integer(), nullable=False),
        sa.Column('event', sa.String(length=64), nullable=False),
        sa.Column('repair_id', sa.Integer(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('delivered', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_repair_notifications_recipient_user_id', 'repair_notifications', ['recipient_user_id'])
    op.create_index('ix_repair_notifications_event', 'repair_notifications', ['event'])
    op.create_index('ix_repair_notifications_repair_id', 'repair_notifications', ['repair_id'])


def downgrade():
    op.drop_table('repair_notifications')
    op.drop_table('repair_items')
    op.drop_table('repairs')
    op.drop_table('dispatch_items')
    op.drop_table('product_variants')
    op.drop_table('products')
