"""initial_schema

Revision ID: 3f9a1c7e2b40
Revises:
Create Date: 2026-10-19 09:12:44.518203+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f9a1c7e2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 1. users (self-referencing manager FK)
    op.create_table('users',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('email', sa.String(length=255), nullable=False),
    sa.Column('name', sa.String(length=200), nullable=True),
    sa.Column('role', sa.String(length=50), nullable=False),
    sa.Column('manager_id', sa.Uuid(), nullable=True),
    sa.Column('is_active', sa.Boolean(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['manager_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('email')
    )
    op.create_index('idx_users_role', 'users', ['role'], unique=False)
    op.create_index('idx_users_manager', 'users', ['manager_id'], unique=False)

    op.create_table('user_role_assignments',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('role_name', sa.String(length=50), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user_id', 'role_name', name='uq_user_role_assignment')
    )
    op.create_index('idx_role_assignments_role', 'user_role_assignments', ['role_name'], unique=False)

    # 2. master data
    op.create_table('cost_centers',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('code', sa.String(length=50), nullable=False),
    sa.Column('name', sa.String(length=200), nullable=False),
    sa.Column('owner_id', sa.Uuid(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('code')
    )

    op.create_table('vendors',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('name', sa.String(length=200), nullable=False),
    sa.Column('tax_id', sa.String(length=50), nullable=True),
    sa.Column('contact_email', sa.String(length=255), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_vendors_name', 'vendors', ['name'], unique=False)

    # 3. governed documents
    op.create_table('purchase_requests',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('requester_id', sa.Uuid(), nullable=False),
    sa.Column('cost_center_id', sa.Uuid(), nullable=False),
    sa.Column('description', sa.Text(), nullable=False),
    sa.Column('status', sa.String(length=50), nullable=True),
    sa.Column('total_cents', sa.BigInteger(), nullable=False),
    sa.Column('idempotency_key', sa.String(length=255), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['cost_center_id'], ['cost_centers.id'], ),
    sa.ForeignKeyConstraint(['requester_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('idempotency_key')
    )
    op.create_index('idx_pr_status', 'purchase_requests', ['status'], unique=False)
    op.create_index('idx_pr_requester', 'purchase_requests', ['requester_id'], unique=False)

    op.create_table('pr_line_items',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('pr_id', sa.Uuid(), nullable=False),
    sa.Column('line_number', sa.Integer(), nullable=False),
    sa.Column('description', sa.Text(), nullable=False),
    sa.Column('quantity', sa.Integer(), nullable=False),
    sa.Column('unit_price_cents', sa.BigInteger(), nullable=False),
    sa.Column('asset_category', sa.String(length=50), nullable=True),
    sa.CheckConstraint('quantity > 0', name='chk_pr_line_qty'),
    sa.CheckConstraint('unit_price_cents > 0', name='chk_pr_line_price'),
    sa.ForeignKeyConstraint(['pr_id'], ['purchase_requests.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('pr_id', 'line_number', name='uq_pr_line_item')
    )
    op.create_index('idx_pr_items_pr', 'pr_line_items', ['pr_id'], unique=False)

    op.create_table('purchase_orders',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('pr_id', sa.Uuid(), nullable=True),
    sa.Column('vendor_id', sa.Uuid(), nullable=False),
    sa.Column('status', sa.String(length=50), nullable=True),
    sa.Column('total_cents', sa.BigInteger(), nullable=False),
    sa.Column('approved_at', sa.DateTime(), nullable=True),
    sa.Column('approved_by_id', sa.Uuid(), nullable=True),
    sa.Column('idempotency_key', sa.String(length=255), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['approved_by_id'], ['users.id'], ),
    sa.ForeignKeyConstraint(['pr_id'], ['purchase_requests.id'], ),
    sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('idempotency_key')
    )
    op.create_index('idx_po_vendor', 'purchase_orders', ['vendor_id'], unique=False)
    op.create_index('idx_po_status', 'purchase_orders', ['status'], unique=False)
    op.create_index('idx_po_pr', 'purchase_orders', ['pr_id'], unique=False)

    op.create_table('invoices',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('invoice_number', sa.String(length=100), nullable=False),
    sa.Column('po_id', sa.Uuid(), nullable=True),
    sa.Column('vendor_id', sa.Uuid(), nullable=False),
    sa.Column('status', sa.String(length=50), nullable=True),
    sa.Column('issue_date', sa.Date(), nullable=False),
    sa.Column('total_cents', sa.BigInteger(), nullable=False),
    sa.Column('idempotency_key', sa.String(length=255), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint('total_cents > 0', name='chk_invoice_total_positive'),
    sa.ForeignKeyConstraint(['po_id'], ['purchase_orders.id'], ),
    sa.ForeignKeyConstraint(['vendor_id'], ['vendors.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('idempotency_key')
    )
    op.create_index('idx_invoices_vendor', 'invoices', ['vendor_id'], unique=False)
    op.create_index('idx_invoices_po', 'invoices', ['po_id'], unique=False)
    op.create_index('idx_invoices_status', 'invoices', ['status'], unique=False)

    # 4. approvals (polymorphic entity reference, no FK on entity_id)
    op.create_table('approvals',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('entity_type', sa.String(length=20), nullable=False),
    sa.Column('entity_id', sa.Uuid(), nullable=False),
    sa.Column('step', sa.Integer(), nullable=False),
    sa.Column('approver_id', sa.Uuid(), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=True),
    sa.Column('decision_notes', sa.Text(), nullable=True),
    sa.Column('decided_at', sa.DateTime(), nullable=True),
    sa.Column('idempotency_key', sa.String(length=255), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint('step > 0', name='chk_approval_step_positive'),
    sa.ForeignKeyConstraint(['approver_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('entity_type', 'entity_id', 'step', name='uq_approval_entity_step'),
    sa.UniqueConstraint('idempotency_key')
    )
    op.create_index('idx_approvals_entity', 'approvals', ['entity_type', 'entity_id', 'status'], unique=False)
    op.create_index('idx_approvals_approver', 'approvals', ['approver_id', 'status'], unique=False)

    # 5. assets
    op.create_table('equipment',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('asset_tag', sa.String(length=100), nullable=False),
    sa.Column('name', sa.String(length=200), nullable=False),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('asset_tag')
    )

    op.create_table('asset_ledgers',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('equipment_id', sa.Uuid(), nullable=False),
    sa.Column('cost_center_id', sa.Uuid(), nullable=False),
    sa.Column('acquisition_date', sa.Date(), nullable=False),
    sa.Column('acquisition_value_cents', sa.BigInteger(), nullable=False),
    sa.Column('depreciation_method', sa.String(length=30), nullable=True),
    sa.Column('useful_life_months', sa.Integer(), nullable=False),
    sa.Column('residual_value_cents', sa.BigInteger(), nullable=True),
    sa.Column('status', sa.String(length=30), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.CheckConstraint('useful_life_months > 0', name='chk_ledger_life_positive'),
    sa.CheckConstraint('residual_value_cents >= 0', name='chk_ledger_residual'),
    sa.ForeignKeyConstraint(['cost_center_id'], ['cost_centers.id'], ),
    sa.ForeignKeyConstraint(['equipment_id'], ['equipment.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('equipment_id')
    )
    op.create_index('idx_ledgers_cost_center', 'asset_ledgers', ['cost_center_id'], unique=False)

    op.create_table('asset_movements',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('equipment_id', sa.Uuid(), nullable=False),
    sa.Column('asset_ledger_id', sa.Uuid(), nullable=False),
    sa.Column('type', sa.String(length=30), nullable=False),
    sa.Column('from_cost_center_id', sa.Uuid(), nullable=True),
    sa.Column('to_cost_center_id', sa.Uuid(), nullable=True),
    sa.Column('reason', sa.Text(), nullable=False),
    sa.Column('actor_id', sa.Uuid(), nullable=False),
    sa.Column('metadata_json', sa.JSON(), nullable=True),
    sa.Column('ts', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['actor_id'], ['users.id'], ),
    sa.ForeignKeyConstraint(['asset_ledger_id'], ['asset_ledgers.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['equipment_id'], ['equipment.id'], ),
    sa.ForeignKeyConstraint(['from_cost_center_id'], ['cost_centers.id'], ),
    sa.ForeignKeyConstraint(['to_cost_center_id'], ['cost_centers.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_movements_ledger', 'asset_movements', ['asset_ledger_id', 'ts'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_movements_ledger', table_name='asset_movements')
    op.drop_table('asset_movements')
    op.drop_index('idx_ledgers_cost_center', table_name='asset_ledgers')
    op.drop_table('asset_ledgers')
    op.drop_table('equipment')
    op.drop_index('idx_approvals_approver', table_name='approvals')
    op.drop_index('idx_approvals_entity', table_name='approvals')
    op.drop_table('approvals')
    op.drop_index('idx_invoices_status', table_name='invoices')
    op.drop_index('idx_invoices_po', table_name='invoices')
    op.drop_index('idx_invoices_vendor', table_name='invoices')
    op.drop_table('invoices')
    op.drop_index('idx_po_pr', table_name='purchase_orders')
    op.drop_index('idx_po_status', table_name='purchase_orders')
    op.drop_index('idx_po_vendor', table_name='purchase_orders')
    op.drop_table('purchase_orders')
    op.drop_index('idx_pr_items_pr', table_name='pr_line_items')
    op.drop_table('pr_line_items')
    op.drop_index('idx_pr_requester', table_name='purchase_requests')
    op.drop_index('idx_pr_status', table_name='purchase_requests')
    op.drop_table('purchase_requests')
    op.drop_index('idx_vendors_name', table_name='vendors')
    op.drop_table('vendors')
    op.drop_table('cost_centers')
    op.drop_index('idx_role_assignments_role', table_name='user_role_assignments')
    op.drop_table('user_role_assignments')
    op.drop_index('idx_users_manager', table_name='users')
    op.drop_index('idx_users_role', table_name='users')
    op.drop_table('users')
