"""Universal record store schema

Creates the six tables every vertical shares:
1. organizations              tenant root (optimistic version column)
2. core_entities              generic named objects
3. core_dynamic_data          typed EAV values, one per (entity, field_name)
4. core_relationships         typed directed edges, unique per (org, from, to, type)
5. universal_transactions     ledger headers, unique per (org, external_reference)
6. universal_transaction_lines  ledger lines, unique per (transaction, line_number)

Revision ID: 0001_universal_schema
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_universal_schema'
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns():
    return [
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('updated_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade():
    # ==========================================================================
    # Tenants
    # ==========================================================================
    op.create_table('organizations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=True),
        sa.Column('organization_type', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('settings', sa.JSON(), nullable=False),
        sa.Column('smart_code', sa.String(length=255), nullable=False),
        *_audit_columns(),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_organizations_code', 'organizations', ['code'], unique=True)
    op.create_index('ix_organizations_status', 'organizations', ['status'])

    # ==========================================================================
    # Entities
    # ==========================================================================
    op.create_table('core_entities',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('organization_id', sa.String(length=36), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_name', sa.String(length=255), nullable=False),
        sa.Column('entity_code', sa.String(length=128), nullable=True),
        sa.Column('smart_code', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('parent_entity_id', sa.String(length=36), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['parent_entity_id'], ['core_entities.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_core_entities_organization_id', 'core_entities', ['organization_id'])
    op.create_index('ix_core_entities_smart_code', 'core_entities', ['smart_code'])
    op.create_index('ix_core_entities_parent_entity_id', 'core_entities', ['parent_entity_id'])
    op.create_index('ix_core_entities_org_type_status', 'core_entities', ['organization_id', 'entity_type', 'status'])
    op.create_index('ix_core_entities_org_code', 'core_entities', ['organization_id', 'entity_code'])

    # ==========================================================================
    # Dynamic attributes
    # ==========================================================================
    op.create_table('core_dynamic_data',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('organization_id', sa.String(length=36), nullable=False),
        sa.Column('entity_id', sa.String(length=36), nullable=False),
        sa.Column('field_name', sa.String(length=128), nullable=False),
        sa.Column('field_type', sa.String(length=16), nullable=False),
        sa.Column('field_value_text', sa.Text(), nullable=True),
        sa.Column('field_value_number', sa.Numeric(precision=20, scale=6), nullable=True),
        sa.Column('field_value_boolean', sa.Boolean(), nullable=True),
        sa.Column('field_value_date', sa.DateTime(), nullable=True),
        sa.Column('field_value_json', sa.JSON(), nullable=True),
        sa.Column('smart_code', sa.String(length=255), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['entity_id'], ['core_entities.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('entity_id', 'field_name', name='uq_core_dynamic_data_entity_field')
    )
    op.create_index('ix_core_dynamic_data_organization_id', 'core_dynamic_data', ['organization_id'])
    op.create_index('ix_core_dynamic_data_entity_id', 'core_dynamic_data', ['entity_id'])
    op.create_index('ix_core_dynamic_data_org_field', 'core_dynamic_data', ['organization_id', 'field_name'])

    # ==========================================================================
    # Relationships
    # ==========================================================================
    op.create_table('core_relationships',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('organization_id', sa.String(length=36), nullable=False),
        sa.Column('from_entity_id', sa.String(length=36), nullable=False),
        sa.Column('to_entity_id', sa.String(length=36), nullable=False),
        sa.Column('relationship_type', sa.String(length=64), nullable=False),
        sa.Column('relationship_direction', sa.String(length=16), nullable=False, server_default='forward'),
        sa.Column('relationship_strength', sa.Float(), nullable=False, server_default='1.0'),
        sa.Column('relationship_data', sa.JSON(), nullable=False),
        sa.Column('smart_code', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('effective_date', sa.DateTime(), nullable=True),
        sa.Column('expiration_date', sa.DateTime(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['from_entity_id'], ['core_entities.id']),
        sa.ForeignKeyConstraint(['to_entity_id'], ['core_entities.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'organization_id', 'from_entity_id', 'to_entity_id', 'relationship_type',
            name='uq_core_relationships_org_from_to_type'
        )
    )
    op.create_index('ix_core_relationships_organization_id', 'core_relationships', ['organization_id'])
    op.create_index('ix_core_relationships_is_active', 'core_relationships', ['is_active'])
    op.create_index(
        'ix_core_relationships_org_from_type', 'core_relationships',
        ['organization_id', 'from_entity_id', 'relationship_type']
    )
    op.create_index(
        'ix_core_relationships_org_to_type', 'core_relationships',
        ['organization_id', 'to_entity_id', 'relationship_type']
    )

    # ==========================================================================
    # Ledger
    # ==========================================================================
    op.create_table('universal_transactions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('organization_id', sa.String(length=36), nullable=False),
        sa.Column('transaction_type', sa.String(length=64), nullable=False),
        sa.Column('transaction_code', sa.String(length=128), nullable=True),
        sa.Column('transaction_date', sa.DateTime(), nullable=False),
        sa.Column('smart_code', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='posted'),
        sa.Column('total_amount', sa.Numeric(precision=18, scale=4), nullable=False, server_default='0'),
        sa.Column('transaction_currency_code', sa.String(length=3), nullable=True),
        sa.Column('base_currency_code', sa.String(length=3), nullable=True),
        sa.Column('exchange_rate', sa.Numeric(precision=18, scale=8), nullable=True),
        sa.Column('external_reference', sa.String(length=255), nullable=True),
        sa.Column('request_fingerprint', sa.String(length=64), nullable=True),
        sa.Column('source_entity_id', sa.String(length=36), nullable=True),
        sa.Column('target_entity_id', sa.String(length=36), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_by', sa.String(length=64), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.Column('reversal_of_id', sa.String(length=36), nullable=True),
        sa.Column('reversed_by_id', sa.String(length=36), nullable=True),
        sa.Column('reversed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reversal_reason', sa.String(length=255), nullable=True),
        sa.Column('posted_at', sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['source_entity_id'], ['core_entities.id']),
        sa.ForeignKeyConstraint(['target_entity_id'], ['core_entities.id']),
        sa.ForeignKeyConstraint(['reversal_of_id'], ['universal_transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('organization_id', 'external_reference', name='uq_universal_transactions_org_extref')
    )
    op.create_index('ix_universal_transactions_organization_id', 'universal_transactions', ['organization_id'])
    op.create_index('ix_universal_transactions_transaction_code', 'universal_transactions', ['transaction_code'])
    op.create_index('ix_universal_transactions_smart_code', 'universal_transactions', ['smart_code'])
    op.create_index('ix_universal_transactions_source_entity_id', 'universal_transactions', ['source_entity_id'])
    op.create_index('ix_universal_transactions_target_entity_id', 'universal_transactions', ['target_entity_id'])
    op.create_index('ix_universal_transactions_reversal_of_id', 'universal_transactions', ['reversal_of_id'])
    op.create_index(
        'ix_universal_transactions_org_type_status', 'universal_transactions',
        ['organization_id', 'transaction_type', 'status']
    )
    op.create_index(
        'ix_universal_transactions_org_date', 'universal_transactions',
        ['organization_id', 'transaction_date']
    )

    op.create_table('universal_transaction_lines',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('organization_id', sa.String(length=36), nullable=False),
        sa.Column('transaction_id', sa.String(length=36), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('line_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.String(length=36), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('quantity', sa.Numeric(precision=18, scale=4), nullable=False, server_default='1'),
        sa.Column('unit_price', sa.Numeric(precision=18, scale=4), nullable=True),
        sa.Column('line_amount', sa.Numeric(precision=18, scale=4), nullable=False, server_default='0'),
        sa.Column('line_data', sa.JSON(), nullable=False),
        sa.Column('smart_code', sa.String(length=255), nullable=False),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['transaction_id'], ['universal_transactions.id']),
        sa.ForeignKeyConstraint(['entity_id'], ['core_entities.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_id', 'line_number', name='uq_universal_transaction_lines_txn_number')
    )
    op.create_index('ix_universal_transaction_lines_organization_id', 'universal_transaction_lines', ['organization_id'])
    op.create_index('ix_universal_transaction_lines_transaction_id', 'universal_transaction_lines', ['transaction_id'])
    op.create_index('ix_universal_transaction_lines_entity_id', 'universal_transaction_lines', ['entity_id'])


def downgrade():
    op.drop_table('universal_transaction_lines')
    op.drop_table('universal_transactions')
    op.drop_table('core_relationships')
    op.drop_table('core_dynamic_data')
    op.drop_table('core_entities')
    op.drop_table('organizations')
