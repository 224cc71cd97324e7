"""Initial database schema

Revision ID: 001
Revises:
Create Date: 2025-11-03 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create tenants table
    op.create_table('tenants',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=True),
        sa.Column('activate_flag', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code')
    )

    # Create projects table
    op.create_table('projects',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('project_code', sa.String(length=64), nullable=False),
        sa.Column('project_name', sa.String(length=255), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('activate_flag', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'project_code', name='uq_project_code')
    )
    op.create_index('ix_projects_tenant_id', 'projects', ['tenant_id'])

    # Create wbs table
    op.create_table('wbs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=False),
        sa.Column('parent_wbs_id', sa.Integer(), nullable=True),
        sa.Column('wbs_code', sa.String(length=64), nullable=False),
        sa.Column('wbs_name', sa.String(length=255), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('planned_qty', sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column('actual_qty', sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column('is_confirmed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_locked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('lock_date', sa.Date(), nullable=True),
        sa.Column('activate_flag', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id']),
        sa.ForeignKeyConstraint(['parent_wbs_id'], ['wbs.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'project_id', 'wbs_code', name='uq_wbs_code')
    )
    op.create_index('ix_wbs_tenant_id', 'wbs', ['tenant_id'])
    op.create_index('ix_wbs_project_id', 'wbs', ['project_id'])
    op.create_index('ix_wbs_tenant_project', 'wbs', ['tenant_id', 'project_id'])

    # Create tasks table
    op.create_table('tasks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('wbs_id', sa.Integer(), nullable=False),
        sa.Column('task_code', sa.String(length=64), nullable=False),
        sa.Column('task_name', sa.String(length=255), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('planned_qty', sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column('actual_qty', sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column('is_confirmed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_locked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('lock_date', sa.Date(), nullable=True),
        sa.Column('activate_flag', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['wbs_id'], ['wbs.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_tasks_tenant_id', 'tasks', ['tenant_id'])
    op.create_index('ix_tasks_wbs_id', 'tasks', ['wbs_id'])
    op.create_index('ix_tasks_tenant_wbs_start', 'tasks', ['tenant_id', 'wbs_id', 'start_date'])

    # Create task_updates table
    op.create_table('task_updates',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('task_id', sa.Integer(), nullable=False),
        sa.Column('update_date', sa.Date(), nullable=False),
        sa.Column('daily_update_qty', sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['task_id'], ['tasks.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_task_updates_tenant_id', 'task_updates', ['tenant_id'])
    op.create_index(
        'ix_task_updates_tenant_task_date', 'task_updates',
        ['tenant_id', 'task_id', 'update_date']
    )

    # Create resource_allocations table
    op.create_table('resource_allocations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('wbs_id', sa.Integer(), nullable=False),
        sa.Column('resource_type', sa.String(length=16), nullable=False),
        sa.Column('resource_id', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('activate_flag', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['wbs_id'], ['wbs.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_resource_allocations_tenant_id', 'resource_allocations', ['tenant_id'])
    op.create_index(
        'ix_allocations_resource_scope', 'resource_allocations',
        ['tenant_id', 'resource_type', 'resource_id', 'wbs_id']
    )

    # Create business_rules table
    op.create_table('business_rules',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('rule_number', sa.Integer(), nullable=False),
        sa.Column('control_point', sa.String(length=64), nullable=False),
        sa.Column('applicability', sa.String(length=1), nullable=False, server_default='Y'),
        sa.Column('rule_value', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('activate_flag', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'rule_number', name='uq_business_rule_number')
    )
    op.create_index('ix_business_rules_tenant_id', 'business_rules', ['tenant_id'])
    op.create_index('ix_business_rules_tenant_cp', 'business_rules', ['tenant_id', 'control_point'])

    # Create confirmations ledger
    op.create_table('confirmations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('entity_type', sa.String(length=16), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('confirmation_date', sa.Date(), nullable=False),
        sa.Column('confirmed_qty', sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column('confirmed_by', sa.Integer(), nullable=True),
        sa.Column('confirmed_on', sa.DateTime(), nullable=False),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'tenant_id', 'entity_type', 'entity_id', 'confirmation_date',
            name='uq_confirmation_entity_date'
        )
    )
    op.create_index(
        'ix_confirmations_entity', 'confirmations',
        ['tenant_id', 'entity_type', 'entity_id']
    )

    # Create confirmation_locks table
    op.create_table('confirmation_locks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('entity_type', sa.String(length=16), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('lock_date', sa.Date(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'tenant_id', 'entity_type', 'entity_id',
            name='uq_confirmation_lock_entity'
        )
    )

    # Create audit_logs table
    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=True),
        sa.Column('table_name', sa.String(length=64), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=16), nullable=False),
        sa.Column('old_data', sa.JSON(), nullable=True),
        sa.Column('new_data', sa.JSON(), nullable=True),
        sa.Column('changed_by', sa.Integer(), nullable=True),
        sa.Column('changed_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_logs_tenant_id', 'audit_logs', ['tenant_id'])
    op.create_index('ix_audit_logs_table_record', 'audit_logs', ['table_name', 'record_id'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('confirmation_locks')
    op.drop_table('confirmations')
    op.drop_table('business_rules')
    op.drop_table('resource_allocations')
    op.drop_table('task_updates')
    op.drop_table('tasks')
    op.drop_table('wbs')
    op.drop_table('projects')
    op.drop_table('tenants')
