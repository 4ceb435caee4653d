"""initial schema: area catalog, versioned role grants, ID cards, audit

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

ACTION_FLAGS = ('view', 'add', 'edit', 'delete', 'assign', 'approve', 'generate', 'lost')


def _flag_columns():
    return [sa.Column(f'can_{a}', sa.Boolean(), nullable=False, server_default=sa.text('0')) for a in ACTION_FLAGS]


def _updated_at():
    return sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    op.create_table('roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=64), nullable=False, unique=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        _updated_at(),
    )

    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='SET NULL'), nullable=True),
        _updated_at(),
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_role_id', 'users', ['role_id'])

    op.create_table('menus',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=64), nullable=False, unique=True),
        sa.Column('url', sa.String(length=255), nullable=True),
        sa.Column('icon', sa.String(length=64), nullable=True),
        sa.Column('is_collapsible', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        _updated_at(),
    )

    op.create_table('sub_menus',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('menu_id', sa.Integer(), sa.ForeignKey('menus.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(length=64), nullable=False),
        sa.Column('url', sa.String(length=255), nullable=True),
        sa.UniqueConstraint('menu_id', 'title', name='uq_sub_menu_title'),
    )
    op.create_index('ix_sub_menus_menu_id', 'sub_menus', ['menu_id'])

    op.create_table('role_permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default=sa.text('1')),
        _updated_at(),
    )

    op.create_table('role_menu_access',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('role_permission_id', sa.Integer(), sa.ForeignKey('role_permissions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('menu_id', sa.Integer(), sa.ForeignKey('menus.id', ondelete='CASCADE'), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        *_flag_columns(),
    )
    op.create_index('ix_role_menu_access_role_permission_id', 'role_menu_access', ['role_permission_id'])
    op.create_index('ix_role_menu_access_version', 'role_menu_access', ['version'])

    op.create_table('role_sub_menu_access',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('role_menu_access_id', sa.Integer(), sa.ForeignKey('role_menu_access.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sub_menu_id', sa.Integer(), sa.ForeignKey('sub_menus.id', ondelete='CASCADE'), nullable=False),
        *_flag_columns(),
    )
    op.create_index('ix_role_sub_menu_access_role_menu_access_id', 'role_sub_menu_access', ['role_menu_access_id'])

    op.create_table('employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('department', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('photo_url', sa.String(length=255), nullable=True),
        _updated_at(),
    )
    op.create_index('ix_employees_employee_code', 'employees', ['employee_code'])

    op.create_table('id_templates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=64), nullable=False, unique=True),
        sa.Column('layout', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        _updated_at(),
    )

    op.create_table('id_cards',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('template_id', sa.Integer(), sa.ForeignKey('id_templates.id'), nullable=False),
        sa.Column('verification_code', sa.String(length=64), nullable=True, unique=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='created'),
        sa.Column('issue_date', sa.Date(), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('created_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('printed_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('printed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status_changed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        _updated_at(),
    )
    op.create_index('ix_id_cards_employee_id', 'id_cards', ['employee_id'])
    op.create_index('ix_id_cards_status', 'id_cards', ['status'])
    op.create_index('ix_id_cards_verification_code', 'id_cards', ['verification_code'])

    op.create_table('issued_codes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=64), nullable=False, unique=True),
        sa.Column('id_card_id', sa.Integer(), sa.ForeignKey('id_cards.id', ondelete='SET NULL'), nullable=True),
        sa.Column('issued_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_issued_codes_code', 'issued_codes', ['code'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('actor_role_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('area', sa.String(length=64), nullable=True),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('outcome', sa.String(length=32), nullable=False, server_default='success'),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])


def downgrade():
    for table in (
        'audit_logs', 'issued_codes', 'id_cards', 'id_templates', 'employees',
        'role_sub_menu_access', 'role_menu_access', 'role_permissions',
        'sub_menus', 'menus', 'users', 'roles',
    ):
        op.drop_table(table)
