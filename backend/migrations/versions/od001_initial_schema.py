"""initial orderdesk schema

Revision ID: od001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete OrderDesk schema:
- companies, users, session_tokens, security_events: tenancy and auth
- products, malls, header_aliases: catalog and lookup tables
- upload_templates: export templates
- staged_files, uploads, upload_rows: upload staging and confirmed orders
- internal_code_counters: per-scope sequence high-water marks
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'od001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False, **kwargs):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable,
                     server_default=sa.text('CURRENT_TIMESTAMP'), **kwargs)


def upgrade():
    # ============================================================================
    # companies: tenant root
    # ============================================================================
    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('companies', schema=None) as batch_op:
        batch_op.create_index('ix_companies_code', ['code'], unique=True)
        batch_op.create_index('ix_companies_is_active', ['is_active'])

    # ============================================================================
    # users / session_tokens / security_events
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('grade', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'username', name='uq_users_company_username'),
        sa.UniqueConstraint('company_id', 'email', name='uq_users_company_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_company_id', 'users', ['company_id'])
    op.create_index('ix_users_username', 'users', ['username'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        _timestamp('created_at'),
        _timestamp('last_used_at'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_company_id', 'session_tokens', ['company_id'])
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    op.create_table(
        'security_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('resource', sa.String(length=128), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        _timestamp('occurred_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_security_events_company_id', 'security_events', ['company_id'])
    op.create_index('ix_security_events_user_id', 'security_events', ['user_id'])
    op.create_index('ix_security_events_event_type', 'security_events', ['event_type'])
    op.create_index('ix_security_events_success', 'security_events', ['success'])
    op.create_index('ix_security_events_occurred_at', 'security_events', ['occurred_at'])
    op.create_index('ix_security_events_company_occurred', 'security_events', ['company_id', 'occurred_at'])

    # ============================================================================
    # products / malls / header_aliases
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sabang_name', sa.String(length=255), nullable=True),
        sa.Column('price', sa.Integer(), nullable=True),
        sa.Column('sale_price', sa.Integer(), nullable=True),
        sa.Column('purchase', sa.String(length=255), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=True),
        sa.Column('post_type', sa.String(length=64), nullable=True),
        sa.Column('pkg', sa.Integer(), nullable=True),
        sa.Column('post_fee', sa.Integer(), nullable=True),
        sa.Column('bill_type', sa.String(length=32), nullable=True),
        sa.Column('category', sa.String(length=120), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'code', name='uq_products_company_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_company_id', 'products', ['company_id'])
    op.create_index('ix_products_company_name', 'products', ['company_id', 'name'])

    op.create_table(
        'malls',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'name', name='uq_malls_company_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_malls_company_id', 'malls', ['company_id'])

    op.create_table(
        'header_aliases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=True),
        sa.Column('column_key', sa.String(length=64), nullable=False),
        sa.Column('column_label', sa.String(length=120), nullable=False),
        sa.Column('aliases', sa.JSON(), nullable=False),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'column_key', name='uq_header_aliases_company_key'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_header_aliases_company_id', 'header_aliases', ['company_id'])

    # ============================================================================
    # upload_templates
    # ============================================================================
    op.create_table(
        'upload_templates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('template_data', sa.JSON(), nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'name', name='uq_upload_templates_company_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_upload_templates_company_id', 'upload_templates', ['company_id'])

    # ============================================================================
    # staged_files / uploads / upload_rows
    # ============================================================================
    op.create_table(
        'staged_files',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('file_id', sa.String(length=128), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('vendor_name', sa.String(length=255), nullable=True),
        sa.Column('table_data', sa.JSON(), nullable=False),
        sa.Column('original_header', sa.JSON(), nullable=True),
        sa.Column('product_code_map', sa.JSON(), nullable=False),
        sa.Column('product_id_map', sa.JSON(), nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'file_id', name='uq_staged_files_company_file'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_staged_files_company_id', 'staged_files', ['company_id'])
    op.create_index('ix_staged_files_user_id', 'staged_files', ['user_id'])
    op.create_index('ix_staged_files_company_user', 'staged_files', ['company_id', 'user_id'])

    op.create_table(
        'uploads',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('source_file_id', sa.String(length=128), nullable=True),
        sa.Column('row_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('original_header', sa.JSON(), nullable=True),
        sa.Column('header', sa.JSON(), nullable=True),
        sa.Column('vendor_name', sa.String(length=255), nullable=True),
        sa.Column('mall_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['mall_id'], ['malls.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'file_name', name='uq_uploads_company_file_name'),
        sa.UniqueConstraint('company_id', 'source_file_id', name='uq_uploads_company_source_file'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_uploads_company_id', 'uploads', ['company_id'])
    op.create_index('ix_uploads_user_id', 'uploads', ['user_id'])
    op.create_index('ix_uploads_created_at', 'uploads', ['created_at'])

    # unique (company_id, internal_code) stops two confirms from storing the
    # same code; the losing request retries its allocation.
    op.create_table(
        'upload_rows',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('upload_id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('mall_id', sa.Integer(), nullable=True),
        sa.Column('vendor_name', sa.String(length=255), nullable=True),
        sa.Column('row_data', sa.JSON(), nullable=False),
        sa.Column('row_order', sa.Integer(), nullable=False),
        sa.Column('order_status', sa.String(length=32), nullable=True),
        sa.Column('internal_code', sa.String(length=32), nullable=False),
        sa.Column('sabang_code', sa.String(length=128), nullable=True),
        sa.Column('supply_price', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['upload_id'], ['uploads.id'], ),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['mall_id'], ['malls.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'internal_code', name='uq_upload_rows_company_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_upload_rows_upload_id', 'upload_rows', ['upload_id'])
    op.create_index('ix_upload_rows_company_id', 'upload_rows', ['company_id'])
    op.create_index('ix_upload_rows_mall_id', 'upload_rows', ['mall_id'])
    op.create_index('ix_upload_rows_order_status', 'upload_rows', ['order_status'])
    op.create_index('ix_upload_rows_upload_order', 'upload_rows', ['upload_id', 'row_order'])
    op.create_index('ix_upload_rows_company_status', 'upload_rows', ['company_id', 'order_status'])

    # ============================================================================
    # internal_code_counters
    # ============================================================================
    op.create_table(
        'internal_code_counters',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('counter_key', sa.String(length=64), nullable=False),
        sa.Column('date_str', sa.String(length=6), nullable=False),
        sa.Column('last_increment', sa.Integer(), nullable=False, server_default='0'),
        _timestamp('updated_at'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'counter_key', 'date_str', name='uq_internal_code_counters_scope'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_internal_code_counters_company_id', 'internal_code_counters', ['company_id'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('internal_code_counters')
    op.drop_table('upload_rows')
    op.drop_table('uploads')
    op.drop_table('staged_files')
    op.drop_table('upload_templates')
    op.drop_table('header_aliases')
    op.drop_table('malls')
    op.drop_table('products')
    op.drop_table('security_events')
    op.drop_table('session_tokens')
    op.drop_table('users')
    op.drop_table('companies')
