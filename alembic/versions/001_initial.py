"""Initial migration

Revision ID: 001_initial
Revises:
Create Date: 2025-10-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Alerts table
    op.create_table(
        'alerts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.String(length=512), nullable=False),
        sa.Column('source', sa.String(length=32), nullable=False),
        sa.Column('agency', sa.String(length=32), nullable=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('full_content', sa.Text(), nullable=True),
        sa.Column('external_url', sa.Text(), nullable=True),
        sa.Column('published_date', sa.DateTime(), nullable=False),
        sa.Column('date_updated', sa.DateTime(), nullable=True),
        sa.Column('date_is_placeholder', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('urgency', sa.String(length=16), nullable=False, server_default='Low'),
        sa.Column('urgency_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('jurisdiction', sa.String(length=128), nullable=True),
        sa.Column('locations', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('product_types', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('region', sa.String(length=32), nullable=True),
        sa.Column('hash', sa.String(length=64), nullable=False),
        sa.Column('dismissed_by', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_alerts_source_external_id', 'alerts', ['source', 'external_id'])
    op.create_index('idx_alerts_title_source_published', 'alerts', ['title', 'source', 'published_date'])
    op.create_index('idx_alerts_hash', 'alerts', ['hash'])

    # Recalls table
    op.create_table(
        'recalls',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('recall_number', sa.String(length=128), nullable=False),
        sa.Column('product_name', sa.Text(), nullable=False),
        sa.Column('product_description', sa.Text(), nullable=True),
        sa.Column('classification', sa.String(length=16), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('company_name', sa.String(length=256), nullable=True),
        sa.Column('distribution_pattern', sa.Text(), nullable=True),
        sa.Column('product_type', sa.String(length=32), nullable=True),
        sa.Column('recall_date', sa.DateTime(), nullable=True),
        sa.Column('publish_date', sa.DateTime(), nullable=True),
        sa.Column('source', sa.String(length=32), nullable=False),
        sa.Column('agency_source', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('recall_number'),
    )

    # Sync logs table
    op.create_table(
        'sync_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('run_id', sa.String(length=64), nullable=True),
        sa.Column('job_name', sa.String(length=64), nullable=False),
        sa.Column('trigger', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('records_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('records_synced', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('sync_metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_sync_logs_run_id'), 'sync_logs', ['run_id'])

    # Per-source sync logs table
    op.create_table(
        'alert_sync_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sync_log_id', sa.Integer(), nullable=True),
        sa.Column('source_name', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('alerts_fetched', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('alerts_inserted', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('alerts_updated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('alerts_skipped', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('errors', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['sync_log_id'], ['sync_logs.id'], ),
    )
    op.create_index(op.f('ix_alert_sync_logs_sync_log_id'), 'alert_sync_logs', ['sync_log_id'])
    op.create_index(op.f('ix_alert_sync_logs_source_name'), 'alert_sync_logs', ['source_name'])

    # Data freshness table
    op.create_table(
        'data_freshness',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('source_name', sa.String(length=64), nullable=False),
        sa.Column('last_attempt', sa.DateTime(), nullable=True),
        sa.Column('last_successful_fetch', sa.DateTime(), nullable=True),
        sa.Column('fetch_status', sa.String(length=20), nullable=True),
        sa.Column('records_fetched', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('source_name'),
    )


def downgrade() -> None:
    op.drop_table('data_freshness')
    op.drop_index(op.f('ix_alert_sync_logs_source_name'), table_name='alert_sync_logs')
    op.drop_index(op.f('ix_alert_sync_logs_sync_log_id'), table_name='alert_sync_logs')
    op.drop_table('alert_sync_logs')
    op.drop_index(op.f('ix_sync_logs_run_id'), table_name='sync_logs')
    op.drop_table('sync_logs')
    op.drop_table('recalls')
    op.drop_index('idx_alerts_hash', table_name='alerts')
    op.drop_index('idx_alerts_title_source_published', table_name='alerts')
    op.drop_index('idx_alerts_source_external_id', table_name='alerts')
    op.drop_table('alerts')
