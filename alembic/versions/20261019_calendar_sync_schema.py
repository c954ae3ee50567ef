"""Create calendar sync tables

Revision ID: 4b7e1c2d9a30
Revises:
Create Date: 2026-10-19

Creates the per-organisation calendar integration (credential store), the
appointment sync envelope, the imported event mirror and the conflict register.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4b7e1c2d9a30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns() -> list:
    return [
        sa.Column('id', sa.CHAR(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table('calendar_integrations',
        sa.Column('organisation_id', sa.String(length=64), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('is_enabled', sa.Boolean(), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scope', sa.Text(), nullable=True),
        sa.Column('provider_user_email', sa.String(length=255), nullable=True),
        sa.Column('target_calendar_id', sa.String(length=255), nullable=True),
        sa.Column('target_calendar_name', sa.String(length=255), nullable=True),
        sa.Column('source_calendar_id', sa.String(length=255), nullable=True),
        sa.Column('source_calendar_name', sa.String(length=255), nullable=True),
        sa.Column('import_enabled', sa.Boolean(), nullable=False),
        sa.Column('last_sync_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_import_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sync_token', sa.Text(), nullable=True),
        sa.Column('sync_token_calendar_id', sa.String(length=255), nullable=True),
        sa.Column('sync_error_count', sa.Integer(), nullable=False),
        sa.Column('last_sync_error', sa.Text(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('calendar_integrations', schema=None) as batch_op:
        batch_op.create_index('ix_calendar_integrations_organisation_id', ['organisation_id'], unique=False)
        batch_op.create_index('ix_calendar_integrations_org_provider', ['organisation_id', 'provider'], unique=True)

    op.create_table('appointments',
        sa.Column('organisation_id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('date_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('external_provider', sa.String(length=50), nullable=True),
        sa.Column('external_calendar_id', sa.String(length=255), nullable=True),
        sa.Column('external_event_id', sa.String(length=255), nullable=True),
        sa.Column('external_etag', sa.String(length=255), nullable=True),
        sa.Column('sync_status', sa.String(length=20), nullable=False),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sync_error', sa.Text(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('appointments', schema=None) as batch_op:
        batch_op.create_index('idx_appointment_org_sync_status', ['organisation_id', 'sync_status'], unique=False)
        batch_op.create_index('idx_appointment_org_start', ['organisation_id', 'date_start'], unique=False)

    op.create_table('google_calendar_events',
        sa.Column('organisation_id', sa.String(length=64), nullable=False),
        sa.Column('integration_id', sa.CHAR(length=32), nullable=False),
        sa.Column('calendar_id', sa.String(length=255), nullable=False),
        sa.Column('provider_event_id', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('etag', sa.String(length=255), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location', sa.Text(), nullable=True),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('all_day', sa.Boolean(), nullable=False),
        sa.Column('attendees', sa.JSON(), nullable=False),
        sa.Column('html_link', sa.Text(), nullable=True),
        sa.Column('provider_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['integration_id'], ['calendar_integrations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('google_calendar_events', schema=None) as batch_op:
        batch_op.create_index(
            'ux_google_calendar_events_identity',
            ['integration_id', 'calendar_id', 'provider_event_id'],
            unique=True,
        )
        batch_op.create_index(
            'idx_google_calendar_events_org_time',
            ['organisation_id', 'start_at', 'end_at'],
            unique=False,
        )

    op.create_table('sync_conflicts',
        sa.Column('organisation_id', sa.String(length=64), nullable=False),
        sa.Column('source', sa.String(length=20), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('internal_id', sa.String(length=64), nullable=True),
        sa.Column('external_id', sa.String(length=255), nullable=True),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('detected_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_by', sa.String(length=64), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('sync_conflicts', schema=None) as batch_op:
        batch_op.create_index('idx_sync_conflicts_org_status', ['organisation_id', 'status'], unique=False)
        batch_op.create_index(
            'idx_sync_conflicts_subject',
            ['organisation_id', 'internal_id', 'external_id'],
            unique=False,
        )


def downgrade() -> None:
    with op.batch_alter_table('sync_conflicts', schema=None) as batch_op:
        batch_op.drop_index('idx_sync_conflicts_subject')
        batch_op.drop_index('idx_sync_conflicts_org_status')
    op.drop_table('sync_conflicts')

    with op.batch_alter_table('google_calendar_events', schema=None) as batch_op:
        batch_op.drop_index('idx_google_calendar_events_org_time')
        batch_op.drop_index('ux_google_calendar_events_identity')
    op.drop_table('google_calendar_events')

    with op.batch_alter_table('appointments', schema=None) as batch_op:
        batch_op.drop_index('idx_appointment_org_start')
        batch_op.drop_index('idx_appointment_org_sync_status')
    op.drop_table('appointments')

    with op.batch_alter_table('calendar_integrations', schema=None) as batch_op:
        batch_op.drop_index('ix_calendar_integrations_org_provider')
        batch_op.drop_index('ix_calendar_integrations_organisation_id')
    op.drop_table('calendar_integrations')
