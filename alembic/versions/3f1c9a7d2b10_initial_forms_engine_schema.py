"""Initial forms engine schema

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTION_TYPES = (
    'FORM_CREATED', 'FORM_UPDATED', 'FORM_DEACTIVATED', 'ATTACHMENT_SAVED', 'ATTACHMENT_REMOVED',
    'CYCLE_LOG_CREATED', 'CYCLE_LOG_FROZEN', 'CYCLE_LOG_UNFROZEN', 'SUBMISSION_CREATED',
    'SUBMISSION_APPROVED', 'SUBMISSION_REJECTED', 'ROLLOVER_RECORDED',
)


def upgrade() -> None:
    op.create_table(
        'agents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('agent_code', sa.String(), nullable=True),
        sa.Column('supervisor_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['supervisor_id'], ['agents.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_agents_id'), 'agents', ['id'], unique=False)
    op.create_index(op.f('ix_agents_tenant_id'), 'agents', ['tenant_id'], unique=False)
    op.create_index(op.f('ix_agents_agent_code'), 'agents', ['agent_code'], unique=False)
    op.create_index(op.f('ix_agents_supervisor_id'), 'agents', ['supervisor_id'], unique=False)

    op.create_table(
        'forms',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('internal_form_id', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('form_schema', sa.JSON(), nullable=False),
        sa.Column('department_id', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('attach_to_specific_agents', sa.Boolean(), nullable=False),
        sa.Column('cycles_per_month', sa.Integer(), nullable=False),
        sa.Column('freeze_enabled', sa.Boolean(), nullable=False),
        sa.Column('freeze_duration', sa.Interval(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('cycles_per_month IN (1, 2, 3, 4)', name='ck_forms_cycles_per_month'),
        sa.CheckConstraint(
            '(NOT freeze_enabled AND freeze_duration IS NULL) OR '
            '(freeze_enabled AND freeze_duration IS NOT NULL)',
            name='ck_forms_valid_freeze_config',
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_forms_id'), 'forms', ['id'], unique=False)
    op.create_index(op.f('ix_forms_tenant_id'), 'forms', ['tenant_id'], unique=False)
    op.create_index(op.f('ix_forms_internal_form_id'), 'forms', ['internal_form_id'], unique=True)
    op.create_index(op.f('ix_forms_department_id'), 'forms', ['department_id'], unique=False)
    op.create_index(op.f('ix_forms_is_active'), 'forms', ['is_active'], unique=False)

    op.create_table(
        'form_attachments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('form_id', sa.Integer(), nullable=False),
        sa.Column('agent_id', sa.Integer(), nullable=False),
        sa.Column('criteria', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('attached_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('attached_by', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['form_id'], ['forms.id']),
        sa.ForeignKeyConstraint(['agent_id'], ['agents.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('form_id', 'agent_id', name='uq_form_attachments_form_agent'),
    )
    op.create_index(op.f('ix_form_attachments_id'), 'form_attachments', ['id'], unique=False)
    op.create_index(op.f('ix_form_attachments_form_id'), 'form_attachments', ['form_id'], unique=False)
    op.create_index(op.f('ix_form_attachments_agent_id'), 'form_attachments', ['agent_id'], unique=False)

    op.create_table(
        'form_config_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('form_id', sa.Integer(), nullable=False),
        sa.Column('changed_by', sa.Integer(), nullable=True),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('field_name', sa.String(), nullable=False),
        sa.Column('old_value', sa.String(), nullable=True),
        sa.Column('new_value', sa.String(), nullable=True),
        sa.Column('effective_month', sa.Date(), nullable=False),
        sa.ForeignKeyConstraint(['form_id'], ['forms.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_form_config_history_id'), 'form_config_history', ['id'], unique=False)
    op.create_index(op.f('ix_form_config_history_form_id'), 'form_config_history', ['form_id'], unique=False)

    op.create_table(
        'form_cycle_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('form_id', sa.Integer(), nullable=False),
        sa.Column('agent_id', sa.Integer(), nullable=False),
        sa.Column('tracking_month', sa.Date(), nullable=False),
        sa.Column('current_cycle', sa.Integer(), nullable=False),
        sa.Column('max_cycles_allowed', sa.Integer(), nullable=False),
        sa.Column('submissions_count', sa.Integer(), nullable=False),
        sa.Column('is_frozen', sa.Boolean(), nullable=False),
        sa.Column('freeze_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_submission_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('config_snapshot', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['form_id'], ['forms.id']),
        sa.ForeignKeyConstraint(['agent_id'], ['agents.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('form_id', 'agent_id', 'tracking_month', name='uq_cycle_logs_form_agent_month'),
        sa.CheckConstraint('current_cycle >= 0', name='ck_cycle_logs_cycle_non_negative'),
        sa.CheckConstraint('current_cycle <= max_cycles_allowed', name='ck_cycle_logs_cycle_within_max'),
    )
    op.create_index(op.f('ix_form_cycle_logs_id'), 'form_cycle_logs', ['id'], unique=False)
    op.create_index(op.f('ix_form_cycle_logs_form_id'), 'form_cycle_logs', ['form_id'], unique=False)
    op.create_index(op.f('ix_form_cycle_logs_agent_id'), 'form_cycle_logs', ['agent_id'], unique=False)
    op.create_index(op.f('ix_form_cycle_logs_tracking_month'), 'form_cycle_logs', ['tracking_month'], unique=False)
    op.create_index(op.f('ix_form_cycle_logs_is_frozen'), 'form_cycle_logs', ['is_frozen'], unique=False)

    op.create_table(
        'form_submissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('form_id', sa.Integer(), nullable=False),
        sa.Column('agent_id', sa.Integer(), nullable=False),
        sa.Column('cycle_log_id', sa.Integer(), nullable=False),
        sa.Column('submission_data', sa.JSON(), nullable=False),
        sa.Column('cycle_number', sa.Integer(), nullable=False),
        sa.Column('submitted_by', sa.Integer(), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('time_spent_seconds', sa.Integer(), nullable=True),
        sa.Column('supervisor_name', sa.String(), nullable=True),
        sa.Column('supervisor_code', sa.String(), nullable=True),
        sa.Column('form_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('form_end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='submissionstatus'), nullable=False),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_by', sa.Integer(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('review_notes', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['form_id'], ['forms.id']),
        sa.ForeignKeyConstraint(['agent_id'], ['agents.id']),
        sa.ForeignKeyConstraint(['cycle_log_id'], ['form_cycle_logs.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            '(approved_by IS NULL OR approved_by != submitted_by) AND '
            '(rejected_by IS NULL OR rejected_by != submitted_by)',
            name='ck_submissions_no_self_review',
        ),
        sa.CheckConstraint('approved_by IS NULL OR rejected_by IS NULL', name='ck_submissions_single_review_action'),
        sa.CheckConstraint(
            "(status = 'PENDING' AND approved_by IS NULL AND rejected_by IS NULL) OR "
            "(status = 'APPROVED' AND approved_by IS NOT NULL) OR "
            "(status = 'REJECTED' AND rejected_by IS NOT NULL AND rejection_reason IS NOT NULL)",
            name='ck_submissions_status_matches_reviewer',
        ),
    )
    op.create_index(op.f('ix_form_submissions_id'), 'form_submissions', ['id'], unique=False)
    op.create_index(op.f('ix_form_submissions_form_id'), 'form_submissions', ['form_id'], unique=False)
    op.create_index(op.f('ix_form_submissions_agent_id'), 'form_submissions', ['agent_id'], unique=False)
    op.create_index(op.f('ix_form_submissions_cycle_log_id'), 'form_submissions', ['cycle_log_id'], unique=False)
    op.create_index(op.f('ix_form_submissions_submitted_by'), 'form_submissions', ['submitted_by'], unique=False)
    op.create_index(op.f('ix_form_submissions_status'), 'form_submissions', ['status'], unique=False)
    op.create_index(op.f('ix_form_submissions_submitted_at'), 'form_submissions', ['submitted_at'], unique=False)

    op.create_table(
        'system_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('event_data', sa.JSON(), nullable=False),
        sa.Column('triggered_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_system_events_id'), 'system_events', ['id'], unique=False)
    op.create_index(op.f('ix_system_events_event_type'), 'system_events', ['event_type'], unique=False)
    op.create_index(op.f('ix_system_events_created_at'), 'system_events', ['created_at'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('action_type', sa.Enum(*ACTION_TYPES, name='actiontype'), nullable=False),
        sa.Column('user_type', sa.Enum('USER', 'API_KEY', 'SYSTEM', name='usertype'), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('resource_type', sa.String(), nullable=True),
        sa.Column('resource_id', sa.Integer(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('request_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('id', 'action_type', 'user_type', 'user_id', 'resource_type', 'resource_id',
                   'status', 'request_id', 'created_at'):
        op.create_index(op.f(f'ix_audit_logs_{column}'), 'audit_logs', [column], unique=False)

    op.create_table(
        'api_keys',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key_hash', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_api_keys_id'), 'api_keys', ['id'], unique=False)
    op.create_index(op.f('ix_api_keys_key_hash'), 'api_keys', ['key_hash'], unique=True)
    op.create_index(op.f('ix_api_keys_tenant_id'), 'api_keys', ['tenant_id'], unique=False)


def downgrade() -> None:
    op.drop_table('api_keys')
    op.drop_table('audit_logs')
    op.drop_table('system_events')
    op.drop_table('form_submissions')
    op.drop_table('form_cycle_logs')
    op.drop_table('form_config_history')
    op.drop_table('form_attachments')
    op.drop_table('forms')
    op.drop_table('agents')
    sa.Enum(name='usertype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='actiontype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='submissionstatus').drop(op.get_bind(), checkfirst=True)
