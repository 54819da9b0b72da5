"""Initial schema - competency assessment

Revision ID: 0001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users table
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(50), nullable=False, default='student'),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('email_verified', sa.Boolean(), nullable=False, default=False),
        sa.Column('otp_code', sa.String(6), nullable=True),
        sa.Column('otp_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reset_token_hash', sa.String(64), nullable=True, index=True),
        sa.Column('reset_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('assessment_status', sa.String(20), nullable=False, default='eligible'),
        sa.Column('highest_level_achieved', sa.String(2), nullable=True),
        sa.Column('current_step', sa.Integer(), nullable=False, default=1),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Refresh tokens table
    op.create_table(
        'refresh_tokens',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('token_hash', sa.String(255), unique=True, nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('revoked', sa.Boolean(), nullable=False, default=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Competencies table; name_key is the case-folded name
    op.create_table(
        'competencies',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('name_key', sa.String(100), unique=True, nullable=False, index=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Questions table
    op.create_table(
        'questions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('competency_id', sa.Uuid(), sa.ForeignKey('competencies.id'), nullable=False, index=True),
        sa.Column('level', sa.String(2), nullable=False, index=True),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('options', sa.JSON(), nullable=False),
        sa.Column('correct_option_index', sa.Integer(), nullable=False),
        sa.Column('difficulty', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('supersedes_id', sa.Uuid(), sa.ForeignKey('questions.id'), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        'uq_questions_active_competency_level',
        'questions',
        ['competency_id', 'level'],
        unique=True,
        sqlite_where=sa.text('is_active = 1'),
        postgresql_where=sa.text('is_active'),
    )

    # Assessment sessions table
    op.create_table(
        'assessment_sessions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('step', sa.Integer(), nullable=False),
        sa.Column('levels_tested', sa.JSON(), nullable=False),
        sa.Column('question_order', sa.JSON(), nullable=False),
        sa.Column('total_questions', sa.Integer(), nullable=False),
        sa.Column('current_question_index', sa.Integer(), nullable=False, default=0),
        sa.Column('current_question_id', sa.Uuid(), nullable=True),
        sa.Column('furthest_question_index', sa.Integer(), nullable=False, default=0),
        sa.Column('questions_answered', sa.Integer(), nullable=False, default=0),
        sa.Column('status', sa.String(20), nullable=False, default='in_progress'),
        sa.Column('correct_answers', sa.Integer(), nullable=False, default=0),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('level_achieved', sa.String(2), nullable=True),
        sa.Column('can_proceed_to_next_step', sa.Boolean(), nullable=False, default=False),
        sa.Column('blocks_retake', sa.Boolean(), nullable=False, default=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_question_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('time_limit_seconds', sa.Integer(), nullable=False),
        sa.Column('time_spent_seconds', sa.Integer(), nullable=False, default=0),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        'uq_assessment_sessions_user_step_in_progress',
        'assessment_sessions',
        ['user_id', 'step'],
        unique=True,
        sqlite_where=sa.text("status = 'in_progress'"),
        postgresql_where=sa.text("status = 'in_progress'"),
    )
    op.create_index('ix_assessment_sessions_user_status', 'assessment_sessions', ['user_id', 'status'])

    # Question responses table
    op.create_table(
        'question_responses',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'session_id',
            sa.Uuid(),
            sa.ForeignKey('assessment_sessions.id', ondelete='CASCADE'),
            nullable=False,
            index=True,
        ),
        sa.Column('question_id', sa.Uuid(), sa.ForeignKey('questions.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('resolution', sa.String(20), nullable=False, default='unresolved'),
        sa.Column('selected_option_index', sa.Integer(), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('question_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('answered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('time_spent_seconds', sa.Integer(), nullable=False, default=0),
        sa.UniqueConstraint('session_id', 'question_id', name='uq_question_responses_session_question'),
        sa.UniqueConstraint('session_id', 'position', name='uq_question_responses_session_position'),
    )

    # Certificates table (one per session)
    op.create_table(
        'certificates',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('session_id', sa.Uuid(), sa.ForeignKey('assessment_sessions.id'), nullable=False, unique=True),
        sa.Column('level_achieved', sa.String(2), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('step', sa.Integer(), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
    )

    # Notification outbox table
    op.create_table(
        'notification_outbox',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('template_key', sa.String(50), nullable=False),
        sa.Column('recipient', sa.String(255), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, default='pending'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('attempted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_notification_outbox_status', 'notification_outbox', ['status'])

    # Event logs table (append-only)
    op.create_table(
        'event_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False, index=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('user_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, index=True),
    )
    op.create_index('ix_event_logs_entity', 'event_logs', ['entity_type', 'entity_id'])
    op.create_index('ix_event_logs_user_time', 'event_logs', ['user_id', 'created_at'])


def downgrade() -> None:
    op.drop_table('event_logs')
    op.drop_table('notification_outbox')
    op.drop_table('certificates')
    op.drop_table('question_responses')
    op.drop_table('assessment_sessions')
    op.drop_table('questions')
    op.drop_table('competencies')
    op.drop_table('refresh_tokens')
    op.drop_table('users')
