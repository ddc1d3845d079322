"""Initial schema: users, hierarchy, comments, steering documents, prompts, status models.

Revision ID: 001
Revises:
Create Date: 2026-10-18

Reference IDs (EP-1, US-1, AC-1, REQ-1, STD-1, PROMPT-1) are filled by a
BEFORE INSERT trigger that advances reference_id_counters.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENTITY_TYPES = ('epic', 'user_story', 'acceptance_criteria', 'requirement')
ITEM_STATUSES = "('Backlog', 'Draft', 'In Progress', 'Done', 'Cancelled')"

# table -> reference prefix
REFERENCE_TABLES = {
    'epics': 'EP',
    'user_stories': 'US',
    'acceptance_criteria': 'AC',
    'requirements': 'REQ',
    'steering_documents': 'STD',
    'prompts': 'PROMPT',
}

# table -> expression indexed for full-text search
SEARCH_DOCUMENTS = {
    'epics': "coalesce(title, '') || ' ' || coalesce(description, '')",
    'user_stories': "coalesce(title, '') || ' ' || coalesce(description, '')",
    'acceptance_criteria': "coalesce(description, '') || ' ' || coalesce(description, '')",
    'requirements': "coalesce(title, '') || ' ' || coalesce(description, '')",
    'steering_documents': "coalesce(title, '') || ' ' || coalesce(description, '')",
}


def _id() -> sa.Column:
    return sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()'))


def _user_fk(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=nullable)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    ]


def upgrade() -> None:
    # Users and credentials
    op.create_table(
        'users',
        _id(),
        sa.Column('username', sa.String(50), nullable=False, unique=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', sa.Enum('Administrator', 'User', 'Commenter', name='user_role'), nullable=False, server_default='User'),
        *_timestamps(),
    )
    op.create_index('ix_users_username', 'users', ['username'])
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'personal_access_tokens',
        _id(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('token_hash', sa.String(255), nullable=False),
        sa.Column('prefix', sa.String(20), nullable=False),
        sa.Column('scopes', postgresql.JSONB, nullable=False, server_default=sa.text('\'["full_access"]\'::jsonb')),
        sa.Column('expires_at', sa.DateTime),
        sa.Column('last_used_at', sa.DateTime),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'name', name='uq_pat_user_name'),
    )
    op.create_index('ix_personal_access_tokens_user_id', 'personal_access_tokens', ['user_id'])
    op.create_index('ix_personal_access_tokens_prefix', 'personal_access_tokens', ['prefix'])

    op.create_table(
        'refresh_tokens',
        _id(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token_hash', sa.String(64), nullable=False, unique=True),
        sa.Column('expires_at', sa.DateTime, nullable=False),
        sa.Column('last_used_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_refresh_tokens_user_id', 'refresh_tokens', ['user_id'])
    op.create_index('ix_refresh_tokens_token_hash', 'refresh_tokens', ['token_hash'])
    op.create_index('ix_refresh_tokens_expires_at', 'refresh_tokens', ['expires_at'])

    op.create_table(
        'reference_id_counters',
        sa.Column('prefix', sa.String(10), primary_key=True),
        sa.Column('next_number', sa.Integer, nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('next_number > 0', name='chk_next_number_positive'),
    )

    # Requirement hierarchy
    op.create_table(
        'epics',
        _id(),
        sa.Column('reference_id', sa.String(20), nullable=False, unique=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('priority', sa.Integer, nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='Backlog'),
        _user_fk('creator_id'),
        _user_fk('assignee_id', nullable=True),
        *_timestamps(),
        sa.CheckConstraint('priority BETWEEN 1 AND 4', name='chk_epic_priority'),
        sa.CheckConstraint(f'status IN {ITEM_STATUSES}', name='chk_epic_status'),
    )

    op.create_table(
        'user_stories',
        _id(),
        sa.Column('reference_id', sa.String(20), nullable=False, unique=True),
        sa.Column('epic_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('epics.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('priority', sa.Integer, nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='Backlog'),
        _user_fk('creator_id'),
        _user_fk('assignee_id', nullable=True),
        *_timestamps(),
        sa.CheckConstraint('priority BETWEEN 1 AND 4', name='chk_user_story_priority'),
        sa.CheckConstraint(f'status IN {ITEM_STATUSES}', name='chk_user_story_status'),
    )
    op.create_index('ix_user_stories_epic_id', 'user_stories', ['epic_id'])

    op.create_table(
        'acceptance_criteria',
        _id(),
        sa.Column('reference_id', sa.String(20), nullable=False, unique=True),
        sa.Column('user_story_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user_stories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('description', sa.Text, nullable=False),
        _user_fk('author_id'),
        *_timestamps(),
        sa.CheckConstraint('length(description) >= 1', name='chk_acceptance_criteria_description'),
    )
    op.create_index('ix_acceptance_criteria_user_story_id', 'acceptance_criteria', ['user_story_id'])
    op.create_index('ix_acceptance_criteria_author_id', 'acceptance_criteria', ['author_id'])

    op.create_table(
        'requirement_types',
        _id(),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
        sa.Column('description', sa.Text),
        *_timestamps(),
    )
    op.create_table(
        'relationship_types',
        _id(),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
        sa.Column('description', sa.Text),
        *_timestamps(),
    )

    op.create_table(
        'requirements',
        _id(),
        sa.Column('reference_id', sa.String(20), nullable=False, unique=True),
        sa.Column('user_story_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user_stories.id', ondelete='CASCADE'), nullable=False),
        sa.Column('acceptance_criteria_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('acceptance_criteria.id', ondelete='SET NULL')),
        sa.Column('type_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('requirement_types.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('priority', sa.Integer, nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='Draft'),
        _user_fk('creator_id'),
        _user_fk('assignee_id', nullable=True),
        *_timestamps(),
        sa.CheckConstraint('priority BETWEEN 1 AND 4', name='chk_requirement_priority'),
        sa.CheckConstraint("status IN ('Draft', 'Active', 'Obsolete')", name='chk_requirement_status'),
    )
    op.create_index('ix_requirements_user_story_id', 'requirements', ['user_story_id'])
    op.create_index('ix_requirements_acceptance_criteria_id', 'requirements', ['acceptance_criteria_id'])
    op.create_index('ix_requirements_type_id', 'requirements', ['type_id'])

    for table in ('epics', 'user_stories', 'requirements'):
        op.create_index(f'ix_{table}_priority', table, ['priority'])
        op.create_index(f'ix_{table}_status', table, ['status'])
        op.create_index(f'ix_{table}_creator_id', table, ['creator_id'])
        op.create_index(f'ix_{table}_assignee_id', table, ['assignee_id'])
        op.create_index(f'ix_{table}_created_at', table, ['created_at'], postgresql_ops={'created_at': 'DESC'})

    op.create_table(
        'requirement_relationships',
        _id(),
        sa.Column('source_requirement_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('requirements.id', ondelete='CASCADE'), nullable=False),
        sa.Column('target_requirement_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('requirements.id', ondelete='CASCADE'), nullable=False),
        sa.Column('relationship_type_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('relationship_types.id', ondelete='RESTRICT'), nullable=False),
        _user_fk('created_by'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('source_requirement_id', 'target_requirement_id', 'relationship_type_id', name='uq_requirement_relationship'),
        sa.CheckConstraint('source_requirement_id != target_requirement_id', name='no_self_relationship'),
    )
    op.create_index('ix_requirement_relationships_source_requirement_id', 'requirement_relationships', ['source_requirement_id'])
    op.create_index('ix_requirement_relationships_target_requirement_id', 'requirement_relationships', ['target_requirement_id'])
    op.create_index('ix_requirement_relationships_relationship_type_id', 'requirement_relationships', ['relationship_type_id'])

    # Comments (polymorphic parent, no FK to the entity)
    op.create_table(
        'comments',
        _id(),
        sa.Column('entity_type', sa.Enum(*ENTITY_TYPES, name='entity_type'), nullable=False),
        sa.Column('entity_id', postgresql.UUID(as_uuid=True), nullable=False),
        _user_fk('author_id'),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('parent_comment_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('comments.id', ondelete='CASCADE')),
        sa.Column('is_resolved', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('linked_text', sa.Text),
        sa.Column('text_position_start', sa.Integer),
        sa.Column('text_position_end', sa.Integer),
        *_timestamps(),
        sa.CheckConstraint(
            "(linked_text IS NULL AND text_position_start IS NULL AND text_position_end IS NULL) OR "
            "(linked_text IS NOT NULL AND text_position_start IS NOT NULL AND text_position_end IS NOT NULL "
            "AND text_position_start >= 0 AND text_position_end > text_position_start)",
            name='chk_comment_inline_anchor',
        ),
    )
    op.create_index('idx_comments_entity', 'comments', ['entity_type', 'entity_id'])
    op.create_index('ix_comments_author_id', 'comments', ['author_id'])
    op.create_index('ix_comments_parent_comment_id', 'comments', ['parent_comment_id'])
    op.create_index('ix_comments_is_resolved', 'comments', ['is_resolved'])
    op.create_index('ix_comments_created_at', 'comments', ['created_at'])

    # Steering documents and prompts
    op.create_table(
        'steering_documents',
        _id(),
        sa.Column('reference_id', sa.String(20), nullable=False, unique=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text),
        _user_fk('creator_id'),
        *_timestamps(),
    )
    op.create_index('ix_steering_documents_creator_id', 'steering_documents', ['creator_id'])
    op.create_index('ix_steering_documents_created_at', 'steering_documents', ['created_at'])

    op.create_table(
        'epic_steering_documents',
        _id(),
        sa.Column('epic_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('epics.id', ondelete='CASCADE'), nullable=False),
        sa.Column('steering_document_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('steering_documents.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('epic_id', 'steering_document_id', name='uq_epic_steering_document'),
    )
    op.create_index('ix_epic_steering_documents_epic_id', 'epic_steering_documents', ['epic_id'])
    op.create_index('ix_epic_steering_documents_steering_document_id', 'epic_steering_documents', ['steering_document_id'])

    op.create_table(
        'prompts',
        _id(),
        sa.Column('reference_id', sa.String(20), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('role', sa.Enum('user', 'assistant', name='prompt_role'), nullable=False, server_default='assistant'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.false()),
        _user_fk('creator_id'),
        *_timestamps(),
    )
    op.create_index('ix_prompts_is_active', 'prompts', ['is_active'])
    op.create_index('ix_prompts_creator_id', 'prompts', ['creator_id'])
    # At most one active prompt
    op.create_index(
        'uq_prompts_single_active', 'prompts', ['is_active'],
        unique=True, postgresql_where=sa.text('is_active'),
    )

    # Status models
    op.create_table(
        'status_models',
        _id(),
        sa.Column('entity_type', postgresql.ENUM(*ENTITY_TYPES, name='entity_type', create_type=False), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('is_default', sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint('entity_type', 'name', name='uq_status_model_entity_name'),
    )
    op.create_index('ix_status_models_entity_type', 'status_models', ['entity_type'])

    op.create_table(
        'statuses',
        _id(),
        sa.Column('status_model_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('status_models.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('color', sa.String(7)),
        sa.Column('order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('is_initial', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_final', sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint('status_model_id', 'name', name='uq_status_model_status_name'),
        sa.CheckConstraint('color IS NULL OR length(color) = 7', name='chk_status_color'),
    )
    op.create_index('ix_statuses_status_model_id', 'statuses', ['status_model_id'])

    op.create_table(
        'status_transitions',
        _id(),
        sa.Column('status_model_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('status_models.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_status_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('statuses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('to_status_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('statuses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(100)),
        sa.Column('description', sa.Text),
        *_timestamps(),
        sa.UniqueConstraint('status_model_id', 'from_status_id', 'to_status_id', name='uq_status_transition'),
        sa.CheckConstraint('from_status_id != to_status_id', name='no_self_transition'),
    )
    op.create_index('ix_status_transitions_status_model_id', 'status_transitions', ['status_model_id'])

    # Reference ID trigger: prefix is passed as the trigger argument
    op.execute("""
        CREATE OR REPLACE FUNCTION assign_reference_id()
        RETURNS TRIGGER AS $$
        DECLARE
            ref_prefix TEXT := TG_ARGV[0];
            next_num INTEGER;
        BEGIN
            IF NEW.reference_id IS NOT NULL THEN
                RETURN NEW;
            END IF;

            INSERT INTO reference_id_counters (prefix, next_number, updated_at)
            VALUES (ref_prefix, 2, NOW())
            ON CONFLICT (prefix) DO UPDATE
            SET next_number = reference_id_counters.next_number + 1,
                updated_at = NOW()
            RETURNING next_number - 1 INTO next_num;

            NEW.reference_id := ref_prefix || '-' || next_num::TEXT;

            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    for table, prefix in REFERENCE_TABLES.items():
        op.execute(f"""
            CREATE TRIGGER trg_{table}_reference_id
            BEFORE INSERT ON {table}
            FOR EACH ROW EXECUTE FUNCTION assign_reference_id('{prefix}');
        """)

    # Full-text search
    for table, document in SEARCH_DOCUMENTS.items():
        op.execute(
            f"CREATE INDEX idx_{table}_search ON {table} "
            f"USING GIN (to_tsvector('english', {document}))"
        )


def downgrade() -> None:
    for table in SEARCH_DOCUMENTS:
        op.execute(f"DROP INDEX IF EXISTS idx_{table}_search")
    for table in REFERENCE_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS trg_{table}_reference_id ON {table}")
    op.execute("DROP FUNCTION IF EXISTS assign_reference_id()")

    op.drop_table('status_transitions')
    op.drop_table('statuses')
    op.drop_table('status_models')
    op.drop_table('prompts')
    op.drop_table('epic_steering_documents')
    op.drop_table('steering_documents')
    op.drop_table('comments')
    op.drop_table('requirement_relationships')
    op.drop_table('requirements')
    op.drop_table('relationship_types')
    op.drop_table('requirement_types')
    op.drop_table('acceptance_criteria')
    op.drop_table('user_stories')
    op.drop_table('epics')
    op.drop_table('reference_id_counters')
    op.drop_table('refresh_tokens')
    op.drop_table('personal_access_tokens')
    op.drop_table('users')

    op.execute("DROP TYPE IF EXISTS prompt_role")
    op.execute("DROP TYPE IF EXISTS entity_type")
    op.execute("DROP TYPE IF EXISTS user_role")
