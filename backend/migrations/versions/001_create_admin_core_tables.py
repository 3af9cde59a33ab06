"""Create account, organization, project, instruction and admin_log tables

Revision ID: 001
Revises:
Create Date: 2026-02-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade():
    # Organizations have no outgoing foreign keys; created_by is a plain reference
    op.create_table(
        'organizations',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('slug', sa.Text(), nullable=False),
        sa.Column('logo_url', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug', name='uq_organizations_slug'),
    )

    op.create_table(
        'profiles',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('display_name', sa.Text(), nullable=True),
        sa.Column('first_name', sa.Text(), nullable=True),
        sa.Column('last_name', sa.Text(), nullable=True),
        sa.Column('role', sa.Text(), server_default='user', nullable=False),
        sa.Column('active_organization_id', sa.Text(), nullable=True),
        sa.Column('last_sign_in', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['active_organization_id'], ['organizations.id'], ondelete='SET NULL'),
        sa.CheckConstraint("role IN ('user', 'admin', 'superadmin')", name='ck_profiles_role'),
    )

    op.create_table(
        'user_settings',
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('ai_provider', sa.Text(), server_default='gemini', nullable=True),
        sa.Column('model', sa.Text(), nullable=True),
        sa.Column('custom_logo', sa.Text(), nullable=True),
        sa.Column('custom_instructions', JSON, nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('user_id'),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
    )

    op.create_table(
        'organization_members',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('organization_id', sa.Text(), nullable=False),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('org_role', sa.Text(), server_default='member', nullable=False),
        sa.Column('joined_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('organization_id', 'user_id', name='uq_organization_members_org_user'),
        sa.CheckConstraint("org_role IN ('member', 'admin', 'owner')", name='ck_organization_members_org_role'),
    )
    op.create_index('ix_organization_members_user_id', 'organization_members', ['user_id'])

    op.create_table(
        'organization_instructions',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('organization_id', sa.Text(), nullable=False),
        sa.Column('instructions', JSON, nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_by', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['updated_by'], ['profiles.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('organization_id', name='uq_organization_instructions_org'),
    )

    # Singleton row id='global'
    op.create_table(
        'global_settings',
        sa.Column('id', sa.Text(), server_default='global', nullable=False),
        sa.Column('custom_instructions', JSON, nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_by', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['updated_by'], ['profiles.id'], ondelete='SET NULL'),
    )

    op.create_table(
        'projects',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('owner_id', sa.Text(), nullable=False),
        sa.Column('organization_id', sa.Text(), nullable=True),
        sa.Column('title', sa.Text(), server_default='New Project', nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['owner_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_projects_owner_id', 'projects', ['owner_id'])
    op.create_index('ix_projects_organization_id', 'projects', ['organization_id'])

    op.create_table(
        'project_data',
        sa.Column('project_id', sa.Text(), nullable=False),
        sa.Column('language', sa.Text(), nullable=False),
        sa.Column('data', JSON, nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('project_id', 'language'),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ondelete='CASCADE'),
    )

    # admin_id / target_user_id carry no foreign keys: entries outlive purged accounts
    op.create_table(
        'admin_log',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('admin_id', sa.Text(), nullable=True),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('target_user_id', sa.Text(), nullable=True),
        sa.Column('details', JSON, nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_admin_log_created_at', 'admin_log', ['created_at'])
    op.create_index('ix_admin_log_admin_id', 'admin_log', ['admin_id'])


def downgrade():
    op.drop_index('ix_admin_log_admin_id', table_name='admin_log')
    op.drop_index('ix_admin_log_created_at', table_name='admin_log')
    op.drop_table('admin_log')
    op.drop_table('project_data')
    op.drop_index('ix_projects_organization_id', table_name='projects')
    op.drop_index('ix_projects_owner_id', table_name='projects')
    op.drop_table('projects')
    op.drop_table('global_settings')
    op.drop_table('organization_instructions')
    op.drop_index('ix_organization_members_user_id', table_name='organization_members')
    op.drop_table('organization_members')
    op.drop_table('user_settings')
    op.drop_table('profiles')
    op.drop_table('organizations')
