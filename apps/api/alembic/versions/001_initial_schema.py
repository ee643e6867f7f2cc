"""Initial CLA bot schema.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('github_id', sa.String(length=64), nullable=False),
        sa.Column('github_login', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False, server_default=''),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_source', sa.String(length=50), nullable=False, server_default='none'),
        sa.Column('name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('avatar_url', sa.String(length=1024), nullable=False, server_default=''),
        sa.Column('role', sa.String(length=50), nullable=False, server_default='contributor'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_github_id', 'users', ['github_id'], unique=True)
    op.create_index('ix_users_github_login', 'users', ['github_login'])

    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('account_type', sa.String(length=20), nullable=False, server_default='organization'),
        sa.Column('account_id', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('avatar_url', sa.String(length=1024), nullable=False, server_default=''),
        sa.Column('installation_id', sa.Integer(), nullable=True),
        sa.Column('admin_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('cla_text', sa.Text(), nullable=False, server_default=''),
        sa.Column('cla_digest', sa.String(length=64), nullable=True),
        sa.Column('installed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_organizations_id', 'organizations', ['id'])
    op.create_index('ix_organizations_slug', 'organizations', ['slug'], unique=True)

    op.create_table(
        'cla_archives',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('digest', sa.String(length=64), nullable=False),
        sa.Column('cla_text', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('organization_id', 'digest', name='uq_cla_archives_org_digest'),
    )
    op.create_index('ix_cla_archives_id', 'cla_archives', ['id'])
    op.create_index('ix_cla_archives_organization_id', 'cla_archives', ['organization_id'])

    op.create_table(
        'org_cla_bypass_accounts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('subject_key', sa.String(length=255), nullable=False),
        sa.Column('github_login', sa.String(length=255), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            'organization_id', 'kind', 'subject_key', name='uq_bypass_org_kind_subject'
        ),
    )
    op.create_index('ix_org_cla_bypass_accounts_id', 'org_cla_bypass_accounts', ['id'])
    op.create_index(
        'ix_org_cla_bypass_accounts_organization_id', 'org_cla_bypass_accounts', ['organization_id']
    )

    op.create_table(
        'cla_signatures',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('signed_digest', sa.String(length=64), nullable=False),
        sa.Column('accepted_digest', sa.String(length=64), nullable=False),
        sa.Column('consent_version', sa.String(length=50), nullable=False),
        sa.Column('assented', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('signed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('github_id_at_signature', sa.String(length=64), nullable=False),
        sa.Column('github_login_at_signature', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_source', sa.String(length=50), nullable=False, server_default='none'),
        sa.Column('session_id', sa.String(length=255), nullable=False),
        sa.Column('ip_hash', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=1024), nullable=True),
        sa.UniqueConstraint(
            'organization_id', 'user_id', 'signed_digest', name='uq_cla_signatures_org_user_digest'
        ),
    )
    op.create_index('ix_cla_signatures_id', 'cla_signatures', ['id'])
    op.create_index('ix_cla_signatures_organization_id', 'cla_signatures', ['organization_id'])
    op.create_index('ix_cla_signatures_user_id', 'cla_signatures', ['user_id'])
    op.create_index('ix_cla_signatures_signed_at', 'cla_signatures', ['signed_at'])

    op.create_table(
        'webhook_deliveries',
        sa.Column('delivery_id', sa.String(length=255), primary_key=True),
        sa.Column('event', sa.String(length=100), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'audit_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('actor_github_id', sa.String(length=64), nullable=True),
        sa.Column('actor_github_login', sa.String(length=255), nullable=True),
        sa.Column('payload_json', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_audit_events_id', 'audit_events', ['id'])
    op.create_index('ix_audit_events_event_type', 'audit_events', ['event_type'])
    op.create_index('ix_audit_events_organization_id', 'audit_events', ['organization_id'])
    op.create_index('ix_audit_events_created_at', 'audit_events', ['created_at'])

    op.create_table(
        'convergence_runs',
        sa.Column('run_id', sa.String(length=36), primary_key=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=True),
        sa.Column('trigger', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='queued'),
        sa.Column('actor_github_id', sa.String(length=64), nullable=True),
        sa.Column('actor_github_login', sa.String(length=255), nullable=True),
        sa.Column('expected_digest', sa.String(length=64), nullable=True),
        sa.Column('summary_json', sa.JSON(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_convergence_runs_organization_id', 'convergence_runs', ['organization_id'])


def downgrade() -> None:
    op.drop_index('ix_convergence_runs_organization_id', table_name='convergence_runs')
    op.drop_table('convergence_runs')
    op.drop_index('ix_audit_events_created_at', table_name='audit_events')
    op.drop_index('ix_audit_events_organization_id', table_name='audit_events')
    op.drop_index('ix_audit_events_event_type', table_name='audit_events')
    op.drop_index('ix_audit_events_id', table_name='audit_events')
    op.drop_table('audit_events')
    op.drop_table('webhook_deliveries')
    op.drop_index('ix_cla_signatures_signed_at', table_name='cla_signatures')
    op.drop_index('ix_cla_signatures_user_id', table_name='cla_signatures')
    op.drop_index('ix_cla_signatures_organization_id', table_name='cla_signatures')
    op.drop_index('ix_cla_signatures_id', table_name='cla_signatures')
    op.drop_table('cla_signatures')
    op.drop_index('ix_org_cla_bypass_accounts_organization_id', table_name='org_cla_bypass_accounts')
    op.drop_index('ix_org_cla_bypass_accounts_id', table_name='org_cla_bypass_accounts')
    op.drop_table('org_cla_bypass_accounts')
    op.drop_index('ix_cla_archives_organization_id', table_name='cla_archives')
    op.drop_index('ix_cla_archives_id', table_name='cla_archives')
    op.drop_table('cla_archives')
    op.drop_index('ix_organizations_slug', table_name='organizations')
    op.drop_index('ix_organizations_id', table_name='organizations')
    op.drop_table('organizations')
    op.drop_index('ix_users_github_login', table_name='users')
    op.drop_index('ix_users_github_id', table_name='users')
    op.drop_index('ix_users_id', table_name='users')
    op.drop_table('users')
