"""Campaign pipeline schema: campaigns, runs, steps, leads, activities, metrics, flows

Revision ID: d41e6b2a9c10
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'd41e6b2a9c10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NOW = sa.text('(CURRENT_TIMESTAMP)')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('discovery_campaigns',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('target_industry', sa.Text(), nullable=True),
        sa.Column('target_roles', sa.JSON(), nullable=True),
        sa.Column('target_company_size', sa.Text(), nullable=True),
        sa.Column('target_region', sa.Text(), nullable=True),
        sa.Column('search_criteria', sa.Text(), nullable=True),
        sa.Column('confidence_threshold', sa.Integer(), nullable=True),
        sa.Column('max_leads_per_run', sa.Integer(), nullable=True),
        sa.Column('agent_id', sa.Text(), nullable=True),
        sa.Column('agent_ids', sa.JSON(), nullable=True),
        sa.Column('schedule_cron', sa.Text(), nullable=True),
        sa.Column('leads_found', sa.Integer(), nullable=True),
        sa.Column('leads_approved', sa.Integer(), nullable=True),
        sa.Column('leads_rejected', sa.Integer(), nullable=True),
        sa.Column('total_runs', sa.Integer(), nullable=True),
        sa.Column('last_run_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('agent_runs',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('campaign_id', sa.Text(), nullable=False),
        sa.Column('agent_type', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('steps_completed', sa.Integer(), nullable=True),
        sa.Column('steps_total', sa.Integer(), nullable=True),
        sa.Column('leads_found', sa.Integer(), nullable=True),
        sa.Column('llm_tokens_used', sa.Integer(), nullable=True),
        sa.Column('api_calls_made', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(['campaign_id'], ['discovery_campaigns.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_agent_runs_campaign_id', 'agent_runs', ['campaign_id'])

    op.create_table('agent_steps',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('run_id', sa.Text(), nullable=False),
        sa.Column('campaign_id', sa.Text(), nullable=False),
        sa.Column('step_number', sa.Integer(), nullable=False),
        sa.Column('stage', sa.Text(), nullable=True),
        sa.Column('tool_name', sa.Text(), nullable=False),
        sa.Column('tool_input', sa.JSON(), nullable=True),
        sa.Column('tool_output', sa.JSON(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(['run_id'], ['agent_runs.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('run_id', 'step_number', name='uq_agent_step_run_number'),
    )
    op.create_index('ix_agent_steps_run_id', 'agent_steps', ['run_id'])
    op.create_index('ix_agent_steps_campaign_id', 'agent_steps', ['campaign_id'])

    op.create_table('discovered_leads',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('campaign_id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('company', sa.Text(), nullable=True),
        sa.Column('position', sa.Text(), nullable=True),
        sa.Column('linkedin_url', sa.Text(), nullable=True),
        sa.Column('confidence_score', sa.Integer(), nullable=True),
        sa.Column('discovery_source', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('ai_summary', sa.Text(), nullable=True),
        sa.Column('signals', sa.JSON(), nullable=True),
        sa.Column('discovered_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(['campaign_id'], ['discovery_campaigns.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_discovered_leads_campaign_id', 'discovered_leads', ['campaign_id'])

    op.create_table('agent_activities',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('agent_name', sa.Text(), nullable=False),
        sa.Column('campaign_id', sa.Text(), nullable=True),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('detail', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_agent_activities_campaign_id', 'agent_activities', ['campaign_id'])

    op.create_table('campaign_metrics',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('campaign_id', sa.Text(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('leads_discovered', sa.Integer(), nullable=True),
        sa.Column('leads_enriched', sa.Integer(), nullable=True),
        sa.Column('leads_qualified', sa.Integer(), nullable=True),
        sa.Column('leads_approved', sa.Integer(), nullable=True),
        sa.Column('leads_rejected', sa.Integer(), nullable=True),
        sa.Column('api_calls', sa.Integer(), nullable=True),
        sa.Column('llm_tokens', sa.Integer(), nullable=True),
        sa.Column('runs_count', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('campaign_id', 'date', name='uq_campaign_metric_campaign_date'),
    )

    op.create_table('flows',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('trigger_type', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('flow_nodes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('flow_id', sa.Text(), nullable=False),
        sa.Column('node_type', sa.Text(), nullable=False),
        sa.Column('label', sa.Text(), nullable=True),
        sa.Column('config', sa.JSON(), nullable=True),
        sa.Column('position_x', sa.Integer(), nullable=True),
        sa.Column('position_y', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(['flow_id'], ['flows.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_flow_nodes_flow_id', 'flow_nodes', ['flow_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_flow_nodes_flow_id', table_name='flow_nodes')
    op.drop_table('flow_nodes')
    op.drop_table('flows')
    op.drop_table('campaign_metrics')
    op.drop_index('ix_agent_activities_campaign_id', table_name='agent_activities')
    op.drop_table('agent_activities')
    op.drop_index('ix_discovered_leads_campaign_id', table_name='discovered_leads')
    op.drop_table('discovered_leads')
    op.drop_index('ix_agent_steps_campaign_id', table_name='agent_steps')
    op.drop_index('ix_agent_steps_run_id', table_name='agent_steps')
    op.drop_table('agent_steps')
    op.drop_index('ix_agent_runs_campaign_id', table_name='agent_runs')
    op.drop_table('agent_runs')
    op.drop_table('discovery_campaigns')
