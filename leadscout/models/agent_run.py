"""
AgentRun + AgentStep — the run ledger tables.

A run is one execution attempt of a campaign's discover → enrich → qualify
pipeline; a step is one recorded tool invocation inside that run. Only the
pipeline orchestrator and its stage executors write these rows.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, Text, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from leadscout.database import Base


class AgentRun(Base):
    __tablename__ = 'agent_runs'

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    campaign_id = Column(Text, ForeignKey('discovery_campaigns.id'), nullable=False, index=True)
    agent_type = Column(Text, nullable=False, default='full_pipeline')
    status = Column(Text, nullable=False, default='pending')
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    steps_completed = Column(Integer, default=0)
    steps_total = Column(Integer, nullable=True)
    leads_found = Column(Integer, default=0)
    llm_tokens_used = Column(Integer, default=0)
    api_calls_made = Column(Integer, default=0)
    error_message = Column(Text, nullable=True)
    # 'metadata' is reserved on declarative classes
    run_metadata = Column('metadata', JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'campaign_id': self.campaign_id,
            'agent_type': self.agent_type,
            'status': self.status,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'steps_completed': self.steps_completed or 0,
            'steps_total': self.steps_total,
            'leads_found': self.leads_found or 0,
            'llm_tokens_used': self.llm_tokens_used or 0,
            'api_calls_made': self.api_calls_made or 0,
            'error_message': self.error_message,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class AgentStep(Base):
    __tablename__ = 'agent_steps'
    __table_args__ = (
        UniqueConstraint('run_id', 'step_number', name='uq_agent_step_run_number'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(Text, ForeignKey('agent_runs.id'), nullable=False, index=True)
    campaign_id = Column(Text, nullable=False, index=True)
    step_number = Column(Integer, nullable=False)
    stage = Column(Text, nullable=True)
    tool_name = Column(Text, nullable=False)
    tool_input = Column(JSON, nullable=True)
    tool_output = Column(JSON, nullable=True)
    status = Column(Text, nullable=False, default='completed')
    duration_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'run_id': self.run_id,
            'campaign_id': self.campaign_id,
            'step_number': self.step_number,
            'stage': self.stage,
            'tool_name': self.tool_name,
            'tool_input': self.tool_input,
            'tool_output': self.tool_output,
            'status': self.status,
            'duration_ms': self.duration_ms,
            'error_message': self.error_message,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
