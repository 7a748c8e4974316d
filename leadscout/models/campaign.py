"""
Campaign model — a configured lead-discovery objective with targeting criteria.

Status and aggregate counters are written by the pipeline orchestrator and by
human review actions (approve / reject).
"""
import uuid

from sqlalchemy import Column, Integer, Text, DateTime, JSON
from sqlalchemy.sql import func

from leadscout.database import Base


class Campaign(Base):
    __tablename__ = 'discovery_campaigns'

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default='draft')
    target_industry = Column(Text, default='')
    target_roles = Column(JSON, default=list)
    target_company_size = Column(Text, default='')
    target_region = Column(Text, default='')
    search_criteria = Column(Text, default='')
    confidence_threshold = Column(Integer, default=70)   # 0-100
    max_leads_per_run = Column(Integer, default=50)
    agent_id = Column(Text, nullable=True)
    agent_ids = Column(JSON, default=list)
    schedule_cron = Column(Text, nullable=True)
    leads_found = Column(Integer, default=0)
    leads_approved = Column(Integer, default=0)
    leads_rejected = Column(Integer, default=0)
    total_runs = Column(Integer, default=0)
    last_run_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def resolved_agent_ids(self):
        """Prefer the agent_ids list, fall back to the single legacy agent_id."""
        if self.agent_ids:
            return list(self.agent_ids)
        return [self.agent_id] if self.agent_id else []

    def targeting(self) -> dict:
        """JSON-friendly snapshot of the targeting criteria, handed to the stages."""
        return {
            'id': self.id,
            'name': self.name,
            'target_industry': self.target_industry or '',
            'target_roles': list(self.target_roles or []),
            'target_company_size': self.target_company_size or '',
            'target_region': self.target_region or '',
            'search_criteria': self.search_criteria or '',
            'confidence_threshold': self.confidence_threshold if self.confidence_threshold is not None else 70,
            'max_leads_per_run': self.max_leads_per_run or 50,
            'total_runs': self.total_runs or 0,
        }

    def to_dict(self) -> dict:
        return {
            **self.targeting(),
            'status': self.status,
            'agent_ids': self.resolved_agent_ids(),
            'schedule_cron': self.schedule_cron,
            'leads_found': self.leads_found or 0,
            'leads_approved': self.leads_approved or 0,
            'leads_rejected': self.leads_rejected or 0,
            'last_run_at': self.last_run_at.isoformat() if self.last_run_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
