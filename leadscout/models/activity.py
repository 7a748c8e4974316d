"""
AgentActivity model — append-only audit feed entry.

Written by every stage and by the orchestrator; never read back by the
pipeline itself.
"""
from sqlalchemy import Column, Integer, Text, DateTime
from sqlalchemy.sql import func

from leadscout.database import Base


class AgentActivity(Base):
    __tablename__ = 'agent_activities'

    id = Column(Integer, primary_key=True, autoincrement=True)
    agent_name = Column(Text, nullable=False)
    campaign_id = Column(Text, nullable=True, index=True)
    action = Column(Text, nullable=False)
    detail = Column(Text, default='')
    status = Column(Text, default='completed')    # running / completed / error
    timestamp = Column(DateTime(timezone=True), server_default=func.now())
